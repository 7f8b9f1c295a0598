"""Utilities for importing contest questions from a human-friendly text file.

File format (repeat blocks separated by blank lines or '---'):

    Q: Question text. Additional lines until the next marker are treated as
       part of the question.
    A: First option text
    B: Second option text
    ...         (two to six options, letters A-F in order)
    CORRECT: letter of the correct option
    TIMELIMIT: seconds (optional, falls back to the contest's time per question)

Example:

    Q: What is 2 + 2?
    A: 3
    B: 4
    C: 5
    D: 22
    CORRECT: B
    TIMELIMIT: 6
"""

from __future__ import annotations

import math
from pathlib import Path

from contest_engine.core.errors import ContestValidationError
from contest_engine.core.models import Question


class QuestionImportError(ContestValidationError):
    """Raised when a question file cannot be parsed."""


_OPTION_ORDER = ["A", "B", "C", "D", "E", "F"]


def load_questions_from_file(file_path: Path, id_prefix: str | None = None) -> list[Question]:
    text = file_path.read_text(encoding="utf-8")
    questions = parse_questions(text, id_prefix=id_prefix or file_path.stem)
    if not questions:
        raise QuestionImportError("Question file did not contain any questions.")
    return questions


def parse_questions(text: str, id_prefix: str = "q") -> list[Question]:
    blocks: list[str] = []
    current_block: list[str] = []
    for raw_line in text.splitlines():
        stripped = raw_line.strip()
        if stripped == "---":
            if current_block:
                blocks.append("\n".join(current_block).strip())
                current_block = []
            continue
        if stripped:
            current_block.append(raw_line)
        elif current_block:
            # Blank line encountered after content - finalize current block
            blocks.append("\n".join(current_block).strip())
            current_block = []
    if current_block:
        blocks.append("\n".join(current_block).strip())

    return [
        _parse_block(block, question_id=f"{id_prefix}-{number}")
        for number, block in enumerate((b for b in blocks if b), start=1)
    ]


def validate_question(question: Question) -> None:
    """Check the invariants every question handed to a room must satisfy."""
    if not question.text.strip():
        raise QuestionImportError("Question text cannot be empty.")
    if len(question.options) < 2:
        raise QuestionImportError("Each question needs at least two options.")
    if len(set(question.options)) != len(question.options):
        raise QuestionImportError("Question options must be unique.")
    if not 0 <= question.correct_option_index < len(question.options):
        raise QuestionImportError("Correct option index is out of range.")
    if question.time_limit_seconds is not None and (
        not math.isfinite(question.time_limit_seconds) or question.time_limit_seconds <= 0
    ):
        raise QuestionImportError("Time limit must be positive.")


def _parse_block(block: str, question_id: str) -> Question:
    question_lines: list[str] = []
    options: dict[str, str] = {}
    correct_letter: str | None = None
    time_limit_seconds: float | None = None
    current_section: str | None = None

    for raw_line in block.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        upper = line.upper()
        if upper.startswith("Q:"):
            question_lines = [line[2:].strip()]
            current_section = "Q"
            continue

        if upper.startswith("CORRECT:"):
            correct_letter = line.split(":", 1)[1].strip().upper()
            current_section = None
            continue

        if upper.startswith("TIMELIMIT:"):
            raw_value = line.split(":", 1)[1].strip()
            try:
                parsed_value = float(raw_value)
            except ValueError as exc:
                raise QuestionImportError("TIMELIMIT must be a number of seconds.") from exc
            if parsed_value <= 0:
                raise QuestionImportError("TIMELIMIT must be positive.")
            time_limit_seconds = parsed_value
            current_section = None
            continue

        if len(line) > 2 and line[0].upper() in _OPTION_ORDER and line[1] == ":":
            letter = line[0].upper()
            options[letter] = line[2:].strip()
            current_section = letter
            continue

        if current_section == "Q":
            question_lines.append(line)
        elif current_section in _OPTION_ORDER:
            options[current_section] = options[current_section] + f"\n{line}"
        else:
            raise QuestionImportError(f"Encountered text outside of a known section: '{line}'.")

    if not question_lines:
        raise QuestionImportError("Question text missing (Q: ...)")

    if len(options) < 2:
        raise QuestionImportError("Each question needs at least two options (A, B, ...).")
    letters = _OPTION_ORDER[: len(options)]
    if sorted(options) != letters:
        raise QuestionImportError("Options must use consecutive letters starting at A.")

    if correct_letter is None:
        raise QuestionImportError("CORRECT is required for contest questions.")
    if correct_letter not in letters:
        raise QuestionImportError(f"CORRECT must be one of {', '.join(letters)}.")

    question = Question(
        id=question_id,
        text="\n".join(question_lines).strip(),
        options=tuple(options[letter].strip() for letter in letters),
        correct_option_index=letters.index(correct_letter),
        time_limit_seconds=time_limit_seconds,
    )
    validate_question(question)
    return question
