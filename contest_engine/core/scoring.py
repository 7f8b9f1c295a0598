"""Pure scoring rules for contest questions.

Correctness is binary. A correct answer earns ``base_points`` plus a speed
bonus that shrinks linearly from half the base points (instant answer) to zero
(answer at the very end of the window). Missing or wrong answers earn nothing.
The functions here never mutate their inputs so a question can be re-scored
for audits with identical results.
"""

from __future__ import annotations

from dataclasses import replace
from fractions import Fraction

from contest_engine.constants.contest_constants import BASE_POINTS, SPEED_BONUS_RATIO
from contest_engine.core.models import AnswerRecord, Question


def time_limit_ms(question: Question, default_seconds: float) -> int:
    seconds = question.time_limit_seconds if question.time_limit_seconds is not None else default_seconds
    return int(round(seconds * 1000))


def clamp_response_time(elapsed_ms: float, limit_ms: int) -> int:
    return int(min(max(round(elapsed_ms), 0), limit_ms))


def is_correct(question: Question, record: AnswerRecord) -> bool:
    return record.selected_index is not None and record.selected_index == question.correct_option_index


def speed_bonus(response_time_ms: int, limit_ms: int, base_points: int = BASE_POINTS) -> int:
    if limit_ms <= 0:
        return 0
    remaining = Fraction(limit_ms - min(max(response_time_ms, 0), limit_ms), limit_ms)
    # Halves round up
    bonus = int(Fraction(base_points) * Fraction(SPEED_BONUS_RATIO) * remaining + Fraction(1, 2))
    return max(0, bonus)


def score(question: Question, record: AnswerRecord, limit_ms: int, base_points: int = BASE_POINTS) -> int:
    """Return the points ``record`` earns for ``question``."""
    if not is_correct(question, record):
        return 0
    return base_points + speed_bonus(record.response_time_ms, limit_ms, base_points)


def score_record(
    question: Question,
    record: AnswerRecord,
    limit_ms: int,
    base_points: int = BASE_POINTS,
) -> AnswerRecord:
    """Return a scored copy of ``record``; already scored records are returned as-is."""
    if record.is_scored:
        return record
    return replace(
        record,
        is_correct=is_correct(question, record),
        points_awarded=score(question, record, limit_ms, base_points),
    )


def score_question(
    question: Question,
    records: dict[str, AnswerRecord],
    limit_ms: int,
    base_points: int = BASE_POINTS,
) -> dict[str, AnswerRecord]:
    """Score every participant's record for one question."""
    return {
        participant_id: score_record(question, record, limit_ms, base_points)
        for participant_id, record in records.items()
    }
