"""Service holding the answer window of the question currently in play."""

from __future__ import annotations

from contest_engine.core.models import AnswerRecord, Question
from contest_engine.core.scoring import clamp_response_time


class GameSession:
    """Tracks the active question, its deadline and the answers submitted for it."""

    def __init__(self) -> None:
        self._question_index: int | None = None
        self._question: Question | None = None
        self._revealed_at: float | None = None
        self._limit_ms: int = 0
        self._open: bool = False
        self._submissions: dict[str, AnswerRecord] = {}

    def start_question(self, index: int, question: Question, revealed_at: float, limit_ms: int) -> None:
        self._question_index = index
        self._question = question
        self._revealed_at = revealed_at
        self._limit_ms = limit_ms
        self._open = True
        self._submissions = {}

    def close(self) -> None:
        self._open = False

    def get_question_index(self) -> int | None:
        return self._question_index

    def get_question(self) -> Question | None:
        return self._question

    def get_limit_ms(self) -> int:
        return self._limit_ms

    def get_deadline(self) -> float | None:
        if self._revealed_at is None:
            return None
        return self._revealed_at + self._limit_ms / 1000

    def record_answer(self, participant_id: str, selected_index: int, submitted_at: float) -> AnswerRecord:
        """Record a submission; the caller guarantees the window is open and it is the first one."""
        if not self._open or self._question_index is None or self._revealed_at is None:
            raise RuntimeError("No answer window is open.")
        elapsed_ms = (submitted_at - self._revealed_at) * 1000
        record = AnswerRecord(
            participant_id=participant_id,
            question_index=self._question_index,
            selected_index=selected_index,
            response_time_ms=clamp_response_time(elapsed_ms, self._limit_ms),
        )
        self._submissions[participant_id] = record
        return record

    def restore_submissions(self, records: list[AnswerRecord]) -> None:
        self._submissions = {record.participant_id: record for record in records}

    def has_submitted(self, participant_id: str) -> bool:
        return participant_id in self._submissions

    def get_submissions(self) -> dict[str, AnswerRecord]:
        return dict(self._submissions)

    def get_answer_count(self) -> int:
        return len(self._submissions)
