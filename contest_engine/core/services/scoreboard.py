"""Service for accumulating scores and producing the final ranking."""

from __future__ import annotations

from contest_engine.core.achievements import detect_achievements
from contest_engine.core.models import AnswerRecord, Participant, RankingEntry
from contest_engine.core.prizes import rank_participants


class Scoreboard:
    """Applies scored answers to participant totals and ranks them at the end."""

    def apply_scored_question(self, participants: list[Participant], records: dict[str, AnswerRecord]) -> None:
        """Store one question's scored records and update running totals."""
        for participant in participants:
            record = records.get(participant.user_id)
            if record is None or not record.is_scored:
                continue
            if record.question_index in participant.answers and participant.answers[record.question_index].is_scored:
                continue
            participant.answers[record.question_index] = record
            participant.total_score += record.points_awarded or 0
            participant.total_response_time_ms += record.response_time_ms

    def finalize(
        self,
        participants: list[Participant],
        question_count: int,
        limits_ms: dict[int, int],
    ) -> tuple[RankingEntry, ...]:
        """Assign ranks (only once) and return the final standings."""
        if any(p.rank is None for p in participants):
            for position, participant in enumerate(rank_participants(participants), start=1):
                participant.rank = position
        ordered = sorted(participants, key=lambda p: p.rank or 0)
        return tuple(
            RankingEntry(
                rank=participant.rank or 0,
                user_id=participant.user_id,
                total_score=participant.total_score,
                total_response_time_ms=participant.total_response_time_ms,
                correct_answers=participant.correct_answers,
                achievements=detect_achievements(participant.ordered_answers(), question_count, limits_ms),
            )
            for participant in ordered
        )

    @staticmethod
    def points_by_participant(records: dict[str, AnswerRecord]) -> dict[str, int]:
        return {pid: record.points_awarded or 0 for pid, record in records.items()}
