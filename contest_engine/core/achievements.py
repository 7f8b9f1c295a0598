"""Badges awarded to participants once a contest has been scored."""

from __future__ import annotations

from contest_engine.constants.contest_constants import (
    COMEBACK_MIN_EARLY_WRONG,
    COMEBACK_MIN_LATE_CORRECT,
    CONSISTENCY_MAX_SPREAD_MS,
    LAST_SECOND_MIN_CORRECT,
    LAST_SECOND_WINDOW_MS,
    SPEED_DEMON_SHARE,
)
from contest_engine.core.models import AnswerRecord

PERFECT_SCORE = "Perfect Score"
SPEED_DEMON = "Speed Demon"
COMEBACK_KID = "Comeback Kid"
CONSISTENCY_KING = "Consistency King"
LAST_SECOND_HERO = "Last Second Hero"


def detect_achievements(
    answers: list[AnswerRecord],
    question_count: int,
    limits_ms: dict[int, int],
) -> tuple[str, ...]:
    """Return the achievements earned by one participant's scored answers."""
    if not answers or question_count <= 0:
        return ()

    earned: list[str] = []
    correct = [record for record in answers if record.is_correct]

    if len(correct) == question_count:
        earned.append(PERFECT_SCORE)

    fast = [r for r in correct if r.response_time_ms < limits_ms.get(r.question_index, 0) / 2]
    if len(fast) >= question_count * SPEED_DEMON_SHARE:
        earned.append(SPEED_DEMON)

    half = question_count // 2
    early_wrong = sum(1 for r in answers if r.question_index < half and not r.is_correct)
    late_correct = sum(1 for r in answers if r.question_index >= half and r.is_correct)
    if early_wrong >= COMEBACK_MIN_EARLY_WRONG and late_correct >= COMEBACK_MIN_LATE_CORRECT:
        earned.append(COMEBACK_KID)

    if correct:
        timings = [r.response_time_ms for r in correct]
        if max(timings) - min(timings) <= CONSISTENCY_MAX_SPREAD_MS:
            earned.append(CONSISTENCY_KING)

    last_second = sum(
        1
        for r in correct
        if limits_ms.get(r.question_index, 0) - r.response_time_ms < LAST_SECOND_WINDOW_MS
    )
    if last_second >= LAST_SECOND_MIN_CORRECT:
        earned.append(LAST_SECOND_HERO)

    return tuple(earned)
