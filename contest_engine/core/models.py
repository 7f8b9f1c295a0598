"""Domain models for the contest engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any


class ContestStatus(str, Enum):
    """Externally visible lifecycle of a contest."""

    WAITING = "waiting"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RoomPhase(str, Enum):
    """Fine-grained state of a running contest room."""

    WAITING = "waiting"
    SCHEDULED = "scheduled"
    QUESTION_ACTIVE = "question_active"
    QUESTION_LOCKED = "question_locked"
    REVEAL = "reveal"
    COMPLETED = "completed"
    PRIZES_DISTRIBUTED = "prizes_distributed"
    CANCELLED = "cancelled"

    @property
    def status(self) -> ContestStatus:
        return _PHASE_STATUS[self]

    @property
    def is_joinable(self) -> bool:
        return self in (RoomPhase.WAITING, RoomPhase.SCHEDULED)

    @property
    def is_terminal(self) -> bool:
        return self in (RoomPhase.PRIZES_DISTRIBUTED, RoomPhase.CANCELLED)


_PHASE_STATUS = {
    RoomPhase.WAITING: ContestStatus.WAITING,
    RoomPhase.SCHEDULED: ContestStatus.SCHEDULED,
    RoomPhase.QUESTION_ACTIVE: ContestStatus.IN_PROGRESS,
    RoomPhase.QUESTION_LOCKED: ContestStatus.IN_PROGRESS,
    RoomPhase.REVEAL: ContestStatus.IN_PROGRESS,
    RoomPhase.COMPLETED: ContestStatus.COMPLETED,
    RoomPhase.PRIZES_DISTRIBUTED: ContestStatus.COMPLETED,
    RoomPhase.CANCELLED: ContestStatus.CANCELLED,
}


def money_to_json(amount: Decimal) -> int | float:
    """Render a money amount as a JSON number without losing whole values."""
    if amount == amount.to_integral_value():
        return int(amount)
    return float(amount)


@dataclass(slots=True, frozen=True)
class Question:
    """Multiple-choice question supplied by a question source."""

    id: str
    text: str
    options: tuple[str, ...]
    correct_option_index: int
    time_limit_seconds: float | None = None

    def to_dict(self, include_answer: bool = False) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "text": self.text,
            "options": list(self.options),
            "time_limit_seconds": self.time_limit_seconds,
        }
        if include_answer:
            payload["correct_option_index"] = self.correct_option_index
        return payload


@dataclass(slots=True)
class ContestSpec:
    """Creation request for a contest, validated by the registry."""

    name: str
    entry_fee: Decimal
    max_participants: int
    question_count: int
    time_per_question_seconds: float | None = None
    prize_split: tuple[Decimal, ...] = ()
    is_private: bool = False
    min_participants: int | None = None
    created_by: str | None = None
    pool_id: str | None = None

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ContestSpec":
        return cls(
            name=str(payload.get("name", "")),
            entry_fee=Decimal(str(payload.get("entry_fee", 0))),
            max_participants=int(payload.get("max_participants", 0)),
            question_count=int(payload.get("question_count", 0)),
            time_per_question_seconds=payload.get("time_per_question_seconds"),
            prize_split=tuple(Decimal(str(p)) for p in payload.get("prize_split") or ()),
            is_private=bool(payload.get("is_private", False)),
            min_participants=payload.get("min_participants"),
            created_by=payload.get("created_by"),
            pool_id=payload.get("pool_id"),
        )


@dataclass(slots=True)
class Contest:
    """A validated contest; immutable after it goes in progress except ``status``."""

    id: str
    name: str
    entry_fee: Decimal
    max_participants: int
    question_count: int
    time_per_question_seconds: float
    prize_split: tuple[Decimal, ...]
    min_participants: int
    status: ContestStatus = ContestStatus.WAITING
    private_code: str | None = None
    created_by: str | None = None
    pool_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "entry_fee": money_to_json(self.entry_fee),
            "max_participants": self.max_participants,
            "question_count": self.question_count,
            "time_per_question_seconds": self.time_per_question_seconds,
            "prize_split": [money_to_json(p) for p in self.prize_split],
            "min_participants": self.min_participants,
            "status": self.status.value,
            "private_code": self.private_code,
            "created_by": self.created_by,
            "pool_id": self.pool_id,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Contest":
        return cls(
            id=payload["id"],
            name=payload["name"],
            entry_fee=Decimal(str(payload["entry_fee"])),
            max_participants=int(payload["max_participants"]),
            question_count=int(payload["question_count"]),
            time_per_question_seconds=float(payload["time_per_question_seconds"]),
            prize_split=tuple(Decimal(str(p)) for p in payload["prize_split"]),
            min_participants=int(payload["min_participants"]),
            status=ContestStatus(payload["status"]),
            private_code=payload.get("private_code"),
            created_by=payload.get("created_by"),
            pool_id=payload.get("pool_id"),
        )


@dataclass(slots=True, frozen=True)
class AnswerRecord:
    """One participant's answer to one question.

    ``selected_index`` is ``None`` when nothing was submitted inside the window.
    ``points_awarded`` stays ``None`` until the question's window has closed.
    """

    participant_id: str
    question_index: int
    selected_index: int | None
    response_time_ms: int
    is_correct: bool = False
    points_awarded: int | None = None

    @property
    def is_scored(self) -> bool:
        return self.points_awarded is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "participant_id": self.participant_id,
            "question_index": self.question_index,
            "selected_index": self.selected_index,
            "response_time_ms": self.response_time_ms,
            "is_correct": self.is_correct,
            "points_awarded": self.points_awarded,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "AnswerRecord":
        return cls(
            participant_id=payload["participant_id"],
            question_index=int(payload["question_index"]),
            selected_index=payload.get("selected_index"),
            response_time_ms=int(payload["response_time_ms"]),
            is_correct=bool(payload.get("is_correct", False)),
            points_awarded=payload.get("points_awarded"),
        )


@dataclass(slots=True)
class Participant:
    """A user who joined a contest."""

    contest_id: str
    user_id: str
    joined_at: float
    join_sequence: int
    connected: bool = True
    answers: dict[int, AnswerRecord] = field(default_factory=dict)
    total_score: int = 0
    total_response_time_ms: int = 0
    rank: int | None = None
    # Questions that were in progress while this participant was disconnected
    forfeited_questions: set[int] = field(default_factory=set)

    @property
    def correct_answers(self) -> int:
        return sum(1 for record in self.answers.values() if record.is_correct)

    def ordered_answers(self) -> list[AnswerRecord]:
        return [self.answers[index] for index in sorted(self.answers)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "contest_id": self.contest_id,
            "user_id": self.user_id,
            "joined_at": self.joined_at,
            "join_sequence": self.join_sequence,
            "connected": self.connected,
            "answers": [record.to_dict() for record in self.ordered_answers()],
            "total_score": self.total_score,
            "total_response_time_ms": self.total_response_time_ms,
            "rank": self.rank,
            "forfeited_questions": sorted(self.forfeited_questions),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Participant":
        answers = [AnswerRecord.from_dict(item) for item in payload.get("answers", [])]
        return cls(
            contest_id=payload["contest_id"],
            user_id=payload["user_id"],
            joined_at=float(payload["joined_at"]),
            join_sequence=int(payload["join_sequence"]),
            connected=bool(payload.get("connected", True)),
            answers={record.question_index: record for record in answers},
            total_score=int(payload.get("total_score", 0)),
            total_response_time_ms=int(payload.get("total_response_time_ms", 0)),
            rank=payload.get("rank"),
            forfeited_questions=set(payload.get("forfeited_questions", [])),
        )


@dataclass(slots=True, frozen=True)
class RankingEntry:
    """Final standing of one participant."""

    rank: int
    user_id: str
    total_score: int
    total_response_time_ms: int
    correct_answers: int
    achievements: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "rank": self.rank,
            "user_id": self.user_id,
            "total_score": self.total_score,
            "total_response_time_ms": self.total_response_time_ms,
            "correct_answers": self.correct_answers,
            "achievements": list(self.achievements),
        }


@dataclass(slots=True, frozen=True)
class Payout:
    """Prize paid to one ranked participant."""

    user_id: str
    rank: int
    amount: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {"user_id": self.user_id, "rank": self.rank, "amount": money_to_json(self.amount)}


@dataclass(slots=True, frozen=True)
class PrizeTable:
    """Output of the prize calculator."""

    total_pool: Decimal
    platform_fee: Decimal
    net_pool: Decimal
    payouts: tuple[Payout, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_pool": money_to_json(self.total_pool),
            "platform_fee": money_to_json(self.platform_fee),
            "net_pool": money_to_json(self.net_pool),
            "payouts": [payout.to_dict() for payout in self.payouts],
        }


@dataclass(slots=True, frozen=True)
class Refund:
    """Entry fee owed back to a participant of a cancelled contest."""

    user_id: str
    amount: Decimal
    flagged_for_review: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "amount": money_to_json(self.amount),
            "flagged_for_review": self.flagged_for_review,
        }


@dataclass(slots=True, frozen=True)
class RoomSnapshot:
    """Read-only view of a room used for status queries."""

    contest_id: str
    name: str
    status: ContestStatus
    phase: RoomPhase
    question_index: int | None
    question_count: int
    deadline: float | None
    participant_count: int
    connected_count: int
    max_participants: int
    private_code: str | None = None
    current_question: Question | None = None
    cancel_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "contest_id": self.contest_id,
            "name": self.name,
            "status": self.status.value,
            "phase": self.phase.value,
            "question_index": self.question_index,
            "question_count": self.question_count,
            "deadline": self.deadline,
            "participant_count": self.participant_count,
            "connected_count": self.connected_count,
            "max_participants": self.max_participants,
            "private_code": self.private_code,
            # Correct answer is only exposed once the question is no longer active
            "current_question": (
                self.current_question.to_dict(include_answer=self.phase == RoomPhase.REVEAL)
                if self.current_question is not None
                else None
            ),
            "cancel_reason": self.cancel_reason,
        }


@dataclass(slots=True, frozen=True)
class ContestResult:
    """Final ranking and payouts of a completed contest."""

    contest: Contest
    ranking: tuple[RankingEntry, ...]
    prizes: PrizeTable | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "contest": self.contest.to_dict(),
            "ranking": [entry.to_dict() for entry in self.ranking],
            "prizes": self.prizes.to_dict() if self.prizes else None,
        }
