"""Typed command results and error codes returned by the engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Named failures reported to callers without changing room state."""

    VALIDATION_ERROR = "validation_error"
    INVALID_ANSWER = "invalid_answer"
    CONTEST_NOT_FOUND = "contest_not_found"
    CONTEST_EXISTS = "contest_exists"
    PRIVATE_CODE_NOT_FOUND = "private_code_not_found"
    CONTEST_FULL = "contest_full"
    CONTEST_NOT_JOINABLE = "contest_not_joinable"
    ALREADY_JOINED = "already_joined"
    NOT_A_PARTICIPANT = "not_a_participant"
    PARTICIPANT_DISCONNECTED = "participant_disconnected"
    NOT_IN_PROGRESS = "not_in_progress"
    ANSWER_WINDOW_CLOSED = "answer_window_closed"
    DUPLICATE_ANSWER = "duplicate_answer"


class ContestValidationError(ValueError):
    """Raised by core validation helpers when input is malformed."""


@dataclass(slots=True, frozen=True)
class CommandResult:
    """Outcome of a public engine operation."""

    ok: bool
    value: Any = None
    error: ErrorCode | None = None
    message: str | None = None

    @classmethod
    def success(cls, value: Any = None) -> "CommandResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: ErrorCode, message: str | None = None) -> "CommandResult":
        return cls(ok=False, error=error, message=message or error.value.replace("_", " "))

    def to_dict(self) -> dict[str, Any]:
        value = self.value
        if hasattr(value, "to_dict"):
            value = value.to_dict()
        return {
            "ok": self.ok,
            "value": value,
            "error": self.error.value if self.error else None,
            "message": self.message,
        }
