"""Runtime configuration for the contest engine.

Every value can be overridden through a ``CONTEST_*`` environment variable so
that deployments can tune timings without touching code.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from contest_engine.constants.contest_constants import (
    DEFAULT_TIME_PER_QUESTION_SECONDS,
    MIN_PARTICIPANTS,
)
from contest_engine.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT

DEFAULT_QUESTIONS_PATH = Path(__file__).resolve().parent / "data" / "sample_questions.txt"


@dataclass(slots=True)
class EngineConfig:
    """Timings and policy knobs used by rooms and the registry."""

    # Waiting lobby countdown before the contest is scheduled or cancelled (seconds)
    lobby_countdown_seconds: float = 12.0
    # "Get ready" countdown between Scheduled and the first question (seconds)
    start_countdown_seconds: float = 3.0
    # Pause after a question is scored before the next one is revealed (seconds)
    reveal_seconds: float = 3.0
    # How long finished rooms stay readable before the registry evicts them (seconds)
    eviction_grace_seconds: float = 30.0
    default_time_per_question_seconds: float = DEFAULT_TIME_PER_QUESTION_SECONDS
    min_participants: int = MIN_PARTICIPANTS
    persistence_max_attempts: int = 5
    persistence_backoff_seconds: float = 0.5
    questions_file: Path = DEFAULT_QUESTIONS_PATH
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    @classmethod
    def from_env(cls) -> "EngineConfig":
        return cls(
            lobby_countdown_seconds=float(os.environ.get("CONTEST_LOBBY_COUNTDOWN_SEC", "12")),
            start_countdown_seconds=float(os.environ.get("CONTEST_START_COUNTDOWN_SEC", "3")),
            reveal_seconds=float(os.environ.get("CONTEST_REVEAL_SEC", "3")),
            eviction_grace_seconds=float(os.environ.get("CONTEST_EVICTION_GRACE_SEC", "30")),
            default_time_per_question_seconds=float(
                os.environ.get("CONTEST_TIME_PER_QUESTION_SEC", str(DEFAULT_TIME_PER_QUESTION_SECONDS))
            ),
            min_participants=int(os.environ.get("CONTEST_MIN_PARTICIPANTS", str(MIN_PARTICIPANTS))),
            persistence_max_attempts=int(os.environ.get("CONTEST_PERSIST_MAX_ATTEMPTS", "5")),
            persistence_backoff_seconds=float(os.environ.get("CONTEST_PERSIST_BACKOFF_SEC", "0.5")),
            questions_file=Path(os.environ.get("CONTEST_QUESTIONS_FILE", str(DEFAULT_QUESTIONS_PATH))),
            host=os.environ.get("CONTEST_HOST", DEFAULT_HOST),
            port=int(os.environ.get("CONTEST_PORT", str(DEFAULT_PORT))),
        )
