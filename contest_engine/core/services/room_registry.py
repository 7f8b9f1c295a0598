"""Registry that owns every live contest room and routes commands to it."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
import logging
import math
import random
from threading import Lock
from typing import Any, Callable
from uuid import uuid4

from contest_engine.config import EngineConfig
from contest_engine.constants.contest_constants import (
    CANCEL_REASON_CREATOR,
    MAX_PARTICIPANTS,
    MIN_ENTRY_FEE,
    MIN_PARTICIPANTS,
    PRIVATE_CODE_ALPHABET,
    PRIVATE_CODE_LENGTH,
)
from contest_engine.core.clock import Clock, SystemClock, TimerHandle
from contest_engine.core.collaborators import ContestStorage, QuestionSource
from contest_engine.core.errors import CommandResult, ContestValidationError, ErrorCode
from contest_engine.core.events import ContestEvent, EventBus
from contest_engine.core.models import Contest, ContestSpec, RoomPhase
from contest_engine.core.services.contest_pools import get_pool
from contest_engine.core.services.contest_room import ContestRoom

logger = logging.getLogger(__name__)

_HUNDRED = Decimal("100")


class RoomRegistry:
    """Holds one ``ContestRoom`` per contest id and evicts finished rooms.

    The registry lock only guards the id and code maps; it is never held while
    a room runs a command, so rooms progress fully in parallel.
    """

    def __init__(
        self,
        question_source: QuestionSource,
        storage: ContestStorage,
        clock: Clock | None = None,
        config: EngineConfig | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._question_source = question_source
        self._storage = storage
        self._clock = clock or SystemClock()
        self._config = config or EngineConfig()
        self.events = event_bus or EventBus()
        self._lock = Lock()
        self._rooms: dict[str, ContestRoom] = {}
        self._codes: dict[str, str] = {}
        self._evictions: dict[str, TimerHandle] = {}
        self._eviction_listeners: list[Callable[[str], None]] = []

    # --- Contest creation ---

    def create_contest(self, spec: ContestSpec | dict[str, Any]) -> CommandResult:
        """Validate ``spec``, open a room for it and return its contest id."""
        try:
            if isinstance(spec, dict):
                spec = ContestSpec.from_dict(spec)
            contest = self._build_contest(spec)
        except (ContestValidationError, InvalidOperation, TypeError, ValueError) as exc:
            logger.info("Rejected contest spec: %s", exc)
            return CommandResult.failure(ErrorCode.VALIDATION_ERROR, str(exc))

        room = self._new_room(contest)
        with self._lock:
            if spec.is_private:
                contest.private_code = self._generate_code_locked()
                self._codes[contest.private_code] = contest.id
            self._rooms[contest.id] = room
        room.start()
        logger.info(
            "Created contest %s '%s' (fee %s, max %d, %d questions%s)",
            contest.id,
            contest.name,
            contest.entry_fee,
            contest.max_participants,
            contest.question_count,
            ", private" if contest.private_code else "",
        )
        return CommandResult.success(contest.id)

    def create_contest_from_pool(
        self,
        pool_id: str,
        name: str | None = None,
        is_private: bool = False,
        created_by: str | None = None,
    ) -> CommandResult:
        pool = get_pool(pool_id or "")
        if pool is None:
            return CommandResult.failure(ErrorCode.VALIDATION_ERROR, f"Unknown contest pool '{pool_id}'.")
        return self.create_contest(pool.to_spec(name=name, is_private=is_private, created_by=created_by))

    # --- Command routing ---

    def join_contest(self, contest_id: str, user_id: str) -> CommandResult:
        room = self._get_room(contest_id)
        if room is None:
            return _not_found(contest_id)
        return room.join(user_id)

    def join_by_code(self, code: str, user_id: str) -> CommandResult:
        with self._lock:
            contest_id = self._codes.get((code or "").strip().upper())
        if contest_id is None:
            return CommandResult.failure(ErrorCode.PRIVATE_CODE_NOT_FOUND, "No open contest uses that code.")
        result = self.join_contest(contest_id, user_id)
        if result.ok:
            return CommandResult.success({"contest_id": contest_id, "participant": result.value})
        return result

    def submit_answer(
        self,
        contest_id: str,
        user_id: str,
        question_index: int,
        selected_index: int,
        submitted_at: float | None = None,
    ) -> CommandResult:
        room = self._get_room(contest_id)
        if room is None:
            return _not_found(contest_id)
        return room.submit_answer(user_id, question_index, selected_index, submitted_at)

    def mark_disconnected(self, contest_id: str, user_id: str) -> CommandResult:
        room = self._get_room(contest_id)
        if room is None:
            return _not_found(contest_id)
        return room.mark_disconnected(user_id)

    def mark_reconnected(self, contest_id: str, user_id: str) -> CommandResult:
        room = self._get_room(contest_id)
        if room is None:
            return _not_found(contest_id)
        return room.mark_reconnected(user_id)

    def cancel_contest(self, contest_id: str, reason: str = CANCEL_REASON_CREATOR) -> CommandResult:
        room = self._get_room(contest_id)
        if room is None:
            return _not_found(contest_id)
        return room.cancel(reason or CANCEL_REASON_CREATOR)

    # --- Queries ---

    def get_snapshot(self, contest_id: str) -> CommandResult:
        room = self._get_room(contest_id)
        if room is None:
            return _not_found(contest_id)
        return CommandResult.success(room.get_snapshot())

    def get_results(self, contest_id: str) -> CommandResult:
        room = self._get_room(contest_id)
        if room is None:
            return _not_found(contest_id)
        result = room.get_result()
        if result is None:
            return CommandResult.failure(ErrorCode.NOT_IN_PROGRESS, "Results are not available yet.")
        return CommandResult.success(result)

    def get_room(self, contest_id: str) -> ContestRoom | None:
        return self._get_room(contest_id)

    def active_contest_ids(self) -> list[str]:
        with self._lock:
            return list(self._rooms)

    # --- Checkpoint / restore ---

    def checkpoint(self, contest_id: str) -> CommandResult:
        room = self._get_room(contest_id)
        if room is None:
            return _not_found(contest_id)
        return CommandResult.success(room.checkpoint())

    def restore_room(self, checkpoint: dict[str, Any]) -> CommandResult:
        """Rebuild a room from :meth:`ContestRoom.checkpoint` output and resume its timers."""
        try:
            room = ContestRoom.from_checkpoint(
                checkpoint,
                self._question_source,
                self._storage,
                self._clock,
                self._config,
                self._publish,
                self._on_room_finished,
            )
        except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
            return CommandResult.failure(ErrorCode.VALIDATION_ERROR, f"Invalid checkpoint: {exc}")

        contest = room.contest
        with self._lock:
            if contest.id in self._rooms:
                return CommandResult.failure(ErrorCode.CONTEST_EXISTS, f"Contest {contest.id} is already running.")
            self._rooms[contest.id] = room
            if contest.private_code and room.is_joinable():
                self._codes[contest.private_code] = contest.id
        room.resume()
        logger.info("Restored contest %s in phase %s", contest.id, room.phase.value)
        return CommandResult.success(contest.id)

    def on_evicted(self, listener: Callable[[str], None]) -> None:
        """Register ``listener`` to be called with the contest id of every evicted room."""
        with self._lock:
            self._eviction_listeners.append(listener)

    def shutdown(self) -> None:
        """Cancel pending evictions, stop every room's timer and forget all rooms."""
        with self._lock:
            for handle in self._evictions.values():
                handle.cancel()
            self._evictions.clear()
            rooms = list(self._rooms.values())
            self._rooms.clear()
            self._codes.clear()
        for room in rooms:
            room.stop()

    # --- Internals ---

    def _build_contest(self, spec: ContestSpec) -> Contest:
        name = (spec.name or "").strip()
        if not name:
            raise ContestValidationError("Contest name is required.")

        entry_fee = Decimal(str(spec.entry_fee))
        if not entry_fee.is_finite() or entry_fee < MIN_ENTRY_FEE:
            raise ContestValidationError(f"Entry fee must be at least {MIN_ENTRY_FEE}.")

        max_participants = int(spec.max_participants)
        if not MIN_PARTICIPANTS <= max_participants <= MAX_PARTICIPANTS:
            raise ContestValidationError(
                f"Max participants must be between {MIN_PARTICIPANTS} and {MAX_PARTICIPANTS}."
            )

        question_count = int(spec.question_count)
        if question_count < 1:
            raise ContestValidationError("Question count must be at least 1.")

        time_per_question = (
            float(spec.time_per_question_seconds)
            if spec.time_per_question_seconds is not None
            else self._config.default_time_per_question_seconds
        )
        if not math.isfinite(time_per_question) or time_per_question <= 0:
            raise ContestValidationError("Time per question must be positive.")

        prize_split = tuple(Decimal(str(share)) for share in spec.prize_split)
        if not prize_split:
            raise ContestValidationError("Prize split is required.")
        if any(share <= 0 for share in prize_split):
            raise ContestValidationError("Prize split shares must be positive.")
        if sum(prize_split, Decimal("0")) != _HUNDRED:
            raise ContestValidationError("Prize split must sum to 100.")
        if len(prize_split) > max_participants:
            raise ContestValidationError("Prize split has more ranks than the contest has seats.")

        min_participants = (
            int(spec.min_participants)
            if spec.min_participants is not None
            else min(self._config.min_participants, max_participants)
        )
        if not MIN_PARTICIPANTS <= min_participants <= max_participants:
            raise ContestValidationError(
                f"Min participants must be between {MIN_PARTICIPANTS} and max participants."
            )

        return Contest(
            id=uuid4().hex,
            name=name,
            entry_fee=entry_fee,
            max_participants=max_participants,
            question_count=question_count,
            time_per_question_seconds=time_per_question,
            prize_split=prize_split,
            min_participants=min_participants,
            created_by=spec.created_by,
            pool_id=spec.pool_id,
        )

    def _new_room(self, contest: Contest) -> ContestRoom:
        return ContestRoom(
            contest,
            self._question_source,
            self._storage,
            self._clock,
            self._config,
            self._publish,
            self._on_room_finished,
        )

    def _generate_code_locked(self) -> str:
        while True:
            code = "".join(random.choices(PRIVATE_CODE_ALPHABET, k=PRIVATE_CODE_LENGTH))
            if code not in self._codes:
                return code

    def _get_room(self, contest_id: str) -> ContestRoom | None:
        with self._lock:
            return self._rooms.get(contest_id)

    def _publish(self, event: ContestEvent) -> None:
        self.events.publish(event)

    def _on_room_finished(self, contest_id: str) -> None:
        with self._lock:
            room = self._rooms.get(contest_id)
            if room is None:
                return
            code = room.contest.private_code
            if code and self._codes.get(code) == contest_id:
                del self._codes[code]
            previous = self._evictions.pop(contest_id, None)
            if previous is not None:
                previous.cancel()
            self._evictions[contest_id] = self._clock.after(
                self._config.eviction_grace_seconds, self._evict_callback(contest_id)
            )

    def _evict_callback(self, contest_id: str) -> Callable[[], None]:
        def evict() -> None:
            with self._lock:
                self._evictions.pop(contest_id, None)
                room = self._rooms.get(contest_id)
                if room is None or room.phase not in (RoomPhase.PRIZES_DISTRIBUTED, RoomPhase.CANCELLED):
                    return
                del self._rooms[contest_id]
                listeners = list(self._eviction_listeners)
            logger.info("Evicted contest %s", contest_id)
            for listener in listeners:
                listener(contest_id)

        return evict


def _not_found(contest_id: str) -> CommandResult:
    return CommandResult.failure(ErrorCode.CONTEST_NOT_FOUND, f"Contest {contest_id} not found.")
