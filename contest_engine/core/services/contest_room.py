"""State machine that runs one contest from the waiting lobby to prize payout.

Waiting -> Scheduled -> QuestionActive(i) -> QuestionLocked(i) -> Reveal(i)
-> ... -> Completed -> PrizesDistributed, with Cancelled reachable from the
lobby phases (or from anywhere on an internal error).

All state is guarded by one lock per room. Timer callbacks carry a token and
are ignored when the room has moved on, so a late or re-armed timer can never
score a question twice or pay out twice. Events and storage writes are queued
while the lock is held and dispatched, in order, after it is released.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
from threading import Lock, RLock
from typing import Any, Callable, Iterator

from contest_engine.config import EngineConfig
from contest_engine.constants.contest_constants import (
    BASE_POINTS,
    CANCEL_REASON_CREATOR,
    CANCEL_REASON_INSUFFICIENT_PARTICIPANTS,
    CANCEL_REASON_INTERNAL_ERROR,
    PLATFORM_FEE_PERCENT,
)
from contest_engine.core.clock import Clock, TimerHandle
from contest_engine.core.collaborators import ContestStorage, QuestionSource
from contest_engine.core.errors import CommandResult, ErrorCode
from contest_engine.core.events import ContestEvent, EventType
from contest_engine.core.models import (
    AnswerRecord,
    Contest,
    ContestResult,
    Participant,
    PrizeTable,
    Question,
    RankingEntry,
    Refund,
    RoomPhase,
    RoomSnapshot,
)
from contest_engine.core.prizes import compute_prizes
from contest_engine.core.question_importer import validate_question
from contest_engine.core.scoring import score_question, time_limit_ms
from contest_engine.core.services.game_session import GameSession
from contest_engine.core.services.lobby_manager import LobbyManager
from contest_engine.core.services.scoreboard import Scoreboard

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[RoomPhase, frozenset[RoomPhase]] = {
    RoomPhase.WAITING: frozenset({RoomPhase.SCHEDULED, RoomPhase.CANCELLED}),
    RoomPhase.SCHEDULED: frozenset({RoomPhase.QUESTION_ACTIVE, RoomPhase.CANCELLED}),
    RoomPhase.QUESTION_ACTIVE: frozenset({RoomPhase.QUESTION_LOCKED, RoomPhase.CANCELLED}),
    RoomPhase.QUESTION_LOCKED: frozenset({RoomPhase.REVEAL, RoomPhase.CANCELLED}),
    RoomPhase.REVEAL: frozenset({RoomPhase.QUESTION_ACTIVE, RoomPhase.COMPLETED, RoomPhase.CANCELLED}),
    RoomPhase.COMPLETED: frozenset({RoomPhase.PRIZES_DISTRIBUTED, RoomPhase.CANCELLED}),
    RoomPhase.PRIZES_DISTRIBUTED: frozenset(),
    RoomPhase.CANCELLED: frozenset(),
}


class ContestRoom:
    """Runs the lifecycle of a single contest."""

    def __init__(
        self,
        contest: Contest,
        question_source: QuestionSource,
        storage: ContestStorage,
        clock: Clock,
        config: EngineConfig,
        publish: Callable[[ContestEvent], None],
        on_finished: Callable[[str], None] | None = None,
        base_points: int = BASE_POINTS,
    ) -> None:
        self.contest = contest
        self._question_source = question_source
        self._storage = storage
        self._clock = clock
        self._config = config
        self._publish = publish
        self._on_finished = on_finished
        self._base_points = base_points

        self._lock = Lock()
        self._dispatch_lock = RLock()
        self._outbox: list[Callable[[], None]] = []

        self._lobby = LobbyManager(contest.id, contest.max_participants)
        self._session = GameSession()
        self._scoreboard = Scoreboard()

        self._phase = RoomPhase.WAITING
        self._questions: list[Question] = []
        self._question_index: int | None = None
        self._phase_deadline: float | None = None
        self._timer: TimerHandle | None = None
        self._timer_token: int = 0
        self._sequence: int = 0
        self._scored_questions: set[int] = set()
        self._prizes_computed: bool = False
        self._cancel_reason: str | None = None
        self._result: ContestResult | None = None
        self._restored_remaining: float | None = None
        self._restored_submissions: list[AnswerRecord] = []
        self._snapshot: RoomSnapshot = self._build_snapshot()

    # --- Lifecycle entry points ---

    def start(self) -> None:
        """Open the lobby and arm the pre-start countdown."""
        with self._transaction():
            if self._phase != RoomPhase.WAITING or self._timer is not None:
                return
            self._arm(self._config.lobby_countdown_seconds, self._on_lobby_countdown)
            logger.info("Contest %s waiting for participants", self.contest.id)

    def stop(self) -> None:
        """Cancel the pending timer without changing phase."""
        with self._lock:
            self._cancel_timer()

    @property
    def phase(self) -> RoomPhase:
        return self._phase

    def is_joinable(self) -> bool:
        return self._phase.is_joinable

    # --- Commands ---

    def join(self, user_id: str) -> CommandResult:
        with self._transaction():
            if not user_id or not str(user_id).strip():
                return CommandResult.failure(ErrorCode.VALIDATION_ERROR, "User id is required.")
            if not self._phase.is_joinable:
                return self._reject(ErrorCode.CONTEST_NOT_JOINABLE, user_id)
            if self._lobby.has(user_id):
                return self._reject(ErrorCode.ALREADY_JOINED, user_id)
            if self._lobby.is_full():
                return self._reject(ErrorCode.CONTEST_FULL, user_id)

            participant = self._lobby.register(user_id, self._clock.now())
            self._emit(
                EventType.PARTICIPANT_JOINED,
                user_id=user_id,
                participant_count=self._lobby.count(),
            )
            logger.info(
                "Contest %s: %s joined (%d/%d)",
                self.contest.id,
                user_id,
                self._lobby.count(),
                self.contest.max_participants,
            )
            if (
                self._phase == RoomPhase.WAITING
                and self._lobby.is_full()
                and self._lobby.count() >= self.contest.min_participants
            ):
                self._schedule()
            return CommandResult.success(participant.to_dict())

    def submit_answer(
        self,
        user_id: str,
        question_index: int,
        selected_index: int,
        submitted_at: float | None = None,
    ) -> CommandResult:
        with self._transaction():
            participant = self._lobby.get(user_id)
            if participant is None:
                return self._reject(ErrorCode.NOT_A_PARTICIPANT, user_id)
            if not isinstance(question_index, int) or isinstance(question_index, bool) or question_index < 0:
                return CommandResult.failure(ErrorCode.INVALID_ANSWER, "Question index must be a non-negative integer.")

            existing = participant.answers.get(question_index)
            already_submitted = existing is not None and existing.selected_index is not None
            if already_submitted or (
                question_index == self._session.get_question_index() and self._session.has_submitted(user_id)
            ):
                return self._reject(ErrorCode.DUPLICATE_ANSWER, user_id)

            if (
                self._phase in (RoomPhase.WAITING, RoomPhase.SCHEDULED, RoomPhase.CANCELLED)
                or self._question_index is None
                or question_index > self._question_index
            ):
                return self._reject(ErrorCode.NOT_IN_PROGRESS, user_id)
            if question_index < self._question_index or self._phase != RoomPhase.QUESTION_ACTIVE:
                return self._reject(ErrorCode.ANSWER_WINDOW_CLOSED, user_id)

            now = self._clock.now()
            deadline = self._session.get_deadline()
            if deadline is not None and now >= deadline:
                # The deadline timer has not fired yet; close the window here instead
                self._lock_question()
                return self._reject(ErrorCode.ANSWER_WINDOW_CLOSED, user_id)
            if submitted_at is None:
                submitted_at = now
            if deadline is not None and submitted_at > deadline:
                return self._reject(ErrorCode.ANSWER_WINDOW_CLOSED, user_id)
            if not participant.connected:
                return self._reject(ErrorCode.PARTICIPANT_DISCONNECTED, user_id)
            if question_index in participant.forfeited_questions:
                return self._reject(ErrorCode.ANSWER_WINDOW_CLOSED, user_id)

            question = self._session.get_question()
            if (
                question is None
                or not isinstance(selected_index, int)
                or isinstance(selected_index, bool)
                or not 0 <= selected_index < len(question.options)
            ):
                return CommandResult.failure(ErrorCode.INVALID_ANSWER, "Selected option is out of range.")

            record = self._session.record_answer(user_id, selected_index, submitted_at)
            logger.debug(
                "Contest %s: %s answered q%d in %dms",
                self.contest.id,
                user_id,
                question_index,
                record.response_time_ms,
            )
            if self._everyone_connected_answered():
                self._lock_question()
            return CommandResult.success(record.to_dict())

    def mark_disconnected(self, user_id: str) -> CommandResult:
        with self._transaction():
            participant = self._lobby.get(user_id)
            if participant is None:
                return self._reject(ErrorCode.NOT_A_PARTICIPANT, user_id)
            if self._lobby.set_connected(user_id, False):
                logger.info("Contest %s: %s disconnected", self.contest.id, user_id)
                if (
                    self._phase == RoomPhase.QUESTION_ACTIVE
                    and self._question_index is not None
                    and not self._session.has_submitted(user_id)
                ):
                    participant.forfeited_questions.add(self._question_index)
                    if self._everyone_connected_answered():
                        self._lock_question()
            return CommandResult.success(participant.to_dict())

    def mark_reconnected(self, user_id: str) -> CommandResult:
        with self._transaction():
            participant = self._lobby.get(user_id)
            if participant is None:
                return self._reject(ErrorCode.NOT_A_PARTICIPANT, user_id)
            if self._lobby.set_connected(user_id, True):
                logger.info("Contest %s: %s reconnected", self.contest.id, user_id)
            return CommandResult.success(participant.to_dict())

    def cancel(self, reason: str = CANCEL_REASON_CREATOR) -> CommandResult:
        with self._transaction():
            if not self._phase.is_joinable:
                return CommandResult.failure(
                    ErrorCode.CONTEST_NOT_JOINABLE, "Only contests that have not started can be cancelled."
                )
            self._cancel(reason)
            return CommandResult.success(self._cancel_reason)

    # --- Queries ---

    def get_snapshot(self) -> RoomSnapshot:
        """Return the latest snapshot; never waits on the room lock."""
        return self._snapshot

    def get_result(self) -> ContestResult | None:
        return self._result

    # --- Checkpoint / restore ---

    def checkpoint(self) -> dict[str, Any]:
        """Return the re-derivable state of the room as plain JSON data."""
        with self._lock:
            now = self._clock.now()
            return {
                "contest": self.contest.to_dict(),
                "phase": self._phase.value,
                "question_index": self._question_index,
                "remaining_seconds": (
                    max(0.0, self._phase_deadline - now) if self._phase_deadline is not None else None
                ),
                "participants": [p.to_dict() for p in self._lobby.get_participants()],
                "submissions": [r.to_dict() for r in self._session.get_submissions().values()],
                "scored_questions": sorted(self._scored_questions),
                "prizes_computed": self._prizes_computed,
                "cancel_reason": self._cancel_reason,
                "sequence": self._sequence,
            }

    @classmethod
    def from_checkpoint(
        cls,
        checkpoint: dict[str, Any],
        question_source: QuestionSource,
        storage: ContestStorage,
        clock: Clock,
        config: EngineConfig,
        publish: Callable[[ContestEvent], None],
        on_finished: Callable[[str], None] | None = None,
    ) -> "ContestRoom":
        room = cls(
            Contest.from_dict(checkpoint["contest"]),
            question_source,
            storage,
            clock,
            config,
            publish,
            on_finished,
        )
        room._phase = RoomPhase(checkpoint["phase"])
        room._question_index = checkpoint.get("question_index")
        room._lobby.load([Participant.from_dict(p) for p in checkpoint.get("participants", [])])
        room._scored_questions = set(checkpoint.get("scored_questions", []))
        room._prizes_computed = bool(checkpoint.get("prizes_computed", False))
        room._cancel_reason = checkpoint.get("cancel_reason")
        room._sequence = int(checkpoint.get("sequence", 0))
        room._restored_remaining = checkpoint.get("remaining_seconds")
        room._restored_submissions = [AnswerRecord.from_dict(r) for r in checkpoint.get("submissions", [])]
        room._snapshot = room._build_snapshot()
        return room

    def resume(self) -> None:
        """Re-arm whatever timer the restored phase needs (at-least-once safe)."""
        with self._transaction():
            remaining, self._restored_remaining = self._restored_remaining, None
            submissions, self._restored_submissions = self._restored_submissions, []
            try:
                self._resume(remaining, submissions)
            except Exception:
                logger.exception("Contest %s could not be resumed", self.contest.id)
                self._fail()

    def _resume(self, remaining: float | None, submissions: list[AnswerRecord]) -> None:
        phase = self._phase
        logger.info("Contest %s resuming in phase %s", self.contest.id, phase.value)
        if phase == RoomPhase.WAITING:
            self._arm(self._remaining_or(remaining, self._config.lobby_countdown_seconds), self._on_lobby_countdown)
            return
        if phase == RoomPhase.SCHEDULED:
            self._arm(self._remaining_or(remaining, self._config.start_countdown_seconds), self._begin_contest)
            return
        if phase.is_terminal:
            if phase == RoomPhase.PRIZES_DISTRIBUTED:
                self._load_questions()
                self._rebuild_result()
            self._outbox.append(self._notify_finished)
            return

        self._load_questions()
        index = self._question_index or 0
        if phase == RoomPhase.QUESTION_ACTIVE:
            question = self._questions[index]
            limit_ms = self._limit_ms(question)
            left = self._remaining_or(remaining, limit_ms / 1000)
            self._session.start_question(index, question, self._clock.now() - (limit_ms / 1000 - left), limit_ms)
            self._session.restore_submissions(submissions)
            self._phase_deadline = self._session.get_deadline()
            if left <= 0:
                self._lock_question()
            else:
                self._arm(left, self._on_question_deadline)
        elif phase == RoomPhase.QUESTION_LOCKED:
            question = self._questions[index]
            self._session.start_question(index, question, self._clock.now(), self._limit_ms(question))
            self._session.restore_submissions(submissions)
            self._session.close()
            self._score_and_reveal()
        elif phase == RoomPhase.REVEAL:
            question = self._questions[index]
            self._session.start_question(index, question, self._clock.now(), self._limit_ms(question))
            self._session.close()
            self._phase_deadline = self._clock.now() + self._remaining_or(remaining, self._config.reveal_seconds)
            self._arm(self._phase_deadline - self._clock.now(), self._on_reveal_complete)
        elif phase == RoomPhase.COMPLETED:
            self._complete()

    # --- Timer callbacks (run with the room lock held) ---

    def _on_lobby_countdown(self) -> None:
        if self._phase != RoomPhase.WAITING:
            return
        if self._lobby.count() >= self.contest.min_participants:
            self._schedule()
        else:
            self._cancel(CANCEL_REASON_INSUFFICIENT_PARTICIPANTS)

    def _begin_contest(self) -> None:
        if self._phase != RoomPhase.SCHEDULED:
            return
        self._load_questions()
        self._reveal_question(0)

    def _on_question_deadline(self) -> None:
        if self._phase == RoomPhase.QUESTION_ACTIVE:
            self._lock_question()

    def _on_reveal_complete(self) -> None:
        if self._phase != RoomPhase.REVEAL or self._question_index is None:
            return
        next_index = self._question_index + 1
        if next_index < self.contest.question_count:
            self._reveal_question(next_index)
        else:
            self._complete()

    # --- Transitions (room lock held) ---

    def _schedule(self) -> None:
        self._set_phase(RoomPhase.SCHEDULED)
        self._arm(self._config.start_countdown_seconds, self._begin_contest)
        self._emit(
            EventType.ROOM_SCHEDULED,
            participant_count=self._lobby.count(),
            starts_at=self._phase_deadline,
        )

    def _reveal_question(self, index: int) -> None:
        question = self._questions[index]
        limit_ms = self._limit_ms(question)
        now = self._clock.now()
        self._question_index = index
        self._session.start_question(index, question, now, limit_ms)
        self._set_phase(RoomPhase.QUESTION_ACTIVE)
        for participant in self._lobby.get_participants():
            if not participant.connected:
                participant.forfeited_questions.add(index)
        self._arm(limit_ms / 1000, self._on_question_deadline)
        self._emit(
            EventType.QUESTION_REVEALED,
            question_index=index,
            question=question.to_dict(),
            time_limit_ms=limit_ms,
            deadline=self._phase_deadline,
        )

    def _lock_question(self) -> None:
        if self._phase != RoomPhase.QUESTION_ACTIVE:
            return
        self._cancel_timer()
        self._session.close()
        self._set_phase(RoomPhase.QUESTION_LOCKED)
        self._emit(
            EventType.QUESTION_LOCKED,
            question_index=self._question_index,
            answers_received=self._session.get_answer_count(),
        )
        self._score_and_reveal()

    def _score_and_reveal(self) -> None:
        index = self._question_index
        question = self._session.get_question()
        if index is None or question is None:
            raise RuntimeError("Locked question is missing from the session.")

        if index not in self._scored_questions:
            limit_ms = self._session.get_limit_ms()
            submissions = self._session.get_submissions()
            participants = self._lobby.get_participants()
            records = {
                p.user_id: submissions.get(p.user_id)
                or AnswerRecord(
                    participant_id=p.user_id,
                    question_index=index,
                    selected_index=None,
                    response_time_ms=limit_ms,
                )
                for p in participants
            }
            scored = score_question(question, records, limit_ms, self._base_points)
            self._scoreboard.apply_scored_question(participants, scored)
            self._scored_questions.add(index)
            for record in scored.values():
                self._persist(self._storage.persist_answer, self.contest.id, record)
            self._emit(
                EventType.QUESTION_SCORED,
                question_index=index,
                correct_option_index=question.correct_option_index,
                points=self._scoreboard.points_by_participant(scored),
                totals={p.user_id: p.total_score for p in participants},
            )

        self._set_phase(RoomPhase.REVEAL)
        self._arm(self._config.reveal_seconds, self._on_reveal_complete)

    def _complete(self) -> None:
        self._cancel_timer()
        if self._phase != RoomPhase.COMPLETED:
            self._set_phase(RoomPhase.COMPLETED)
        ranking = self._rank()
        self._result = ContestResult(contest=self.contest, ranking=ranking)
        self._emit(EventType.CONTEST_COMPLETED, ranking=[entry.to_dict() for entry in ranking])
        logger.info("Contest %s completed with %d ranked participants", self.contest.id, len(ranking))
        self._distribute_prizes(ranking)

    def _distribute_prizes(self, ranking: tuple[RankingEntry, ...]) -> None:
        if self._prizes_computed:
            return
        prizes = self._compute_prizes(ranking)
        self._prizes_computed = True
        self._result = ContestResult(contest=self.contest, ranking=ranking, prizes=prizes)
        self._set_phase(RoomPhase.PRIZES_DISTRIBUTED)
        self._emit(EventType.PRIZES_DISTRIBUTED, **prizes.to_dict())
        self._persist(self._storage.persist_contest_result, self._result)
        self._outbox.append(self._notify_finished)
        logger.info("Contest %s paid out net pool %s", self.contest.id, prizes.net_pool)

    def _cancel(self, reason: str, flagged_for_review: bool = False) -> None:
        self._cancel_timer()
        self._cancel_reason = reason
        self._set_phase(RoomPhase.CANCELLED)
        refunds = tuple(
            Refund(user_id=p.user_id, amount=self.contest.entry_fee, flagged_for_review=flagged_for_review)
            for p in self._lobby.get_participants()
        )
        self._emit(
            EventType.CONTEST_CANCELLED,
            reason=reason,
            refunds=[refund.to_dict() for refund in refunds],
        )
        if refunds:
            self._persist(self._storage.request_refunds, self.contest, refunds, reason)
        self._outbox.append(self._notify_finished)
        logger.info("Contest %s cancelled (%s), %d refunds", self.contest.id, reason, len(refunds))

    def _fail(self) -> None:
        if self._phase.is_terminal:
            return
        self._cancel(CANCEL_REASON_INTERNAL_ERROR, flagged_for_review=True)

    # --- Helpers ---

    def _set_phase(self, phase: RoomPhase) -> None:
        if phase != self._phase and phase not in _TRANSITIONS[self._phase]:
            raise RuntimeError(f"Illegal transition {self._phase.value} -> {phase.value}")
        logger.debug("Contest %s: %s -> %s", self.contest.id, self._phase.value, phase.value)
        self._phase = phase
        self.contest.status = phase.status
        if phase.is_terminal or phase in (RoomPhase.QUESTION_LOCKED, RoomPhase.COMPLETED):
            self._phase_deadline = None

    def _arm(self, delay_seconds: float, handler: Callable[[], None]) -> None:
        self._cancel_timer()
        self._timer_token += 1
        token = self._timer_token
        self._phase_deadline = self._clock.now() + delay_seconds
        self._timer = self._clock.after(delay_seconds, lambda: self._on_timer(token, handler))
        logger.info(
            "[timer-set] contest=%s phase=%s question=%s delay=%.3fs",
            self.contest.id,
            self._phase.value,
            self._question_index,
            delay_seconds,
        )

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._timer_token += 1

    def _on_timer(self, token: int, handler: Callable[[], None]) -> None:
        with self._transaction():
            if token != self._timer_token or self._phase.is_terminal:
                logger.info("[timer-abort] contest=%s phase=%s stale timer", self.contest.id, self._phase.value)
                return
            self._timer = None
            logger.info(
                "[timer-fire] contest=%s phase=%s question=%s",
                self.contest.id,
                self._phase.value,
                self._question_index,
            )
            try:
                handler()
            except Exception:
                logger.exception("Contest %s failed in phase %s", self.contest.id, self._phase.value)
                self._fail()

    def _load_questions(self) -> None:
        if self._questions:
            return
        fetched = list(self._question_source.fetch_questions(self.contest.id))
        if len(fetched) < self.contest.question_count:
            raise RuntimeError(
                f"Question source returned {len(fetched)} questions, "
                f"contest {self.contest.id} needs {self.contest.question_count}"
            )
        questions = fetched[: self.contest.question_count]
        for question in questions:
            validate_question(question)
        self._questions = questions

    def _limit_ms(self, question: Question) -> int:
        return time_limit_ms(question, self.contest.time_per_question_seconds)

    def _everyone_connected_answered(self) -> bool:
        connected = self._lobby.get_connected()
        if not connected:
            return False
        # Participants who forfeited this question cannot answer it any more
        return all(
            self._session.has_submitted(p.user_id)
            for p in connected
            if self._question_index not in p.forfeited_questions
        )

    def _rank(self) -> tuple[RankingEntry, ...]:
        limits = {index: self._limit_ms(q) for index, q in enumerate(self._questions)}
        return self._scoreboard.finalize(self._lobby.get_participants(), self.contest.question_count, limits)

    def _compute_prizes(self, ranking: tuple[RankingEntry, ...]) -> PrizeTable:
        return compute_prizes(
            [entry.user_id for entry in ranking],
            self.contest.entry_fee,
            self.contest.prize_split,
            PLATFORM_FEE_PERCENT,
        )

    def _rebuild_result(self) -> None:
        ranking = self._rank()
        self._result = ContestResult(contest=self.contest, ranking=ranking, prizes=self._compute_prizes(ranking))

    @staticmethod
    def _remaining_or(remaining: float | None, default: float) -> float:
        return default if remaining is None else max(0.0, float(remaining))

    def _reject(self, code: ErrorCode, user_id: str) -> CommandResult:
        logger.debug("Contest %s rejected %s for %s in %s", self.contest.id, code.value, user_id, self._phase.value)
        return CommandResult.failure(code)

    def _emit(self, event_type: EventType, **payload: Any) -> None:
        self._sequence += 1
        event = ContestEvent(type=event_type, contest_id=self.contest.id, sequence=self._sequence, payload=payload)
        self._outbox.append(lambda: self._publish(event))

    def _persist(self, write: Callable[..., None], *args: Any) -> None:
        def run() -> None:
            try:
                write(*args)
            except Exception:
                # Storage retries on its own; game state never waits on it
                logger.exception("Contest %s: storage write %s failed", self.contest.id, write.__name__)

        self._outbox.append(run)

    def _notify_finished(self) -> None:
        if self._on_finished is not None:
            self._on_finished(self.contest.id)

    def _build_snapshot(self) -> RoomSnapshot:
        in_question = self._phase in (RoomPhase.QUESTION_ACTIVE, RoomPhase.QUESTION_LOCKED, RoomPhase.REVEAL)
        return RoomSnapshot(
            contest_id=self.contest.id,
            name=self.contest.name,
            status=self.contest.status,
            phase=self._phase,
            question_index=self._question_index,
            question_count=self.contest.question_count,
            deadline=self._phase_deadline,
            participant_count=self._lobby.count(),
            connected_count=self._lobby.connected_count(),
            max_participants=self.contest.max_participants,
            private_code=self.contest.private_code,
            current_question=self._session.get_question() if in_question else None,
            cancel_reason=self._cancel_reason,
        )

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        self._lock.acquire()
        try:
            yield
        finally:
            self._snapshot = self._build_snapshot()
            outbox, self._outbox = self._outbox, []
            # Taking the dispatch lock before releasing the state lock keeps events in sequence order
            self._dispatch_lock.acquire()
            self._lock.release()
            try:
                for action in outbox:
                    action()
            finally:
                self._dispatch_lock.release()
