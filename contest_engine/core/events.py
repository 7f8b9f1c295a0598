"""Event records emitted by contest rooms and a small in-process bus."""

from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass, field
from enum import Enum
import logging
from threading import Lock
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    PARTICIPANT_JOINED = "participant_joined"
    ROOM_SCHEDULED = "room_scheduled"
    QUESTION_REVEALED = "question_revealed"
    QUESTION_LOCKED = "question_locked"
    QUESTION_SCORED = "question_scored"
    CONTEST_COMPLETED = "contest_completed"
    PRIZES_DISTRIBUTED = "prizes_distributed"
    CONTEST_CANCELLED = "contest_cancelled"


@dataclass(slots=True, frozen=True)
class ContestEvent:
    """A JSON-serialisable event; ``sequence`` is ordered within one contest."""

    type: EventType
    contest_id: str
    sequence: int
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "contest_id": self.contest_id,
            "sequence": self.sequence,
            "payload": self.payload,
        }


EventListener = Callable[[ContestEvent], None]


class EventBus:
    """Fan-out of room events to subscribers."""

    def __init__(self) -> None:
        self._listeners: list[EventListener] = []
        self._lock = Lock()

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: ContestEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                # A broken subscriber must not stall the room that emitted the event
                logger.exception("Event listener failed for %s/%s", event.contest_id, event.type.value)


class EventRecorder:
    """Keeps the most recent events per contest for polling clients."""

    def __init__(self, max_events_per_contest: int = 500) -> None:
        self._events: dict[str, deque[ContestEvent]] = defaultdict(
            lambda: deque(maxlen=max_events_per_contest)
        )
        self._lock = Lock()

    def __call__(self, event: ContestEvent) -> None:
        with self._lock:
            self._events[event.contest_id].append(event)

    def events_for(self, contest_id: str, after: int = 0) -> list[ContestEvent]:
        with self._lock:
            return [event for event in self._events.get(contest_id, ()) if event.sequence > after]

    def types_for(self, contest_id: str) -> list[EventType]:
        return [event.type for event in self.events_for(contest_id)]

    def forget(self, contest_id: str) -> None:
        with self._lock:
            self._events.pop(contest_id, None)
