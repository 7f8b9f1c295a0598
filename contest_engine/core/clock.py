"""Clock abstraction used to read time and arm cancellable deadlines."""

from __future__ import annotations

from dataclasses import dataclass, field
import heapq
import itertools
from threading import Lock, Timer
import time
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...

    @property
    def cancelled(self) -> bool: ...


class Clock(Protocol):
    """Monotonic time source able to schedule callbacks."""

    def now(self) -> float: ...

    def after(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle: ...


class _ThreadTimerHandle:
    def __init__(self, timer: Timer) -> None:
        self._timer = timer
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True
        self._timer.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class SystemClock:
    """Wall-clock implementation backed by ``time.monotonic`` and daemon timers."""

    def now(self) -> float:
        return time.monotonic()

    def after(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        timer = Timer(max(0.0, delay_seconds), callback)
        timer.daemon = True
        timer.name = "ContestTimer"
        timer.start()
        return _ThreadTimerHandle(timer)


@dataclass(order=True)
class _ScheduledCall:
    due: float
    order: int
    callback: Callable[[], None] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock:
    """Simulated clock: time only moves when :meth:`advance` is called.

    Due callbacks fire synchronously, in deadline order, on the caller's thread.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._queue: list[_ScheduledCall] = []
        self._counter = itertools.count()
        self._lock = Lock()

    def now(self) -> float:
        with self._lock:
            return self._now

    def after(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        with self._lock:
            call = _ScheduledCall(self._now + max(0.0, delay_seconds), next(self._counter), callback)
            heapq.heappush(self._queue, call)
            return call

    def pending(self) -> int:
        with self._lock:
            return sum(1 for call in self._queue if not call.cancelled)

    def advance(self, seconds: float) -> None:
        self.advance_to(self.now() + seconds)

    def advance_to(self, target: float) -> None:
        while True:
            with self._lock:
                while self._queue and self._queue[0].cancelled:
                    heapq.heappop(self._queue)
                if not self._queue or self._queue[0].due > target:
                    self._now = max(self._now, target)
                    return
                call = heapq.heappop(self._queue)
                self._now = max(self._now, call.due)
            call.callback()
