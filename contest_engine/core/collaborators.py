"""External collaborators: question sources and result storage.

The engine only talks to these through the small protocols below. The
in-memory implementations back the tests and single-process deployments;
``RetryingStorage`` moves writes off the game's timing path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
from queue import Empty, Queue
from threading import Event, Lock, Thread
import time
from typing import Callable, Protocol, Sequence

from contest_engine.core.models import AnswerRecord, Contest, ContestResult, Question, Refund
from contest_engine.core.question_importer import load_questions_from_file

logger = logging.getLogger(__name__)


class QuestionSource(Protocol):
    def fetch_questions(self, contest_id: str) -> Sequence[Question]: ...


class ContestStorage(Protocol):
    def persist_answer(self, contest_id: str, record: AnswerRecord) -> None: ...

    def persist_contest_result(self, result: ContestResult) -> None: ...

    def request_refunds(self, contest: Contest, refunds: Sequence[Refund], reason: str) -> None: ...


class InMemoryQuestionSource:
    """Serves fixed question lists, per contest or from a shared default."""

    def __init__(
        self,
        default_questions: Sequence[Question] | None = None,
        by_contest: dict[str, Sequence[Question]] | None = None,
    ) -> None:
        self._default = list(default_questions or [])
        self._by_contest = {key: list(value) for key, value in (by_contest or {}).items()}
        self._lock = Lock()

    def assign(self, contest_id: str, questions: Sequence[Question]) -> None:
        with self._lock:
            self._by_contest[contest_id] = list(questions)

    def fetch_questions(self, contest_id: str) -> Sequence[Question]:
        with self._lock:
            return list(self._by_contest.get(contest_id, self._default))


class FileQuestionSource:
    """Loads questions from the plain-text quiz format, once per file."""

    def __init__(self, default_path: Path, by_contest: dict[str, Path] | None = None) -> None:
        self._default_path = default_path
        self._by_contest = dict(by_contest or {})
        self._cache: dict[Path, list[Question]] = {}
        self._lock = Lock()

    def assign(self, contest_id: str, path: Path) -> None:
        with self._lock:
            self._by_contest[contest_id] = path

    def fetch_questions(self, contest_id: str) -> Sequence[Question]:
        with self._lock:
            path = self._by_contest.get(contest_id, self._default_path)
            if path not in self._cache:
                self._cache[path] = load_questions_from_file(path)
            return list(self._cache[path])


@dataclass(slots=True)
class InMemoryStorage:
    """Records everything the engine asks to persist."""

    answers: list[tuple[str, AnswerRecord]] = field(default_factory=list)
    results: list[ContestResult] = field(default_factory=list)
    refunds: list[tuple[str, tuple[Refund, ...], str]] = field(default_factory=list)
    _lock: Lock = field(default_factory=Lock)

    def persist_answer(self, contest_id: str, record: AnswerRecord) -> None:
        with self._lock:
            self.answers.append((contest_id, record))

    def persist_contest_result(self, result: ContestResult) -> None:
        with self._lock:
            self.results.append(result)

    def request_refunds(self, contest: Contest, refunds: Sequence[Refund], reason: str) -> None:
        with self._lock:
            self.refunds.append((contest.id, tuple(refunds), reason))

    def answers_for(self, contest_id: str) -> list[AnswerRecord]:
        with self._lock:
            return [record for cid, record in self.answers if cid == contest_id]


class RetryingStorage:
    """Queues writes for a background worker that retries with exponential backoff.

    Calls return immediately; a write that still fails after ``max_attempts``
    is logged and dropped.
    """

    def __init__(
        self,
        inner: ContestStorage,
        max_attempts: int = 5,
        backoff_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._inner = inner
        self._max_attempts = max(1, max_attempts)
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._queue: Queue[tuple[str, Callable[[], None]]] = Queue()
        self._stopped = Event()
        self._worker = Thread(target=self._run, name="ContestPersistence", daemon=True)
        self._worker.start()

    def persist_answer(self, contest_id: str, record: AnswerRecord) -> None:
        self._queue.put(("persist_answer", lambda: self._inner.persist_answer(contest_id, record)))

    def persist_contest_result(self, result: ContestResult) -> None:
        self._queue.put(("persist_contest_result", lambda: self._inner.persist_contest_result(result)))

    def request_refunds(self, contest: Contest, refunds: Sequence[Refund], reason: str) -> None:
        refunds = tuple(refunds)
        self._queue.put(("request_refunds", lambda: self._inner.request_refunds(contest, refunds, reason)))

    def flush(self, timeout: float | None = None) -> None:
        """Block until every queued write has been attempted."""
        if timeout is None:
            self._queue.join()
            return
        deadline = time.monotonic() + timeout
        while self._queue.unfinished_tasks and time.monotonic() < deadline:
            time.sleep(0.01)

    def stop(self) -> None:
        self._stopped.set()
        self._worker.join(timeout=1.0)

    def _run(self) -> None:
        while not self._stopped.is_set():
            try:
                name, write = self._queue.get(timeout=0.1)
            except Empty:
                continue
            try:
                self._attempt(name, write)
            finally:
                self._queue.task_done()

    def _attempt(self, name: str, write: Callable[[], None]) -> None:
        last_err: Exception | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                write()
                return
            except Exception as exc:
                last_err = exc
                logger.warning("%s failed (%s). Retry %d/%d...", name, exc, attempt, self._max_attempts)
                if attempt < self._max_attempts:
                    self._sleep(self._backoff_seconds * (2 ** (attempt - 1)))
        logger.error("%s failed after %d attempts: %s", name, self._max_attempts, last_err)
