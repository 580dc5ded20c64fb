"""
In-process work queue with a fixed-size asyncio worker pool.

One queue per job type. Entries are retried with exponential backoff when the
processor raises a retryable error; a retry runs the whole processor again.
Finished entries are kept for a bounded time, then evicted.
"""

import asyncio
import inspect
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional
from uuid import uuid4

from loguru import logger

from shared.errors import is_retryable
from shared.retry import backoff_delay

WAITING = "waiting"
ACTIVE = "active"
DELAYED = "delayed"
COMPLETED = "completed"
FAILED = "failed"

PENDING_STATES = frozenset({WAITING, ACTIVE, DELAYED})
EVENTS = ("completed", "failed", "progress", "retrying")


@dataclass
class QueuedJob:
    """One queue entry. ``id`` is the job record id."""

    id: str
    name: str
    data: dict[str, Any] = field(default_factory=dict)
    state: str = WAITING
    attempts_made: int = 0
    progress: Any = None
    return_value: Any = None
    failed_reason: Optional[str] = None
    finished_at: Optional[float] = None
    queue: Optional["WorkQueue"] = field(default=None, repr=False, compare=False)

    async def update_progress(self, progress: Any) -> None:
        self.progress = progress
        if self.queue is not None:
            await self.queue.emit("progress", self, progress)


Processor = Callable[[QueuedJob], Awaitable[Any]]
FailureHandler = Callable[[QueuedJob, BaseException], Awaitable[None]]
EventHandler = Callable[[QueuedJob, Any], Any]


class WorkQueue:
    """asyncio queue plus ``concurrency`` workers calling ``processor``."""

    def __init__(
        self,
        name: str,
        processor: Processor,
        concurrency: int = 1,
        max_attempts: int = 3,
        backoff_delay: float = 5.0,
        backoff_multiplier: float = 2.0,
        completed_ttl: float = 3600.0,
        completed_keep: int = 100,
        failed_ttl: float = 24 * 3600.0,
        on_failure: Optional[FailureHandler] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        self.name = name
        self.processor = processor
        self.concurrency = concurrency
        self.max_attempts = max_attempts
        self.backoff_delay = backoff_delay
        self.backoff_multiplier = backoff_multiplier
        self.completed_ttl = completed_ttl
        self.completed_keep = completed_keep
        self.failed_ttl = failed_ttl
        self.on_failure = on_failure
        self.clock = clock

        self._entries: dict[str, QueuedJob] = {}
        self._pending: asyncio.Queue[str] = asyncio.Queue()
        self._workers: list[asyncio.Task] = []
        self._timers: dict[str, asyncio.Task] = {}
        self._handlers: dict[str, list[EventHandler]] = {event: [] for event in EVENTS}
        self._changed = asyncio.Condition()

    # Events

    def on(self, event: str, handler: EventHandler) -> None:
        """Register a sync or async handler called as ``handler(entry, payload)``."""
        if event not in self._handlers:
            raise ValueError(f"Unknown queue event: {event}")
        self._handlers[event].append(handler)

    async def emit(self, event: str, entry: QueuedJob, payload: Any = None) -> None:
        for handler in self._handlers[event]:
            try:
                outcome = handler(entry, payload)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception(f"Queue {self.name}: {event} handler failed for {entry.id}")

    # Producer side

    async def add(self, name: str, data: Optional[dict[str, Any]] = None, job_id: Optional[str] = None) -> str:
        """
        Enqueue an entry. Adding an id that is already waiting, delayed or
        active is a no-op, so one job is never delivered twice at once.
        """
        job_id = job_id or uuid4().hex
        existing = self._entries.get(job_id)
        if existing is not None and existing.state in PENDING_STATES:
            logger.debug(f"Queue {self.name}: {job_id} already {existing.state}, not re-adding")
            return job_id

        self._entries[job_id] = QueuedJob(id=job_id, name=name, data=data or {}, queue=self)
        self._pending.put_nowait(job_id)
        await self._notify()
        return job_id

    def get(self, job_id: str) -> Optional[QueuedJob]:
        return self._entries.get(job_id)

    def is_pending(self, job_id: str) -> bool:
        entry = self._entries.get(job_id)
        return entry is not None and entry.state in PENDING_STATES

    def counts(self) -> dict[str, int]:
        counts = {state: 0 for state in (WAITING, ACTIVE, DELAYED, COMPLETED, FAILED)}
        for entry in self._entries.values():
            counts[entry.state] += 1
        return counts

    # Lifecycle

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"{self.name}-worker-{i}")
            for i in range(self.concurrency)
        ]
        logger.info(f"Queue {self.name}: started {self.concurrency} workers")

    async def close(self) -> None:
        tasks = [*self._workers, *self._timers.values()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._workers = []
        self._timers.clear()
        logger.info(f"Queue {self.name}: closed")

    async def join(self) -> None:
        """Wait until nothing is waiting, delayed or active."""
        async with self._changed:
            await self._changed.wait_for(self._is_idle)

    def _is_idle(self) -> bool:
        return not any(entry.state in PENDING_STATES for entry in self._entries.values())

    async def _notify(self) -> None:
        async with self._changed:
            self._changed.notify_all()

    # Consumer side

    async def _worker(self, index: int) -> None:
        while True:
            job_id = await self._pending.get()
            try:
                entry = self._entries.get(job_id)
                if entry is None or entry.state != WAITING:
                    continue
                await self._run(entry)
            finally:
                self._pending.task_done()

    async def _run(self, entry: QueuedJob) -> None:
        entry.state = ACTIVE
        entry.attempts_made += 1
        logger.debug(f"Queue {self.name}: {entry.id} attempt {entry.attempts_made}/{self.max_attempts}")

        try:
            result = await self.processor(entry)
        except Exception as e:
            await self._handle_failure(entry, e)
        else:
            entry.state = COMPLETED
            entry.return_value = result
            entry.finished_at = self.clock()
            await self.emit("completed", entry, result)
        finally:
            self.evict()
            await self._notify()

    async def _handle_failure(self, entry: QueuedJob, error: Exception) -> None:
        if is_retryable(error) and entry.attempts_made < self.max_attempts:
            delay = backoff_delay(entry.attempts_made, self.backoff_delay, self.backoff_multiplier)
            entry.state = DELAYED
            entry.failed_reason = str(error)
            logger.warning(
                f"Queue {self.name}: {entry.id} failed attempt {entry.attempts_made}, "
                f"retrying in {delay:.1f}s: {error}"
            )
            self._timers[entry.id] = asyncio.create_task(self._requeue_after(entry, delay))
            await self.emit("retrying", entry, error)
            return

        entry.state = FAILED
        entry.failed_reason = str(error)
        entry.finished_at = self.clock()
        if self.on_failure is not None:
            try:
                await self.on_failure(entry, error)
            except Exception:
                logger.exception(f"Queue {self.name}: failure handler raised for {entry.id}")
        await self.emit("failed", entry, error)

    async def _requeue_after(self, entry: QueuedJob, delay: float) -> None:
        await asyncio.sleep(delay)
        self._timers.pop(entry.id, None)
        if entry.state == DELAYED:
            entry.state = WAITING
            self._pending.put_nowait(entry.id)

    # Retention

    def evict(self) -> int:
        """Drop finished entries past their TTL, and completed ones beyond ``completed_keep``."""
        now = self.clock()
        expired = [
            entry.id
            for entry in self._entries.values()
            if entry.finished_at is not None
            and (
                (entry.state == COMPLETED and now - entry.finished_at >= self.completed_ttl)
                or (entry.state == FAILED and now - entry.finished_at >= self.failed_ttl)
            )
        ]
        for job_id in expired:
            del self._entries[job_id]

        completed = sorted(
            (e for e in self._entries.values() if e.state == COMPLETED),
            key=lambda e: e.finished_at,
        )
        overflow = completed[: max(0, len(completed) - self.completed_keep)]
        for entry in overflow:
            del self._entries[entry.id]

        return len(expired) + len(overflow)
