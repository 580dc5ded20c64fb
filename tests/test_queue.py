"""
In-process work queue: delivery, retries with backoff, events and retention.
"""

import asyncio

from shared.errors import ParseError, ProviderError, RateLimitError
from worker import WorkQueue
from worker.queue import COMPLETED, DELAYED, FAILED, WAITING


class FakeClock:
    """Monotonic clock that only moves when told to (or by ``step`` per read)."""

    def __init__(self, step: float = 0.0):
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        self.now += self.step
        return self.now


def test_processes_entry_and_emits_events():
    events = []

    async def processor(entry):
        await entry.update_progress({"stage": "resolve_text", "progress": 13})
        return {"n": entry.data["n"]}

    async def scenario():
        queue = WorkQueue("evaluation-queue", processor)
        queue.on("progress", lambda entry, data: events.append(("progress", entry.id, data)))
        queue.on("completed", lambda entry, result: events.append(("completed", entry.id, result)))
        queue.start()

        await queue.add("evaluation", {"n": 7}, job_id="job-1")
        await queue.join()
        entry = queue.get("job-1")
        await queue.close()
        return entry

    entry = asyncio.run(scenario())

    assert entry.state == COMPLETED
    assert entry.attempts_made == 1
    assert entry.return_value == {"n": 7}
    assert events == [
        ("progress", "job-1", {"stage": "resolve_text", "progress": 13}),
        ("completed", "job-1", {"n": 7}),
    ]


def test_retryable_errors_are_retried_with_backoff():
    errors = [ProviderError("timeout"), RateLimitError()]
    retrying = []

    async def processor(entry):
        if errors:
            raise errors.pop(0)
        return "done"

    async def scenario():
        queue = WorkQueue("matcher-queue", processor, max_attempts=3, backoff_delay=0.01)
        queue.on("retrying", lambda entry, error: retrying.append(entry.attempts_made))
        queue.start()
        await queue.add("matcher", job_id="job-1")
        await queue.join()
        entry = queue.get("job-1")
        await queue.close()
        return entry

    entry = asyncio.run(scenario())

    assert entry.state == COMPLETED
    assert entry.attempts_made == 3
    assert entry.return_value == "done"
    assert retrying == [1, 2]


def test_retries_exhausted_calls_failure_handler_once():
    failures = []

    async def processor(entry):
        raise ProviderError("still down")

    async def on_failure(entry, error):
        failures.append((entry.id, entry.attempts_made, str(error)))

    async def scenario():
        queue = WorkQueue(
            "evaluation-queue", processor, max_attempts=3, backoff_delay=0.01, on_failure=on_failure
        )
        queue.start()
        await queue.add("evaluation", job_id="job-1")
        await queue.join()
        entry = queue.get("job-1")
        await queue.close()
        return entry

    entry = asyncio.run(scenario())

    assert entry.state == FAILED
    assert entry.failed_reason == "still down"
    assert failures == [("job-1", 3, "still down")]


def test_non_retryable_errors_fail_immediately():
    attempts = []

    async def processor(entry):
        attempts.append(entry.id)
        if entry.id == "parse":
            raise ParseError("bad pdf")
        raise KeyError("unexpected")

    async def scenario():
        queue = WorkQueue("evaluation-queue", processor, max_attempts=3, backoff_delay=0.01)
        queue.start()
        await queue.add("evaluation", job_id="parse")
        await queue.add("evaluation", job_id="crash")
        await queue.join()
        states = {job_id: queue.get(job_id).state for job_id in ("parse", "crash")}
        await queue.close()
        return states

    states = asyncio.run(scenario())

    assert states == {"parse": FAILED, "crash": FAILED}
    assert sorted(attempts) == ["crash", "parse"]


def test_pending_ids_are_not_added_twice():
    processed = []

    async def processor(entry):
        processed.append(entry.id)

    async def scenario():
        queue = WorkQueue("matcher-queue", processor)
        await queue.add("matcher", job_id="job-1")
        await queue.add("matcher", job_id="job-1")
        assert queue.counts()[WAITING] == 1
        assert queue.is_pending("job-1")

        queue.start()
        await queue.join()
        assert not queue.is_pending("job-1")

        # Finished entries can be added again
        await queue.add("matcher", job_id="job-1")
        await queue.join()
        await queue.close()

    asyncio.run(scenario())
    assert processed == ["job-1", "job-1"]


def test_delayed_entry_is_pending():
    async def processor(entry):
        raise ProviderError("down")

    async def scenario():
        queue = WorkQueue("matcher-queue", processor, max_attempts=2, backoff_delay=60)
        queue.start()
        await queue.add("matcher", job_id="job-1")
        while queue.get("job-1").state != DELAYED:
            await asyncio.sleep(0)
        pending = queue.is_pending("job-1")
        counts = queue.counts()
        await queue.close()
        return pending, counts

    pending, counts = asyncio.run(scenario())
    assert pending is True
    assert counts[DELAYED] == 1


def test_concurrency_limit():
    active = 0
    peak = 0

    async def processor(entry):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1

    async def scenario():
        queue = WorkQueue("matcher-queue", processor, concurrency=2)
        queue.start()
        for i in range(6):
            await queue.add("matcher", job_id=f"job-{i}")
        await queue.join()
        await queue.close()

    asyncio.run(scenario())
    assert peak == 2


def test_finished_entries_expire():
    clock = FakeClock()

    async def processor(entry):
        if entry.id == "bad":
            raise ParseError()

    async def scenario():
        queue = WorkQueue(
            "evaluation-queue", processor, completed_ttl=10, failed_ttl=100, clock=clock
        )
        queue.start()
        await queue.add("evaluation", job_id="good")
        await queue.add("evaluation", job_id="bad")
        await queue.join()

        clock.now = 10
        assert queue.evict() == 1
        assert queue.get("good") is None
        assert queue.get("bad") is not None

        clock.now = 100
        assert queue.evict() == 1
        assert queue.get("bad") is None
        await queue.close()

    asyncio.run(scenario())


def test_completed_entries_are_capped():
    async def processor(entry):
        return entry.id

    async def scenario():
        queue = WorkQueue("matcher-queue", processor, completed_keep=2, clock=FakeClock(step=1))
        queue.start()
        for i in range(4):
            await queue.add("matcher", job_id=f"job-{i}")
            await queue.join()
        kept = [job_id for job_id in ("job-0", "job-1", "job-2", "job-3") if queue.get(job_id)]
        await queue.close()
        return kept

    assert asyncio.run(scenario()) == ["job-2", "job-3"]


def test_failing_event_handler_does_not_break_processing():
    async def processor(entry):
        return "ok"

    def broken(entry, result):
        raise RuntimeError("handler bug")

    async def scenario():
        queue = WorkQueue("matcher-queue", processor)
        queue.on("completed", broken)
        queue.start()
        await queue.add("matcher", job_id="job-1")
        await queue.add("matcher", job_id="job-2")
        await queue.join()
        states = [queue.get("job-1").state, queue.get("job-2").state]
        await queue.close()
        return states

    assert asyncio.run(scenario()) == [COMPLETED, COMPLETED]
