"""
Job record state machine (in-memory store).
"""

import asyncio
from datetime import timedelta

import pytest

from shared.database import MemoryJobStore
from shared.errors import InvalidTransitionError, JobClaimedError, NotFoundError
from shared.models import Job, JobStatus, JobType, utcnow

WORKER = "worker-a"


def new_job(**kwargs) -> Job:
    return Job(type=JobType.EVALUATION, input_refs={"cv_document_id": "doc-1"}, **kwargs)


def test_happy_path_transitions():
    async def scenario():
        store = MemoryJobStore()
        job = await store.create(new_job())
        assert job.status == JobStatus.QUEUED

        job = await store.mark_processing(job.id, WORKER)
        assert job.status == JobStatus.PROCESSING
        assert job.attempts == 1

        job = await store.complete(job.id, {"cv_match_rate": 80.0})
        assert job.status == JobStatus.COMPLETED
        assert job.result == {"cv_match_rate": 80.0}
        assert job.progress == 100
        assert job.error is None

    asyncio.run(scenario())


def test_new_jobs_must_be_queued():
    async def scenario():
        store = MemoryJobStore()
        with pytest.raises(InvalidTransitionError):
            await store.create(new_job(status=JobStatus.PROCESSING))

    asyncio.run(scenario())


def test_terminal_states_are_final():
    async def scenario():
        store = MemoryJobStore()
        job = await store.create(new_job())
        await store.mark_processing(job.id, WORKER)
        await store.fail(job.id, "Document has no extractable text")

        with pytest.raises(InvalidTransitionError):
            await store.mark_processing(job.id, WORKER)
        with pytest.raises(InvalidTransitionError):
            await store.complete(job.id, {})

        failed = await store.require(job.id)
        assert failed.status == JobStatus.FAILED
        assert failed.error == "Document has no extractable text"
        assert failed.result is None

    asyncio.run(scenario())


def test_queued_cannot_skip_processing():
    async def scenario():
        store = MemoryJobStore()
        job = await store.create(new_job())
        with pytest.raises(InvalidTransitionError):
            await store.complete(job.id, {})
        with pytest.raises(InvalidTransitionError):
            await store.fail(job.id, "boom")

    asyncio.run(scenario())


def test_retry_reclaims_processing_job():
    async def scenario():
        store = MemoryJobStore()
        job = await store.create(new_job())
        await store.mark_processing(job.id, WORKER)
        job = await store.mark_processing(job.id, WORKER)
        assert job.attempts == 2
        assert job.worker_id == WORKER

    asyncio.run(scenario())


def test_processing_job_is_not_claimed_by_another_worker():
    async def scenario():
        store = MemoryJobStore()
        job = await store.create(new_job())
        await store.mark_processing(job.id, WORKER)

        with pytest.raises(JobClaimedError):
            await store.mark_processing(job.id, "worker-b", stale_before=utcnow() - timedelta(minutes=15))

        current = await store.require(job.id)
        assert current.worker_id == WORKER
        assert current.attempts == 1

    asyncio.run(scenario())


def test_stale_processing_job_can_be_taken_over():
    async def scenario():
        store = MemoryJobStore()
        job = await store.create(new_job())
        await store.mark_processing(job.id, WORKER)

        job = await store.mark_processing(job.id, "worker-b", stale_before=utcnow())
        assert job.status == JobStatus.PROCESSING
        assert job.worker_id == "worker-b"
        assert job.attempts == 2

        # The previous holder lost its claim
        with pytest.raises(JobClaimedError):
            await store.mark_processing(job.id, WORKER)

    asyncio.run(scenario())


def test_concurrent_claims_have_one_winner():
    async def scenario():
        store = MemoryJobStore()
        job = await store.create(new_job())
        return await asyncio.gather(
            store.mark_processing(job.id, WORKER),
            store.mark_processing(job.id, "worker-b"),
            return_exceptions=True,
        ), await store.require(job.id)

    (first, second), job = asyncio.run(scenario())

    assert first.worker_id == WORKER
    assert isinstance(second, JobClaimedError)
    assert job.attempts == 1



def test_fail_requires_message():
    async def scenario():
        store = MemoryJobStore()
        job = await store.create(new_job())
        await store.mark_processing(job.id, WORKER)
        with pytest.raises(ValueError):
            await store.fail(job.id, "")

    asyncio.run(scenario())


def test_unknown_job():
    async def scenario():
        store = MemoryJobStore()
        assert await store.get("missing") is None
        with pytest.raises(NotFoundError):
            await store.require("missing")
        with pytest.raises(NotFoundError):
            await store.mark_processing("missing", WORKER)

    asyncio.run(scenario())


def test_progress_only_while_processing():
    async def scenario():
        store = MemoryJobStore()
        job = await store.create(new_job())
        assert await store.update_progress(job.id, "resolve_text", 10) is False

        await store.mark_processing(job.id, WORKER)
        assert await store.update_progress(job.id, "resolve_text", 13, {"characters": 120})
        assert await store.update_progress(job.id, "extract_profile", 150, {"name": "Jane"})

        current = await store.require(job.id)
        assert current.stage == "extract_profile"
        assert current.progress == 100
        assert current.partial == {"resolve_text": {"characters": 120}, "extract_profile": {"name": "Jane"}}

    asyncio.run(scenario())


def test_reads_are_copies():
    async def scenario():
        store = MemoryJobStore()
        job = await store.create(new_job())
        fetched = await store.require(job.id)
        fetched.partial["tampered"] = True
        assert (await store.require(job.id)).partial == {}

    asyncio.run(scenario())


def test_list_by_status():
    async def scenario():
        store = MemoryJobStore()
        first = await store.create(new_job())
        await store.create(Job(type=JobType.MATCHER, input_refs={"cv_document_id": "doc-2"}))
        await store.mark_processing(first.id, WORKER)

        queued = await store.list_by_status(JobStatus.QUEUED)
        assert [j.type for j in queued] == [JobType.MATCHER]
        assert await store.list_by_status(JobStatus.QUEUED, JobType.EVALUATION) == []
        assert [j.id for j in await store.list_by_status(JobStatus.PROCESSING)] == [first.id]

    asyncio.run(scenario())


def test_poll_view():
    job = new_job()
    assert job.to_poll_view() == {"id": job.id, "status": "queued"}

    done = job.model_copy(update={"status": JobStatus.COMPLETED, "result": {"x": 1}})
    assert done.to_poll_view() == {"id": job.id, "status": "completed", "result": {"x": 1}}

    failed = job.model_copy(update={"status": JobStatus.FAILED, "error": "boom"})
    assert failed.to_poll_view() == {"id": job.id, "status": "failed"}


def test_list_by_status_updated_before():
    async def scenario():
        store = MemoryJobStore()
        job = await store.create(new_job())
        await store.mark_processing(job.id, WORKER)

        earlier = utcnow() - timedelta(minutes=15)
        assert await store.list_by_status(JobStatus.PROCESSING, updated_before=earlier) == []
        stale = await store.list_by_status(JobStatus.PROCESSING, updated_before=utcnow())
        assert [j.id for j in stale] == [job.id]

    asyncio.run(scenario())
