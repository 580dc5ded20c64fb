"""
Job submission and polling, and the wiring between work queues and the
pipeline orchestrator.
"""

from datetime import datetime
from typing import Any, Optional

from loguru import logger

from pipeline import PipelineOrchestrator
from shared.config import Settings, get_settings
from shared.database import JobStore
from shared.errors import ValidationError
from shared.models import Job, JobStatus, JobType

from .queue import QueuedJob, WorkQueue

REQUIRED_INPUTS = {
    JobType.EVALUATION: ("cv_document_id",),
    JobType.MATCHER: ("cv_document_id",),
}

RECOVERY_BATCH = 500


def _log_completed(entry: QueuedJob, result: Any) -> None:
    logger.info(f"Job {entry.id} completed")


def _log_failed(entry: QueuedJob, error: Any) -> None:
    logger.error(f"Job {entry.id} failed: {error}")


def _log_progress(entry: QueuedJob, data: Any) -> None:
    logger.debug(f"Job {entry.id} progress: {data}")


def build_queues(
    orchestrator: PipelineOrchestrator,
    settings: Optional[Settings] = None,
) -> dict[JobType, WorkQueue]:
    """One work queue per job type, each feeding the orchestrator."""
    settings = settings or get_settings()

    async def process(entry: QueuedJob) -> Optional[dict[str, Any]]:
        return await orchestrator.process(entry.id, report_progress=entry.update_progress)

    async def on_failure(entry: QueuedJob, error: BaseException) -> None:
        await orchestrator.fail(entry.id, error)

    concurrency = {
        JobType.EVALUATION: settings.evaluation_concurrency,
        JobType.MATCHER: settings.matcher_concurrency,
    }

    queues = {}
    for job_type, workers in concurrency.items():
        queue = WorkQueue(
            name=f"{job_type.value}-queue",
            processor=process,
            concurrency=workers,
            max_attempts=settings.queue_max_attempts,
            backoff_delay=settings.queue_backoff_delay,
            backoff_multiplier=settings.queue_backoff_multiplier,
            completed_ttl=settings.completed_ttl_seconds,
            completed_keep=settings.completed_keep,
            failed_ttl=settings.failed_ttl_seconds,
            on_failure=on_failure,
        )
        queue.on("completed", _log_completed)
        queue.on("failed", _log_failed)
        queue.on("progress", _log_progress)
        queues[job_type] = queue
    return queues


class JobService:
    """Submission and polling boundary over the job store and queues."""

    def __init__(self, store: JobStore, queues: dict[JobType, WorkQueue]):
        self.store = store
        self.queues = queues

    async def submit(
        self,
        job_type: JobType,
        input_refs: dict[str, Optional[str]],
        enqueue: bool = True,
    ) -> str:
        """
        Create a queued job record and hand it to the queue for its type.
        With ``enqueue=False`` the record is only stored; a worker daemon picks
        it up on its next store poll.
        """
        missing = [name for name in REQUIRED_INPUTS[job_type] if not input_refs.get(name)]
        if missing:
            raise ValidationError(f"Missing required input: {', '.join(missing)}")

        job = await self.store.create(Job(type=job_type, input_refs=input_refs))
        if enqueue:
            await self.enqueue(job)
        logger.info(f"Submitted {job_type.value} job {job.id}")
        return job.id

    async def enqueue(self, job: Job) -> bool:
        """Add a stored job to its queue. Returns False if it is already pending there."""
        queue = self.queues[job.type]
        if queue.is_pending(job.id):
            return False
        await queue.add(job.type.value, {"job_id": job.id}, job_id=job.id)
        return True

    async def poll(self, job_id: str) -> dict[str, Any]:
        """Client view: ``{id, status}`` plus ``result`` once completed."""
        job = await self.store.require(job_id)
        return job.to_poll_view()

    async def error_for(self, job_id: str) -> Optional[str]:
        """Operator view of a failed job's error (with exception type in development)."""
        job = await self.store.require(job_id)
        if job.status != JobStatus.FAILED:
            return None
        if job.error_detail:
            return f"{job.error} ({job.error_detail})"
        return job.error

    async def recover(self, stale_before: Optional[datetime] = None) -> int:
        """
        Enqueue stored jobs that no queue holds: ``queued`` ones, plus
        ``processing`` ones last updated at or before ``stale_before`` (claims
        left behind by a worker that stopped).
        """
        recovered = 0
        for job_type in self.queues:
            jobs = await self.store.list_by_status(JobStatus.QUEUED, job_type, limit=RECOVERY_BATCH)
            if stale_before is not None:
                jobs += await self.store.list_by_status(
                    JobStatus.PROCESSING,
                    job_type,
                    limit=RECOVERY_BATCH,
                    updated_before=stale_before,
                )
            for job in jobs:
                if await self.enqueue(job):
                    recovered += 1

        if recovered:
            logger.info(f"Recovered {recovered} jobs from the store")
        return recovered

    def counts(self) -> dict[str, dict[str, int]]:
        return {job_type.value: queue.counts() for job_type, queue in self.queues.items()}
