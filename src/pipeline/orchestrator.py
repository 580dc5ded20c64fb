"""
Pipeline orchestrator.

Claims a job (queued -> processing), runs its pipeline's stages strictly in
order, persists per-stage progress, and finishes the job as completed with a
result. Failed jobs are finished by ``fail``, which the worker pool calls
once retries are exhausted or the error is not retryable.
"""

from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional
from uuid import uuid4

from loguru import logger

from shared.config import Settings, get_settings
from shared.database import JobStore
from shared.errors import JobClaimedError, PipelineError, UnknownError, as_pipeline_error
from shared.models import JobStatus, JobType, utcnow

from .base import Pipeline
from .context import StageContext

ProgressReporter = Callable[[dict[str, Any]], Awaitable[None]]

# Progress reached when the last stage finishes; completion sets 100
STAGES_DONE_PROGRESS = 95


class PipelineOrchestrator:
    """
    Runs queued jobs through the pipeline registered for their type.

    Each orchestrator claims jobs under its own ``worker_id``. A job held by
    another worker is skipped unless its claim has gone stale.
    """

    def __init__(
        self,
        store: JobStore,
        pipelines: list[Pipeline],
        settings: Optional[Settings] = None,
        worker_id: Optional[str] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.pipelines: dict[JobType, Pipeline] = {p.job_type: p for p in pipelines}
        self.worker_id = worker_id or uuid4().hex
        self._running: set[str] = set()

    def pipeline_for(self, job_type: JobType) -> Pipeline:
        try:
            return self.pipelines[job_type]
        except KeyError:
            raise PipelineError(f"No pipeline registered for {job_type.value} jobs") from None

    def stale_before(self) -> datetime:
        """Processing jobs last updated at or before this are claimable by any worker."""
        return utcnow() - timedelta(seconds=self.settings.processing_stale_seconds)

    async def process(
        self,
        job_id: str,
        report_progress: Optional[ProgressReporter] = None,
    ) -> Optional[dict[str, Any]]:
        """
        Execute one attempt of a job.

        Raises the stage's error on failure (unexpected exceptions are wrapped
        in UnknownError); the caller decides whether to retry. Returns None
        without running anything when the job is held elsewhere.
        """
        if job_id in self._running:
            logger.warning(f"[{job_id}] Job already running in this worker, skipping")
            return None

        self._running.add(job_id)
        try:
            return await self._run(job_id, report_progress)
        finally:
            self._running.discard(job_id)

    async def _run(
        self,
        job_id: str,
        report_progress: Optional[ProgressReporter],
    ) -> Optional[dict[str, Any]]:
        existing = await self.store.require(job_id)
        if existing.is_terminal:
            logger.warning(f"[{job_id}] Job already {existing.status.value}, skipping")
            return existing.result

        pipeline = self.pipeline_for(existing.type)
        pipeline.validate_inputs(existing.input_refs)

        try:
            job = await self.store.mark_processing(job_id, self.worker_id, self.stale_before())
        except JobClaimedError as e:
            logger.warning(f"[{job_id}] {e}, skipping")
            return None
        logger.info(f"[{job_id}] Processing {job.type.value} job (attempt {job.attempts})")

        ctx = StageContext(job=job)
        stages = pipeline.stages()
        total = len(stages)

        for index, (name, run_stage) in enumerate(stages, start=1):
            ctx.stage = name
            logger.info(f"[{job_id}] Stage {index}/{total}: {name}")
            try:
                partial = await run_stage(ctx)
            except PipelineError as e:
                logger.error(f"[{job_id}] Stage {name} failed: {type(e).__name__}: {e}")
                raise
            except Exception as e:
                logger.exception(f"[{job_id}] Unexpected error in stage {name}")
                raise UnknownError(f"{type(e).__name__}: {e}", cause=e) from e

            progress = int(index * STAGES_DONE_PROGRESS / total)
            if not await self.store.update_progress(job_id, name, progress, partial):
                logger.warning(f"[{job_id}] Job no longer processing, progress not saved")
            if report_progress is not None:
                await report_progress({"stage": name, "progress": progress})

        result = pipeline.build_result(ctx)
        await self.store.complete(job_id, result)
        logger.info(f"[{job_id}] Job completed")
        return result

    async def fail(self, job_id: str, error: BaseException) -> None:
        """Mark a job failed with a human-readable message."""
        pipeline_error = as_pipeline_error(error)
        detail = None
        if self.settings.is_development:
            cause = getattr(pipeline_error, "cause", None) or error
            detail = f"{type(cause).__name__}: {cause}"

        job = await self.store.get(job_id)
        if job is None:
            logger.warning(f"[{job_id}] Cannot mark failed, job not found")
            return
        if job.is_terminal:
            logger.debug(f"[{job_id}] Job already {job.status.value}, not marking failed")
            return
        if job.status == JobStatus.PROCESSING and job.worker_id != self.worker_id:
            logger.warning(f"[{job_id}] Job held by worker {job.worker_id}, not marking failed")
            return
        if job.status == JobStatus.QUEUED:
            # Failed before the first claim (e.g. invalid input)
            try:
                await self.store.mark_processing(job_id, self.worker_id)
            except JobClaimedError as e:
                logger.warning(f"[{job_id}] {e}, not marking failed")
                return

        await self.store.fail(job_id, pipeline_error.public_message, detail)
        logger.error(f"[{job_id}] Job failed: {pipeline_error.public_message}")
