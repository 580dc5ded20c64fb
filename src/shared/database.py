"""
Job record persistence.

MongoDB via Motor (async driver) for deployments, plus an in-memory store for
tests and single-process development runs. Both enforce the job status state
machine: queued -> processing -> completed | failed, and hand a processing job
to one worker at a time.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

from loguru import logger
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, IndexModel, ReturnDocument

from .config import Settings, get_settings
from .errors import InvalidTransitionError, JobClaimedError, NotFoundError
from .models import (
    ALLOWED_TRANSITIONS,
    Job,
    JobStatus,
    JobType,
    can_transition,
)


class Database:
    """Async MongoDB database wrapper."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._client: Optional[AsyncIOMotorClient] = None
        self._db: Optional[AsyncIOMotorDatabase] = None

    async def connect(self) -> None:
        """Establish database connection."""
        if self._client is not None:
            return

        logger.info(f"Connecting to MongoDB: {self.settings.mongodb_database}")
        self._client = AsyncIOMotorClient(self.settings.mongodb_uri)
        self._db = self._client[self.settings.mongodb_database]

        # Verify connection
        await self._client.admin.command("ping")
        logger.info("MongoDB connection established")

    async def disconnect(self) -> None:
        """Close database connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._db = None
            logger.info("MongoDB connection closed")

    @property
    def db(self) -> AsyncIOMotorDatabase:
        """Get database instance."""
        if self._db is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._db

    async def ensure_indexes(self) -> None:
        """Create database indexes."""
        job_indexes = [
            IndexModel([("status", ASCENDING), ("type", ASCENDING)]),
            IndexModel([("created_at", DESCENDING)]),
        ]
        await self.db.analysis_jobs.create_indexes(job_indexes)

        await self.db.job_descriptions.create_indexes(
            [
                IndexModel([("slug", ASCENDING)], unique=True),
                IndexModel([("is_default", ASCENDING)]),
            ]
        )

        logger.info("Database indexes created")


def _sources_for(target: JobStatus) -> list[str]:
    """Statuses from which ``target`` can be reached."""
    return [s.value for s, targets in ALLOWED_TRANSITIONS.items() if target in targets]


def is_claimable(job: Job, worker_id: str, stale_before: Optional[datetime] = None) -> bool:
    if job.status == JobStatus.QUEUED:
        return True
    if job.status != JobStatus.PROCESSING:
        return False
    if job.worker_id == worker_id:
        return True
    return stale_before is not None and job.updated_at <= stale_before


class JobStore(ABC):
    """Read/write access to job records, enforcing status transitions."""

    async def create(self, job: Job) -> Job:
        if job.status != JobStatus.QUEUED:
            raise InvalidTransitionError(f"New jobs must be queued, got {job.status.value}")
        await self._insert(job)
        logger.debug(f"Created {job.type.value} job {job.id}")
        return job

    async def require(self, job_id: str) -> Job:
        job = await self.get(job_id)
        if job is None:
            raise NotFoundError(f"Job not found: {job_id}")
        return job

    async def mark_processing(
        self, job_id: str, worker_id: str, stale_before: Optional[datetime] = None
    ) -> Job:
        """
        Claim a job for one attempt by ``worker_id``.

        Queued jobs can be claimed by any worker. A processing job can only be
        re-claimed by the worker holding it (a retry), or by any worker once
        its last update is at or before ``stale_before``. Raises JobClaimedError
        when another worker holds the job.
        """
        job = await self._claim(job_id, worker_id, stale_before)
        if job is None:
            existing = await self.require(job_id)
            if existing.is_terminal:
                raise InvalidTransitionError(
                    f"Job {job_id}: {existing.status.value} -> processing not allowed"
                )
            raise JobClaimedError(f"Job {job_id} is held by worker {existing.worker_id}")
        return job

    async def complete(self, job_id: str, result: dict[str, Any]) -> Job:
        return await self._transition(
            job_id,
            JobStatus.COMPLETED,
            {"result": result, "progress": 100, "error": None},
        )

    async def fail(
        self, job_id: str, error: str, error_detail: Optional[str] = None
    ) -> Job:
        if not error:
            raise ValueError("A failed job needs an error message")
        return await self._transition(
            job_id,
            JobStatus.FAILED,
            {"error": error, "error_detail": error_detail, "result": None},
        )

    @abstractmethod
    async def get(self, job_id: str) -> Optional[Job]:
        ...

    @abstractmethod
    async def update_progress(
        self, job_id: str, stage: str, progress: int, partial: Any = None
    ) -> bool:
        """Persist stage progress for a processing job. Returns False if not processing."""

    @abstractmethod
    async def list_by_status(
        self,
        status: JobStatus,
        job_type: Optional[JobType] = None,
        limit: int = 100,
        updated_before: Optional[datetime] = None,
    ) -> list[Job]:
        """Oldest first. ``updated_before`` keeps only jobs last updated at or before it."""

    @abstractmethod
    async def _insert(self, job: Job) -> None:
        ...

    @abstractmethod
    async def _claim(
        self, job_id: str, worker_id: str, stale_before: Optional[datetime]
    ) -> Optional[Job]:
        """Atomically claim the job, or return None when it is not claimable."""

    @abstractmethod
    async def _transition(self, job_id: str, target: JobStatus, fields: dict[str, Any]) -> Job:
        ...


class MongoJobStore(JobStore):
    """Job records in the ``analysis_jobs`` collection."""

    def __init__(self, database: Database):
        self.database = database

    @property
    def collection(self):
        return self.database.db.analysis_jobs

    @staticmethod
    def _to_document(job: Job) -> dict[str, Any]:
        doc = job.model_dump(mode="json", exclude={"id", "created_at", "updated_at"})
        doc["_id"] = job.id
        doc["created_at"] = job.created_at
        doc["updated_at"] = job.updated_at
        return doc

    @staticmethod
    def _from_document(doc: dict[str, Any]) -> Job:
        data = dict(doc)
        data["id"] = str(data.pop("_id"))
        return Job.model_validate(data)

    async def _insert(self, job: Job) -> None:
        await self.collection.insert_one(self._to_document(job))

    async def get(self, job_id: str) -> Optional[Job]:
        doc = await self.collection.find_one({"_id": job_id})
        return self._from_document(doc) if doc else None

    async def _claim(
        self, job_id: str, worker_id: str, stale_before: Optional[datetime]
    ) -> Optional[Job]:
        claimable: list[dict[str, Any]] = [
            {"status": JobStatus.QUEUED.value},
            {"status": JobStatus.PROCESSING.value, "worker_id": worker_id},
        ]
        if stale_before is not None:
            claimable.append(
                {"status": JobStatus.PROCESSING.value, "updated_at": {"$lte": stale_before}}
            )

        doc = await self.collection.find_one_and_update(
            {"_id": job_id, "$or": claimable},
            {
                "$set": {
                    "status": JobStatus.PROCESSING.value,
                    "worker_id": worker_id,
                    "error": None,
                    "error_detail": None,
                    "updated_at": datetime.now(timezone.utc),
                },
                "$inc": {"attempts": 1},
            },
            return_document=ReturnDocument.AFTER,
        )
        return self._from_document(doc) if doc else None

    async def _transition(self, job_id: str, target: JobStatus, fields: dict[str, Any]) -> Job:
        # Atomic compare-and-set on the current status
        doc = await self.collection.find_one_and_update(
            {"_id": job_id, "status": {"$in": _sources_for(target)}},
            {
                "$set": {
                    **fields,
                    "status": target.value,
                    "updated_at": datetime.now(timezone.utc),
                }
            },
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            existing = await self.require(job_id)
            raise InvalidTransitionError(
                f"Job {job_id}: {existing.status.value} -> {target.value} not allowed"
            )
        return self._from_document(doc)

    async def update_progress(
        self, job_id: str, stage: str, progress: int, partial: Any = None
    ) -> bool:
        update = {
            "stage": stage,
            "progress": max(0, min(100, progress)),
            f"partial.{stage}": partial,
            "updated_at": datetime.now(timezone.utc),
        }
        result = await self.collection.update_one(
            {"_id": job_id, "status": JobStatus.PROCESSING.value},
            {"$set": update},
        )
        return result.matched_count > 0

    async def list_by_status(
        self,
        status: JobStatus,
        job_type: Optional[JobType] = None,
        limit: int = 100,
        updated_before: Optional[datetime] = None,
    ) -> list[Job]:
        query: dict[str, Any] = {"status": status.value}
        if job_type is not None:
            query["type"] = job_type.value
        if updated_before is not None:
            query["updated_at"] = {"$lte": updated_before}
        cursor = self.collection.find(query).sort("created_at", ASCENDING).limit(limit)
        docs = await cursor.to_list(length=limit)
        return [self._from_document(doc) for doc in docs]


class MemoryJobStore(JobStore):
    """In-process job store. Copies on read and write so callers never alias records."""

    def __init__(self):
        self._jobs: dict[str, Job] = {}

    async def _insert(self, job: Job) -> None:
        if job.id in self._jobs:
            raise InvalidTransitionError(f"Job already exists: {job.id}")
        self._jobs[job.id] = job.model_copy(deep=True)

    async def get(self, job_id: str) -> Optional[Job]:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def _claim(
        self, job_id: str, worker_id: str, stale_before: Optional[datetime]
    ) -> Optional[Job]:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"Job not found: {job_id}")
        if not is_claimable(job, worker_id, stale_before):
            return None

        updated = job.model_copy(
            deep=True,
            update={
                "status": JobStatus.PROCESSING,
                "worker_id": worker_id,
                "error": None,
                "error_detail": None,
                "attempts": job.attempts + 1,
                "updated_at": datetime.now(timezone.utc),
            },
        )
        self._jobs[job_id] = updated
        return updated.model_copy(deep=True)

    async def _transition(self, job_id: str, target: JobStatus, fields: dict[str, Any]) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"Job not found: {job_id}")
        if not can_transition(job.status, target):
            raise InvalidTransitionError(
                f"Job {job_id}: {job.status.value} -> {target.value} not allowed"
            )

        updated = job.model_copy(
            deep=True,
            update={
                **fields,
                "status": target,
                "updated_at": datetime.now(timezone.utc),
            },
        )
        self._jobs[job_id] = updated
        return updated.model_copy(deep=True)

    async def update_progress(
        self, job_id: str, stage: str, progress: int, partial: Any = None
    ) -> bool:
        job = self._jobs.get(job_id)
        if job is None or job.status != JobStatus.PROCESSING:
            return False
        job.stage = stage
        job.progress = max(0, min(100, progress))
        job.partial[stage] = partial
        job.updated_at = datetime.now(timezone.utc)
        return True

    async def list_by_status(
        self,
        status: JobStatus,
        job_type: Optional[JobType] = None,
        limit: int = 100,
        updated_before: Optional[datetime] = None,
    ) -> list[Job]:
        jobs = [
            job
            for job in self._jobs.values()
            if job.status == status and (job_type is None or job.type == job_type)
        ]
        if updated_before is not None:
            jobs = [job for job in jobs if job.updated_at <= updated_before]
        jobs.sort(key=lambda j: j.created_at)
        return [job.model_copy(deep=True) for job in jobs[:limit]]
