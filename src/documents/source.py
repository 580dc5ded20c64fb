"""
Document and job description repository.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import uuid4

from loguru import logger

from shared.database import Database
from shared.errors import NotFoundError
from shared.models import DocumentRef, JobDescription, JobRequirements, ScoringWeights

DEFAULT_JOB_DESCRIPTION = JobDescription(
    slug="default",
    title="Senior Backend Engineer",
    company="Tech Company",
    description=(
        "We are looking for a Senior Backend Engineer with strong experience "
        "in Node.js and cloud technologies."
    ),
    requirements=JobRequirements(
        technical=[
            "5+ years of backend development experience",
            "Strong proficiency in Node.js and TypeScript",
            "Experience with databases (MongoDB, PostgreSQL)",
            "Knowledge of cloud platforms (AWS, GCP)",
            "Experience with microservices architecture",
            "Understanding of AI/ML concepts is a plus",
        ],
        soft_skills=[
            "Strong communication skills",
            "Team leadership experience",
            "Problem-solving mindset",
            "Continuous learning attitude",
        ],
    ),
    scoring_weights=ScoringWeights(),
    is_default=True,
)


def default_job_description() -> JobDescription:
    """Fresh copy of the built-in default job description."""
    return DEFAULT_JOB_DESCRIPTION.model_copy(deep=True, update={"id": uuid4().hex})


class DocumentRepository(ABC):
    """Resolves uploaded documents and job descriptions by id."""

    @abstractmethod
    async def resolve(self, document_id: str) -> DocumentRef:
        """Raises NotFoundError for unknown ids."""

    @abstractmethod
    async def cache_text(self, document_id: str, text: str) -> None:
        """Remember extracted text so later runs can fall back to it."""

    @abstractmethod
    async def add_document(self, path: str, mime_type: str) -> DocumentRef:
        ...

    @abstractmethod
    async def add_job_description(self, job: JobDescription) -> JobDescription:
        """Store a job description. One with the same slug is replaced."""

    @abstractmethod
    async def _find_job_description(self, job_description_id: str) -> Optional[JobDescription]:
        ...

    @abstractmethod
    async def _default_job_description(self) -> JobDescription:
        ...

    async def get_job_description(self, job_description_id: Optional[str] = None) -> JobDescription:
        """Job description by id (id or slug), or the default one when no id is given."""
        if not job_description_id:
            return await self._default_job_description()

        job = await self._find_job_description(job_description_id)
        if job is None:
            raise NotFoundError(f"Job description not found: {job_description_id}")
        return job


class MongoDocumentRepository(DocumentRepository):
    """Documents in ``documents``, job descriptions in ``job_descriptions``."""

    def __init__(self, database: Database):
        self.database = database

    @property
    def documents(self):
        return self.database.db.documents

    @property
    def job_descriptions(self):
        return self.database.db.job_descriptions

    async def resolve(self, document_id: str) -> DocumentRef:
        doc = await self.documents.find_one({"_id": document_id})
        if doc is None:
            raise NotFoundError(f"Document not found: {document_id}")
        return DocumentRef(
            id=str(doc["_id"]),
            path=doc["path"],
            mime_type=doc["mime_type"],
            cached_text=doc.get("content"),
        )

    async def cache_text(self, document_id: str, text: str) -> None:
        await self.documents.update_one({"_id": document_id}, {"$set": {"content": text}})

    async def add_document(self, path: str, mime_type: str) -> DocumentRef:
        ref = DocumentRef(id=uuid4().hex, path=path, mime_type=mime_type)
        await self.documents.insert_one({"_id": ref.id, "path": path, "mime_type": mime_type})
        logger.info(f"Document saved: {path}")
        return ref

    async def add_job_description(self, job: JobDescription) -> JobDescription:
        data = job.model_dump(exclude={"id"})
        await self.job_descriptions.update_one(
            {"slug": job.slug},
            {"$set": data, "$setOnInsert": {"_id": job.id}},
            upsert=True,
        )
        logger.info(f"Job description saved: {job.slug}")
        return self._to_model(await self.job_descriptions.find_one({"slug": job.slug}))

    @staticmethod
    def _to_model(doc: dict[str, Any]) -> JobDescription:
        data = dict(doc)
        data["id"] = str(data.pop("_id"))
        return JobDescription.model_validate(data)

    async def _find_job_description(self, job_description_id: str) -> Optional[JobDescription]:
        doc = await self.job_descriptions.find_one(
            {"$or": [{"_id": job_description_id}, {"slug": job_description_id}]}
        )
        return self._to_model(doc) if doc else None

    async def _default_job_description(self) -> JobDescription:
        doc = await self.job_descriptions.find_one({"is_default": True})
        if doc:
            return self._to_model(doc)

        job = default_job_description()
        data = job.model_dump(exclude={"id"})
        data["_id"] = job.id
        await self.job_descriptions.update_one(
            {"slug": job.slug}, {"$setOnInsert": data}, upsert=True
        )
        logger.info("Created default job description")
        return self._to_model(await self.job_descriptions.find_one({"slug": job.slug}))


class MemoryDocumentRepository(DocumentRepository):
    def __init__(self):
        self._documents: dict[str, DocumentRef] = {}
        self._job_descriptions: dict[str, JobDescription] = {}

    async def resolve(self, document_id: str) -> DocumentRef:
        ref = self._documents.get(document_id)
        if ref is None:
            raise NotFoundError(f"Document not found: {document_id}")
        return ref.model_copy()

    async def cache_text(self, document_id: str, text: str) -> None:
        ref = self._documents.get(document_id)
        if ref is not None:
            ref.cached_text = text

    async def add_document(
        self, path: str, mime_type: str, cached_text: Optional[str] = None
    ) -> DocumentRef:
        ref = DocumentRef(id=uuid4().hex, path=path, mime_type=mime_type, cached_text=cached_text)
        self._documents[ref.id] = ref
        return ref.model_copy()

    async def add_job_description(self, job: JobDescription) -> JobDescription:
        for existing in list(self._job_descriptions.values()):
            if existing.slug == job.slug:
                job = job.model_copy(update={"id": existing.id})
        self._job_descriptions[job.id] = job.model_copy(deep=True)
        return job

    async def _find_job_description(self, job_description_id: str) -> Optional[JobDescription]:
        for job in self._job_descriptions.values():
            if job_description_id in (job.id, job.slug):
                return job.model_copy(deep=True)
        return None

    async def _default_job_description(self) -> JobDescription:
        for job in self._job_descriptions.values():
            if job.is_default:
                return job.model_copy(deep=True)
        job = await self.add_job_description(default_job_description())
        return job.model_copy(deep=True)
