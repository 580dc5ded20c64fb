"""
Document and job description repository (in-memory backend).
"""

import asyncio

import pytest

from documents import MemoryDocumentRepository
from shared.errors import NotFoundError
from shared.models import JobDescription, JobRequirements


def data_engineer(**kwargs) -> JobDescription:
    data = {
        "slug": "data-engineer",
        "title": "Data Engineer",
        "company": "Acme",
        "requirements": JobRequirements(technical=["Python", "Spark"]),
    }
    data.update(kwargs)
    return JobDescription(**data)


def test_added_job_description_is_found_by_id_and_slug():
    async def scenario():
        documents = MemoryDocumentRepository()
        saved = await documents.add_job_description(data_engineer())
        return saved, await documents.get_job_description(saved.id), await documents.get_job_description("data-engineer")

    saved, by_id, by_slug = asyncio.run(scenario())

    assert by_id.title == "Data Engineer"
    assert by_slug.id == saved.id


def test_same_slug_replaces_job_description():
    async def scenario():
        documents = MemoryDocumentRepository()
        first = await documents.add_job_description(data_engineer())
        second = await documents.add_job_description(data_engineer(title="Senior Data Engineer"))
        return first, second, await documents.get_job_description("data-engineer")

    first, second, current = asyncio.run(scenario())

    assert second.id == first.id
    assert current.title == "Senior Data Engineer"


def test_default_job_description_is_created_once():
    async def scenario():
        documents = MemoryDocumentRepository()
        return await documents.get_job_description(), await documents.get_job_description(None)

    first, second = asyncio.run(scenario())

    assert first.is_default
    assert first.slug == "default"
    assert second.id == first.id


def test_unknown_job_description():
    async def scenario():
        documents = MemoryDocumentRepository()
        with pytest.raises(NotFoundError, match="Job description not found: missing"):
            await documents.get_job_description("missing")

    asyncio.run(scenario())
