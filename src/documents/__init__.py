"""Document adapters: repository lookups and raw text extraction."""

from .extractor import TextExtractor
from .source import (
    DocumentRepository,
    MemoryDocumentRepository,
    MongoDocumentRepository,
    default_job_description,
)

__all__ = [
    "TextExtractor",
    "DocumentRepository",
    "MemoryDocumentRepository",
    "MongoDocumentRepository",
    "default_job_description",
]
