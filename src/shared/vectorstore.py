"""
Vector search component.

A store is built once at process start by ``build_vector_store`` and handed to
the pipelines that need it; there is no module-level instance.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Sequence

import numpy as np
from loguru import logger

from .config import Settings

Embedder = Callable[[str], Awaitable[list[float]]]

# Reduced embedding size (text-embedding-3-small produces 1536)
DEFAULT_DIMENSIONS = 384


@dataclass
class VectorDocument:
    """Text to index plus filterable metadata."""

    id: str
    text: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class SearchHit:
    id: str
    score: float
    metadata: dict[str, Any]
    text: str = ""


def reduce_dimensions(embedding: Sequence[float], target_dim: int = DEFAULT_DIMENSIONS) -> np.ndarray:
    """Average consecutive segments down to ``target_dim`` values, then L2-normalize."""
    vec = np.asarray(embedding, dtype=np.float64)
    if vec.size == 0:
        return vec
    if vec.size > target_dim:
        starts = (np.arange(target_dim) * (vec.size / target_dim)).astype(int)
        counts = np.diff(np.append(starts, vec.size))
        vec = np.add.reduceat(vec, starts) / counts

    norm = np.linalg.norm(vec)
    if norm == 0:
        return vec
    return vec / norm


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)
    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(vec_a, vec_b) / (norm_a * norm_b))


def matches_filter(metadata: dict[str, Any], filter: Optional[dict[str, Any]]) -> bool:
    if not filter:
        return True
    return all(metadata.get(key) == value for key, value in filter.items())


class VectorStore(ABC):
    """``upsert``/``search`` interface the pipeline depends on."""

    @abstractmethod
    async def upsert(self, documents: list[VectorDocument]) -> None:
        ...

    @abstractmethod
    async def search(
        self,
        query: str,
        top_k: int = 3,
        filter: Optional[dict[str, Any]] = None,
    ) -> list[SearchHit]:
        ...


class InMemoryVectorStore(VectorStore):
    """
    Cosine-similarity search over unit vectors held in memory.

    Every stored row is L2-normalized on upsert, so a search is one
    matrix-vector product against the normalized query.
    """

    def __init__(self, embed: Embedder, dimensions: int = DEFAULT_DIMENSIONS):
        self._embed = embed
        self.dimensions = dimensions
        self._documents: dict[str, VectorDocument] = {}
        self._rows: dict[str, int] = {}
        self._matrix = np.zeros((0, 0))

    def __len__(self) -> int:
        return len(self._documents)

    async def _vector(self, text: str) -> np.ndarray:
        return reduce_dimensions(await self._embed(text), self.dimensions)

    async def upsert(self, documents: list[VectorDocument]) -> None:
        """Insert or overwrite by id."""
        logger.info(f"VectorDB: Upserting {len(documents)} documents")
        for doc in documents:
            vector = await self._vector(doc.text)
            row = self._rows.get(doc.id)
            if row is None:
                self._matrix = vector[np.newaxis, :] if not self._rows else np.vstack([self._matrix, vector])
                self._rows[doc.id] = len(self._rows)
            else:
                self._matrix[row] = vector
            self._documents[doc.id] = doc

    async def search(
        self,
        query: str,
        top_k: int = 3,
        filter: Optional[dict[str, Any]] = None,
    ) -> list[SearchHit]:
        logger.debug(f"VectorDB: Searching for: {query[:50]}")
        candidates = [
            doc_id for doc_id, doc in self._documents.items() if matches_filter(doc.metadata, filter)
        ]
        if not candidates or top_k < 1:
            return []

        query_vector = await self._vector(query)
        rows = np.fromiter((self._rows[doc_id] for doc_id in candidates), dtype=int, count=len(candidates))
        scores = self._matrix[rows] @ query_vector

        # Stable sort keeps insertion order for equal scores
        order = np.argsort(-scores, kind="stable")[:top_k]
        return [
            SearchHit(
                id=candidates[i],
                score=float(scores[i]),
                metadata=self._documents[candidates[i]].metadata,
                text=self._documents[candidates[i]].text,
            )
            for i in order
        ]


def build_vector_store(settings: Settings, embed: Embedder) -> VectorStore:
    """Select the vector backend once, at start-up."""
    if settings.vector_backend == "memory":
        logger.info("Using in-memory vector store")
        return InMemoryVectorStore(embed)
    raise ValueError(f"Unknown vector backend: {settings.vector_backend}")
