"""
Pipeline building blocks shared by the evaluation and matcher pipelines.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from loguru import logger

from documents import DocumentRepository, TextExtractor
from llm import ReasoningChains
from matcher.candidate import resolve_candidate_name
from shared.errors import NotFoundError, ParseError, ValidationError
from shared.models import JobType

from .context import StageContext

StageFn = Callable[[StageContext], Awaitable[Any]]

CV_DOCUMENT = "cv_document_id"


async def resolve_document_text(
    documents: DocumentRepository,
    extractor: TextExtractor,
    document_id: str,
) -> str:
    """
    Raw text for a stored document.

    Falls back to previously extracted text when the file cannot be parsed or
    is gone. Without cached text the error propagates and the job fails.
    """
    ref = await documents.resolve(document_id)
    try:
        text = await extractor.extract(ref.path, ref.mime_type)
    except (ParseError, NotFoundError) as e:
        if ref.cached_text and ref.cached_text.strip():
            logger.warning(f"Could not extract {ref.path} ({e}), using cached text")
            return ref.cached_text
        raise

    await documents.cache_text(ref.id, text)
    return text


class Pipeline(ABC):
    """Ordered stages for one job type, plus the final result builder."""

    job_type: JobType
    required_inputs: tuple[str, ...] = (CV_DOCUMENT,)

    def __init__(
        self,
        chains: ReasoningChains,
        documents: DocumentRepository,
        extractor: TextExtractor,
    ):
        self.chains = chains
        self.documents = documents
        self.extractor = extractor

    @abstractmethod
    def stages(self) -> list[tuple[str, StageFn]]:
        ...

    @abstractmethod
    def build_result(self, ctx: StageContext) -> dict[str, Any]:
        ...

    def validate_inputs(self, input_refs: dict[str, Any]) -> None:
        missing = [name for name in self.required_inputs if not input_refs.get(name)]
        if missing:
            raise ValidationError(f"Missing required input: {', '.join(missing)}")

    # Stages common to both pipelines

    async def resolve_text(self, ctx: StageContext) -> dict[str, Any]:
        ctx.raw_text = await resolve_document_text(
            self.documents, self.extractor, ctx.input_ref(CV_DOCUMENT)
        )
        return {"characters": len(ctx.raw_text)}

    async def extract_profile(self, ctx: StageContext) -> dict[str, Any]:
        ctx.extraction = await self.chains.extract_profile(ctx.raw_text or "")
        if ctx.extraction.fallback:
            logger.warning(f"[{ctx.job_id}] CV extraction unparseable, using empty profile")

        profile = ctx.extraction.to_profile()
        name = resolve_candidate_name(profile.name, ctx.raw_text or "")
        if name != profile.name:
            logger.warning(f"[{ctx.job_id}] Extracted name {profile.name!r} rejected, using {name!r}")
        ctx.profile = profile.model_copy(update={"name": name})

        return {**ctx.profile.model_dump(), "fallback": ctx.extraction.fallback}
