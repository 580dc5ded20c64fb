"""
Matcher pipeline: CV against job listings.

resolve_text -> extract_profile -> suggest_roles -> fetch_listings ->
rank_listings -> summarize
"""

from typing import Any, Optional

from loguru import logger

from documents import DocumentRepository, TextExtractor
from llm import ReasoningChains
from matcher import MatchingEngine
from scraper import ListingProvider, fallback_listings
from shared.config import Settings, get_settings
from shared.errors import ProviderError
from shared.models import CareerSummary, JobType, MatcherOutcome, UserProfile

from .base import Pipeline, StageFn
from .context import StageContext

DEFAULT_ROLE = "Software Engineer"
MAX_PRIMARY_SKILLS = 10


class MatcherPipeline(Pipeline):
    job_type = JobType.MATCHER

    def __init__(
        self,
        chains: ReasoningChains,
        documents: DocumentRepository,
        extractor: TextExtractor,
        provider: ListingProvider,
        engine: MatchingEngine,
        settings: Optional[Settings] = None,
    ):
        super().__init__(chains, documents, extractor)
        self.provider = provider
        self.engine = engine
        self.settings = settings or get_settings()

    def stages(self) -> list[tuple[str, StageFn]]:
        return [
            ("resolve_text", self.resolve_text),
            ("extract_profile", self.extract_profile),
            ("suggest_roles", self.suggest_roles),
            ("fetch_listings", self.fetch_listings),
            ("rank_listings", self.rank_listings),
            ("summarize", self.summarize),
        ]

    async def suggest_roles(self, ctx: StageContext) -> dict[str, Any]:
        roles = await self.chains.suggest_roles(ctx.profile)

        if not roles.suggested_roles:
            positions = [exp.position for exp in ctx.profile.experience if exp.position]
            fallback_roles = list(dict.fromkeys(positions))[:3] or [DEFAULT_ROLE]
            logger.warning(f"[{ctx.job_id}] No suggested roles, using {fallback_roles}")
            roles = roles.model_copy(update={"suggested_roles": fallback_roles})

        if roles.seniority:
            ctx.profile = ctx.profile.model_copy(update={"seniority": roles.seniority})
        else:
            roles = roles.model_copy(update={"seniority": ctx.profile.seniority})

        ctx.roles = roles
        return roles.model_dump()

    async def fetch_listings(self, ctx: StageContext) -> dict[str, Any]:
        """Provider listings, or the fallback set. Never fails the job."""
        listings = []
        try:
            listings = await self.provider.fetch(
                ctx.roles.suggested_roles,
                ctx.roles.seniority,
                self.settings.listing_location,
            )
        except Exception as e:
            logger.warning(f"[{ctx.job_id}] Listing provider {self.provider.name} failed: {e}")

        if listings:
            ctx.listings = listings
            ctx.listing_source = self.provider.name
        else:
            logger.warning(f"[{ctx.job_id}] No listings from provider, using fallback set")
            ctx.listings = fallback_listings()
            ctx.listing_source = "fallback"

        return {"count": len(ctx.listings), "source": ctx.listing_source}

    async def _skill_scores(self, ctx: StageContext) -> Optional[list[Optional[float]]]:
        if not self.settings.matcher_llm_skill_scoring:
            return None

        scores: list[Optional[float]] = []
        for listing in ctx.listings:
            try:
                result = await self.chains.calculate_skill_score(ctx.profile.skills, listing)
            except ProviderError as e:
                logger.warning(f"[{ctx.job_id}] Skill scoring failed for {listing.title}: {e}")
                scores.append(None)
                continue
            scores.append(result.score)
        return scores

    async def rank_listings(self, ctx: StageContext) -> list[dict[str, Any]]:
        skill_scores = await self._skill_scores(ctx)
        ctx.matches = self.engine.rank(ctx.profile, ctx.listings, skill_scores)
        return [match.model_dump() for match in ctx.matches]

    async def summarize(self, ctx: StageContext) -> dict[str, Any]:
        brief_matches = [
            {
                "title": m.title,
                "company": m.company,
                "score": round(m.score, 2),
                "grade": m.grade,
                "explanation": m.explanation,
            }
            for m in ctx.matches
        ]
        ctx.career_summary = await self.chains.summarize_matches(ctx.profile, ctx.roles, brief_matches)
        if ctx.career_summary.fallback:
            logger.warning(f"[{ctx.job_id}] Career summary unparseable, using empty summary")
        return ctx.career_summary.model_dump()

    def build_result(self, ctx: StageContext) -> dict[str, Any]:
        summary = ctx.career_summary
        outcome = MatcherOutcome(
            user_profile=UserProfile(
                name=ctx.profile.name,
                seniority=ctx.profile.seniority,
                primary_skills=ctx.profile.skills[:MAX_PRIMARY_SKILLS],
            ),
            suggested_roles=ctx.roles.suggested_roles,
            jobs=ctx.matches,
            summary=CareerSummary(
                strengths=summary.strengths,
                improvements=summary.improvements,
                next_steps=summary.next_steps,
            ),
        )
        return outcome.model_dump(mode="json")
