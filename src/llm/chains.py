"""
Reasoning stages: one prompt, one completion, one typed result each.

Unparseable output resolves to the result type's default. Provider errors
(rate limits, timeouts) propagate so the worker pool can retry the job.
"""

from typing import Any, Optional

from loguru import logger

from shared.models import CandidateProfile, JobDescription, JobListing

from . import prompts
from .client import ReasoningClient
from .parsing import parse_json_response
from .schemas import (
    EvaluationResult,
    ExtractionResult,
    FinalSummary,
    MatchSummary,
    ProjectEvaluationResult,
    RoleSuggestion,
    SkillScore,
)

# Characters of CV text sent for extraction
MAX_CV_CHARS = 15000


class ReasoningChains:
    """Typed wrappers around the prompts in ``llm.prompts``."""

    def __init__(self, client: ReasoningClient):
        self.client = client

    async def extract_profile(self, raw_text: str) -> ExtractionResult:
        logger.info("Chain: extracting CV information")
        response = await self.client.complete(
            prompts.extraction_prompt(raw_text[:MAX_CV_CHARS]),
            system_prompt=prompts.EXTRACTION_SYSTEM_PROMPT,
            temperature=0.1,
        )
        result = parse_json_response(response, ExtractionResult)
        logger.info(
            f"Chain: CV extraction completed - {len(result.skills)} skills, "
            f"{len(result.work_experience)} experiences (fallback={result.fallback})"
        )
        return result

    async def evaluate_profile(
        self,
        profile: CandidateProfile,
        job: JobDescription,
        context: Optional[list[str]] = None,
    ) -> EvaluationResult:
        logger.info(f"Chain: evaluating CV against '{job.title}'")
        job_view = {
            "title": job.title,
            "company": job.company,
            "description": job.description,
            "requirements": job.requirements.model_dump(),
            "scoring_weights": job.scoring_weights.as_dict(),
        }
        response = await self.client.complete(
            prompts.evaluation_prompt(profile.model_dump(), job_view, context or []),
            system_prompt=prompts.EVALUATION_SYSTEM_PROMPT,
            temperature=0.3,
        )
        result = parse_json_response(response, EvaluationResult)
        logger.info(f"Chain: CV evaluation completed - {len(result.scores)} criteria scored")
        return result

    async def evaluate_project(self, report_text: str, rubric: list[str]) -> ProjectEvaluationResult:
        logger.info("Chain: evaluating project report")
        response = await self.client.complete(
            prompts.project_evaluation_prompt(report_text[:MAX_CV_CHARS], rubric),
            system_prompt=prompts.PROJECT_EVALUATION_SYSTEM_PROMPT,
            temperature=0.3,
        )
        result = parse_json_response(response, ProjectEvaluationResult)
        logger.info(f"Chain: project evaluation completed (fallback={result.fallback})")
        return result

    async def generate_final_summary(self, evaluation: dict[str, Any]) -> FinalSummary:
        logger.info("Chain: generating final summary")
        response = await self.client.complete(
            prompts.summary_prompt(evaluation),
            system_prompt=prompts.SUMMARY_SYSTEM_PROMPT,
            temperature=0.4,
            max_tokens=500,
        )
        return parse_json_response(response, FinalSummary)

    async def suggest_roles(self, profile: CandidateProfile) -> RoleSuggestion:
        logger.info("Chain: suggesting roles")
        response = await self.client.complete(
            prompts.role_suggestion_prompt(profile.model_dump()),
            system_prompt=prompts.ROLE_SYSTEM_PROMPT,
            temperature=0.3,
        )
        result = parse_json_response(response, RoleSuggestion)
        logger.info(f"Chain: suggested roles {result.suggested_roles}")
        return result

    async def summarize_matches(
        self,
        profile: CandidateProfile,
        roles: RoleSuggestion,
        matches: list[dict[str, Any]],
    ) -> MatchSummary:
        logger.info("Chain: summarizing job matches")
        response = await self.client.complete(
            prompts.match_summary_prompt(
                profile.model_dump(),
                roles.model_dump(exclude={"fallback"}),
                matches,
            ),
            system_prompt=prompts.MATCH_SUMMARY_SYSTEM_PROMPT,
            temperature=0.4,
            max_tokens=800,
        )
        return parse_json_response(response, MatchSummary)

    async def calculate_skill_score(self, skills: list[str], listing: JobListing) -> SkillScore:
        response = await self.client.complete(
            prompts.skill_score_prompt(skills, listing.requirements),
            system_prompt=prompts.SKILL_SYSTEM_PROMPT,
            temperature=0.1,
            max_tokens=50,
        )
        return parse_json_response(response, SkillScore)
