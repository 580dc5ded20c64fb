"""
Evaluation pipeline: CV (and optionally a project report) against a job description.

resolve_text -> extract_profile -> retrieve_context -> evaluate_profile ->
evaluate_project -> aggregate_scores -> summarize
"""

from typing import Any, Optional

from loguru import logger

from documents import DocumentRepository, TextExtractor
from llm import ReasoningChains
from scoring import PROJECT_FEEDBACK_TABLE, ScoringEngine
from shared.config import Settings, get_settings
from shared.models import EvaluationOutcome, JobDescription, JobType
from shared.vectorstore import VectorDocument, VectorStore

from .base import Pipeline, StageFn, resolve_document_text
from .context import StageContext

JOB_DESCRIPTION = "job_description_id"
PROJECT_DOCUMENT = "project_document_id"

RECOMMENDATION_THRESHOLDS = ((80.0, "STRONG_YES"), (65.0, "YES"), (50.0, "CONDITIONAL"))

RUBRIC_QUERY = "project scoring rubric technical evaluation"

DEFAULT_PROJECT_RUBRIC = [
    "Correctness: meets all functional requirements",
    "Code quality: clean, modular, follows best practices",
    "Resilience: handles errors, implements retry logic",
    "Documentation: clear README and code comments",
    "Creativity: bonus features and innovative solutions",
    "Each criterion is scored 1-5",
]

# aspect -> rubric text seeded into the vector store
PROJECT_RUBRIC_ENTRIES = {
    "correctness": (
        "Project Correctness Scoring: 5 points for all requirements implemented perfectly, "
        "4 points for minor issues, 3 points for most requirements met, "
        "2 points for basic implementation, 1 point for incomplete"
    ),
    "code_quality": (
        "Project Code Quality Scoring: 5 points for excellent architecture and clean code, "
        "4 points for good practices, 3 points for adequate structure, "
        "2 points for functional but messy, 1 point for poor quality"
    ),
}


def recommendation_for(match_rate: float) -> str:
    """Label derived from the 0-100 match rate when the model gives none."""
    for threshold, label in RECOMMENDATION_THRESHOLDS:
        if match_rate >= threshold:
            return label
    return "NO"


def job_description_chunks(job: JobDescription) -> list[VectorDocument]:
    """Index entries for a job description, one per section."""
    metadata = {"type": "job_description", "job_description_id": job.id, "title": job.title}
    sections = {
        "overview": f"{job.title} at {job.company}. {job.description}",
        "technical": "Technical requirements: " + "; ".join(job.requirements.technical),
        "soft_skills": "Soft skills: " + "; ".join(job.requirements.soft_skills),
    }
    return [
        VectorDocument(
            id=f"job_description:{job.id}:{section}",
            text=text,
            metadata={**metadata, "section": section},
        )
        for section, text in sections.items()
        if text.strip()
    ]


def project_rubric_documents() -> list[VectorDocument]:
    return [
        VectorDocument(
            id=f"scoring_rubric:project:{aspect}",
            text=text,
            metadata={"type": "scoring_rubric", "category": "project", "aspect": aspect},
        )
        for aspect, text in PROJECT_RUBRIC_ENTRIES.items()
    ]


class EvaluationPipeline(Pipeline):
    job_type = JobType.EVALUATION

    def __init__(
        self,
        chains: ReasoningChains,
        documents: DocumentRepository,
        extractor: TextExtractor,
        scoring: ScoringEngine,
        vector_store: Optional[VectorStore] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(chains, documents, extractor)
        self.scoring = scoring
        self.vector_store = vector_store
        self.settings = settings or get_settings()

    def stages(self) -> list[tuple[str, StageFn]]:
        return [
            ("resolve_text", self.resolve_text),
            ("extract_profile", self.extract_profile),
            ("retrieve_context", self.retrieve_context),
            ("evaluate_profile", self.evaluate_profile),
            ("evaluate_project", self.evaluate_project),
            ("aggregate_scores", self.aggregate_scores),
            ("summarize", self.summarize),
        ]

    async def seed_rubrics(self) -> None:
        """Index the project scoring rubric. Entry ids are fixed, so reseeding overwrites."""
        if self.vector_store is not None:
            await self.vector_store.upsert(project_rubric_documents())

    async def retrieve_context(self, ctx: StageContext) -> dict[str, Any]:
        ctx.job_description = await self.documents.get_job_description(
            ctx.input_ref(JOB_DESCRIPTION)
        )
        job = ctx.job_description

        if self.vector_store is not None:
            await self.vector_store.upsert(job_description_chunks(job))
            query = " ".join([ctx.profile.summary, *ctx.profile.skills]).strip() or job.title
            hits = await self.vector_store.search(
                query,
                top_k=self.settings.vector_top_k,
                filter={"type": "job_description", "job_description_id": job.id},
            )
            ctx.context_chunks = [hit.text for hit in hits]

        return {
            "job_description_id": job.id,
            "job_title": job.title,
            "context_chunks": len(ctx.context_chunks),
        }

    async def evaluate_profile(self, ctx: StageContext) -> dict[str, Any]:
        ctx.evaluation = await self.chains.evaluate_profile(
            ctx.profile, ctx.job_description, ctx.context_chunks
        )
        if ctx.evaluation.fallback:
            logger.warning(f"[{ctx.job_id}] Evaluation unparseable, using neutral defaults")
        return ctx.evaluation.model_dump()

    async def evaluate_project(self, ctx: StageContext) -> dict[str, Any]:
        document_id = ctx.input_ref(PROJECT_DOCUMENT)
        if not document_id:
            return {"evaluated": False}

        report = await resolve_document_text(self.documents, self.extractor, document_id)
        rubric, source = await self._project_rubric()
        ctx.project = await self.chains.evaluate_project(report, rubric)
        if ctx.project.fallback:
            logger.warning(f"[{ctx.job_id}] Project evaluation unparseable, using neutral defaults")
        return {"evaluated": True, "rubric_source": source, **ctx.project.model_dump()}

    async def _project_rubric(self) -> tuple[list[str], str]:
        if self.vector_store is not None:
            hits = await self.vector_store.search(
                RUBRIC_QUERY,
                top_k=self.settings.vector_top_k,
                filter={"type": "scoring_rubric", "category": "project"},
            )
            if hits:
                return [hit.text for hit in hits], "vector_store"
        return list(DEFAULT_PROJECT_RUBRIC), "default"

    async def aggregate_scores(self, ctx: StageContext) -> dict[str, Any]:
        scores = ctx.evaluation.scores
        ctx.composite_score = self.scoring.composite_score(
            scores, ctx.job_description.scoring_weights
        )
        ctx.match_rate = self.scoring.to_percentage(ctx.composite_score)
        ctx.feedback = self.scoring.detailed_feedback(scores)
        logger.info(
            f"[{ctx.job_id}] Composite {ctx.composite_score:.2f}/5 -> match rate {ctx.match_rate:.1f}%"
        )
        aggregated = {"composite_score": ctx.composite_score, "cv_match_rate": ctx.match_rate}

        if ctx.project is not None:
            ctx.project_score = self.scoring.to_percentage(
                self.scoring.project_score(ctx.project.scores)
            )
            ctx.project_feedback = self.scoring.detailed_feedback(
                ctx.project.scores, PROJECT_FEEDBACK_TABLE
            )
            aggregated["project_score"] = ctx.project_score
        return aggregated

    async def summarize(self, ctx: StageContext) -> dict[str, Any]:
        evaluation = ctx.evaluation
        summary_input = {
            "candidate": ctx.profile.name,
            "cv_match_rate": round(ctx.match_rate, 2),
            "strengths": evaluation.strengths,
            "gaps": evaluation.gaps,
            "feedback": evaluation.feedback,
            "scores": evaluation.scores,
        }
        if ctx.project is not None:
            summary_input["project"] = {
                "project_score": round(ctx.project_score, 2),
                "feedback": ctx.project.feedback,
                "strengths": ctx.project.strengths,
                "improvements": ctx.project.improvements,
            }
        ctx.summary = await self.chains.generate_final_summary(summary_input)
        if ctx.summary.recommendation is None:
            label = recommendation_for(ctx.match_rate)
            logger.warning(f"[{ctx.job_id}] No recommendation in summary, derived {label}")
            ctx.summary = ctx.summary.model_copy(update={"recommendation": label})
        if not ctx.summary.overall_summary:
            ctx.summary = ctx.summary.model_copy(
                update={"overall_summary": self._default_summary(ctx)}
            )
        return ctx.summary.model_dump()

    @staticmethod
    def _default_summary(ctx: StageContext) -> str:
        parts = [f"{ctx.profile.name} has a CV match rate of {ctx.match_rate:.0f}%."]
        if ctx.feedback.strengths:
            parts.append(f"Strengths: {'; '.join(ctx.feedback.strengths)}.")
        if ctx.feedback.improvements:
            parts.append(f"Areas to improve: {'; '.join(ctx.feedback.improvements)}.")
        if ctx.project_score is not None:
            parts.append(f"The project report scored {ctx.project_score:.0f}/100.")
        return " ".join(parts)

    def build_result(self, ctx: StageContext) -> dict[str, Any]:
        evaluation = ctx.evaluation
        outcome = EvaluationOutcome(
            candidate_name=ctx.profile.name,
            cv_match_rate=round(ctx.match_rate, 2),
            composite_score=round(ctx.composite_score, 4),
            cv_feedback=evaluation.feedback,
            strengths=evaluation.strengths,
            gaps=evaluation.gaps,
            feedback=ctx.feedback,
            detailed_scores={
                name: self.scoring.to_percentage(score) for name, score in evaluation.scores.items()
            },
            scoring_weights_used=ctx.job_description.scoring_weights.as_dict(),
            overall_summary=ctx.summary.overall_summary,
            recommendation=ctx.summary.recommendation,
        )
        if ctx.project is not None:
            outcome = outcome.model_copy(
                update={
                    "project_score": round(ctx.project_score, 2),
                    "project_feedback": ctx.project.feedback,
                    "project_detailed_scores": {
                        name: self.scoring.to_percentage(score)
                        for name, score in ctx.project.scores.items()
                    },
                    "project_strengths": ctx.project.strengths or ctx.project_feedback.strengths,
                    "project_improvements": (
                        ctx.project.improvements or ctx.project_feedback.improvements
                    ),
                }
            )
        return outcome.model_dump(mode="json")
