"""
In-memory state passed through the stages of one job attempt.
"""

from dataclasses import dataclass, field
from typing import Optional

from llm.schemas import (
    EvaluationResult,
    ExtractionResult,
    FinalSummary,
    MatchSummary,
    ProjectEvaluationResult,
    RoleSuggestion,
)
from shared.models import (
    CandidateProfile,
    FeedbackSummary,
    Job,
    JobDescription,
    JobListing,
    MatchResult,
)


@dataclass
class StageContext:
    """
    Built fresh for every attempt. A retried job starts from an empty context,
    so nothing here survives a failure.
    """

    job: Job
    stage: str = "init"

    # Both pipelines
    raw_text: Optional[str] = None
    extraction: Optional[ExtractionResult] = None
    profile: Optional[CandidateProfile] = None

    # Evaluation
    job_description: Optional[JobDescription] = None
    context_chunks: list[str] = field(default_factory=list)
    evaluation: Optional[EvaluationResult] = None
    composite_score: Optional[float] = None
    match_rate: Optional[float] = None
    feedback: Optional[FeedbackSummary] = None
    summary: Optional[FinalSummary] = None
    project: Optional[ProjectEvaluationResult] = None
    project_score: Optional[float] = None
    project_feedback: Optional[FeedbackSummary] = None

    # Matcher
    roles: Optional[RoleSuggestion] = None
    listings: list[JobListing] = field(default_factory=list)
    listing_source: str = ""
    matches: list[MatchResult] = field(default_factory=list)
    career_summary: Optional[MatchSummary] = None

    @property
    def job_id(self) -> str:
        return self.job.id

    def input_ref(self, name: str) -> Optional[str]:
        return self.job.input_refs.get(name)
