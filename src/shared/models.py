"""
Pydantic models for jobs, candidate profiles, listings and results.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobType(str, Enum):
    """Kind of analysis a job runs."""

    EVALUATION = "evaluation"  # CV vs job description
    MATCHER = "matcher"  # CV vs job listings


class JobStatus(str, Enum):
    """Job processing status."""

    QUEUED = "queued"  # Created, waiting for a worker
    PROCESSING = "processing"  # Claimed by a worker
    COMPLETED = "completed"  # Result available
    FAILED = "failed"  # Error available to operators


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

# processing -> processing is a retry by the holding worker, or a take-over of a stale claim
ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset(
        {JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED}
    ),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[JobStatus(current)]


class Job(BaseModel):
    """One unit of asynchronous work tracked through the state machine."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    type: JobType
    status: JobStatus = Field(default=JobStatus.QUEUED)
    input_refs: dict[str, Optional[str]] = Field(default_factory=dict)

    result: Optional[dict[str, Any]] = Field(default=None, description="Set iff completed")
    error: Optional[str] = Field(default=None, description="Set iff failed")
    error_detail: Optional[str] = Field(
        default=None, description="Exception type, development environment only"
    )

    # Incremental state for pollers
    stage: Optional[str] = None
    progress: int = Field(default=0, ge=0, le=100)
    partial: dict[str, Any] = Field(default_factory=dict)
    attempts: int = 0
    worker_id: Optional[str] = Field(default=None, description="Worker holding the current claim")

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_poll_view(self) -> dict[str, Any]:
        """Client-visible view. Errors are only exposed via the operator channel."""
        view: dict[str, Any] = {"id": self.id, "status": self.status.value}
        if self.status == JobStatus.COMPLETED:
            view["result"] = self.result
        return view


class ScoringWeights(BaseModel):
    """Per-criterion weights (0-1, not required to sum to 1)."""

    technical_skills_match: float = Field(default=0.30, ge=0, le=1)
    experience_level: float = Field(default=0.25, ge=0, le=1)
    relevant_achievements: float = Field(default=0.20, ge=0, le=1)
    cultural_fit: float = Field(default=0.15, ge=0, le=1)
    ai_experience: float = Field(default=0.10, ge=0, le=1)

    def as_dict(self) -> dict[str, float]:
        return self.model_dump()


class JobRequirements(BaseModel):
    technical: list[str] = Field(default_factory=list)
    soft_skills: list[str] = Field(default_factory=list)


class JobDescription(BaseModel):
    """Job description a CV is evaluated against."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    slug: str
    title: str
    company: str
    description: str = ""
    requirements: JobRequirements = Field(default_factory=JobRequirements)
    scoring_weights: ScoringWeights = Field(default_factory=ScoringWeights)
    is_default: bool = False


class DocumentRef(BaseModel):
    """Resolved uploaded document."""

    id: str
    path: str
    mime_type: str
    cached_text: Optional[str] = Field(default=None, description="Previously extracted text")


class WorkExperience(BaseModel):
    company: str = ""
    position: str = ""
    start_date: str = ""
    end_date: str = ""
    description: str = ""
    achievements: str = ""
    tech_stack: list[str] = Field(default_factory=list)

    def to_text(self) -> str:
        return " ".join(
            part for part in (self.position, self.description, self.achievements) if part
        )


class CandidateProfile(BaseModel):
    """Structured representation extracted from a CV."""

    name: str = ""
    email: str = ""
    location: str = ""
    summary: str = ""
    skills: list[str] = Field(default_factory=list)
    seniority: str = ""
    experience: list[WorkExperience] = Field(default_factory=list)

    @property
    def experience_text(self) -> str:
        """All experience entries concatenated, lower-cased."""
        return " ".join(exp.to_text() for exp in self.experience).lower()


class JobListing(BaseModel):
    """Job posting a candidate profile is matched against."""

    title: str
    company: str
    location: str = ""
    salary_range: str = ""
    job_type: str = ""
    seniority: str = ""
    requirements: list[str] = Field(default_factory=list)
    responsibilities: list[str] = Field(default_factory=list)
    posted_at: str = ""
    link: str = ""
    job_description: str = ""


class MatchResult(JobListing):
    """A listing scored against a candidate profile."""

    skill_match: float = Field(default=0.0, ge=0, le=100)
    experience_match: float = Field(default=0.0, ge=0, le=100)
    responsibility_match: float = Field(default=0.0, ge=0, le=100)
    score: float = Field(default=0.0, ge=0, le=100)
    grade: str = "F"
    explanation: str = "No explanation available"


class FeedbackSummary(BaseModel):
    """Canned feedback produced by the scoring engine."""

    strengths: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class EvaluationOutcome(BaseModel):
    """Final result of an evaluation job. Scores shown to clients are 0-100."""

    candidate_name: str = ""
    cv_match_rate: float = Field(..., ge=0, le=100)
    composite_score: float = Field(..., ge=0, le=5, description="Weighted 0-5 mean")
    cv_feedback: str = ""
    strengths: list[str] = Field(default_factory=list)
    gaps: list[str] = Field(default_factory=list)
    feedback: FeedbackSummary = Field(default_factory=FeedbackSummary)
    detailed_scores: dict[str, float] = Field(default_factory=dict)
    scoring_weights_used: dict[str, float] = Field(default_factory=dict)
    overall_summary: str = ""
    recommendation: str = "CONDITIONAL"

    # Only set when a project report was submitted with the CV
    project_score: Optional[float] = Field(default=None, ge=0, le=100)
    project_feedback: Optional[str] = None
    project_detailed_scores: dict[str, float] = Field(default_factory=dict)
    project_strengths: list[str] = Field(default_factory=list)
    project_improvements: list[str] = Field(default_factory=list)


class UserProfile(BaseModel):
    name: str
    seniority: str = ""
    primary_skills: list[str] = Field(default_factory=list)


class CareerSummary(BaseModel):
    strengths: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    next_steps: list[str] = Field(default_factory=list)


class MatcherOutcome(BaseModel):
    """Final result of a matcher job."""

    user_profile: UserProfile
    suggested_roles: list[str] = Field(default_factory=list)
    jobs: list[MatchResult] = Field(default_factory=list)
    summary: CareerSummary = Field(default_factory=CareerSummary)
