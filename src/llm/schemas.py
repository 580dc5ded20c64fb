"""
Typed results for each reasoning stage.

Every result has a documented ``default()`` used when the model output cannot
be parsed; defaults carry ``fallback=True`` so callers and logs can tell them
apart from real answers.
"""

import math
import re
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from shared.models import CandidateProfile, WorkExperience

RECOMMENDATIONS = ("STRONG_YES", "YES", "CONDITIONAL", "NO")

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def to_snake_case(name: str) -> str:
    return _CAMEL_RE.sub("_", name.strip()).lower().replace("-", "_").replace(" ", "_")


def _string_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, (list, tuple, set)):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return [str(value)]


class StageResult(BaseModel):
    fallback: bool = Field(default=False, description="True when built from the default")

    @classmethod
    def default(cls):
        return cls(fallback=True)


class ExtractedExperience(WorkExperience):
    """Work experience as the model returns it (lists and nulls tolerated)."""

    @field_validator("achievements", "description", mode="before")
    @classmethod
    def _join_text(cls, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, (list, tuple)):
            return " ".join(str(v) for v in value if v)
        return str(value)

    @field_validator("company", "position", "start_date", "end_date", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("tech_stack", mode="before")
    @classmethod
    def _tech_list(cls, value: Any) -> list[str]:
        return _string_list(value)


class ExtractionResult(StageResult):
    """Structured CV data. Default: no name, no skills, no experience."""

    name: str = ""
    email: str = ""
    phone: str = ""
    location: str = ""
    summary: str = ""
    skills: list[str] = Field(default_factory=list)
    work_experience: list[ExtractedExperience] = Field(default_factory=list)
    education: list[dict[str, Any]] = Field(default_factory=list)
    seniority: str = ""

    @model_validator(mode="before")
    @classmethod
    def _legacy_keys(cls, data: Any) -> Any:
        # Older prompt revisions used "experiences" with "position"/"duration"
        if isinstance(data, dict) and "work_experience" not in data and "experiences" in data:
            data = {**data, "work_experience": data["experiences"]}
        return data

    @field_validator("name", "email", "phone", "location", "summary", "seniority", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("skills", mode="before")
    @classmethod
    def _skills(cls, value: Any) -> list[str]:
        return _string_list(value)

    @field_validator("education", mode="before")
    @classmethod
    def _education(cls, value: Any) -> list[dict[str, Any]]:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]

    def to_profile(self) -> CandidateProfile:
        return CandidateProfile(
            name=self.name,
            email=self.email,
            location=self.location,
            summary=self.summary,
            skills=self.skills,
            seniority=self.seniority,
            experience=[WorkExperience(**exp.model_dump()) for exp in self.work_experience],
        )


class EvaluationResult(StageResult):
    """
    Per-criterion 0-5 scores plus free text.

    Default: no scores (the scoring engine then returns its neutral midpoint),
    empty strengths/gaps and feedback "Unable to evaluate".
    """

    scores: dict[str, float] = Field(default_factory=dict)
    strengths: list[str] = Field(default_factory=list)
    gaps: list[str] = Field(default_factory=list)
    feedback: str = "Unable to evaluate"

    @field_validator("scores", mode="before")
    @classmethod
    def _scores(cls, value: Any) -> dict[str, float]:
        if not isinstance(value, dict):
            return {}
        scores: dict[str, float] = {}
        for key, raw in value.items():
            try:
                score = float(raw)
            except (TypeError, ValueError):
                continue
            if not math.isfinite(score):
                continue
            scores[to_snake_case(str(key))] = max(0.0, min(5.0, score))
        return scores

    @field_validator("strengths", "gaps", mode="before")
    @classmethod
    def _lists(cls, value: Any) -> list[str]:
        return _string_list(value)

    @field_validator("feedback", mode="before")
    @classmethod
    def _feedback(cls, value: Any) -> str:
        return "Unable to evaluate" if value is None else str(value)


class FinalSummary(StageResult):
    """Narrative summary. Default: empty summary and no label (caller derives one)."""

    overall_summary: str = ""
    recommendation: Optional[str] = None

    @field_validator("overall_summary", mode="before")
    @classmethod
    def _summary(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("recommendation", mode="before")
    @classmethod
    def _label(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        label = str(value).strip().upper().replace(" ", "_")
        return label if label in RECOMMENDATIONS else None


class RoleSuggestion(StageResult):
    """Suggested job titles. Default: no roles, no seniority (profile seniority is kept)."""

    suggested_roles: list[str] = Field(default_factory=list)
    seniority: str = ""

    @field_validator("suggested_roles", mode="before")
    @classmethod
    def _roles(cls, value: Any) -> list[str]:
        return _string_list(value)

    @field_validator("seniority", mode="before")
    @classmethod
    def _seniority(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()


class MatchSummary(StageResult):
    """Career summary for a matcher job. Default: three empty lists."""

    strengths: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    next_steps: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _unwrap(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("summary"), dict):
            return data["summary"]
        return data

    @field_validator("strengths", "improvements", "next_steps", mode="before")
    @classmethod
    def _lists(cls, value: Any) -> list[str]:
        return _string_list(value)


class SkillScore(StageResult):
    """LLM skill similarity (0-100). Default: no score, overlap ratio is used instead."""

    score: Optional[float] = None

    @field_validator("score", mode="before")
    @classmethod
    def _score(cls, value: Any) -> Optional[float]:
        try:
            score = float(value)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(score):
            return None
        return max(0.0, min(100.0, score))


PROJECT_CRITERIA = ("correctness", "code_quality", "resilience", "documentation", "creativity")


class ProjectEvaluationResult(StageResult):
    """
    Per-criterion 1-5 scores for a project report.

    Default: every criterion at 3.0, empty lists and feedback "Unable to evaluate".
    """

    scores: dict[str, float] = Field(default_factory=dict)
    strengths: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    feedback: str = "Unable to evaluate"

    @classmethod
    def default(cls):
        return cls(fallback=True, scores={name: 3.0 for name in PROJECT_CRITERIA})

    @field_validator("scores", mode="before")
    @classmethod
    def _scores(cls, value: Any) -> dict[str, float]:
        if not isinstance(value, dict):
            return {}
        scores: dict[str, float] = {}
        for key, raw in value.items():
            try:
                score = float(raw)
            except (TypeError, ValueError):
                continue
            if not math.isfinite(score):
                continue
            scores[to_snake_case(str(key))] = max(1.0, min(5.0, score))
        return scores

    @field_validator("strengths", "improvements", mode="before")
    @classmethod
    def _lists(cls, value: Any) -> list[str]:
        return _string_list(value)

    @field_validator("feedback", mode="before")
    @classmethod
    def _feedback(cls, value: Any) -> str:
        return "Unable to evaluate" if value is None else str(value)
