"""
Weighted composite scoring over 0-5 criterion scores.

Criterion scores and the composite live on the 0-5 scale. ``to_percentage``
is the one place a composite is converted to the 0-100 scale shown to clients.
"""

import math
from typing import Mapping, Optional, Union

from loguru import logger

from shared.models import FeedbackSummary, ScoringWeights

SCALE_MAX = 5.0
NEUTRAL_SCORE = SCALE_MAX / 2

STRONG_THRESHOLD = 4.0
WEAK_THRESHOLD = 2.0

# criterion -> bucket -> sentence
FEEDBACK_TABLE: dict[str, dict[str, str]] = {
    "technical_skills_match": {
        "strong": "Strong technical skills alignment with job requirements",
        "adequate": "Deepen expertise in the core technologies listed in the job requirements",
        "weak": "Technical skills need strengthening in required areas",
        "weak_recommendation": "Build hands-on projects with the required technology stack",
    },
    "experience_level": {
        "strong": "Excellent experience level for the position",
        "adequate": "Take ownership of larger, more complex projects to grow seniority",
        "weak": "Would benefit from more relevant experience",
        "weak_recommendation": "Seek roles or projects that add directly relevant experience",
    },
    "relevant_achievements": {
        "strong": "Clear, measurable impact in past work",
        "adequate": "Quantify achievements with concrete metrics (scale, performance, adoption)",
        "weak": "Past achievements are not clearly demonstrated",
        "weak_recommendation": "Describe outcomes of past work with measurable results",
    },
    "cultural_fit": {
        "strong": "Well-demonstrated communication, teamwork and learning mindset",
        "adequate": "Highlight collaboration and mentoring examples more explicitly",
        "weak": "Communication and teamwork are not well demonstrated",
        "weak_recommendation": "Add examples of collaboration, leadership or knowledge sharing",
    },
    "ai_experience": {
        "strong": "Hands-on exposure to AI/LLM tooling",
        "adequate": "Extend AI/LLM experience beyond experimentation into production work",
        "weak": "Limited exposure to AI/LLM technologies",
        "weak_recommendation": "Build a small project using LLM APIs or ML tooling",
    },
}

# Project report criteria, scored 1-5
PROJECT_WEIGHTS: dict[str, float] = {
    "correctness": 0.30,
    "code_quality": 0.25,
    "resilience": 0.20,
    "documentation": 0.15,
    "creativity": 0.10,
}

PROJECT_FEEDBACK_TABLE: dict[str, dict[str, str]] = {
    "correctness": {
        "strong": "Functional requirements are fully met",
        "weak": "Several functional requirements are missing or broken",
        "weak_recommendation": "Cover every functional requirement before adding extras",
    },
    "code_quality": {
        "strong": "High code quality and good architectural decisions",
        "weak": "Code quality needs improvement",
        "weak_recommendation": "Split the code into smaller modules with clear responsibilities",
    },
    "resilience": {
        "strong": "Excellent error handling and system resilience",
        "weak": "Error handling and retry mechanisms need work",
        "weak_recommendation": "Retry transient failures and handle error paths explicitly",
    },
    "documentation": {
        "strong": "Clear documentation",
        "weak": "Documentation is missing or unclear",
        "weak_recommendation": "Add a README with setup steps and design notes",
    },
}

Weights = Union[ScoringWeights, Mapping[str, float]]


def _is_finite(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def bucket_for(score: float) -> str:
    if score >= STRONG_THRESHOLD:
        return "strong"
    if score <= WEAK_THRESHOLD:
        return "weak"
    return "adequate"


class ScoringEngine:
    """Deterministic composite scores and canned feedback."""

    def __init__(self, neutral_score: float = NEUTRAL_SCORE):
        self.neutral_score = neutral_score

    def composite_score(self, scores: Mapping[str, float], weights: Weights) -> float:
        """
        Weighted mean over the criteria present in both ``scores`` and
        ``weights``. Missing criteria are left out of numerator and
        denominator. Returns the neutral midpoint when nothing overlaps.
        """
        weight_map = weights.as_dict() if isinstance(weights, ScoringWeights) else dict(weights)

        total_score = 0.0
        total_weight = 0.0
        for criterion, weight in weight_map.items():
            score = scores.get(criterion)
            if not _is_finite(score) or not _is_finite(weight) or weight <= 0:
                continue
            total_score += min(max(score, 0.0), SCALE_MAX) * weight
            total_weight += weight

        if total_weight == 0:
            logger.warning("No scored criteria overlap the weights, using neutral score")
            return self.neutral_score
        return total_score / total_weight

    @staticmethod
    def to_percentage(composite: float) -> float:
        """0-5 composite -> 0-100."""
        if not _is_finite(composite):
            return 0.0
        return min(max(composite * (100.0 / SCALE_MAX), 0.0), 100.0)

    def project_score(self, scores: Mapping[str, float]) -> float:
        """Weighted 0-5 composite of a project report's criterion scores."""
        return self.composite_score(scores, PROJECT_WEIGHTS)

    def detailed_feedback(
        self,
        scores: Mapping[str, float],
        table: Optional[Mapping[str, Mapping[str, str]]] = None,
    ) -> FeedbackSummary:
        """
        Bucket each known criterion (>=4 strong, <=2 weak, otherwise adequate)
        and collect the matching sentences.
        """
        table = table or FEEDBACK_TABLE
        feedback = FeedbackSummary()

        def add(items: list[str], sentence: Optional[str]) -> None:
            if sentence and sentence not in items:
                items.append(sentence)

        for criterion, sentences in table.items():
            score = scores.get(criterion)
            if not _is_finite(score):
                continue
            bucket = bucket_for(score)
            if bucket == "strong":
                add(feedback.strengths, sentences.get("strong"))
            elif bucket == "weak":
                add(feedback.improvements, sentences.get("weak"))
                add(feedback.recommendations, sentences.get("weak_recommendation"))
            else:
                add(feedback.recommendations, sentences.get("adequate"))

        return feedback
