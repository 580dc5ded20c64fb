"""
Deterministic scoring of job listings against a candidate profile.
"""

import math
from typing import Optional, Sequence

from loguru import logger

from shared.models import CandidateProfile, JobListing, MatchResult

from .candidate import seniority_ordinal

GRADE_THRESHOLDS = ((85.0, "A"), (70.0, "B"), (55.0, "C"), (40.0, "D"))
MIN_WORD_LENGTH = 4
WORD_STRIP = ".,;:!?()[]{}\"'"


def finite_or_zero(value: Optional[float]) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    return value if math.isfinite(value) else 0.0


def clamp_percent(value: Optional[float]) -> float:
    return min(max(finite_or_zero(value), 0.0), 100.0)


def grade_for(score: float) -> str:
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return "F"


def explain(skill: float, experience: float, responsibility: float) -> str:
    skill_level = "strong" if skill >= 70 else "moderate" if skill >= 50 else "weak"
    experience_level = (
        "well-aligned" if experience >= 85 else "aligned" if experience >= 70 else "misaligned"
    )
    responsibility_level = (
        "highly relevant"
        if responsibility >= 70
        else "relevant" if responsibility >= 50 else "somewhat relevant"
    )
    return (
        f"Skills match is {skill_level} ({skill:.1f}%), "
        f"experience level is {experience_level} ({experience:.1f}%), "
        f"and past responsibilities are {responsibility_level} ({responsibility:.1f}%)."
    )


class MatchingEngine:
    """Scores, grades and ranks listings for one candidate."""

    def __init__(self, top_n: int = 5):
        self.top_n = top_n

    @staticmethod
    def skill_match(skills: Sequence[str], requirements: Sequence[str]) -> float:
        """Percentage of requirements covered by a candidate skill (substring either way)."""
        candidate = [s.strip().lower() for s in skills if s and s.strip()]
        required = [r.strip().lower() for r in requirements if r and r.strip()]
        if not candidate or not required:
            return 0.0

        matched = [req for req in required if any(s in req or req in s for s in candidate)]
        return len(matched) / len(required) * 100

    @staticmethod
    def experience_match(candidate_seniority: str, listing_seniority: str) -> float:
        candidate_level = seniority_ordinal(candidate_seniority)
        listing_level = seniority_ordinal(listing_seniority)
        if candidate_level == 0 or listing_level == 0:
            return 0.0

        if candidate_level == listing_level:
            return 100.0
        if candidate_level > listing_level:
            return 90.0 - 5 * (candidate_level - listing_level)
        return 70.0 - 15 * (listing_level - candidate_level)

    @staticmethod
    def responsibility_match(experience_text: str, responsibilities: Sequence[str]) -> float:
        """Percentage of responsibilities with a content word found in the experience text."""
        text = (experience_text or "").lower()
        items = [r for r in responsibilities if r and r.strip()]
        if not text.strip() or not items:
            return 0.0

        def covered(responsibility: str) -> bool:
            words = (w.strip(WORD_STRIP) for w in responsibility.lower().split())
            return any(len(w) >= MIN_WORD_LENGTH and w in text for w in words)

        matched = [r for r in items if covered(r)]
        return len(matched) / len(items) * 100

    def score_listing(
        self,
        profile: CandidateProfile,
        listing: JobListing,
        external_skill_score: Optional[float] = None,
    ) -> MatchResult:
        if external_skill_score is not None:
            skill = clamp_percent(external_skill_score)
        else:
            skill = clamp_percent(self.skill_match(profile.skills, listing.requirements))
        experience = clamp_percent(self.experience_match(profile.seniority, listing.seniority))
        responsibility = clamp_percent(
            self.responsibility_match(profile.experience_text, listing.responsibilities)
        )
        score = clamp_percent((skill + experience + responsibility) / 3)

        return MatchResult(
            **listing.model_dump(),
            skill_match=skill,
            experience_match=experience,
            responsibility_match=responsibility,
            score=score,
            grade=grade_for(score),
            explanation=explain(skill, experience, responsibility),
        )

    def rank(
        self,
        profile: CandidateProfile,
        listings: Sequence[JobListing],
        skill_scores: Optional[Sequence[Optional[float]]] = None,
    ) -> list[MatchResult]:
        """
        Score every listing and keep the best ``top_n``.

        ``skill_scores`` optionally supplies an external skill score per
        listing (same order); ``None`` entries use the overlap ratio. Equal
        scores keep provider order.
        """
        scored = []
        for i, listing in enumerate(listings):
            external = skill_scores[i] if skill_scores and i < len(skill_scores) else None
            scored.append(self.score_listing(profile, listing, external))

        ranked = sorted(scored, key=lambda m: m.score, reverse=True)[: self.top_n]
        if ranked:
            logger.info(
                f"Ranked {len(scored)} listings, best: {ranked[0].title} at "
                f"{ranked[0].company} ({ranked[0].score:.1f}, {ranked[0].grade})"
            )
        return ranked
