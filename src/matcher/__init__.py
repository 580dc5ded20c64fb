"""
Matching engine - deterministic scoring of job listings against a CV.

Each listing gets skill, experience and responsibility sub-scores (0-100),
their mean as the overall score, a letter grade and a short explanation.
"""

from .candidate import fallback_name, is_placeholder_name, resolve_candidate_name, seniority_ordinal
from .engine import MatchingEngine, grade_for

__all__ = [
    "MatchingEngine",
    "grade_for",
    "fallback_name",
    "is_placeholder_name",
    "resolve_candidate_name",
    "seniority_ordinal",
]
