"""Scoring engine: weighted composite scores and feedback."""

from .engine import (
    FEEDBACK_TABLE,
    NEUTRAL_SCORE,
    PROJECT_FEEDBACK_TABLE,
    PROJECT_WEIGHTS,
    ScoringEngine,
)

__all__ = [
    "FEEDBACK_TABLE",
    "NEUTRAL_SCORE",
    "PROJECT_FEEDBACK_TABLE",
    "PROJECT_WEIGHTS",
    "ScoringEngine",
]
