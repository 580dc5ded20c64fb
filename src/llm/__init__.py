"""LLM reasoning adapter: client, prompts, tolerant parsing and typed stage results."""

from .chains import ReasoningChains
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

__all__ = [
    "ReasoningChains",
    "ReasoningClient",
    "parse_json_response",
    "EvaluationResult",
    "ExtractionResult",
    "FinalSummary",
    "MatchSummary",
    "ProjectEvaluationResult",
    "RoleSuggestion",
    "SkillScore",
]
