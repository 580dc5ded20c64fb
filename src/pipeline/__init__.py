"""
Analysis pipelines - evaluation (CV vs job description) and matcher
(CV vs job listings), driven by the orchestrator's job state machine.
"""

from .base import Pipeline, resolve_document_text
from .context import StageContext
from .evaluation import EvaluationPipeline, recommendation_for
from .matching import MatcherPipeline
from .orchestrator import PipelineOrchestrator

__all__ = [
    "EvaluationPipeline",
    "MatcherPipeline",
    "Pipeline",
    "PipelineOrchestrator",
    "StageContext",
    "recommendation_for",
    "resolve_document_text",
]
