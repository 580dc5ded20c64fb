"""
Error taxonomy shared by the pipeline, adapters and worker pool.

Every error carries a ``retryable`` flag (read by the work queue) and a
``public_message`` that is safe to persist on a failed job record.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for all pipeline errors."""

    retryable: bool = False
    default_message: str = "Processing failed"
    status_code: int = 500

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)

    @property
    def public_message(self) -> str:
        return str(self)


class ValidationError(PipelineError):
    """Bad input. Never retried."""

    default_message = "Invalid request"
    status_code = 400


class InvalidTransitionError(ValidationError):
    """A job status change that the state machine does not allow."""

    default_message = "Invalid job status transition"
    status_code = 409


class JobClaimedError(InvalidTransitionError):
    """The job is already being processed by another worker."""

    default_message = "Job is held by another worker"


class NotFoundError(PipelineError):
    """Missing document, job description or job."""

    default_message = "Resource not found"
    status_code = 404


class ProviderError(PipelineError):
    """Transient failure of an external service (timeout, 5xx, connection)."""

    retryable = True
    default_message = "External service unavailable"
    status_code = 502


class RateLimitError(ProviderError):
    """External service rate limit. Retried; surfaces as 429 once exhausted."""

    default_message = "Rate limit exceeded, please try again later"
    status_code = 429


class ParseError(PipelineError):
    """Document could not be turned into text."""

    default_message = "Failed to parse document"
    status_code = 422


class UnsupportedTypeError(ParseError):
    default_message = "Unsupported file type"
    status_code = 415


class EmptyContentError(ParseError):
    default_message = "Document has no extractable text"


class UnknownError(PipelineError):
    """Catch-all wrapper for unexpected exceptions."""

    default_message = "Internal processing error"

    def __init__(self, message: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause

    @property
    def public_message(self) -> str:
        # Never leak the wrapped exception text to callers
        return self.default_message


def as_pipeline_error(exc: BaseException) -> PipelineError:
    """Return ``exc`` unchanged if it is a PipelineError, else wrap it."""
    if isinstance(exc, PipelineError):
        return exc
    return UnknownError(f"{type(exc).__name__}: {exc}", cause=exc)


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, PipelineError) and exc.retryable
