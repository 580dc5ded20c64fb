"""
Async retry with exponential backoff for adapter calls.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from loguru import logger

from .errors import is_retryable

T = TypeVar("T")


def backoff_delay(attempt: int, delay: float, multiplier: float = 2.0) -> float:
    """Delay before the retry that follows ``attempt`` (1-based)."""
    return delay * (multiplier ** (attempt - 1))


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    delay: float = 1.0,
    multiplier: float = 2.0,
    retryable: Callable[[BaseException], bool] = is_retryable,
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
) -> T:
    """
    Call ``fn`` until it succeeds or attempts run out.

    Only errors for which ``retryable`` returns True are retried; anything
    else, and the last retryable error, is re-raised.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    for attempt in range(1, max_attempts + 1):
        try:
            return await fn()
        except Exception as e:
            if attempt == max_attempts or not retryable(e):
                raise

            wait = backoff_delay(attempt, delay, multiplier)
            if on_retry:
                on_retry(attempt, e)
            logger.debug(f"Retry attempt {attempt}/{max_attempts} - waiting {wait:.2f}s")
            await asyncio.sleep(wait)

    raise AssertionError("retry loop exited without result")
