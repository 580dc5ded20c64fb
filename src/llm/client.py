"""
Reasoning adapter over the OpenAI API.
"""

from typing import Awaitable, Callable, Optional, TypeVar

import numpy as np
import openai
from loguru import logger
from openai import AsyncOpenAI

from shared.config import Settings, get_settings
from shared.errors import ProviderError, RateLimitError
from shared.retry import retry_with_backoff
from shared.vectorstore import DEFAULT_DIMENSIONS

T = TypeVar("T")


def offline_embedding(text: str, dimensions: int = DEFAULT_DIMENSIONS) -> list[float]:
    """Deterministic stand-in embedding used when no API key is configured."""
    return (np.sin((len(text) + np.arange(dimensions)) * 0.1) * 0.5).tolist()


def map_openai_error(exc: Exception) -> Exception:
    """Translate transient OpenAI SDK errors into pipeline errors."""
    if isinstance(exc, openai.RateLimitError):
        return RateLimitError()
    if isinstance(exc, openai.APITimeoutError):
        return ProviderError("OpenAI request timed out")
    if isinstance(exc, openai.APIConnectionError):
        return ProviderError("Could not reach OpenAI")
    if isinstance(exc, openai.InternalServerError):
        return ProviderError(f"OpenAI server error ({exc.status_code})")
    return exc


class ReasoningClient:
    """
    Chat completions and embeddings with retry and error mapping.

    Without an API key the client runs offline: completions come back empty
    (so every stage resolves to its documented default) and embeddings are
    deterministic.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._client: Optional[AsyncOpenAI] = None
        if not self.settings.llm_enabled:
            logger.warning("OpenAI API key not set - reasoning client running offline")

    @property
    def offline(self) -> bool:
        return not self.settings.llm_enabled

    @property
    def client(self) -> AsyncOpenAI:
        """Get or create OpenAI client."""
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.settings.openai_api_key.get_secret_value(),
                timeout=self.settings.llm_timeout_seconds,
                max_retries=0,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def _call(self, name: str, fn: Callable[[], Awaitable[T]]) -> T:
        async def attempt() -> T:
            try:
                return await fn()
            except openai.OpenAIError as e:
                mapped = map_openai_error(e)
                if mapped is e:
                    raise
                raise mapped from e

        def on_retry(attempt_no: int, error: BaseException) -> None:
            logger.warning(f"OpenAI {name} retry attempt {attempt_no}: {error}")

        return await retry_with_backoff(
            attempt,
            max_attempts=self.settings.llm_max_retries,
            delay=self.settings.llm_retry_delay,
            on_retry=on_retry,
        )

    async def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: int = 2000,
    ) -> str:
        """Return the completion text ("" when offline or the model returns nothing)."""
        if self.offline:
            logger.debug("Offline completion requested, returning empty response")
            return ""

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        async def create():
            return await self.client.chat.completions.create(
                model=self.settings.openai_model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )

        response = await self._call("completion", create)
        content = response.choices[0].message.content if response.choices else None
        return content.strip() if content else ""

    async def embed(self, text: str) -> list[float]:
        if self.offline:
            return offline_embedding(text)

        async def create():
            return await self.client.embeddings.create(
                model=self.settings.openai_embedding_model,
                input=text,
            )

        response = await self._call("embedding", create)
        return list(response.data[0].embedding)
