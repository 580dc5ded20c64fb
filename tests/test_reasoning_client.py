"""
Reasoning client: offline mode, retries and OpenAI error mapping.
"""

import asyncio
from types import SimpleNamespace

import httpx
import openai
import pytest

from llm import ReasoningClient
from llm.client import map_openai_error, offline_embedding
from shared.config import Settings
from shared.errors import ProviderError, RateLimitError, ValidationError
from shared.retry import backoff_delay, retry_with_backoff

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def timeout_error() -> openai.APITimeoutError:
    return openai.APITimeoutError(request=REQUEST)


def rate_limit_error() -> openai.RateLimitError:
    return openai.RateLimitError(
        "Rate limit reached", response=httpx.Response(429, request=REQUEST), body=None
    )


class FakeCompletions:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        message = SimpleNamespace(content=outcome)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def online_client(outcomes, **kwargs) -> tuple[ReasoningClient, FakeCompletions]:
    settings = Settings(_env_file=None, openai_api_key="sk-test", llm_retry_delay=0.001, **kwargs)
    client = ReasoningClient(settings)
    completions = FakeCompletions(outcomes)
    client._client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return client, completions


def test_offline_client():
    client = ReasoningClient(Settings(_env_file=None, openai_api_key=""))

    assert client.offline
    assert asyncio.run(client.complete("Extract this CV")) == ""
    assert asyncio.run(client.embed("some text")) == offline_embedding("some text")


def test_complete_sends_system_and_user_messages():
    client, completions = online_client(["  {\"ok\": true}  "])

    text = asyncio.run(client.complete("Evaluate", system_prompt="You are a recruiter", temperature=0.1))

    assert text == '{"ok": true}'
    call = completions.calls[0]
    assert call["messages"] == [
        {"role": "system", "content": "You are a recruiter"},
        {"role": "user", "content": "Evaluate"},
    ]
    assert call["temperature"] == 0.1
    assert call["model"] == "gpt-4o-mini"


def test_transient_errors_are_retried():
    client, completions = online_client([timeout_error(), rate_limit_error(), "done"])
    assert asyncio.run(client.complete("Evaluate")) == "done"
    assert len(completions.calls) == 3


def test_exhausted_retries_raise_mapped_error():
    client, completions = online_client([rate_limit_error()] * 3)
    with pytest.raises(RateLimitError):
        asyncio.run(client.complete("Evaluate"))
    assert len(completions.calls) == 3


def test_map_openai_error():
    assert isinstance(map_openai_error(rate_limit_error()), RateLimitError)
    assert isinstance(map_openai_error(timeout_error()), ProviderError)
    assert isinstance(map_openai_error(openai.APIConnectionError(request=REQUEST)), ProviderError)

    bad_request = openai.BadRequestError(
        "Invalid model", response=httpx.Response(400, request=REQUEST), body=None
    )
    assert map_openai_error(bad_request) is bad_request


def test_backoff_delay():
    assert backoff_delay(1, 5.0) == 5.0
    assert backoff_delay(2, 5.0) == 10.0
    assert backoff_delay(3, 5.0) == 20.0


def test_retry_with_backoff_stops_on_non_retryable_error():
    calls = []

    async def flaky():
        calls.append(1)
        raise ValidationError("bad input")

    with pytest.raises(ValidationError):
        asyncio.run(retry_with_backoff(flaky, max_attempts=3, delay=0.001))
    assert len(calls) == 1


def test_retry_with_backoff_reports_retries():
    outcomes = [ProviderError("down"), ProviderError("down"), "ok"]
    retries = []

    async def flaky():
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    result = asyncio.run(
        retry_with_backoff(
            flaky, max_attempts=3, delay=0.001, on_retry=lambda attempt, error: retries.append(attempt)
        )
    )
    assert result == "ok"
    assert retries == [1, 2]
