"""Tests for the reasoning client: limiter, retry, structured responses."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from config.config_loader import RetryConfig
from vulnswarm.models import ModelResponse
from vulnswarm.oracle import ReasoningClient
from vulnswarm.parsing import StructuredParseError
from vulnswarm.providers.base import ProviderError

from tests.conftest import MockProvider, ScriptedProvider


def _response(content: str) -> ModelResponse:
    return ModelResponse(provider="mock", model="mock-model", content=content, latency_sec=0.0)


async def test_respond_passes_arguments_through(fast_retry):
    provider = MockProvider()
    client = ReasoningClient(provider, asyncio.Semaphore(1), fast_retry)

    response = await client.respond("hello", system="be terse", temperature=0.3)

    assert response.content == "Mock response"
    provider.generate.assert_awaited_once_with("hello", system="be terse", history=None, temperature=0.3)


async def test_retries_provider_errors_then_succeeds(fast_retry):
    provider = MockProvider()
    provider.generate = AsyncMock(side_effect=[ProviderError("mock", "429"), _response("done")])
    client = ReasoningClient(provider, asyncio.Semaphore(1), fast_retry)

    response = await client.respond("hi")

    assert response.content == "done"
    assert provider.generate.await_count == 2


async def test_gives_up_after_bounded_attempts(fast_retry, caplog):
    provider = MockProvider()
    provider.generate = AsyncMock(side_effect=ProviderError("mock", "503"))
    client = ReasoningClient(provider, asyncio.Semaphore(1), fast_retry)

    with pytest.raises(ProviderError, match="503"):
        await client.respond("hi")

    assert provider.generate.await_count == 3
    assert "failed after 3 attempts" in caplog.text


async def test_other_exceptions_are_not_retried(fast_retry):
    provider = MockProvider()
    provider.generate = AsyncMock(side_effect=RuntimeError("bug"))
    client = ReasoningClient(provider, asyncio.Semaphore(1), fast_retry)

    with pytest.raises(RuntimeError):
        await client.respond("hi")
    assert provider.generate.await_count == 1


async def test_backoff_is_bounded_and_jittered():
    client = ReasoningClient(MockProvider(), asyncio.Semaphore(1), RetryConfig(attempts=5, base_delay=1.0, max_delay=3.0))
    delays = [client._backoff(n) for n in range(1, 6)]
    assert 0.5 <= delays[0] <= 1.0
    assert 1.0 <= delays[1] <= 2.0
    assert all(d <= 3.0 for d in delays)


async def test_limiter_released_during_backoff():
    """A call sleeping between retries must not hold the only limiter slot."""
    limiter = asyncio.Semaphore(1)
    flaky = MockProvider("flaky")
    flaky.generate = AsyncMock(side_effect=[ProviderError("flaky", "429"), _response("late")])
    steady = MockProvider("steady", "early")
    retry = RetryConfig(attempts=2, base_delay=0.2, max_delay=0.2)

    first = asyncio.create_task(ReasoningClient(flaky, limiter, retry).respond("a"))
    await asyncio.sleep(0.01)
    # The flaky call is now backing off; the steady call should get the slot immediately
    second = await asyncio.wait_for(ReasoningClient(steady, limiter, retry).respond("b"), timeout=0.1)

    assert second.content == "early"
    assert (await first).content == "late"


async def test_limiter_caps_in_flight_calls(fast_retry):
    provider = ScriptedProvider(delay=0.02)
    limiter = asyncio.Semaphore(2)
    clients = [ReasoningClient(provider, limiter, fast_retry) for _ in range(3)]

    await asyncio.gather(*[clients[i % 3].respond(f"q{i}") for i in range(9)])

    assert len(provider.calls) == 9
    assert provider.max_in_flight == 2


async def test_respond_structured(fast_retry):
    provider = MockProvider(response_content='```json\n{"ok": true}\n```')
    client = ReasoningClient(provider, asyncio.Semaphore(1), fast_retry)

    data, response = await client.respond_structured("q")

    assert data == {"ok": True}
    assert response.provider == "mock"


async def test_respond_structured_raises_on_prose(fast_retry):
    client = ReasoningClient(MockProvider(response_content="no json here"), asyncio.Semaphore(1), fast_retry)
    with pytest.raises(StructuredParseError):
        await client.respond_structured("q")
