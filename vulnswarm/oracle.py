"""Reasoning client: run-wide concurrency limiter, bounded retry, structured output."""

import asyncio
import logging
import random
from typing import Any

from config.config_loader import RetryConfig
from vulnswarm.models import ModelResponse, Turn
from vulnswarm.parsing import parse_structured
from vulnswarm.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)


class ReasoningClient:
    """Wraps an AIProvider with a shared semaphore and retry on ProviderError.

    Every client built for one pipeline run shares the same limiter, so the
    limiter bounds in-flight provider calls across all stages. The slot is held
    only while a request is in flight and released during backoff sleeps.
    """

    def __init__(
        self,
        provider: AIProvider,
        limiter: asyncio.Semaphore,
        retry: RetryConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.provider = provider
        self._limiter = limiter
        self._retry = retry or RetryConfig()
        self._rng = rng or random.Random()

    def _backoff(self, attempt: int) -> float:
        delay = min(self._retry.max_delay, self._retry.base_delay * (2 ** (attempt - 1)))
        return delay * self._rng.uniform(0.5, 1.0)

    async def respond(
        self,
        prompt: str,
        *,
        system: str = "",
        history: list[Turn] | None = None,
        temperature: float | None = None,
    ) -> ModelResponse:
        """Call the provider, retrying ProviderError with exponential backoff and jitter.

        Raises:
            ProviderError: When every attempt failed.
        """
        attempts = max(1, self._retry.attempts)
        for attempt in range(1, attempts + 1):
            try:
                async with self._limiter:
                    return await self.provider.generate(
                        prompt, system=system, history=history, temperature=temperature
                    )
            except ProviderError as exc:
                if attempt == attempts:
                    logger.warning(
                        "%s failed after %d attempts: %s", self.provider.name(), attempts, exc
                    )
                    raise
                delay = self._backoff(attempt)
                logger.info(
                    "%s attempt %d/%d failed, retrying in %.1fs: %s",
                    self.provider.name(),
                    attempt,
                    attempts,
                    delay,
                    exc,
                )
                await asyncio.sleep(delay)
        raise AssertionError("unreachable")

    async def respond_structured(
        self,
        prompt: str,
        *,
        system: str = "",
        history: list[Turn] | None = None,
        temperature: float | None = None,
    ) -> tuple[Any, ModelResponse]:
        """Like respond(), then parse JSON out of the content.

        Raises:
            ProviderError: When every attempt failed.
            StructuredParseError: When the content holds no parseable JSON.
        """
        response = await self.respond(prompt, system=system, history=history, temperature=temperature)
        return parse_structured(response.content), response
