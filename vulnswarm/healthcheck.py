"""Provider health checks run before a swarm starts."""

import asyncio
import logging
import time
from dataclasses import dataclass

from vulnswarm.providers.base import AIProvider

logger = logging.getLogger(__name__)

_PING_PROMPT = "Reply with the word OK only."
_TIMEOUT_SEC = 15.0


@dataclass
class ProviderHealth:
    name: str
    ok: bool
    latency_sec: float = 0.0
    error: str = ""


async def _ping(name: str, provider: AIProvider) -> ProviderHealth:
    start = time.monotonic()
    try:
        response = await asyncio.wait_for(provider.generate(_PING_PROMPT, temperature=0.0), timeout=_TIMEOUT_SEC)
    except asyncio.TimeoutError:
        return ProviderHealth(name, False, time.monotonic() - start, f"no answer within {_TIMEOUT_SEC:.0f}s")
    except Exception as exc:
        logger.debug("Health check failed for %s: %s", name, exc)
        return ProviderHealth(name, False, time.monotonic() - start, str(exc))

    if not response.content.strip():
        return ProviderHealth(name, False, response.latency_sec, "empty reply")
    return ProviderHealth(name, True, response.latency_sec)


async def run_health_checks(providers: dict[str, AIProvider]) -> dict[str, ProviderHealth]:
    """Ping every provider concurrently, keyed by provider name."""
    checks = await asyncio.gather(*(_ping(name, provider) for name, provider in providers.items()))
    return {health.name: health for health in checks}


def healthy_providers(
    providers: dict[str, AIProvider],
    results: dict[str, ProviderHealth],
) -> dict[str, AIProvider]:
    return {name: p for name, p in providers.items() if name in results and results[name].ok}
