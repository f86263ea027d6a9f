"""Named reasoning worker: one directive, one conversation, serialized calls."""

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from config.config_loader import PromptsConfig
from vulnswarm.findings import format_finding
from vulnswarm.models import ExploitCandidate, ExploitTestResult, Finding, ModelResponse, Turn, Usage
from vulnswarm.oracle import ReasoningClient
from vulnswarm.parsing import parse_structured

logger = logging.getLogger(__name__)


class Worker:
    """A generic worker parameterized by name, role and directive.

    Specialists, red and blue team members, devil's advocates, the adjudicator,
    smiths and judges are all instances of this class. chat() carries the
    worker's conversation forward; analyze() is a one-shot call that leaves the
    conversation untouched. Only presentations go through chat(); every other
    debate turn sees its own finding and nothing else. Calls on one worker
    never overlap.
    """

    def __init__(
        self,
        name: str,
        role: str,
        directive: str,
        client: ReasoningClient,
        prompts: PromptsConfig,
        temperature: float | None = None,
    ) -> None:
        self.name = name
        self.role = role
        self.directive = directive
        self.temperature = temperature
        self._client = client
        self._prompts = prompts
        self._lock = asyncio.Lock()
        self.history: list[Turn] = []
        self.usage = Usage()
        self.calls = 0

    def __repr__(self) -> str:
        return f"Worker(name={self.name!r}, role={self.role!r})"

    async def _call(self, prompt: str, *, remember: bool) -> ModelResponse:
        async with self._lock:
            response = await self._client.respond(
                prompt,
                system=self.directive,
                history=list(self.history) if remember else None,
                temperature=self.temperature,
            )
            self.calls += 1
            self.usage = self.usage + response.usage
            if remember:
                self.history.append(Turn(role="user", content=prompt))
                self.history.append(Turn(role="assistant", content=response.content))
        logger.debug("%s answered in %.2fs", self.name, response.latency_sec)
        return response

    async def analyze(self, prompt: str) -> str:
        return (await self._call(prompt, remember=False)).content

    async def analyze_structured(self, prompt: str) -> Any:
        """One-shot call whose answer must contain JSON.

        Raises:
            ProviderError: If the oracle call fails after retries.
            StructuredParseError: If no JSON can be recovered.
        """
        return parse_structured(await self.analyze(prompt))

    async def chat(self, prompt: str) -> str:
        return (await self._call(prompt, remember=True)).content

    # --- Debate roles -------------------------------------------------------

    async def present(self, finding: Finding, context: str) -> str:
        return await self.chat(
            self._prompts.present.format(
                finding_id=finding.id, finding=format_finding(finding), context=context
            )
        )

    async def attack(self, finding: Finding, presentation: str, context: str) -> str:
        return await self.analyze(
            self._prompts.attack.format(
                finding_id=finding.id,
                finding=format_finding(finding),
                presentation=presentation,
                context=context,
            )
        )

    async def defend(self, finding: Finding, attack: str, context: str) -> str:
        return await self.analyze(
            self._prompts.defend.format(
                finding_id=finding.id, finding=format_finding(finding), attack=attack, context=context
            )
        )

    async def challenge(self, finding: Finding, history: str, context: str) -> str:
        return await self.analyze(
            self._prompts.challenge.format(
                finding_id=finding.id, finding=format_finding(finding), history=history, context=context
            )
        )

    async def final_argument(self, finding: Finding, history: str) -> str:
        return await self.analyze(
            self._prompts.final.format(
                finding_id=finding.id, finding=format_finding(finding), history=history
            )
        )

    async def judge(
        self,
        candidate: ExploitCandidate,
        finding: Finding,
        test_results: Iterable[ExploitTestResult] = (),
    ) -> Any:
        """Structured verdict on an exploit candidate. Each judgement is independent."""
        results = "\n".join(
            f"- {r.context}: {'success' if r.success else 'failed'}, profit {r.profit}"
            for r in test_results
        ) or "Not executed."
        return await self.analyze_structured(
            self._prompts.verify.format(
                finding_id=finding.id,
                finding=format_finding(finding),
                code=candidate.final_code,
                test_results=results,
            )
        )


def aggregate_usage(workers: Iterable[Worker]) -> Usage:
    """Fold usage over worker handles. Each worker is counted once."""
    total = Usage()
    seen: set[int] = set()
    for worker in workers:
        if id(worker) in seen:
            continue
        seen.add(id(worker))
        total = total + worker.usage
    return total
