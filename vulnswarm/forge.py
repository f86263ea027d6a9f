"""Exploit forge: three smiths draft proofs of concept, a forge master merges them."""

import asyncio
import logging
import re
import uuid
from abc import ABC, abstractmethod

from config.config_loader import PromptsConfig
from vulnswarm.findings import StatusCallback, format_finding, transition, truncate
from vulnswarm.models import (
    Artifact,
    ExploitApproach,
    ExploitCandidate,
    ExploitTestResult,
    Finding,
    FindingStatus,
    Synthesis,
)
from vulnswarm.worker import Worker

logger = logging.getLogger(__name__)

APPROACHES = ("direct", "amplified", "chained")

_CODE_RE = re.compile(r"```[\w+-]*[ \t]*\n([\s\S]*?)```")


def extract_code(text: str) -> str:
    """Body of the first fenced code block, or the whole text when there is none."""
    match = _CODE_RE.search(text)
    return (match.group(1) if match else text).strip()


class ExploitVerifier(ABC):
    """Runs a candidate exploit against a small set of execution contexts."""

    @abstractmethod
    async def execute(
        self,
        candidate: ExploitCandidate,
        finding: Finding,
        artifacts: list[Artifact],
    ) -> list[ExploitTestResult]:
        """Return one result per execution context (e.g. per forked block)."""
        ...


class ExploitForge:
    """Drafts exploit candidates for validated findings. Never executes code itself."""

    def __init__(
        self,
        smiths: dict[str, Worker],
        forge_master: Worker,
        prompts: PromptsConfig,
        context_chars: int = 5000,
        verifier: ExploitVerifier | None = None,
        on_status_change: StatusCallback | None = None,
    ) -> None:
        missing = [name for name in APPROACHES if name not in smiths]
        if missing:
            raise ValueError(f"Missing smiths for approaches: {', '.join(missing)}")
        self.smiths = smiths
        self.forge_master = forge_master
        self._prompts = prompts
        self.context_chars = context_chars
        self.verifier = verifier
        self.on_status_change = on_status_change

    def workers(self) -> list[Worker]:
        return [*self.smiths.values(), self.forge_master]

    async def _draft(self, approach: str, prompt: str) -> ExploitApproach:
        smith = self.smiths[approach]
        try:
            code = extract_code(await smith.analyze(prompt))
        except Exception as exc:
            logger.warning("Smith %s failed: %s", smith.name, exc)
            code = ""
        return ExploitApproach(name=approach, code=code)

    async def _combine(self, finding: Finding, approaches: list[ExploitApproach]) -> str:
        usable = [a for a in approaches if a.code]
        block = "\n\n".join(f"=== {a.name.upper()} APPROACH ===\n{a.code}" for a in usable)
        try:
            return extract_code(
                await self.forge_master.analyze(
                    self._prompts.combine.format(finding_id=finding.id, approaches=block)
                )
            )
        except Exception as exc:
            logger.warning("Forge master failed on %s, using %s approach: %s", finding.id, usable[0].name, exc)
            return usable[0].code

    async def forge(
        self,
        finding: Finding,
        artifacts: list[Artifact],
        synthesis: Synthesis | None = None,
    ) -> ExploitCandidate | None:
        """Build one candidate for a validated finding, or None when no smith produced code."""
        artifact = next((a for a in artifacts if a.id == finding.artifact_id), None)
        prompt = self._prompts.forge.format(
            finding_id=finding.id,
            finding=format_finding(finding),
            context=truncate(artifact.content, self.context_chars) if artifact else "",
            combined_attack=(synthesis.combined_attack if synthesis else None) or "None identified",
        )

        approaches = list(await asyncio.gather(*[self._draft(name, prompt) for name in APPROACHES]))
        if not any(a.code for a in approaches):
            logger.warning("No exploit approach produced code for %s", finding.id)
            return None

        candidate = ExploitCandidate(
            id=f"exploit_{uuid.uuid4().hex[:12]}",
            finding_id=finding.id,
            approaches=approaches,
            final_code=await self._combine(finding, approaches),
        )
        transition(finding, FindingStatus.EXPLOITED, self.on_status_change)

        if self.verifier is not None:
            await self._execute(candidate, finding, artifacts)
        return candidate

    async def _execute(self, candidate: ExploitCandidate, finding: Finding, artifacts: list[Artifact]) -> None:
        try:
            results = await self.verifier.execute(candidate, finding, artifacts)
        except Exception as exc:
            logger.warning("Exploit execution failed for %s: %s", candidate.id, exc)
            return
        candidate.test_results = list(results)
        successes = [r for r in candidate.test_results if r.success]
        if successes:
            candidate.profit_achieved = sum(r.profit for r in successes) / len(successes)
        logger.info(
            "Executed %s: %d/%d contexts succeeded, mean profit %.4f",
            candidate.id,
            len(successes),
            len(candidate.test_results),
            candidate.profit_achieved,
        )

    async def forge_all(
        self,
        findings: list[Finding],
        artifacts: list[Artifact],
        synthesis: Synthesis | None = None,
    ) -> list[ExploitCandidate]:
        candidates = []
        for finding in findings:
            logger.info("Forging exploit for %s (%s)", finding.id, finding.title)
            candidate = await self.forge(finding, artifacts, synthesis)
            if candidate is not None:
                candidates.append(candidate)
        return candidates
