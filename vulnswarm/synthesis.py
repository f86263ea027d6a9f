"""Adjudication: read the whole debate and decide which findings stand."""

import logging
from typing import Any

from config.config_loader import PromptsConfig
from vulnswarm.findings import StatusCallback, transition, truncate
from vulnswarm.models import (
    Artifact,
    DebateEntry,
    DebateRound,
    DebateSession,
    EntryAction,
    EntryRole,
    Finding,
    FindingStatus,
    RejectedFinding,
    Severity,
    Synthesis,
    ValidatedFinding,
)
from vulnswarm.parsing import StructuredParseError, as_list
from vulnswarm.providers.base import ProviderError
from vulnswarm.worker import Worker

logger = logging.getLogger(__name__)


def format_transcript(rounds: list[DebateRound]) -> str:
    """Format all rounds into a single transcript string for the adjudicator."""
    parts: list[str] = []
    for rnd in rounds:
        parts.append(f"### Round {rnd.number}: {rnd.type.value}")
        for entry in rnd.entries:
            parts.append(
                f"**{entry.speaker}** ({entry.role.value}, {entry.action.value}) "
                f"on {entry.target_finding_id}:\n{entry.content}"
            )
        parts.append("")
    return "\n\n".join(parts)


def format_catalog(findings: list[Finding]) -> str:
    return "\n".join(
        f"- [id: {f.id}] {f.title} ({f.severity.value}, confidence {f.confidence:.2f}) "
        f"by {f.discovered_by} [status: {f.status.value}]"
        for f in findings
    )


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


class SynthesisEngine:
    """Wraps the adjudicator worker and applies its verdict to the findings."""

    def __init__(
        self,
        adjudicator: Worker,
        prompts: PromptsConfig,
        context_chars: int = 5000,
        on_status_change: StatusCallback | None = None,
    ) -> None:
        self.adjudicator = adjudicator
        self._prompts = prompts
        self.context_chars = context_chars
        self.on_status_change = on_status_change

    async def synthesize(self, session: DebateSession | None, artifacts: list[Artifact]) -> Synthesis:
        """Run one adjudicator call over the session. Never raises on oracle trouble.

        Returns:
            Synthesis. On failure its summary carries the error and nothing changes status.
        """
        if session is None or not session.findings:
            return Synthesis(summary="No debate took place; nothing to synthesize.")

        context = "\n\n".join(
            f"// {a.name} ({a.location or a.id})\n{truncate(a.content, self.context_chars)}"
            for a in artifacts
            if a.id in session.artifact_ids
        )
        prompt = self._prompts.synthesis.format(
            context=context,
            transcript=format_transcript(session.rounds),
            catalog=format_catalog(session.findings),
        )

        logger.info("Running synthesis via %s over %d findings", self.adjudicator.name, len(session.findings))
        try:
            raw = await self.adjudicator.analyze_structured(prompt)
        except (ProviderError, StructuredParseError) as exc:
            logger.error("Synthesis failed: %s", exc)
            return Synthesis(summary=f"Synthesis failed: {exc}")
        if not isinstance(raw, dict):
            logger.error("Synthesis returned %s instead of an object", type(raw).__name__)
            return Synthesis(summary="Synthesis failed: response is not a JSON object")

        return self._apply(raw, session)

    def _resolve(self, ref: Any, session: DebateSession, unresolved: list[str]) -> tuple[Finding | None, dict]:
        """Match a reference by exact id, then by exact title."""
        item = ref if isinstance(ref, dict) else {"id": ref}
        finding_id = str(item.get("id") or item.get("finding_id") or "").strip()
        title = str(item.get("title") or "").strip()

        for finding in session.findings:
            if finding_id and finding.id == finding_id:
                return finding, item
        for finding in session.findings:
            if title and finding.title == title:
                logger.debug("Resolved %r by title to %s", title, finding.id)
                return finding, item

        label = finding_id or title or repr(ref)
        logger.warning("Synthesis referenced unknown finding: %s", label)
        unresolved.append(label)
        return None, item

    def _note(self, session: DebateSession, finding: Finding, content: str) -> None:
        finding.history.append(DebateEntry(
            round=len(session.rounds) + 1,
            speaker=self.adjudicator.name,
            role=EntryRole.ADJUDICATOR,
            content=content,
            action=EntryAction.SYNTHESIZE,
            target_finding_id=finding.id,
        ))

    def _apply(self, raw: dict, session: DebateSession) -> Synthesis:
        unresolved: list[str] = []
        validated: list[ValidatedFinding] = []
        rejected: list[RejectedFinding] = []
        validated_ids: set[str] = set()

        for ref in as_list(raw.get("validated")):
            finding, item = self._resolve(ref, session, unresolved)
            if finding is None or finding.id in validated_ids:
                continue
            if finding.status != FindingStatus.DEBATING:
                logger.info("Not validating %s: already %s", finding.id, finding.status.value)
                continue
            if item.get("severity"):
                finding.severity = Severity.parse(item["severity"])
            if "confidence" in item:
                finding.confidence = _clamp(_as_float(item["confidence"], finding.confidence))
            if item.get("description"):
                finding.description = str(item["description"])
            notes = str(item.get("notes") or item.get("reason") or "")
            transition(finding, FindingStatus.VALIDATED, self.on_status_change)
            self._note(session, finding, notes or "Validated")
            validated_ids.add(finding.id)
            validated.append(ValidatedFinding(finding.id, finding.severity, finding.confidence, notes))

        rejected_ids: set[str] = set()
        for ref in as_list(raw.get("rejected")):
            finding, item = self._resolve(ref, session, unresolved)
            if finding is None or finding.id in validated_ids or finding.id in rejected_ids:
                continue
            reason = str(item.get("reason") or "")
            if finding.status == FindingStatus.DEBATING:
                transition(finding, FindingStatus.REJECTED, self.on_status_change)
                self._note(session, finding, reason or "Rejected")
            rejected_ids.add(finding.id)
            rejected.append(RejectedFinding(finding.id, reason))

        insights = raw.get("insights") or []
        synthesis = Synthesis(
            summary=str(raw.get("summary") or ""),
            validated=validated,
            rejected=rejected,
            insights=[str(i) for i in insights] if isinstance(insights, list) else [str(insights)],
            combined_attack=raw.get("combined_attack") or None,
            root_cause=raw.get("root_cause") or None,
            recommended_severity=Severity.parse(raw.get("recommended_severity")),
            confidence=_clamp(_as_float(raw.get("confidence"), 0.0)),
            estimated_impact=_as_float(raw.get("estimated_impact"), 0.0),
            unresolved=unresolved,
        )
        logger.info(
            "Synthesis: %d validated, %d rejected, %d unresolved",
            len(validated),
            len(rejected),
            len(unresolved),
        )
        return synthesis
