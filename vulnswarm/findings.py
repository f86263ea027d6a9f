"""Finding lifecycle, ranking, and text rendering shared by the debate stages."""

import logging
import uuid
from collections.abc import Callable, Iterable

from vulnswarm.models import DebateEntry, Finding, FindingStatus

logger = logging.getLogger(__name__)

StatusCallback = Callable[[Finding, FindingStatus, FindingStatus], None]

ALLOWED_TRANSITIONS: dict[FindingStatus, frozenset[FindingStatus]] = {
    FindingStatus.PROPOSED: frozenset({FindingStatus.DEBATING}),
    FindingStatus.DEBATING: frozenset({FindingStatus.VALIDATED, FindingStatus.REJECTED}),
    FindingStatus.VALIDATED: frozenset({FindingStatus.EXPLOITED}),
    FindingStatus.REJECTED: frozenset(),
    FindingStatus.EXPLOITED: frozenset({FindingStatus.VERIFIED, FindingStatus.UNVERIFIED}),
    FindingStatus.VERIFIED: frozenset(),
    FindingStatus.UNVERIFIED: frozenset(),
}


class InvalidTransition(Exception):
    """Raised when a finding is moved backwards or sideways in its lifecycle."""

    def __init__(self, finding_id: str, current: FindingStatus, target: FindingStatus) -> None:
        self.finding_id = finding_id
        self.current = current
        self.target = target
        super().__init__(f"{finding_id}: cannot move from {current.value} to {target.value}")


def transition(
    finding: Finding,
    target: FindingStatus,
    on_change: StatusCallback | None = None,
) -> None:
    """Move a finding to a new status, notifying on_change(finding, old, new)."""
    current = finding.status
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(finding.id, current, target)
    finding.status = target
    logger.debug("Finding %s: %s -> %s", finding.id, current.value, target.value)
    if on_change:
        on_change(finding, current, target)


def new_finding_id() -> str:
    return f"finding_{uuid.uuid4().hex[:12]}"


def rank_findings(findings: Iterable[Finding]) -> list[Finding]:
    """Highest severity weight x confidence first. Ties keep discovery order."""
    return sorted(findings, key=lambda f: f.priority, reverse=True)


def select_for_debate(findings: list[Finding], max_findings: int) -> tuple[list[Finding], list[Finding]]:
    """Split ranked findings into (debated, left out)."""
    ranked = rank_findings(findings)
    return ranked[:max_findings], ranked[max_findings:]


def truncate(text: str, limit: int) -> str:
    if limit <= 0 or len(text) <= limit:
        return text
    return text[:limit] + "\n... [truncated]"


def format_finding(finding: Finding) -> str:
    lines = [
        f"Title: {finding.title}",
        f"Category: {finding.category}",
        f"Severity: {finding.severity.value}",
        f"Confidence: {finding.confidence:.2f}",
    ]
    if finding.affected_functions:
        lines.append(f"Affected functions: {', '.join(finding.affected_functions)}")
    for loc in finding.affected_locations:
        lines.append(f"Location: {loc.file}:{loc.start}-{loc.end}")
    lines.append(f"Description: {finding.description}")
    if finding.exploit_narrative:
        lines.append(f"Exploit scenario: {finding.exploit_narrative}")
    if finding.proof_of_concept:
        lines.append(f"Proof of concept:\n{finding.proof_of_concept}")
    return "\n".join(lines)


def format_history(entries: Iterable[DebateEntry]) -> str:
    return "\n\n".join(
        f"[{e.speaker} ({e.role.value}), {e.action.value}]: {e.content}" for e in entries
    )
