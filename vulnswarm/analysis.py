"""Parallel analysis stage: every specialist examines its artifact once."""

import asyncio
import logging
from typing import Any

from config.config_loader import PromptsConfig
from vulnswarm.findings import new_finding_id
from vulnswarm.models import AffectedLocation, Artifact, Finding, Severity, SpecialistDefinition
from vulnswarm.worker import Worker

logger = logging.getLogger(__name__)


def _confidence(value: Any) -> float:
    try:
        return min(1.0, max(0.0, float(value)))
    except (TypeError, ValueError):
        return 0.5


def _impact(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _locations(raw: Any) -> list[AffectedLocation]:
    locations = []
    for item in raw if isinstance(raw, list) else []:
        if not isinstance(item, dict):
            continue
        try:
            locations.append(AffectedLocation(
                file=str(item.get("file", "")),
                start=int(item.get("start", 0)),
                end=int(item.get("end", item.get("start", 0))),
            ))
        except (TypeError, ValueError):
            continue
    return locations


def parse_findings(raw: Any, artifact: Artifact, discovered_by: str) -> list[Finding]:
    """Turn a list (or {"findings": [...]}) into Findings, skipping malformed items."""
    if isinstance(raw, dict):
        raw = raw.get("findings", [])
    if not isinstance(raw, list):
        logger.warning("%s returned %s instead of a findings list", discovered_by, type(raw).__name__)
        return []

    findings = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        title = str(item.get("title") or "").strip()
        description = str(item.get("description") or "").strip()
        if not title or not description:
            logger.debug("Skipping finding without title/description from %s", discovered_by)
            continue
        functions = item.get("affected_functions") or item.get("affectedFunctions") or []
        findings.append(Finding(
            id=new_finding_id(),
            artifact_id=artifact.id,
            category=str(item.get("category") or item.get("type") or "unknown"),
            title=title,
            description=description,
            severity=Severity.parse(item.get("severity")),
            confidence=_confidence(item.get("confidence", 0.5)),
            discovered_by=discovered_by,
            affected_functions=[str(f) for f in functions] if isinstance(functions, list) else [],
            affected_locations=_locations(item.get("affected_lines") or item.get("affectedLines")),
            exploit_narrative=str(item.get("exploit_scenario") or item.get("exploitScenario") or ""),
            proof_of_concept=item.get("proof_of_concept") or item.get("proofOfConcept") or None,
            estimated_impact=_impact(item.get("estimated_impact")),
        ))
    return findings


async def _analyze_one(
    worker: Worker,
    definition: SpecialistDefinition,
    artifact: Artifact,
    prompts: PromptsConfig,
) -> list[Finding]:
    prompt = prompts.analysis.format(
        focus=", ".join(definition.focus_tags) or definition.kind.value,
        name=artifact.name,
        location=artifact.location or "n/a",
        chain=artifact.chain,
        content=artifact.content,
    )
    try:
        raw = await worker.analyze_structured(prompt)
    except Exception as exc:
        logger.warning("%s failed on %s: %s", worker.name, artifact.name, exc)
        return []
    findings = parse_findings(raw, artifact, worker.name)
    logger.info("%s found %d issue(s) in %s", worker.name, len(findings), artifact.name)
    return findings


async def run_analysis(
    assignments: list[tuple[Worker, SpecialistDefinition, Artifact]],
    prompts: PromptsConfig,
) -> list[Finding]:
    """One call per distinct (specialist, artifact) pair, concurrently.

    Failures yield no findings for that pair only. Result order follows the
    order of assignments.
    """
    unique: list[tuple[Worker, SpecialistDefinition, Artifact]] = []
    seen: set[tuple[str, str]] = set()
    for worker, definition, artifact in assignments:
        key = (definition.name, artifact.id)
        if key in seen:
            continue
        seen.add(key)
        unique.append((worker, definition, artifact))

    results = await asyncio.gather(
        *[_analyze_one(w, d, a, prompts) for w, d, a in unique]
    )
    return [finding for batch in results for finding in batch]
