"""Specialist factory: decide which specialists an artifact needs and spawn them."""

import logging
from collections.abc import Callable
from typing import Any

from config.config_loader import PromptsConfig
from vulnswarm import catalog
from vulnswarm.models import Artifact, ArtifactAnalysis, SpecialistDefinition, SpecialistKind, Usage
from vulnswarm.oracle import ReasoningClient
from vulnswarm.parsing import StructuredParseError, as_list
from vulnswarm.providers.base import ProviderError
from vulnswarm.worker import Worker, aggregate_usage

logger = logging.getLogger(__name__)

SpawnCallback = Callable[[Worker, SpecialistDefinition, Artifact], None]


def _as_str_tuple(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,) if value.strip() else ()
    if isinstance(value, list):
        return tuple(str(v) for v in value if str(v).strip())
    return ()


def _as_temperature(value: Any) -> float:
    try:
        # 0..1 is the range every configured provider accepts
        return min(1.0, max(0.0, float(value)))
    except (TypeError, ValueError):
        return 0.0


def parse_definition(raw: Any, default_kind: SpecialistKind | None = None) -> SpecialistDefinition | None:
    """Build a definition from one oracle item. Returns None for unusable items."""
    if not isinstance(raw, dict):
        return None
    name = str(raw.get("name") or "").strip()
    directive = str(raw.get("directive") or raw.get("system_prompt") or raw.get("systemPrompt") or "").strip()
    if not name or not directive:
        return None
    kind = default_kind or SpecialistKind.parse(raw.get("kind") or raw.get("type") or "")
    return SpecialistDefinition(
        name=name,
        kind=kind,
        rationale=str(raw.get("rationale") or raw.get("reason") or ""),
        directive=directive,
        focus_tags=_as_str_tuple(raw.get("focus_tags") or raw.get("focus_areas") or raw.get("focusAreas")),
        temperature=_as_temperature(raw.get("temperature", 0.0)),
        knowledge_refs=_as_str_tuple(raw.get("knowledge_refs")),
    )


def _novel_name(pattern: str) -> str:
    words = [w for w in pattern.split()[:4] if w.isalnum()]
    if not words:
        return "NovelPatternExpert"
    return "".join(w.capitalize() for w in words) + "Expert"


def _fallback_analysis(artifact: Artifact, reason: str) -> ArtifactAnalysis:
    logger.warning("Using default specialists for %s: %s", artifact.name, reason)
    return ArtifactAnalysis(
        artifact_id=artifact.id,
        summary=f"Fallback analysis ({reason})",
        integrations=catalog.detect_integrations(artifact.content),
        specialists=list(catalog.FALLBACK_SPECIALISTS),
        used_fallback=True,
    )


class SpecialistFactory:
    """Spawner worker plus a registry of specialists keyed by (name, artifact id)."""

    def __init__(
        self,
        spawner_client: ReasoningClient,
        specialist_client: ReasoningClient,
        prompts: PromptsConfig,
        on_spawn: SpawnCallback | None = None,
    ) -> None:
        self._prompts = prompts
        self._specialist_client = specialist_client
        self._on_spawn = on_spawn
        self.spawner = Worker("ExpertSpawner", "spawner", prompts.spawner, spawner_client, prompts, temperature=0.0)
        self.registry: dict[tuple[str, str], Worker] = {}

    async def analyze(self, artifact: Artifact) -> ArtifactAnalysis:
        """Ask the spawner which specialists the artifact needs. Never raises on oracle trouble."""
        prompt = self._prompts.spawn.format(
            name=artifact.name,
            location=artifact.location or "n/a",
            chain=artifact.chain,
            content=artifact.content,
            defect_catalog=catalog.format_defect_catalog(),
            integration_catalog=catalog.format_integration_catalog(),
        )
        try:
            raw = await self.spawner.analyze_structured(prompt)
        except (ProviderError, StructuredParseError) as exc:
            return _fallback_analysis(artifact, str(exc))

        if not isinstance(raw, dict):
            return _fallback_analysis(artifact, "spawner answer is not an object")

        specialists: list[SpecialistDefinition] = []
        seen: set[str] = set()
        for item in as_list(raw.get("specialists") or raw.get("recommended_experts")):
            definition = parse_definition(item)
            if definition is None:
                logger.debug("Skipping unusable specialist entry: %r", item)
                continue
            if definition.name in seen:
                continue
            seen.add(definition.name)
            specialists.append(definition)

        if not specialists:
            return _fallback_analysis(artifact, "no usable specialists recommended")

        analysis = ArtifactAnalysis(
            artifact_id=artifact.id,
            summary=str(raw.get("summary") or ""),
            detected_patterns=list(_as_str_tuple(raw.get("detected_patterns"))),
            integrations=list(_as_str_tuple(raw.get("integrations"))),
            specialists=specialists,
            novel_patterns=list(_as_str_tuple(raw.get("novel_patterns"))),
        )
        logger.info(
            "%s: %d specialists recommended, %d novel patterns",
            artifact.name,
            len(analysis.specialists),
            len(analysis.novel_patterns),
        )
        return analysis

    def spawn_specialist(self, definition: SpecialistDefinition, artifact: Artifact) -> Worker:
        """Return the worker for (definition.name, artifact.id), creating it on first use."""
        key = (definition.name, artifact.id)
        if key in self.registry:
            return self.registry[key]

        directive = definition.directive
        knowledge = catalog.knowledge_for(definition)
        if knowledge:
            directive = f"{directive}\n\n{knowledge}"

        worker = Worker(
            name=definition.name,
            role="specialist",
            directive=directive,
            client=self._specialist_client,
            prompts=self._prompts,
            temperature=definition.temperature,
        )
        self.registry[key] = worker
        logger.info("Spawned %s (%s) for %s", definition.name, definition.kind.value, artifact.name)
        if self._on_spawn:
            self._on_spawn(worker, definition, artifact)
        return worker

    async def create_novel_specialist(
        self, pattern: str, artifact: Artifact, context_chars: int = 3000
    ) -> tuple[SpecialistDefinition, Worker]:
        """Ask the spawner to design a specialist for an uncatalogued pattern, then spawn it."""
        prompt = self._prompts.novel_specialist.format(pattern=pattern, content=artifact.content[:context_chars])
        definition = None
        try:
            raw = await self.spawner.analyze_structured(prompt)
            definition = parse_definition(raw, default_kind=SpecialistKind.NOVEL)
        except (ProviderError, StructuredParseError) as exc:
            logger.warning("Novel specialist design failed for %r: %s", pattern, exc)

        if definition is None:
            definition = SpecialistDefinition(
                name=_novel_name(pattern),
                kind=SpecialistKind.NOVEL,
                rationale=f"Novel pattern: {pattern}",
                directive=(
                    f"You are a specialist in this pattern: {pattern}\n"
                    "Identify how it can be abused, which invariants it breaks, and how an "
                    "attacker would profit."
                ),
            )
        return definition, self.spawn_specialist(definition, artifact)

    def specialist(self, name: str, artifact_id: str) -> Worker | None:
        return self.registry.get((name, artifact_id))

    def workers(self) -> list[Worker]:
        return [self.spawner, *self.registry.values()]

    def total_usage(self) -> Usage:
        return aggregate_usage(self.workers())
