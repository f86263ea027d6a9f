"""Tests for the specialist factory."""

import asyncio
import json

import pytest

from config.config_loader import PromptsConfig, RetryConfig
from vulnswarm.factory import SpecialistFactory, parse_definition
from vulnswarm.models import SpecialistKind, Usage
from vulnswarm.oracle import ReasoningClient
from vulnswarm.providers.base import ProviderError

from tests.conftest import NOVEL, SPAWN, ScriptedProvider


def _factory(provider: ScriptedProvider, on_spawn=None) -> SpecialistFactory:
    client = ReasoningClient(provider, asyncio.Semaphore(3), RetryConfig(attempts=1, base_delay=0.0))
    return SpecialistFactory(client, client, PromptsConfig(), on_spawn=on_spawn)


SPAWN_ANSWER = json.dumps({
    "summary": "Lending pool with Chainlink pricing",
    "detected_patterns": ["oracle usage"],
    "integrations": ["Chainlink"],
    "specialists": [
        {"name": "OracleExpert", "kind": "vulnerability", "rationale": "Uses latestRoundData",
         "directive": "Check oracle staleness.", "focus_tags": ["getPrice"], "temperature": 0.2},
        {"name": "ChainlinkExpert", "kind": "protocol", "rationale": "Chainlink feed",
         "directive": "Check Chainlink usage."},
        {"name": "", "directive": "nameless, skipped"},
        {"name": "OracleExpert", "kind": "defect", "directive": "duplicate, skipped"},
        "not an object",
    ],
    "novel_patterns": ["Rebasing collateral accounting"],
})


async def test_analyze_parses_specialists(sample_artifact):
    provider = ScriptedProvider({SPAWN: SPAWN_ANSWER})
    factory = _factory(provider)

    analysis = await factory.analyze(sample_artifact)

    assert analysis.used_fallback is False
    assert [d.name for d in analysis.specialists] == ["OracleExpert", "ChainlinkExpert"]
    assert analysis.specialists[0].kind is SpecialistKind.DEFECT
    assert analysis.specialists[1].kind is SpecialistKind.INTEGRATION
    assert analysis.specialists[0].temperature == 0.2
    assert analysis.novel_patterns == ["Rebasing collateral accounting"]
    prompt = provider.calls_for(SPAWN)[0]["prompt"]
    assert "Reentrancy (CRITICAL)" in prompt
    assert sample_artifact.content in prompt


@pytest.mark.parametrize(
    "answer",
    [
        ProviderError("scripted", "rate limited"),
        "I think you need some experts.",
        json.dumps({"summary": "nothing", "specialists": []}),
        json.dumps(["not", "an", "object"]),
        json.dumps({"specialists": 5}),
        json.dumps({"specialists": "ReentrancyExpert"}),
    ],
)
async def test_analyze_falls_back_to_default_set(sample_artifact, answer, caplog):
    factory = _factory(ScriptedProvider({SPAWN: answer}))

    analysis = await factory.analyze(sample_artifact)

    assert analysis.used_fallback is True
    assert [d.name for d in analysis.specialists] == ["ReentrancyExpert", "AccessControlExpert", "LogicErrorExpert"]
    assert "Using default specialists" in caplog.text


async def test_spawn_is_idempotent_per_artifact(sample_artifact):
    spawned = []
    factory = _factory(ScriptedProvider(), on_spawn=lambda w, d, a: spawned.append(w.name))
    definition = parse_definition({"name": "ReentrancyExpert", "kind": "defect", "directive": "Find it."})

    first = factory.spawn_specialist(definition, sample_artifact)
    second = factory.spawn_specialist(definition, sample_artifact)

    assert first is second
    assert spawned == ["ReentrancyExpert"]
    assert factory.specialist("ReentrancyExpert", sample_artifact.id) is first
    assert factory.specialist("ReentrancyExpert", "other") is None


async def test_spawn_enriches_directive_with_catalog(sample_artifact):
    factory = _factory(ScriptedProvider())
    definition = parse_definition({"name": "ReentrancyExpert", "kind": "defect", "directive": "Find it."})

    worker = factory.spawn_specialist(definition, sample_artifact)

    assert worker.directive.startswith("Find it.")
    assert "=== KNOWLEDGE BASE ===" in worker.directive
    assert worker.role == "specialist"


async def test_create_novel_specialist(sample_artifact):
    answer = json.dumps({"name": "RebaseExpert", "directive": "Study rebasing.", "focus_tags": ["rebase"]})
    factory = _factory(ScriptedProvider({NOVEL: answer}))

    definition, worker = await factory.create_novel_specialist("Rebasing collateral", sample_artifact)

    assert definition.kind is SpecialistKind.NOVEL
    assert definition.name == "RebaseExpert"
    assert factory.registry[("RebaseExpert", sample_artifact.id)] is worker


async def test_create_novel_specialist_survives_bad_answer(sample_artifact):
    factory = _factory(ScriptedProvider({NOVEL: "no idea"}))

    definition, worker = await factory.create_novel_specialist("rebasing collateral drift", sample_artifact)

    assert definition.name == "RebasingCollateralDriftExpert"
    assert definition.kind is SpecialistKind.NOVEL
    assert "rebasing collateral drift" in worker.directive


async def test_total_usage_includes_spawner(sample_artifact):
    provider = ScriptedProvider({SPAWN: SPAWN_ANSWER})
    factory = _factory(provider)
    analysis = await factory.analyze(sample_artifact)
    for definition in analysis.specialists:
        worker = factory.spawn_specialist(definition, sample_artifact)
        await worker.analyze("go")

    assert factory.total_usage() == Usage(30, 15)


def test_parse_definition_rejects_missing_directive():
    assert parse_definition({"name": "X"}) is None
    assert parse_definition("X") is None
    assert parse_definition({"name": "X", "systemPrompt": "y", "temperature": "hot"}).temperature == 0.0


@pytest.mark.parametrize(("raw", "expected"), [(1.5, 1.0), (-0.3, 0.0), ("0.7", 0.7)])
def test_parse_definition_clamps_temperature(raw, expected):
    assert parse_definition({"name": "X", "directive": "y", "temperature": raw}).temperature == expected


async def test_lone_specialist_object_is_accepted(sample_artifact):
    answer = json.dumps({"specialists": {"name": "OracleExpert", "kind": "defect", "directive": "Check oracles."}})
    factory = _factory(ScriptedProvider({SPAWN: answer}))

    analysis = await factory.analyze(sample_artifact)

    assert analysis.used_fallback is False
    assert [d.name for d in analysis.specialists] == ["OracleExpert"]
