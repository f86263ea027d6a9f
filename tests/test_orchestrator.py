"""End-to-end pipeline tests against scripted providers."""

import json
import random
from dataclasses import replace

import pytest

from vulnswarm.forge import ExploitVerifier
from vulnswarm.models import Consensus, ExploitTestResult, FindingStatus, PipelineStage, Usage
from vulnswarm.orchestrator import Orchestrator, PipelineError
from vulnswarm.output import PipelineReporter
from vulnswarm.providers.base import ProviderError

from tests.conftest import (
    DEFEND,
    FORGE,
    JUDGE,
    PRESENT,
    SPAWN,
    SYNTHESIZE,
    ScriptedProvider,
    finding_id_in,
    findings_json,
    pipeline_routes,
)


class RecordingReporter(PipelineReporter):
    def __init__(self):
        self.stages = []
        self.spawned = []
        self.statuses = []
        self.rounds = []
        self.verdicts = []

    def on_stage(self, stage, action, detail):
        self.stages.append((stage, action))

    def on_worker_spawned(self, worker, definition, artifact):
        self.spawned.append((worker.name, artifact.id))

    def on_finding_status(self, finding, old, new):
        self.statuses.append((finding.id, new))

    def on_round_complete(self, rnd):
        self.rounds.append(rnd.type)

    def on_verification(self, result):
        self.verdicts.append(result.consensus)


class ForkVerifier(ExploitVerifier):
    async def execute(self, candidate, finding, artifacts):
        return [ExploitTestResult("block 19000000", True, profit=42.0)]


def _orchestrator(app_config, provider, reporter=None, **kwargs):
    return Orchestrator(app_config, {"scripted": provider}, reporter=reporter, rng=random.Random(7), **kwargs)


def _broken_artifact(sample_artifact):
    return replace(sample_artifact, id="artifact_2", name="BrokenVault")


async def test_full_pipeline(app_config, sample_artifact):
    provider = ScriptedProvider(pipeline_routes())
    reporter = RecordingReporter()

    state = await _orchestrator(app_config, provider, reporter).run([sample_artifact])

    assert len(state.findings) == 2
    assert len(state.findings_with_status(FindingStatus.VERIFIED)) == 2
    assert state.synthesis.validated_ids == [f.id for f in state.findings]
    assert len(state.exploits) == 2
    assert all(r.consensus is Consensus.PASS and r.auto_submit for r in state.verification_results)
    assert [s.name for s in state.specialists] == ["ReentrancyExpert"]
    assert len(state.debates) == 1
    assert state.finished_at is not None
    assert state.current_stage is PipelineStage.SUBMISSION

    calls = len(provider.calls)
    assert state.usage == Usage(10 * calls, 5 * calls)

    started = [entry.stage for entry in state.logs if entry.action == "Stage started"]
    assert started == list(PipelineStage)
    assert state.logs[-1].action == "Stage completed"

    assert reporter.spawned == [("ReentrancyExpert", sample_artifact.id)]
    assert reporter.rounds[0].value == "PRESENT"
    assert reporter.verdicts == [Consensus.PASS, Consensus.PASS]
    for finding in state.findings:
        seen = [new for fid, new in reporter.statuses if fid == finding.id]
        assert seen == [
            FindingStatus.DEBATING, FindingStatus.VALIDATED, FindingStatus.EXPLOITED, FindingStatus.VERIFIED,
        ]


async def test_two_specialists_one_finding_each(app_config, sample_artifact):
    routes = pipeline_routes(
        analysis=lambda p: findings_json("Reentrancy in withdraw") if "Focus areas: withdraw" in p
        else findings_json("Missing onlyOwner")
    )
    routes[SPAWN] = json.dumps({
        "summary": "A vault holding ETH",
        "specialists": [
            {"name": "ReentrancyExpert", "kind": "defect", "directive": "Find reentrancy.", "focus_tags": ["withdraw"]},
            {"name": "AccessControlExpert", "kind": "defect", "directive": "Find access bugs.", "focus_tags": ["owner"]},
        ],
    })
    provider = ScriptedProvider(routes)

    state = await _orchestrator(app_config, provider).run([sample_artifact])

    by_title = {f.title: f for f in state.findings}
    assert by_title["Reentrancy in withdraw"].discovered_by == "ReentrancyExpert"
    assert by_title["Missing onlyOwner"].discovered_by == "AccessControlExpert"
    assert len(state.findings_with_status(FindingStatus.VERIFIED)) == 2

    directives = {"ReentrancyExpert": "Find reentrancy.", "AccessControlExpert": "Find access bugs."}
    owners = {f.id: f.discovered_by for f in state.findings}
    for call in provider.calls_for(PRESENT):
        assert call["system"].startswith(directives[owners[finding_id_in(call["prompt"])]])
    for call in provider.calls_for(DEFEND):
        speaker = next((name for name, d in directives.items() if call["system"].startswith(d)), None)
        if speaker is not None:
            assert owners[finding_id_in(call["prompt"])] == speaker
    for finding in state.findings:
        (present,) = [e for e in finding.history if e.action.value == "present"]
        assert present.speaker == finding.discovered_by


async def test_every_debated_finding_presented_once(app_config, sample_artifact):
    state = await _orchestrator(app_config, ScriptedProvider(pipeline_routes())).run([sample_artifact])

    for finding in state.findings:
        presents = [e for e in finding.history if e.action.value == "present"]
        assert len(presents) == 1


async def test_concurrency_is_bounded(app_config, sample_artifact):
    config = replace(app_config, swarm=replace(app_config.swarm, max_concurrency=2))
    provider = ScriptedProvider(pipeline_routes(), delay=0.005)
    artifacts = [sample_artifact, _broken_artifact(sample_artifact), replace(sample_artifact, id="artifact_3")]

    await _orchestrator(config, provider).run(artifacts)

    assert provider.max_in_flight <= 2
    assert provider.max_in_flight == 2


async def test_failed_analysis_is_isolated(app_config, sample_artifact):
    def analysis(prompt):
        if "BrokenVault" in prompt:
            return ProviderError("scripted", "context length exceeded")
        return json.dumps([{"title": "Reentrancy in withdraw", "description": "d", "severity": "HIGH"}])

    provider = ScriptedProvider(pipeline_routes(analysis=analysis))

    state = await _orchestrator(app_config, provider).run([sample_artifact, _broken_artifact(sample_artifact)])

    assert [f.artifact_id for f in state.findings] == [sample_artifact.id]
    assert len(state.specialists) == 2
    assert state.findings[0].status is FindingStatus.VERIFIED


async def test_spawner_failure_uses_default_specialists(app_config, sample_artifact):
    routes = pipeline_routes()
    routes[SPAWN] = "No JSON here."
    state = await _orchestrator(app_config, ScriptedProvider(routes)).run([sample_artifact])

    assert state.analyses[0].used_fallback
    assert [s.name for s in state.specialists] == ["ReentrancyExpert", "AccessControlExpert", "LogicErrorExpert"]


async def test_novel_patterns_get_specialists(app_config, sample_artifact):
    routes = pipeline_routes()
    spawn = json.loads(routes[SPAWN])
    spawn["novel_patterns"] = ["Rebasing share drift", "Flash loan price manipulation", "Dust griefing", "Third"]
    routes[SPAWN] = json.dumps(spawn)

    state = await _orchestrator(app_config, ScriptedProvider(routes)).run([sample_artifact])

    novel = [s for s in state.specialists if s.kind.value == "novel"]
    assert len(novel) == app_config.swarm.max_novel_specialists


async def test_nothing_validated_skips_forge(app_config, sample_artifact):
    routes = pipeline_routes()
    routes[SYNTHESIZE] = json.dumps({"summary": "Nothing holds up.", "validated": [], "rejected": []})
    provider = ScriptedProvider(routes)

    state = await _orchestrator(app_config, provider).run([sample_artifact])

    stages = {entry.stage for entry in state.logs}
    assert PipelineStage.EXPLOIT_FORGE not in stages
    assert PipelineStage.VERIFICATION not in stages
    assert not provider.calls_for(FORGE)
    assert not provider.calls_for(JUDGE)
    assert state.exploits == []


async def test_no_findings_skips_debate_and_synthesis_call(app_config, sample_artifact):
    provider = ScriptedProvider(pipeline_routes(analysis="[]"))

    state = await _orchestrator(app_config, provider).run([sample_artifact])

    assert state.findings == []
    assert state.debates == []
    assert not provider.calls_for(SYNTHESIZE)
    assert "nothing to synthesize" in state.synthesis.summary


async def test_verifier_results_reach_candidates(app_config, sample_artifact):
    state = await _orchestrator(
        app_config, ScriptedProvider(pipeline_routes()), verifier=ForkVerifier()
    ).run([sample_artifact])

    assert all(c.profit_achieved == 42.0 for c in state.exploits)


async def test_unknown_role_provider_falls_back(app_config, sample_artifact, caplog):
    config = replace(app_config, roles={"judge": "grok"})
    state = await _orchestrator(config, ScriptedProvider(pipeline_routes())).run([sample_artifact])

    assert len(state.verification_results) == 2
    assert "Provider 'grok' for role judge unavailable" in caplog.text


async def test_stage_exception_becomes_pipeline_error(app_config, sample_artifact):
    class ExplodingReporter(PipelineReporter):
        def on_round_complete(self, rnd):
            raise RuntimeError("display crashed")

    with pytest.raises(PipelineError) as excinfo:
        await _orchestrator(app_config, ScriptedProvider(pipeline_routes()), ExplodingReporter()).run(
            [sample_artifact]
        )

    err = excinfo.value
    assert err.stage is PipelineStage.ADVERSARIAL_DEBATE
    assert str(err) == "adversarial-debate: display crashed"
    assert len(err.state.findings) == 2
    assert err.state.logs[-1].action == "Pipeline failed"
    assert err.state.usage.input_tokens > 0
    assert err.state.finished_at is None


def test_orchestrator_needs_providers(app_config):
    with pytest.raises(ValueError):
        Orchestrator(app_config, {})