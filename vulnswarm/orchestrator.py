"""Pipeline orchestrator: runs every stage in order over one set of artifacts."""

import asyncio
import logging
import random
from collections.abc import Callable

from config.config_loader import AppConfig
from vulnswarm import catalog
from vulnswarm.analysis import run_analysis
from vulnswarm.arena import DebateArena
from vulnswarm.factory import SpecialistFactory
from vulnswarm.forge import APPROACHES, ExploitForge, ExploitVerifier
from vulnswarm.models import (
    Artifact,
    DebateSession,
    FindingStatus,
    PipelineLogEntry,
    PipelineStage,
    PipelineState,
    SpecialistDefinition,
    utc_now,
)
from vulnswarm.oracle import ReasoningClient
from vulnswarm.output import PipelineReporter, pipeline_summary
from vulnswarm.providers.base import AIProvider
from vulnswarm.synthesis import SynthesisEngine
from vulnswarm.tribunal import VerificationTribunal
from vulnswarm.worker import Worker, aggregate_usage

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """A stage raised. Carries the stage and the partial state of the run."""

    def __init__(self, stage: PipelineStage, message: str, state: PipelineState) -> None:
        self.stage = stage
        self.state = state
        super().__init__(f"{stage.value}: {message}")


class Orchestrator:
    """Runs reconnaissance through submission.

    Args:
        config: Loaded application config.
        providers: Provider instances keyed by name; roles map onto them via config.roles.
        reporter: Receives stage, spawn, status, round and verdict notifications.
        verifier: Optional exploit executor for the forge stage.
        rng: Random source for debate defender selection.
    """

    def __init__(
        self,
        config: AppConfig,
        providers: dict[str, AIProvider],
        reporter: PipelineReporter | None = None,
        verifier: ExploitVerifier | None = None,
        rng: random.Random | None = None,
    ) -> None:
        if not providers:
            raise ValueError("Orchestrator needs at least one provider")
        self.config = config
        self.providers = providers
        self.reporter = reporter or PipelineReporter()
        self.verifier = verifier
        self.rng = rng or random.Random()

    def _provider(self, role: str) -> AIProvider:
        name = self.config.provider_for(role)
        if name in self.providers:
            return self.providers[name]
        fallback = self.providers.get(self.config.swarm.provider) or next(iter(self.providers.values()))
        logger.warning("Provider '%s' for role %s unavailable, using %s", name, role, fallback.name())
        return fallback

    def _log(
        self,
        state: PipelineState,
        stage: PipelineStage,
        action: str,
        detail: str = "",
        level: int = logging.INFO,
    ) -> None:
        state.logs.append(PipelineLogEntry(stage=stage, action=action, detail=detail))
        logger.log(level, "[%s] %s%s", stage.value, action, f": {detail}" if detail else "")
        self.reporter.on_stage(stage, action, detail)

    def _begin(self, state: PipelineState, stage: PipelineStage, detail: str = "") -> PipelineStage:
        state.current_stage = stage
        self._log(state, stage, "Stage started", detail)
        return stage

    async def run(self, artifacts: list[Artifact]) -> PipelineState:
        """Run the whole pipeline.

        Returns:
            The final PipelineState.

        Raises:
            PipelineError: If a stage raised; .state holds everything done so far.
        """
        state = PipelineState(artifacts=list(artifacts))
        prompts = self.config.prompts
        swarm = self.config.swarm
        limiter = asyncio.Semaphore(swarm.max_concurrency)
        clients: dict[str, ReasoningClient] = {}
        workers: list[Worker] = []

        def client(role: str) -> ReasoningClient:
            provider = self._provider(role)
            if provider.name() not in clients:
                clients[provider.name()] = ReasoningClient(provider, limiter, self.config.retry)
            return clients[provider.name()]

        def worker(name: str, role: str, directive: str, temperature: float | None = None) -> Worker:
            w = Worker(name, role, directive, client(role), prompts, temperature=temperature)
            workers.append(w)
            return w

        on_status = self.reporter.on_finding_status
        factory = SpecialistFactory(
            client("spawner"), client("specialist"), prompts, on_spawn=self.reporter.on_worker_spawned
        )
        stage = PipelineStage.RECONNAISSANCE

        try:
            stage = self._begin(state, PipelineStage.RECONNAISSANCE, f"{len(state.artifacts)} artifact(s)")
            state.analyses = list(await asyncio.gather(*[factory.analyze(a) for a in state.artifacts]))
            fallbacks = sum(1 for a in state.analyses if a.used_fallback)
            self._log(state, stage, "Stage completed", f"{len(state.analyses)} analyses, {fallbacks} fallback")

            stage = self._begin(state, PipelineStage.EXPERT_SPAWNING)
            assignments = await self._spawn(state, factory)
            self._log(state, stage, "Stage completed", f"{len(factory.registry)} specialists")

            stage = self._begin(state, PipelineStage.PARALLEL_ANALYSIS, f"{len(assignments)} assignments")
            state.findings = await run_analysis(assignments, prompts)
            self._log(state, stage, "Stage completed", f"{len(state.findings)} findings")

            stage = self._begin(state, PipelineStage.ADVERSARIAL_DEBATE)
            session = await self._debate(state, factory, worker)
            self._log(
                state, stage, "Stage completed",
                f"{len(session.findings)} debated, {len(session.rounds)} rounds" if session else "no findings",
            )

            stage = self._begin(state, PipelineStage.SYNTHESIS)
            adjudicator = worker("Adjudicator", "adjudicator", prompts.adjudicator, temperature=0.0)
            engine = SynthesisEngine(adjudicator, prompts, swarm.context_chars, on_status_change=on_status)
            state.synthesis = await engine.synthesize(session, state.artifacts)
            self._log(
                state, stage, "Stage completed",
                f"{len(state.synthesis.validated)} validated, {len(state.synthesis.rejected)} rejected",
            )

            validated = state.findings_with_status(FindingStatus.VALIDATED)
            if validated:
                stage = self._begin(state, PipelineStage.EXPLOIT_FORGE, f"{len(validated)} validated")
                forge = ExploitForge(
                    smiths={
                        name: worker(
                            f"Smith-{name}",
                            "smith",
                            prompts.smith.format(approach=name, guidance=prompts.smith_guidance.get(name, "")),
                            temperature=0.2,
                        )
                        for name in APPROACHES
                    },
                    forge_master=worker("ForgeMaster", "forge_master", prompts.forge_master, temperature=0.0),
                    prompts=prompts,
                    context_chars=swarm.context_chars,
                    verifier=self.verifier,
                    on_status_change=on_status,
                )
                state.exploits = await forge.forge_all(validated, state.artifacts, state.synthesis)
                self._log(state, stage, "Stage completed", f"{len(state.exploits)} candidates")

                stage = self._begin(state, PipelineStage.VERIFICATION, f"{len(state.exploits)} candidates")
                tribunal_cfg = self.config.tribunal
                tribunal = VerificationTribunal(
                    judges=[
                        worker(f"Verifier-{i}", "judge", prompts.judge.format(index=i), temperature=0.0)
                        for i in range(1, tribunal_cfg.judges + 1)
                    ],
                    pass_threshold=tribunal_cfg.pass_threshold,
                    auto_accept_threshold=tribunal_cfg.auto_accept_threshold,
                    on_status_change=on_status,
                )
                state.verification_results = await tribunal.verify_all(
                    state.exploits, {f.id: f for f in state.findings}
                )
                for result in state.verification_results:
                    self.reporter.on_verification(result)
                self._log(state, stage, "Stage completed", f"{len(state.verification_results)} verdicts")

            stage = self._begin(state, PipelineStage.SUBMISSION)
            state.usage = aggregate_usage([*factory.workers(), *workers])
            state.finished_at = utc_now()
            self._log(state, stage, "Stage completed", pipeline_summary(state))
        except Exception as exc:
            state.usage = aggregate_usage([*factory.workers(), *workers])
            self._log(state, stage, "Pipeline failed", str(exc), level=logging.ERROR)
            raise PipelineError(stage, str(exc), state) from exc

        return state

    async def _spawn(
        self, state: PipelineState, factory: SpecialistFactory
    ) -> list[tuple[Worker, SpecialistDefinition, Artifact]]:
        assignments: list[tuple[Worker, SpecialistDefinition, Artifact]] = []
        by_id = {a.id: a for a in state.artifacts}

        for analysis in state.analyses:
            artifact = by_id[analysis.artifact_id]
            for definition in analysis.specialists:
                worker = factory.spawn_specialist(definition, artifact)
                state.specialists.append(definition)
                assignments.append((worker, definition, artifact))

            novel = [p for p in analysis.novel_patterns if not catalog.is_known_pattern(p)]
            for pattern in novel[: self.config.swarm.max_novel_specialists]:
                definition, worker = await factory.create_novel_specialist(
                    pattern, artifact, self.config.swarm.context_chars
                )
                state.specialists.append(definition)
                assignments.append((worker, definition, artifact))

        return assignments

    async def _debate(
        self,
        state: PipelineState,
        factory: SpecialistFactory,
        worker: Callable[..., Worker],
    ) -> DebateSession | None:
        if not state.findings:
            logger.info("No findings to debate")
            return None

        prompts = self.config.prompts
        debate_cfg = self.config.debate
        arena = DebateArena(
            red_team=[
                worker(f"RedTeam-{i}", "red_team", prompts.red_team.format(index=i))
                for i in range(1, debate_cfg.red_team_size + 1)
            ],
            blue_team=[
                worker(f"BlueTeam-{i}", "blue_team", prompts.blue_team.format(index=i))
                for i in range(1, debate_cfg.blue_team_size + 1)
            ],
            devils_advocates=[
                worker(f"DevilsAdvocate-{i}", "devils_advocate", prompts.devils_advocate.format(index=i))
                for i in range(1, debate_cfg.devils_advocates + 1)
            ],
            config=debate_cfg,
            context_chars=self.config.swarm.context_chars,
            rng=self.rng,
            on_round_complete=self.reporter.on_round_complete,
            on_status_change=self.reporter.on_finding_status,
        )
        session = await arena.run(state.findings, state.artifacts, factory.specialist)
        state.debates.append(session)
        return session
