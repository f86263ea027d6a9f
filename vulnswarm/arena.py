"""Adversarial debate: present, attack, defend, challenge, and closing rounds."""

import asyncio
import logging
import random
import re
import uuid
from collections.abc import Awaitable, Callable

from config.config_loader import DebateConfig
from vulnswarm.findings import StatusCallback, format_history, select_for_debate, transition, truncate
from vulnswarm.models import (
    Artifact,
    DebateEntry,
    DebateRound,
    DebateSession,
    EntryAction,
    EntryRole,
    Finding,
    FindingStatus,
    RoundOutcome,
    RoundType,
    utc_now,
)
from vulnswarm.worker import Worker

logger = logging.getLogger(__name__)

CONCESSION_RE = re.compile(
    r"\b(concede|accept|valid point|they're right|cannot defend|unable to defend)\b",
    re.IGNORECASE,
)
_CONCEDE_FIELD_RE = re.compile(r'"concede"\s*:\s*(true|false)', re.IGNORECASE)

SpecialistLookup = Callable[[str, str], Worker | None]


def is_concession(text: str) -> bool:
    """A structured "concede" field decides when present; otherwise match concession phrases."""
    fields = _CONCEDE_FIELD_RE.findall(text)
    if fields:
        return fields[-1].lower() == "true"
    return bool(CONCESSION_RE.search(text))


async def _call_worker(worker: Worker, call: Awaitable[str], finding: Finding) -> str | Exception:
    """Await one worker call. Never raises; failures come back as the exception."""
    try:
        return await call
    except Exception as exc:
        logger.warning("%s failed on finding %s: %s", worker.name, finding.id, exc)
        return exc


class DebateArena:
    """Runs one debate session over the highest-priority findings.

    Red team, blue team and devil's advocates are plain Workers. The defender
    for each attacked finding is picked at random between a blue-team member and
    the specialist that raised it; pass a seeded rng for reproducible runs.
    """

    def __init__(
        self,
        red_team: list[Worker],
        blue_team: list[Worker],
        devils_advocates: list[Worker],
        config: DebateConfig,
        context_chars: int = 5000,
        rng: random.Random | None = None,
        on_round_complete: Callable[[DebateRound], None] | None = None,
        on_status_change: StatusCallback | None = None,
    ) -> None:
        if not red_team or not blue_team:
            raise ValueError("Debate needs at least one red-team and one blue-team worker")
        self.red_team = red_team
        self.blue_team = blue_team
        self.devils_advocates = devils_advocates
        self.config = config
        self.context_chars = context_chars
        self.rng = rng or random.Random()
        self.on_round_complete = on_round_complete
        self.on_status_change = on_status_change

    def participants(self) -> list[Worker]:
        return [*self.red_team, *self.blue_team, *self.devils_advocates]

    async def _run_batches(
        self,
        jobs: list[tuple[Finding, Worker, Callable[[], Awaitable[str]]]],
    ) -> list[tuple[Finding, Worker, str | Exception]]:
        results: list[tuple[Finding, Worker, str | Exception]] = []
        size = max(1, self.config.batch_size)
        for start in range(0, len(jobs), size):
            batch = jobs[start:start + size]
            outputs = await asyncio.gather(
                *[_call_worker(worker, make_call(), finding) for finding, worker, make_call in batch]
            )
            results.extend((finding, worker, out) for (finding, worker, _), out in zip(batch, outputs))
        return results

    def _record(self, rnd: DebateRound, finding: Finding, entry: DebateEntry) -> None:
        rnd.entries.append(entry)
        finding.history.append(entry)

    def _finish_round(self, session: DebateSession, rnd: DebateRound) -> None:
        session.rounds.append(rnd)
        logger.info(
            "Round %d (%s) complete: %d entries, outcome %s",
            rnd.number,
            rnd.type.value,
            len(rnd.entries),
            rnd.outcome.value,
        )
        if self.on_round_complete:
            self.on_round_complete(rnd)

    async def run(
        self,
        findings: list[Finding],
        artifacts: list[Artifact],
        specialist_for: SpecialistLookup,
    ) -> DebateSession:
        """Debate the top findings. Findings beyond max_findings stay proposed.

        Args:
            findings: Proposed findings from the analysis stage.
            artifacts: Artifacts the findings refer to, for code context.
            specialist_for: Looks up the originating specialist by (name, artifact id).

        Returns:
            The completed DebateSession. Findings are mutated in place.
        """
        selected, left_out = select_for_debate(findings, self.config.max_findings)
        if left_out:
            logger.info("Debating top %d of %d findings", len(selected), len(findings))

        by_id = {a.id: a for a in artifacts}
        contexts = {
            f.id: truncate(by_id[f.artifact_id].content, self.context_chars) if f.artifact_id in by_id else ""
            for f in selected
        }
        session = DebateSession(
            id=f"debate_{uuid.uuid4().hex[:12]}",
            artifact_ids=sorted({f.artifact_id for f in selected}),
            findings=selected,
            participants=[w.name for w in self.participants()],
        )

        for finding in selected:
            transition(finding, FindingStatus.DEBATING, self.on_status_change)

        presentations = await self._present_round(session, selected, contexts, specialist_for)
        live = [f for f in selected if f.status == FindingStatus.DEBATING]
        attacks = await self._attack_round(session, live, presentations, contexts)
        await self._defend_round(session, live, attacks, contexts, specialist_for)

        survivors = [f for f in selected if f.status == FindingStatus.DEBATING]
        if self.devils_advocates:
            await self._challenge_round(session, survivors, contexts)

        survivors = [f for f in selected if f.status == FindingStatus.DEBATING]
        if survivors and self.config.max_rounds >= 5:
            await self._final_round(session, survivors)

        session.ended_at = utc_now()
        logger.info(
            "Debate %s finished: %d rounds, %d of %d findings still standing",
            session.id,
            len(session.rounds),
            sum(1 for f in selected if f.status == FindingStatus.DEBATING),
            len(selected),
        )
        return session

    async def _present_round(
        self,
        session: DebateSession,
        findings: list[Finding],
        contexts: dict[str, str],
        specialist_for: SpecialistLookup,
    ) -> dict[str, str]:
        rnd = DebateRound(number=len(session.rounds) + 1, type=RoundType.PRESENT)
        presentations: dict[str, str] = {}

        with_speaker = [(f, specialist_for(f.discovered_by, f.artifact_id)) for f in findings]
        jobs = [
            (f, w, lambda f=f, w=w: w.present(f, contexts[f.id]))
            for f, w in with_speaker if w is not None
        ]
        outputs = {f.id: out for f, _, out in await self._run_batches(jobs)}

        for finding in findings:
            out = outputs.get(finding.id)
            if isinstance(out, str):
                content = out
            else:
                content = finding.description
                if out is None:
                    logger.warning("No specialist handle for %s, presenting description", finding.discovered_by)
            presentations[finding.id] = content
            self._record(rnd, finding, DebateEntry(
                round=rnd.number,
                speaker=finding.discovered_by,
                role=EntryRole.PROPOSER,
                content=content,
                action=EntryAction.PRESENT,
                target_finding_id=finding.id,
            ))

        self._finish_round(session, rnd)
        return presentations

    async def _attack_round(
        self,
        session: DebateSession,
        findings: list[Finding],
        presentations: dict[str, str],
        contexts: dict[str, str],
    ) -> dict[str, str]:
        rnd = DebateRound(number=len(session.rounds) + 1, type=RoundType.ATTACK)
        jobs = []
        for idx, finding in enumerate(findings):
            attacker = self.red_team[idx % len(self.red_team)]
            jobs.append((
                finding,
                attacker,
                lambda f=finding, w=attacker: w.attack(f, presentations.get(f.id, ""), contexts[f.id]),
            ))

        attacks: dict[str, str] = {}
        for finding, attacker, out in await self._run_batches(jobs):
            if isinstance(out, Exception):
                continue
            attacks[finding.id] = out
            self._record(rnd, finding, DebateEntry(
                round=rnd.number,
                speaker=attacker.name,
                role=EntryRole.RED_TEAM,
                content=out,
                action=EntryAction.ATTACK,
                target_finding_id=finding.id,
            ))

        self._finish_round(session, rnd)
        return attacks

    async def _defend_round(
        self,
        session: DebateSession,
        findings: list[Finding],
        attacks: dict[str, str],
        contexts: dict[str, str],
        specialist_for: SpecialistLookup,
    ) -> None:
        rnd = DebateRound(number=len(session.rounds) + 1, type=RoundType.DEFEND)
        jobs = []
        roles: dict[str, EntryRole] = {}
        for idx, finding in enumerate(f for f in findings if f.id in attacks):
            blue = self.blue_team[idx % len(self.blue_team)]
            specialist = specialist_for(finding.discovered_by, finding.artifact_id)
            if specialist is not None and self.rng.random() <= 0.5:
                defender, roles[finding.id] = specialist, EntryRole.PROPOSER
            else:
                defender, roles[finding.id] = blue, EntryRole.BLUE_TEAM
            jobs.append((
                finding,
                defender,
                lambda f=finding, w=defender: w.defend(f, attacks[f.id], contexts[f.id]),
            ))

        defended = conceded = 0
        for finding, defender, out in await self._run_batches(jobs):
            if isinstance(out, Exception):
                continue
            defended += 1
            concedes = is_concession(out)
            self._record(rnd, finding, DebateEntry(
                round=rnd.number,
                speaker=defender.name,
                role=roles[finding.id],
                content=out,
                action=EntryAction.CONCEDE if concedes else EntryAction.DEFEND,
                target_finding_id=finding.id,
            ))
            if concedes:
                conceded += 1
                logger.info("%s conceded finding %s", defender.name, finding.id)
                transition(finding, FindingStatus.REJECTED, self.on_status_change)

        if defended and conceded == defended:
            rnd.outcome = RoundOutcome.REJECTED
        self._finish_round(session, rnd)

    async def _challenge_round(
        self,
        session: DebateSession,
        findings: list[Finding],
        contexts: dict[str, str],
    ) -> None:
        rnd = DebateRound(number=len(session.rounds) + 1, type=RoundType.CHALLENGE)
        jobs = []
        for idx, finding in enumerate(findings):
            advocate = self.devils_advocates[idx % len(self.devils_advocates)]
            history = format_history(finding.history)
            jobs.append((
                finding,
                advocate,
                lambda f=finding, w=advocate, h=history: w.challenge(f, h, contexts[f.id]),
            ))

        for finding, advocate, out in await self._run_batches(jobs):
            if isinstance(out, Exception):
                continue
            self._record(rnd, finding, DebateEntry(
                round=rnd.number,
                speaker=advocate.name,
                role=EntryRole.DEVILS_ADVOCATE,
                content=out,
                action=EntryAction.CHALLENGE,
                target_finding_id=finding.id,
            ))

        self._finish_round(session, rnd)

    async def _final_round(self, session: DebateSession, findings: list[Finding]) -> None:
        rnd = DebateRound(number=len(session.rounds) + 1, type=RoundType.FINAL)
        jobs = []
        for idx, finding in enumerate(findings):
            closer = self.blue_team[idx % len(self.blue_team)]
            history = format_history(finding.history)
            jobs.append((finding, closer, lambda f=finding, w=closer, h=history: w.final_argument(f, h)))

        for finding, closer, out in await self._run_batches(jobs):
            if isinstance(out, Exception):
                continue
            self._record(rnd, finding, DebateEntry(
                round=rnd.number,
                speaker=closer.name,
                role=EntryRole.BLUE_TEAM,
                content=out,
                action=EntryAction.DEFEND,
                target_finding_id=finding.id,
            ))

        rnd.outcome = RoundOutcome.CONSENSUS
        self._finish_round(session, rnd)
