"""Verification tribunal: independent judges vote on each exploit candidate."""

import asyncio
import logging
from typing import Any

from vulnswarm.findings import StatusCallback, format_finding, transition
from vulnswarm.models import (
    Consensus,
    ExploitCandidate,
    Finding,
    FindingStatus,
    VerificationResult,
    VerificationVote,
)
from vulnswarm.worker import Worker

logger = logging.getLogger(__name__)


def _score(value: Any) -> float:
    try:
        return min(1.0, max(0.0, float(value)))
    except (TypeError, ValueError):
        return 0.0


def parse_vote(judge_id: str, raw: Any) -> VerificationVote:
    """Anything other than an explicit "pass" counts as a fail vote."""
    if not isinstance(raw, dict):
        return VerificationVote(judge_id, "fail", "Unparseable verdict", 0.0, 0.0, 0.0)
    concerns = raw.get("concerns") or []
    return VerificationVote(
        judge_id=judge_id,
        vote="pass" if str(raw.get("vote", "")).strip().lower() == "pass" else "fail",
        reason=str(raw.get("reason") or ""),
        reproducibility=_score(raw.get("reproducibility_score", raw.get("reproducibility"))),
        novelty=_score(raw.get("novelty_score", raw.get("novelty"))),
        feasibility=_score(raw.get("feasibility_score", raw.get("feasibility"))),
        concerns=[str(c) for c in concerns] if isinstance(concerns, list) else [str(concerns)],
    )


def compute_consensus(
    votes: list[VerificationVote],
    pass_threshold: int,
    auto_accept_threshold: int,
) -> tuple[Consensus, float, bool]:
    """Return (consensus, confidence, auto_submit) for a set of votes."""
    pass_count = sum(1 for v in votes if v.passed)
    if pass_count >= pass_threshold:
        consensus = Consensus.PASS
    elif pass_count == 0:
        consensus = Consensus.FAIL
    else:
        consensus = Consensus.SPLIT
    confidence = sum(v.mean_score for v in votes) / len(votes) if votes else 0.0
    auto_submit = consensus == Consensus.PASS and pass_count >= auto_accept_threshold
    return consensus, confidence, auto_submit


class VerificationTribunal:
    def __init__(
        self,
        judges: list[Worker],
        pass_threshold: int = 2,
        auto_accept_threshold: int | None = None,
        on_status_change: StatusCallback | None = None,
    ) -> None:
        if not judges:
            raise ValueError("Tribunal needs at least one judge")
        if auto_accept_threshold is None:
            auto_accept_threshold = len(judges)
        if not 1 <= pass_threshold <= len(judges):
            raise ValueError(f"pass_threshold must be between 1 and {len(judges)}, got {pass_threshold}")
        if not 1 <= auto_accept_threshold <= len(judges):
            raise ValueError(
                f"auto_accept_threshold must be between 1 and {len(judges)}, got {auto_accept_threshold}"
            )
        self.judges = judges
        self.pass_threshold = pass_threshold
        self.auto_accept_threshold = auto_accept_threshold
        self.on_status_change = on_status_change

    async def _vote(self, judge: Worker, candidate: ExploitCandidate, finding: Finding) -> VerificationVote:
        try:
            raw = await judge.judge(candidate, finding, candidate.test_results)
        except Exception as exc:
            logger.warning("Judge %s failed on %s: %s", judge.name, candidate.id, exc)
            return VerificationVote(judge.name, "fail", f"Judge error: {exc}", 0.0, 0.0, 0.0)
        return parse_vote(judge.name, raw)

    async def verify(self, candidate: ExploitCandidate, finding: Finding) -> VerificationResult:
        """All judges vote in parallel; the finding moves to verified or unverified."""
        votes = list(await asyncio.gather(*[self._vote(j, candidate, finding) for j in self.judges]))
        consensus, confidence, auto_submit = compute_consensus(
            votes, self.pass_threshold, self.auto_accept_threshold
        )
        result = VerificationResult(
            finding_id=finding.id,
            votes=votes,
            consensus=consensus,
            confidence=confidence,
            auto_submit=auto_submit,
        )

        if consensus == Consensus.PASS:
            candidate.verified = True
            transition(finding, FindingStatus.VERIFIED, self.on_status_change)
        else:
            transition(finding, FindingStatus.UNVERIFIED, self.on_status_change)

        logger.info(
            "Tribunal on %s: %s (%d/%d pass, confidence %.2f, auto-submit %s)",
            finding.id,
            consensus.value,
            result.pass_count,
            len(votes),
            confidence,
            auto_submit,
        )
        return result

    async def verify_all(
        self,
        candidates: list[ExploitCandidate],
        findings: dict[str, Finding],
    ) -> list[VerificationResult]:
        """Candidates one at a time, in order."""
        results = []
        for candidate in candidates:
            finding = findings.get(candidate.finding_id)
            if finding is None:
                logger.warning("Skipping %s: finding %s not found", candidate.id, candidate.finding_id)
                continue
            results.append(await self.verify(candidate, finding))
        return results


def render_submission_report(
    candidate: ExploitCandidate,
    finding: Finding,
    result: VerificationResult,
) -> str:
    """Markdown write-up of a verified finding with its exploit and the tribunal's votes."""
    lines = [
        f"# {finding.title}",
        "",
        f"**Severity:** {finding.severity.value}  ",
        f"**Category:** {finding.category}  ",
        f"**Consensus:** {result.consensus.value} ({result.pass_count}/{len(result.votes)} judges)  ",
        f"**Confidence:** {result.confidence:.2f}  ",
        f"**Auto-submit:** {'yes' if result.auto_submit else 'no'}",
        "",
        "## Description",
        "",
        format_finding(finding),
        "",
        "## Proof of Concept",
        "",
        "```solidity",
        candidate.final_code,
        "```",
    ]
    if candidate.test_results:
        lines += ["", "## Execution Results", ""]
        lines += [
            f"- {r.context}: {'success' if r.success else 'failed'}, profit {r.profit}"
            for r in candidate.test_results
        ]
    lines += ["", "## Tribunal", ""]
    for vote in result.votes:
        lines.append(f"- **{vote.judge_id}**: {vote.vote} ({vote.mean_score:.2f}) {vote.reason}")
        lines.extend(f"  - concern: {c}" for c in vote.concerns)
    return "\n".join(lines) + "\n"
