"""Pipeline reporting: progress hooks, rich console output, markdown report files."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table

from vulnswarm.models import (
    Artifact,
    Consensus,
    DebateRound,
    Finding,
    FindingStatus,
    PipelineStage,
    PipelineState,
    SpecialistDefinition,
    VerificationResult,
)
from vulnswarm.tribunal import render_submission_report
from vulnswarm.worker import Worker

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_STATUS_STYLE = {
    FindingStatus.PROPOSED: "dim",
    FindingStatus.DEBATING: "yellow",
    FindingStatus.VALIDATED: "cyan",
    FindingStatus.REJECTED: "red",
    FindingStatus.EXPLOITED: "magenta",
    FindingStatus.VERIFIED: "bold green",
    FindingStatus.UNVERIFIED: "dim red",
}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def pipeline_summary(state: PipelineState) -> str:
    validated = len(state.synthesis.validated) if state.synthesis else 0
    verified = sum(1 for r in state.verification_results if r.consensus == Consensus.PASS)
    auto = sum(1 for r in state.verification_results if r.auto_submit)
    return f"Findings: {len(state.findings)}, Validated: {validated}, Verified: {verified}, Auto-submit: {auto}"


class PipelineReporter:
    """Progress hooks called by the orchestrator. Every hook is a no-op here."""

    def on_stage(self, stage: PipelineStage, action: str, detail: str) -> None:
        pass

    def on_worker_spawned(self, worker: Worker, definition: SpecialistDefinition, artifact: Artifact) -> None:
        pass

    def on_finding_status(self, finding: Finding, old: FindingStatus, new: FindingStatus) -> None:
        pass

    def on_round_complete(self, rnd: DebateRound) -> None:
        pass

    def on_verification(self, result: VerificationResult) -> None:
        pass


class ConsoleReporter(PipelineReporter):
    """Prints pipeline progress to the terminal."""

    def __init__(self, out: Console | None = None) -> None:
        self.console = out or console

    def on_stage(self, stage: PipelineStage, action: str, detail: str) -> None:
        if action == "Stage started":
            self.console.print(Rule(f"[bold cyan]{stage.value}[/bold cyan]"))
        elif action == "Pipeline failed":
            self.console.print(f"[bold red]Failed in {stage.value}:[/bold red] {escape(detail)}")
        elif detail:
            self.console.print(f"[dim]{action}:[/dim] {escape(detail)}")

    def on_worker_spawned(self, worker: Worker, definition: SpecialistDefinition, artifact: Artifact) -> None:
        self.console.print(f"  [green]+[/green] {worker.name} [dim]({definition.kind.value}, {artifact.name})[/dim]")

    def on_finding_status(self, finding: Finding, old: FindingStatus, new: FindingStatus) -> None:
        if new == FindingStatus.DEBATING:
            return
        style = _STATUS_STYLE.get(new, "")
        self.console.print(f"  [{style}]{new.value:>10}[/{style}] {escape(finding.title)} [dim]{finding.id}[/dim]")

    def on_round_complete(self, rnd: DebateRound) -> None:
        self.console.print(
            f"  [green]OK[/green] Round {rnd.number} {rnd.type.value} "
            f"({len(rnd.entries)} entries, {rnd.outcome.value})"
        )

    def on_verification(self, result: VerificationResult) -> None:
        color = "green" if result.consensus == Consensus.PASS else "yellow"
        self.console.print(
            f"  [{color}]{result.consensus.value}[/{color}] {result.finding_id} "
            f"({result.pass_count}/{len(result.votes)}, confidence {result.confidence:.2f})"
        )


def print_summary(state: PipelineState, out: Console | None = None) -> None:
    """Print a findings table and the run summary."""
    out = out or console
    out.print(Rule("[bold green]Swarm Results[/bold green]"))

    table = Table(show_lines=False)
    table.add_column("Finding")
    table.add_column("Severity")
    table.add_column("Conf.", justify="right")
    table.add_column("Status")
    table.add_column("By", style="dim")
    for finding in sorted(state.findings, key=lambda f: f.priority, reverse=True):
        style = _STATUS_STYLE.get(finding.status, "")
        table.add_row(
            escape(finding.title[:60]),
            finding.severity.value,
            f"{finding.confidence:.2f}",
            f"[{style}]{finding.status.value}[/{style}]",
            finding.discovered_by,
        )
    out.print(table)

    if state.synthesis and state.synthesis.summary:
        out.print(Panel(escape(state.synthesis.summary), title="Synthesis", border_style="dim"))
    out.print(
        f"[bold]{pipeline_summary(state)}[/bold] "
        f"[dim]| tokens {state.usage.input_tokens} in / {state.usage.output_tokens} out[/dim]"
    )


def save_report(state: PipelineState, output_dir: Path) -> Path:
    """Save the full run (findings, debate transcript, synthesis, verdicts) as markdown.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    title = state.artifacts[0].name if state.artifacts else "run"
    filepath = output_dir / f"{timestamp}_{_slug(title)}.md"

    duration = ""
    if state.finished_at:
        duration = f"{(state.finished_at - state.started_at).total_seconds():.1f}s"

    lines: list[str] = [
        f"# Vulnerability Swarm Report: {', '.join(a.name for a in state.artifacts)[:80]}",
        "",
        f"**Date:** {state.started_at.strftime('%Y-%m-%d %H:%M:%S')} UTC",
        f"**Duration:** {duration or 'n/a'}",
        f"**Stage reached:** {state.current_stage.value}",
        f"**Summary:** {pipeline_summary(state)}",
        f"**Tokens:** {state.usage.input_tokens} in / {state.usage.output_tokens} out",
        "",
        "---",
        "",
        "## Specialists",
        "",
    ]
    lines += [f"- **{d.name}** ({d.kind.value}): {d.rationale}" for d in state.specialists]
    lines += ["", "## Findings", ""]
    for finding in sorted(state.findings, key=lambda f: f.priority, reverse=True):
        lines.append(
            f"- `{finding.id}` **{finding.title}** ({finding.severity.value}, "
            f"{finding.confidence:.2f}) by {finding.discovered_by}: {finding.status.value}"
        )
    lines.append("")

    for session in state.debates:
        lines += [f"## Debate {session.id}", ""]
        for rnd in session.rounds:
            lines += [f"### Round {rnd.number}: {rnd.type.value} ({rnd.outcome.value})", ""]
            for entry in rnd.entries:
                lines += [
                    f"**{entry.speaker}** ({entry.role.value}, {entry.action.value}) on `{entry.target_finding_id}`",
                    "",
                    entry.content,
                    "",
                ]

    if state.synthesis:
        synthesis = state.synthesis
        lines += ["## Synthesis", "", synthesis.summary, ""]
        if synthesis.insights:
            lines += ["**Insights:**", ""] + [f"- {i}" for i in synthesis.insights] + [""]
        if synthesis.combined_attack:
            lines += [f"**Combined attack:** {synthesis.combined_attack}", ""]
        if synthesis.root_cause:
            lines += [f"**Root cause:** {synthesis.root_cause}", ""]
        if synthesis.unresolved:
            lines += [f"**Unresolved references:** {', '.join(synthesis.unresolved)}", ""]

    candidates = {c.finding_id: c for c in state.exploits}
    for result in state.verification_results:
        finding = state.finding(result.finding_id)
        candidate = candidates.get(result.finding_id)
        if finding is None or candidate is None:
            continue
        lines += ["---", "", render_submission_report(candidate, finding, result)]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Report saved to: %s", filepath)
    return filepath
