"""Click CLI: loads config and targets, runs the swarm, prints and saves the report."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from config.config_loader import AppConfig, load_config
from vulnswarm.healthcheck import healthy_providers, run_health_checks
from vulnswarm.models import PipelineState
from vulnswarm.orchestrator import Orchestrator, PipelineError
from vulnswarm.output import ConsoleReporter, print_summary, save_report
from vulnswarm.providers.anthropic import AnthropicProvider
from vulnswarm.providers.base import AIProvider
from vulnswarm.providers.gemini import GeminiProvider
from vulnswarm.providers.openai_provider import OpenAIProvider
from vulnswarm.sources import FileArtifactSource, collect_artifacts, expand_targets

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

# Keyed by the `sdk` field of each model in settings.yaml
PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "google-genai": GeminiProvider,
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _build_all_providers(config: AppConfig) -> dict[str, AIProvider]:
    """Build all available providers. Returns dict keyed by name."""
    providers: dict[str, AIProvider] = {}
    for name in sorted(config.available_providers):
        model_cfg = config.models[name]
        if model_cfg.sdk not in PROVIDER_CLASSES:
            logger.warning("Provider '%s' uses unknown sdk '%s', skipping", name, model_cfg.sdk)
            continue
        try:
            providers[name] = PROVIDER_CLASSES[model_cfg.sdk](model_cfg)
        except Exception as exc:
            logger.warning("Failed to instantiate provider '%s': %s", name, exc)
    return providers


def _check_and_filter_providers(all_providers: dict[str, AIProvider]) -> dict[str, AIProvider]:
    """Run health checks, print results, and ask what to do on failures.

    Exits if the user declines to continue or no providers pass.
    """
    console.print("\n[bold]Checking providers...[/bold]")
    results = asyncio.run(run_health_checks(all_providers))

    for name in sorted(results):
        health = results[name]
        if health.ok:
            console.print(f"  [green]OK  [/green] {name} [dim]({health.latency_sec:.1f}s)[/dim]")
        else:
            short_err = health.error.splitlines()[0][:120] if health.error else "unknown error"
            console.print(f"  [red]FAIL[/red] {name}: {escape(short_err)}")

    working = healthy_providers(all_providers, results)
    if len(working) == len(all_providers):
        console.print()
        return all_providers

    if not working:
        console.print("\n[bold red]Error:[/bold red] No providers passed the health check.")
        sys.exit(1)

    failed = sorted(set(all_providers) - set(working))
    console.print(f"\n[yellow]{len(failed)} provider(s) failed:[/yellow] {', '.join(failed)}")
    console.print(f"Working providers: {', '.join(sorted(working))}")

    if not click.confirm("Continue with working providers only?", default=True):
        sys.exit(0)

    console.print()
    return working


async def _run_swarm(
    config: AppConfig,
    providers: dict[str, AIProvider],
    targets: list[Path],
) -> PipelineState:
    artifacts = await collect_artifacts(FileArtifactSource(), [str(t) for t in targets])
    if not artifacts:
        console.print("[bold red]Error:[/bold red] No targets could be loaded.")
        sys.exit(1)

    console.print(
        f"\n[bold cyan]Vulnerability Swarm[/bold cyan] {len(artifacts)} target(s), "
        f"provider {config.swarm.provider}, concurrency {config.swarm.max_concurrency}"
    )
    orchestrator = Orchestrator(config, providers, reporter=ConsoleReporter(console))
    return await orchestrator.run(artifacts)


@click.command()
@click.argument("targets", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@click.option("--provider", default=None, help="Default provider for all roles (default: from config)")
@click.option("--concurrency", default=None, type=click.IntRange(min=1),
              help="Max simultaneous oracle calls (default: from config)")
@click.option("--max-findings", default=None, type=click.IntRange(min=1),
              help="How many findings enter the debate (default: from config)")
@click.option("--output", "output_path", default=None, help="Report directory (default: from config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
def main(
    targets: tuple[Path, ...],
    provider: str | None,
    concurrency: int | None,
    max_findings: int | None,
    output_path: str | None,
    verbose: bool,
    skip_health_check: bool,
) -> None:
    """Vulnerability Swarm -- adversarial multi-agent security review.

    TARGETS are source files or directories of source files.

    \b
    Examples:
      vulnswarm contracts/Vault.sol
      vulnswarm contracts/ --provider openai --concurrency 3
      vulnswarm Vault.sol Router.sol --max-findings 5 --skip-health-check
    """
    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {escape(str(exc))}")
        sys.exit(1)

    if provider:
        config.swarm.provider = provider
    if concurrency is not None:
        config.swarm.max_concurrency = concurrency
    if max_findings is not None:
        config.debate.max_findings = max_findings
    output_dir = Path(output_path) if output_path else config.swarm.output_dir

    all_providers = _build_all_providers(config)
    if not all_providers:
        console.print("[bold red]Error:[/bold red] No providers available. Check API keys in .env.")
        sys.exit(1)
    if provider and provider not in all_providers:
        console.print(f"[bold red]Error:[/bold red] Provider '{provider}' is not available.")
        sys.exit(1)

    if not skip_health_check:
        all_providers = _check_and_filter_providers(all_providers)

    try:
        state = asyncio.run(_run_swarm(config, all_providers, expand_targets(list(targets))))
    except PipelineError as exc:
        console.print(f"[bold red]Pipeline failed:[/bold red] {escape(str(exc))}")
        saved = save_report(exc.state, output_dir)
        console.print(f"[dim]Partial report saved to: {saved}[/dim]")
        sys.exit(1)

    print_summary(state, console)
    saved_path = save_report(state, output_dir)
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")


if __name__ == "__main__":
    main()
