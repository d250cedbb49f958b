"""Chorus CLI — Typer + Rich terminal interface.

Commands: run, leaves list, leaves show, config show.
A thin shell over the Orchestrator: it loads the registry and defaults,
builds LiteLLM leaves, and renders the fused response.
"""

from __future__ import annotations

import asyncio
import logging
import os

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from chorus import __version__
from chorus.errors import ConfigurationError, OrchestrationError
from chorus.orchestrator import Orchestrator
from chorus.providers.registry import (
    build_leaves,
    leaf_priors,
    load_leaves,
    load_orchestrator_config,
)
from chorus.schemas.response import FusedResponse
from chorus.schemas.strategy import parse_strategy
from chorus.services import RateTableCostEstimator

console = Console()

# ── App and sub-apps ─────────────────────────────────────────────

app = typer.Typer(
    name="chorus",
    help="Ask several AI models at once and fuse their answers.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

leaves_app = typer.Typer(
    name="leaves",
    help="Inspect the leaf registry.",
    no_args_is_help=True,
)
app.add_typer(leaves_app, name="leaves")

config_app = typer.Typer(
    name="config",
    help="Show orchestrator configuration.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")


# ── Version callback ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"chorus {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Log retries, rounds and leaf failures.",
    ),
) -> None:
    """Chorus — multi-model AI orchestration."""
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )


# ── Helpers ──────────────────────────────────────────────────────

def _load_registry():
    """Load the leaf registry, exit on error."""
    try:
        return load_leaves()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading leaves:[/red] {e}")
        raise typer.Exit(1) from None


def _load_config():
    """Load orchestrator defaults, exit on error."""
    try:
        return load_orchestrator_config()
    except (FileNotFoundError, ValueError, ConfigurationError) as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None


def _role_style(role: str) -> str:
    return {
        "primary": "bold green",
        "corroborating": "green",
        "conflicting": "yellow",
        "excluded": "dim",
        "eliminated": "dim",
    }.get(role, "")


def _display_response(response: FusedResponse) -> None:
    report = response.strategy
    subtitle = report.kind.value
    if report.adaptive:
        subtitle += " (adaptive)"
    if report.rounds_run is not None:
        state = "converged" if report.converged else "not converged"
        subtitle += f" · {report.rounds_run} round(s), {state}"

    console.print(Panel(
        response.content,
        title=f"[bold]{response.primary_leaf}[/bold]",
        subtitle=subtitle,
        border_style="yellow" if response.degraded else "green",
    ))

    table = Table(title="Contributions")
    table.add_column("Leaf", style="bold cyan")
    table.add_column("Weight", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Included")
    table.add_column("Role")
    for c in response.contributions:
        table.add_row(
            c.leaf_id,
            f"{c.score:.2f}",
            f"{c.confidence:.2f}",
            "yes" if c.included else "no",
            f"[{_role_style(c.role.value)}]{c.role.value}[/]" if _role_style(c.role.value)
            else c.role.value,
        )
    console.print(table)

    if response.failures:
        console.print("[yellow]Failed leaves:[/yellow]")
        for f in response.failures:
            console.print(
                f"  [red]✗[/red] {f.leaf_id}: {f.error_kind.value} "
                f"after {f.attempts_made} attempt(s): {f.message}"
            )

    console.print(
        f"[dim]Confidence {response.confidence:.2f} · "
        f"{response.token_usage.total_tokens:,} tokens · "
        f"${response.cost_estimate:.4f} · "
        f"{response.elapsed_seconds:.1f}s[/dim]"
    )


# ── chorus run ───────────────────────────────────────────────────

@app.command()
def run(
    prompt: str = typer.Argument(..., help="Prompt to send to every leaf"),
    strategy: str = typer.Option(
        "adaptive", "--strategy", "-s",
        help="first_success, weighted_fusion, consensus, tournament, adaptive",
    ),
    leaves: str = typer.Option(
        "", "--leaves", "-l",
        help="Comma-separated registry keys (default: all)",
    ),
    deadline: float = typer.Option(
        None, "--deadline", "-d",
        help="Deadline in seconds for the whole call",
    ),
    rounds: int = typer.Option(
        None, "--rounds",
        help="Consensus round cap",
    ),
    threshold: float = typer.Option(
        None, "--threshold",
        help="Consensus agreement threshold in [0, 1]",
    ),
) -> None:
    """Fan a prompt out to the selected leaves and print the fused answer."""
    registry = _load_registry()
    config = _load_config()

    keys = [k.strip() for k in leaves.split(",") if k.strip()] or None
    params: dict[str, object] = {
        "max_rounds": rounds if rounds is not None else config.consensus.max_rounds,
        "agreement_threshold": (
            threshold if threshold is not None else config.consensus.agreement_threshold
        ),
    }

    try:
        chosen = parse_strategy(strategy, **params)
        selected = build_leaves(registry, keys)
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from None

    orchestrator = Orchestrator(
        config,
        cost_estimator=RateTableCostEstimator.from_leaf_configs(registry.values()),
        leaf_priors=leaf_priors(registry),
    )

    try:
        with console.status(
            f"[bold blue]Consulting {len(selected)} leaves...", spinner="dots",
        ):
            response = asyncio.run(
                orchestrator.orchestrate(selected, prompt, chosen, deadline)
            )
    except (OrchestrationError, ConfigurationError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from None

    _display_response(response)


# ── chorus leaves ────────────────────────────────────────────────

@leaves_app.command("list")
def leaves_list() -> None:
    """Show all registered leaves as a table."""
    registry = _load_registry()

    table = Table(title="Registered Leaves", show_lines=True)
    table.add_column("Key", style="bold cyan")
    table.add_column("Display Name")
    table.add_column("Identifier", style="dim")
    table.add_column("Input $/M", justify="right")
    table.add_column("Output $/M", justify="right")
    table.add_column("Prior", justify="right")

    for key, cfg in sorted(registry.items()):
        table.add_row(
            key,
            cfg.display_name,
            cfg.identifier,
            f"${cfg.cost_input:.2f}",
            f"${cfg.cost_output:.2f}",
            f"{cfg.prior:.2f}",
        )

    console.print(table)
    console.print(f"\n[dim]{len(registry)} leaves registered[/dim]")


@leaves_app.command("show")
def leaves_show(
    key: str = typer.Argument(..., help="Leaf registry key"),
) -> None:
    """Show full details for one leaf."""
    registry = _load_registry()

    if key not in registry:
        console.print(f"[red]Leaf not found:[/red] '{key}'")
        console.print(f"[dim]Available: {', '.join(sorted(registry))}[/dim]")
        raise typer.Exit(1) from None

    cfg = registry[key]
    table = Table(title=f"Leaf: {key}", show_header=False, show_lines=True)
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("Display Name", cfg.display_name)
    table.add_row("Identifier", cfg.identifier)
    table.add_row("API Key Env", cfg.api_key_env)
    if cfg.api_base:
        table.add_row("API Base", cfg.api_base)
    table.add_row("Max Tokens", f"{cfg.max_tokens:,}")
    table.add_row("Streaming", "yes" if cfg.supports_streaming else "no")
    table.add_row("Cost (Input)", f"${cfg.cost_input:.2f}/M tokens")
    table.add_row("Cost (Output)", f"${cfg.cost_output:.2f}/M tokens")
    table.add_row("Prior", f"{cfg.prior:.2f}")

    api_key = os.environ.get(cfg.api_key_env, "") if cfg.api_key_env else ""
    key_status = "[green]set[/green]" if api_key else "[red]not set[/red]"
    table.add_row("API Key Status", key_status)

    console.print(table)


# ── chorus config ────────────────────────────────────────────────

@config_app.command("show")
def config_show() -> None:
    """Show the effective orchestrator defaults."""
    config = _load_config()

    table = Table(title="Orchestrator Configuration", show_header=False, show_lines=True)
    table.add_column("Setting", style="bold")
    table.add_column("Value")

    retry = config.retry
    table.add_row("Default Deadline", f"{config.default_deadline}s")
    table.add_row("Leaf Timeout", f"{config.leaf_timeout}s")
    table.add_row(
        "Retry",
        f"{retry.kind.value}, delay {retry.delay}s, "
        f"{retry.max_attempts} attempt(s), jitter {retry.jitter:.0%}",
    )
    table.add_row("Specificity Cap", f"{config.scoring.specificity_cap} tokens")
    table.add_row("Inclusion Threshold", f"{config.fusion.inclusion_threshold:.2f}")
    table.add_row("Corroboration Threshold", f"{config.fusion.corroboration_threshold:.2f}")
    table.add_row("Consensus Rounds", str(config.consensus.max_rounds))
    table.add_row("Agreement Threshold", f"{config.consensus.agreement_threshold:.2f}")
    table.add_row("Min Consensus Leaves", str(config.adaptive.min_consensus_leaves))
    table.add_row(
        "Cache",
        f"{config.cache.capacity} entries, {config.cache.ttl_seconds:.0f}s TTL"
        if config.cache.enabled else "disabled",
    )

    console.print(table)
