"""Command line entry points for running and configuring the sync engine."""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from .config import ConfigurationError, ConfigurationManager, SyncConfig
from .simulation import build_simulation, run_simulation

console = Console()
cli = typer.Typer(help="Event counter sync tools")
config_app = typer.Typer(help="Manage sync configuration")
cli.add_typer(config_app, name="config")


class OutputFormat(str, Enum):
    TABLE = "table"
    JSON = "json"


def _load_config(config_path: Optional[Path]) -> SyncConfig:
    try:
        return ConfigurationManager(config_path).load()
    except ConfigurationError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=2)


@cli.command("run")
def run(
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML configuration file"),
    max_events: Optional[int] = typer.Option(None, help="Events fired per name"),
    threshold: Optional[int] = typer.Option(None, help="Pending count per name that forces a drain"),
    interval: Optional[float] = typer.Option(None, help="Flush interval in seconds"),
    failure_rate: Optional[float] = typer.Option(None, help="Probability a repository commit fails"),
    seed: Optional[int] = typer.Option(None, help="Random seed"),
    format_output: OutputFormat = typer.Option(
        OutputFormat.TABLE, "--format", case_sensitive=False, help="Output format"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Fire events, sync them to the delayed repository and report convergence."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    config = _load_config(config_path)
    try:
        if max_events is not None:
            config.simulation.max_events = max_events
        if threshold is not None:
            config.engine.buffer_threshold = threshold
        if interval is not None:
            config.engine.flush_interval_seconds = interval
        if failure_rate is not None:
            config.repository.failure_rate = failure_rate
        if seed is not None:
            config.simulation.seed = seed
        config = SyncConfig.model_validate(config.model_dump())
    except ValueError as exc:
        console.print(f"[red]Invalid option: {exc}[/red]")
        raise typer.Exit(code=2)

    simulation = build_simulation(config)
    report = asyncio.run(
        run_simulation(
            config,
            simulation=simulation,
            console=console if format_output is OutputFormat.TABLE else None,
        )
    )

    if format_output is OutputFormat.JSON:
        payload = report.to_dict()
        payload["telemetry"] = simulation.engine.telemetry.summary()
        typer.echo(json.dumps(payload, indent=2))
    elif report.converged:
        console.print("[green]Counters converged[/green]")
    else:
        console.print("[red]Counters did not converge[/red]")

    if not report.converged:
        raise typer.Exit(code=1)


@config_app.command("show")
def show_config(
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML configuration file"),
) -> None:
    """Display the effective configuration."""
    config = _load_config(config_path)
    typer.echo(json.dumps(config.model_dump(mode="json"), indent=2))


@config_app.command("init")
def init_config(
    config_path: Path = typer.Argument(..., help="Where to write the default configuration"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
) -> None:
    """Write a configuration file with default values."""
    if config_path.exists() and not force:
        console.print(f"[red]{config_path} already exists (use --force to overwrite)[/red]")
        raise typer.Exit(code=1)
    ConfigurationManager(config_path).save(SyncConfig())
    typer.echo(f"Configuration written to {config_path}")


@config_app.command("validate")
def validate_config(
    config_path: Path = typer.Argument(..., help="YAML configuration file"),
) -> None:
    """Validate a configuration file."""
    errors = ConfigurationManager(config_path).validate()
    if errors:
        for error in errors:
            console.print(f"[red]✗[/red] {error}")
        raise typer.Exit(code=1)
    console.print("[green]✓[/green] Configuration is valid")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
