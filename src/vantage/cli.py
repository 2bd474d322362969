"""
CLI entry point for Vantage.

Handles command-line arguments and starts a console session.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any

import click

from vantage import __version__
from vantage.config.loader import load_config
from vantage.config.schema import VantageConfig
from vantage.core.logging import setup_logging


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="vantage")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level",
)
@click.option(
    "--speak-policy",
    "-s",
    type=click.Choice(["confirm", "auto", "text"]),
    help="When the coach may speak",
)
@click.pass_context
def main(
    ctx: click.Context,
    config: Path | None,
    log_level: str | None,
    speak_policy: str | None,
) -> None:
    """
    Vantage - voice coaching with a live Perspective State

    Run without arguments to start a talk session.
    """
    cli_overrides: dict[str, Any] = {}

    if log_level:
        cli_overrides["log_level"] = log_level

    if speak_policy:
        cli_overrides["turn"] = {"speak_policy": speak_policy}

    app_config = load_config(cli_overrides, config_file=config)
    logger = setup_logging(app_config)

    ctx.ensure_object(dict)
    ctx.obj["config"] = app_config
    ctx.obj["logger"] = logger

    if ctx.invoked_subcommand is None:
        ctx.invoke(talk)


async def run_session(config: VantageConfig) -> int:
    """Connect, run the console loop, and return an exit code."""
    from vantage.enrichment.gateway import EnrichmentGateway
    from vantage.ui.console import ConsolePresenter, ConsoleSession
    from vantage.voice.channel import RealtimeChannel
    from vantage.voice.coordinator import TurnCoordinator

    gateway = EnrichmentGateway(config.provider, config.enrichment)
    coordinator = TurnCoordinator(config, RealtimeChannel(config.provider), gateway)
    presenter = ConsolePresenter()
    presenter.attach(coordinator)

    try:
        if not await coordinator.connect():
            return 1
        await ConsoleSession(coordinator, presenter).run()
        return 0
    finally:
        await gateway.close()


@main.command()
@click.pass_context
def talk(ctx: click.Context) -> None:
    """Start an interactive session."""
    sys.exit(asyncio.run(run_session(ctx.obj["config"])))


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the resolved configuration."""
    from rich.console import Console
    from rich.table import Table

    console = Console()
    config: VantageConfig = ctx.obj["config"]

    table = Table(title="Vantage Status")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    provider = config.provider
    table.add_row("API Key", "set" if provider.api_key else "[dim]Not configured[/dim]")
    table.add_row("Base URL", provider.base_url)
    table.add_row("Bootstrap URL", provider.bootstrap_url or "[dim]provider[/dim]")
    table.add_row("Realtime Model", provider.realtime_model)
    table.add_row("Enrichment Model", provider.enrichment_model)
    table.add_row("Voice", provider.voice)
    table.add_row("Speak Policy", config.turn.speak_policy)
    table.add_row("Commit Window", f"{config.turn.commit_window_ms} ms")
    table.add_row("Reply Cooldown", f"{config.turn.reply_cooldown_ms} ms")
    table.add_row("Definition Auto-accept", str(config.definition.auto_accept))
    table.add_row("Log Level", config.log_level)

    console.print(table)


if __name__ == "__main__":
    main()
