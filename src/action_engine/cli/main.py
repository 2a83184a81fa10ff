"""CLI entrypoints for the action engine."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from action_engine.app import AppConfigError, initialize_config, replay_events
from action_engine.events import EventParseError
from action_engine.util.logging import configure_logging

app = typer.Typer(help="Execute streamed model actions against a sandbox.")


@app.callback()
def main(
    ctx: typer.Context,
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Logging level (e.g., DEBUG, INFO, WARNING). Overrides the config file.",
    ),
) -> None:
    """Configure CLI-level options."""

    configure_logging(log_level or "INFO")
    ctx.obj = {"log_level": log_level}


@app.command()
def init(workspace: Path = typer.Argument(Path("."))) -> None:
    """Initialize configuration for a sandbox workspace."""

    try:
        config_path = initialize_config(workspace)
    except AppConfigError as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1) from exc
    typer.echo(f"Created configuration at {config_path}")


@app.command("replay")
def replay_command(
    ctx: typer.Context,
    events: Path = typer.Argument(..., help="JSON Lines file of parser events."),
    workspace: Path = typer.Option(
        Path("."),
        "--workspace",
        "-w",
        help="Host directory backing the sandbox workdir.",
    ),
    sandbox_mode: Optional[str] = typer.Option(
        None,
        "--sandbox",
        help="Sandbox mode override: local|docker",
    ),
) -> None:
    """Replay parser events and report the final state of every action."""

    try:
        summary = replay_events(
            events,
            workspace=workspace,
            sandbox_mode=sandbox_mode,
            log_level=(ctx.obj or {}).get("log_level"),
        )
    except (AppConfigError, EventParseError, OSError) as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1) from exc

    for action in summary.actions:
        line = f"[{action.artifact_id}/{action.action_id}] {action.status.value}: {action.description}"
        if action.error:
            line = f"{line} ({action.error})"
        typer.echo(line)
    for error in summary.protocol_errors:
        typer.echo(f"Rejected event: {error}")

    counts = ", ".join(f"{status}={count}" for status, count in sorted(summary.status_counts().items()))
    typer.echo(f"Replayed {len(summary.actions)} actions ({counts or 'none'}).")
    if summary.failed or summary.protocol_errors:
        raise typer.Exit(code=1)
