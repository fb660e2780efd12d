from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_alerts, render_state


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the air quality session coordinator.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Coordinator API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each API request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, request_timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("state")
def state_command(ctx: typer.Context) -> None:
    """Show the current reading, thresholds, alerts and insight."""
    state = _get_state(ctx)
    render_state(state.client.get_state())


@app.command("alerts")
def alerts_command(ctx: typer.Context) -> None:
    """List active alerts, newest first."""
    state = _get_state(ctx)
    render_alerts(state.client.get_alerts())


@app.command("push")
def push_command(
    ctx: typer.Context,
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="JSON file with a raw sensor payload."),
) -> None:
    """Publish a raw sensor payload (JSON object, or null for offline)."""
    state = _get_state(ctx)
    try:
        payload = json.loads(file.read_text())
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"{file} is not valid JSON: {exc}") from exc
    if payload is not None and not isinstance(payload, dict):
        raise typer.BadParameter("Payload must be a JSON object or null.")

    response = state.client.publish(payload)
    typer.secho("Payload accepted.", fg=typer.colors.GREEN)
    typer.echo()
    render_state(response.get("snapshot") or {})


@app.command("threshold")
def threshold_command(
    ctx: typer.Context,
    pollutant: str = typer.Argument(..., help="Pollutant id, e.g. pm2_5."),
    value: Optional[float] = typer.Argument(None, min=0, help="New limit in the pollutant's unit."),
    clear: bool = typer.Option(False, "--clear", help="Disable alerting for the pollutant."),
) -> None:
    """Set or clear the alert threshold for a pollutant."""
    state = _get_state(ctx)
    if value is None and not clear:
        raise typer.BadParameter("Provide a VALUE or --clear.")
    if value is not None and clear:
        raise typer.BadParameter("VALUE and --clear are mutually exclusive.")

    result = state.client.set_threshold(pollutant, None if clear else value)
    shown = "off" if result.get("value") is None else result.get("value")
    typer.secho(f"Threshold for {pollutant} set to {shown}.", fg=typer.colors.GREEN)
    if not result.get("saved"):
        typer.secho(result.get("warning") or "Threshold was not saved.", fg=typer.colors.YELLOW, err=True)


@app.command("dismiss")
def dismiss_command(
    ctx: typer.Context,
    alert_id: str = typer.Argument(..., help="Identifier shown by the alerts command."),
) -> None:
    """Dismiss an alert."""
    state = _get_state(ctx)
    state.client.dismiss_alert(alert_id)
    typer.secho(f"Alert {alert_id} dismissed.", fg=typer.colors.GREEN)
