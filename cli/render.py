from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer

_READING_FIELDS = (
    ("co", "ppm"),
    ("vocs", "ppb"),
    ("ch4_lpg", "ppm"),
    ("pm1_0", "µg/m³"),
    ("pm2_5", "µg/m³"),
    ("pm10_0", "µg/m³"),
)


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_alerts(alerts: List[Dict[str, Any]]) -> None:
    echo_heading("Alerts")
    if not alerts:
        typer.echo("No active alerts.")
        return
    for alert in alerts:
        typer.secho(
            f"  - [{alert.get('id')}] {alert.get('created_at')}: {alert.get('message')}",
            fg=typer.colors.YELLOW,
        )


def render_state(payload: Dict[str, Any]) -> None:
    echo_heading("Session")
    history = payload.get("history") or []
    echo_key_values(
        [
            ("state", payload.get("state")),
            ("loading_readings", payload.get("is_loading_readings")),
            ("loading_analysis", payload.get("is_loading_analysis")),
            ("history_entries", len(history)),
            ("last_analysis_at", payload.get("last_analysis_at")),
        ]
    )

    typer.echo()
    echo_heading("Current Reading")
    reading = payload.get("current_reading")
    if reading:
        echo_key_values(
            (name, f"{reading.get(name)} {unit}") for name, unit in _READING_FIELDS
        )
    else:
        typer.echo("Sensor offline or no data yet.")

    typer.echo()
    echo_heading("Thresholds")
    thresholds = payload.get("thresholds") or {}
    echo_key_values(
        (name, "off" if value is None else value) for name, value in thresholds.items()
    )

    typer.echo()
    render_alerts(payload.get("alerts") or [])

    typer.echo()
    echo_heading("Insight")
    insight = payload.get("derived_insight")
    if insight:
        typer.echo(insight.get("summary"))
        for recommendation in insight.get("recommendations") or []:
            typer.echo(f"  - {recommendation}")
        if insight.get("risk_level"):
            typer.echo(f"risk_level: {insight.get('risk_level')}")
        for symptom in insight.get("symptoms") or []:
            typer.echo(f"  symptom: {symptom}")
        if insight.get("forecast"):
            confidence = insight.get("forecast_confidence") or "unknown"
            typer.echo(f"forecast_24h: {insight.get('forecast')} (confidence: {confidence})")
    else:
        typer.echo("No analysis yet.")
