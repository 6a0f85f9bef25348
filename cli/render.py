from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _format_value(value: Any) -> str:
    return "n/a" if value is None else str(value)


def render_ingest(payload: Dict[str, Any]) -> None:
    if payload.get("rain_detected"):
        typer.secho("Rain episode started; subscribers are being notified.", fg=typer.colors.BLUE)
    else:
        typer.echo("Reading stored; no new rain episode.")


def render_readings(readings: List[Dict[str, Any]]) -> None:
    echo_heading(f"Readings ({len(readings)})")
    if not readings:
        typer.echo("No readings recorded.")
        return
    for reading in readings:
        marker = " [episode start]" if reading.get("rain_detected") else ""
        typer.echo(
            f"  - {reading.get('timestamp')} {reading.get('device_id')}: "
            f"temperature={_format_value(reading.get('temperature'))} "
            f"humidity={_format_value(reading.get('humidity'))}{marker}"
        )


def render_stats(payload: Dict[str, Any]) -> None:
    echo_heading("Rain Statistics")
    echo_key_values([("total_rain", payload.get("total_rain"))])
    details = payload.get("details") or []
    typer.echo()
    echo_heading("Episode starts")
    if details:
        for reading in details:
            typer.echo(
                f"  - {reading.get('timestamp')} {reading.get('device_id')}"
                f" (alert_sent={reading.get('alert_sent')})"
            )
    else:
        typer.echo("No rain episodes in the window.")
