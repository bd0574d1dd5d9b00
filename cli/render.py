from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _format_ms(timestamp_ms: Optional[int]) -> str:
    if timestamp_ms is None:
        return "-"
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m-%d %H:%M:%SZ")


def _format_number(value: Optional[float], decimals: int) -> str:
    return "-" if value is None else f"{value:.{decimals}f}"


def render_cards(payload: Dict[str, Any]) -> None:
    echo_heading("Latest Reading")
    if payload.get("stale"):
        typer.secho("Live data is unavailable; values may be out of date.", fg=typer.colors.YELLOW)
    cards = payload.get("cards") or []
    if not cards:
        typer.echo("No readings available.")
        return
    echo_key_values((card.get("label"), f"{card.get('value')} {card.get('unit')}") for card in cards)
    if payload.get("last_update"):
        typer.echo(f"Last update: {payload['last_update']}")


def render_history(payload: Dict[str, Any]) -> None:
    range_info = payload.get("range") or {}
    window = range_info.get("window") or {}
    echo_heading(f"Readings ({range_info.get('selector')})")
    echo_key_values(
        [
            ("window_start", window.get("start")),
            ("window_end", window.get("end")),
        ]
    )

    summary = payload.get("summary") or {}
    typer.echo()
    echo_heading("Summary")
    echo_key_values(
        [
            ("reading_count", summary.get("reading_count")),
            ("min_flow_rate", _format_number(summary.get("min_flow_rate"), 3)),
            ("max_flow_rate", _format_number(summary.get("max_flow_rate"), 3)),
            ("mean_flow_rate", _format_number(summary.get("mean_flow_rate"), 3)),
            ("consumed_volume", _format_number(summary.get("consumed_volume"), 1)),
        ]
    )

    readings = payload.get("readings") or []
    typer.echo()
    echo_heading("Readings")
    if not readings:
        typer.echo("No readings in this range.")
        return
    variant = payload.get("variant")
    for reading in readings:
        stamp = _format_ms(reading.get("timestamp_ms"))
        if variant == "multichannel":
            typer.echo(
                f"  - {stamp}  current={_format_number(reading.get('current'), 2)} A"
                f"  pressure={_format_number(reading.get('pressure'), 2)} bar"
                f"  temperature={_format_number(reading.get('temperature'), 1)} °C"
            )
        else:
            typer.echo(
                f"  - {stamp}  flow={_format_number(reading.get('flow_rate'), 3)} L/min"
                f"  delta={_format_number(reading.get('delta_volume'), 1)} mL"
                f"  total={_format_number(reading.get('total_volume'), 1)} mL"
            )
