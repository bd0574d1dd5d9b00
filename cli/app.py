from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import RANGES, CLIConfig, load_config
from cli.render import render_cards, render_history


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Read the sensor dashboard from the terminal.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


def _validate_range(value: Optional[str]) -> Optional[str]:
    if value is not None and value not in RANGES:
        raise typer.BadParameter(f"Expected one of: {', '.join(RANGES)}.")
    return value


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Dashboard base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Seconds between refreshes for the watch command.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="HTTP request timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(
        base_url=base_url,
        poll_interval=poll_interval,
        timeout=timeout,
    )
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("latest")
def latest_command(
    ctx: typer.Context,
    limit: Optional[int] = typer.Option(None, "--limit", "-n", min=1, help="Readings to fetch."),
) -> None:
    """Show the summary cards for the newest reading."""
    state = _get_state(ctx)
    render_cards(state.client.get_latest(limit))


@app.command("history")
def history_command(
    ctx: typer.Context,
    range_name: Optional[str] = typer.Option(
        None,
        "--range",
        "-r",
        callback=_validate_range,
        help="24h, 7d, 30d or custom (defaults to CLI_DEFAULT_RANGE or 24h).",
    ),
    start: Optional[datetime] = typer.Option(
        None, "--start", formats=["%Y-%m-%d"], help="Custom range start date."
    ),
    end: Optional[datetime] = typer.Option(
        None, "--end", formats=["%Y-%m-%d"], help="Custom range end date."
    ),
) -> None:
    """List readings and the window summary for a time range."""
    state = _get_state(ctx)
    payload = state.client.get_history(
        range_name or state.config.default_range,
        start=start.date() if start else None,
        end=end.date() if end else None,
    )
    render_history(payload)


@app.command("watch")
def watch_command(
    ctx: typer.Context,
    interval: Optional[float] = typer.Option(
        None, "--interval", "-i", help="Override the refresh interval in seconds."
    ),
    iterations: int = typer.Option(
        0, "--iterations", min=0, help="Stop after this many refreshes (0 runs until interrupted)."
    ),
    clear: bool = typer.Option(True, "--clear/--no-clear", help="Clear the screen between refreshes."),
) -> None:
    """Poll the newest reading at a fixed interval, redrawing each time."""
    state = _get_state(ctx)
    delay = interval if interval is not None else state.config.poll_interval
    count = 0
    try:
        while True:
            payload = state.client.get_latest()
            if clear:
                typer.clear()
            render_cards(payload)
            count += 1
            if iterations and count >= iterations:
                return
            time.sleep(delay)
    except KeyboardInterrupt:
        typer.echo()
