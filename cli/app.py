from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import Optional

import typer

from cli.config import CLIConfig, load_config
from cli.render import TerminalBell, TerminalChartSink, render_history, render_status
from logging_config import configure_logging
from models.records import Reading
from services.classifier import SCALES, QualityClassifier
from services.errors import FetchError, ParseError
from services.fetcher import TdsApiClient
from services.history import hydrate
from services.poller import build_dashboard
from settings import Settings, get_settings


@dataclass
class CLIState:
    config: CLIConfig
    settings: Settings


app = typer.Typer(
    help="Live TDS telemetry dashboard for the terminal.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Sensor API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds before a single request is abandoned.",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Logging level (defaults to LOG_LEVEL env or INFO).",
    ),
) -> None:
    """Entry point for the CLI."""
    configure_logging(log_level.upper() if log_level else None)
    config = load_config(base_url=base_url, request_timeout=timeout)
    ctx.obj = CLIState(config=config, settings=get_settings())


async def _watch(config: CLIConfig, settings: Settings, max_ticks: Optional[int], sound: bool) -> None:
    client = TdsApiClient(config.base_url, timeout=config.request_timeout)
    poller = build_dashboard(
        client,
        TerminalChartSink(),
        TerminalBell(enabled=sound),
        settings=settings,
    )
    poller.add_status_listener(render_status)
    try:
        await poller.start(max_ticks=max_ticks)
        await poller.wait()
    finally:
        await poller.stop()
        await client.aclose()


async def _fetch_history(config: CLIConfig) -> list[Reading]:
    client = TdsApiClient(config.base_url, timeout=config.request_timeout)
    try:
        return await client.fetch_history()
    finally:
        await client.aclose()


@app.command("watch")
def watch_command(
    ctx: typer.Context,
    ticks: int = typer.Option(
        0,
        "--ticks",
        min=0,
        help="Stop after this many ticks (0 polls until interrupted).",
    ),
    interval_ms: Optional[int] = typer.Option(
        None,
        "--interval-ms",
        min=1,
        help="Override the tick cadence in milliseconds.",
    ),
    sound: bool = typer.Option(
        True,
        "--sound/--no-sound",
        help="Ring the terminal bell when readings become unacceptable.",
    ),
) -> None:
    """Poll the sensor and render the live history window."""
    state = _get_state(ctx)
    settings = state.settings
    if interval_ms is not None:
        settings = replace(settings, poll_interval_ms=interval_ms)

    typer.echo(f"Polling {state.config.base_url} every {settings.poll_interval_ms} ms ...")
    try:
        asyncio.run(_watch(state.config, settings, ticks or None, sound))
    except KeyboardInterrupt:
        typer.echo("Stopped.")


@app.command("history")
def history_command(ctx: typer.Context) -> None:
    """Fetch the stored history once and classify every reading."""
    state = _get_state(ctx)
    try:
        readings = asyncio.run(_fetch_history(state.config))
    except (FetchError, ParseError) as exc:
        typer.secho(f"History unavailable: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    window = hydrate(readings, state.settings.history_capacity)
    render_history(window, QualityClassifier(SCALES[state.settings.quality_scale]))
