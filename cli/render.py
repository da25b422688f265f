from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

import typer

from models.records import AlarmState, DashboardStatus, Reading
from services.chart import format_label
from services.classifier import QualityClassifier
from services.errors import ActuatorError

_TAIL_POINTS = 10


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def _series_lines(data: Dict[str, Any]) -> list[str]:
    labels = data.get("labels") or []
    datasets = data.get("datasets") or [{}]
    values = datasets[0].get("data") or []
    return [f"  {label}  {value:8.1f}" for label, value in zip(labels, values)][-_TAIL_POINTS:]


class TerminalChartSink:
    """Render sink that prints the newest chart points to the terminal."""

    def create(self, surface_id: str, data: Dict[str, Any], options: Dict[str, Any]) -> str:
        echo_heading(f"Chart {surface_id} ({len(data.get('labels') or [])} points)")
        for line in _series_lines(data):
            typer.echo(line)
        return surface_id

    def update(self, surface_id: str, data: Dict[str, Any]) -> None:
        lines = _series_lines(data)
        if lines:
            typer.echo(lines[-1])


class TerminalBell:
    """Alarm actuator backed by the terminal bell."""

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self.playing = False
        self.position = 0.0

    def play(self) -> None:
        if not self.enabled:
            raise ActuatorError("Audio alarms are disabled.")
        self.playing = True
        typer.echo("\a", nl=False)

    def pause(self) -> None:
        self.playing = False

    def set_position(self, seconds: float) -> None:
        self.position = seconds


def render_status(status: DashboardStatus) -> None:
    color: Optional[str] = None
    if status.alarm_state is AlarmState.unsafe:
        color = typer.colors.RED
    typer.secho(
        f"TDS {status.display_value} | {status.band.label} | "
        f"alarm={status.alarm_state.value} | window={status.window_size}",
        fg=color,
    )


def render_history(readings: Iterable[Reading], classifier: QualityClassifier) -> None:
    echo_heading("History")
    rows = list(readings)
    if not rows:
        typer.echo("No readings available.")
        return
    for reading in rows:
        band = classifier.classify(reading.value)
        typer.echo(f"  {format_label(reading)}  {reading.value:8.1f} ppm  {band.label}")
