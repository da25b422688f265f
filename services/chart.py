"""Projection of the history window into a renderer-neutral line series."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import tzinfo
from typing import Any, Dict, Optional, Protocol, Tuple

from models.records import Reading
from services.errors import RenderPreconditionError
from services.history import Window

DEFAULT_SURFACE_ID = "tdsGraph"
TIME_LABEL_FORMAT = "%H:%M:%S"

CHART_OPTIONS: Dict[str, Any] = {"scales": {"y": {"beginAtZero": True}}}

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChartSeries:
    """Ordered ``(time label, value)`` points of a single line dataset."""

    labels: Tuple[str, ...] = ()
    values: Tuple[float, ...] = ()
    dataset_label: str = "TDS (ppm)"
    border_color: str = "rgba(75, 192, 192, 1)"
    tension: float = 0.1

    @property
    def points(self) -> list[tuple[str, float]]:
        return list(zip(self.labels, self.values))

    def to_payload(self) -> Dict[str, Any]:
        return {
            "labels": list(self.labels),
            "datasets": [
                {
                    "label": self.dataset_label,
                    "data": list(self.values),
                    "fill": False,
                    "borderColor": self.border_color,
                    "tension": self.tension,
                }
            ],
        }


class RenderSink(Protocol):
    """Chart drawing backend."""

    def create(self, surface_id: str, data: Dict[str, Any], options: Dict[str, Any]) -> Any: ...

    def update(self, surface_id: str, data: Dict[str, Any]) -> None: ...


@dataclass
class ChartRegistry:
    """Active chart handles keyed by surface identifier."""

    _handles: Dict[str, Any] = field(default_factory=dict)

    def has(self, surface_id: str) -> bool:
        return surface_id in self._handles

    def is_empty(self) -> bool:
        return not self._handles

    def get(self, surface_id: str) -> Any:
        return self._handles.get(surface_id)

    def register(self, surface_id: str, handle: Any) -> None:
        self._handles[surface_id] = handle

    def remove(self, surface_id: str) -> None:
        self._handles.pop(surface_id, None)


def format_label(reading: Reading, tz: Optional[tzinfo] = None) -> str:
    """``HH:MM:SS`` of the reading, in ``tz`` or the local zone when omitted."""
    return reading.timestamp.astimezone(tz).strftime(TIME_LABEL_FORMAT)


def project(window: Window, tz: Optional[tzinfo] = None) -> ChartSeries:
    return ChartSeries(
        labels=tuple(format_label(reading, tz) for reading in window),
        values=tuple(reading.value for reading in window),
    )


class ChartAdapter:
    """Rebuilds the series on every history change and pushes it to the sink."""

    def __init__(
        self,
        sink: RenderSink,
        registry: Optional[ChartRegistry] = None,
        surface_id: Optional[str] = DEFAULT_SURFACE_ID,
        tz: Optional[tzinfo] = None,
    ) -> None:
        self.sink = sink
        self.registry = registry if registry is not None else ChartRegistry()
        self.surface_id = surface_id
        self.tz = tz
        self.options = copy.deepcopy(CHART_OPTIONS)

    def attach(self, surface_id: str) -> None:
        self.surface_id = surface_id

    def detach(self) -> None:
        if self.surface_id:
            self.registry.remove(self.surface_id)
        self.surface_id = None

    def render(self, window: Window) -> ChartSeries:
        """Project ``window`` and create or update the chart on the surface.

        Raises :class:`RenderPreconditionError` when no surface is attached.
        """
        surface_id = self.surface_id
        if not surface_id:
            raise RenderPreconditionError("Chart surface is not attached.")

        series = project(window, self.tz)
        payload = series.to_payload()
        if self.registry.has(surface_id):
            self.sink.update(surface_id, payload)
        else:
            handle = self.sink.create(surface_id, payload, self.options)
            self.registry.register(surface_id, handle)
            logger.info("Chart created", extra={"surface_id": surface_id})
        return series

    def on_history(self, window: Window) -> None:
        """History listener; a missing surface skips this render only."""
        try:
            self.render(window)
        except RenderPreconditionError as exc:
            logger.warning(
                "Skipping chart render",
                extra={"reason": str(exc), "window_size": len(window)},
            )
