"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


@dataclass(frozen=True, slots=True)
class Reading:
    """A single TDS reading reported by the sensor endpoint."""

    value: float
    timestamp: datetime


class QualityLevel(str, Enum):
    """Water quality classifications derived from a TDS value."""

    disconnected = "disconnected"
    excellent = "excellent"
    good = "good"
    acceptable = "acceptable"
    poor = "poor"
    unacceptable = "unacceptable"
    invalid = "invalid"


@dataclass(frozen=True, slots=True)
class QualityBand:
    level: QualityLevel
    label: str
    color: str


class AlarmState(str, Enum):
    safe = "safe"
    unsafe = "unsafe"


@dataclass(frozen=True)
class DashboardStatus:
    """Snapshot of what the dashboard cards display after a tick."""

    current: Optional[Reading]
    band: QualityBand
    alarm_state: AlarmState
    window_size: int

    @property
    def display_value(self) -> str:
        value = self.current.value if self.current is not None else 0.0
        return f"{value:.1f} ppm"
