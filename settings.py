from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


_CAPACITY_ENV = "TDS_HISTORY_CAPACITY"
_INTERVAL_ENV = "TDS_POLL_INTERVAL_MS"
_SURFACE_ENV = "TDS_SURFACE_ID"
_SCALE_ENV = "TDS_QUALITY_SCALE"
_OVERLAP_ENV = "TDS_OVERLAP_FETCHES"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_KNOWN_SCALES = ("standard", "legacy")


@dataclass(frozen=True)
class Settings:
    history_capacity: int
    poll_interval_ms: int
    surface_id: str
    quality_scale: str
    overlap_fetches: bool
    log_level: str

    @property
    def poll_interval(self) -> float:
        return self.poll_interval_ms / 1000.0


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in {"1", "true", "yes", "on"}:
        return True
    if candidate in {"0", "false", "no", "off"}:
        return False
    return default


def _read_scale(default: str) -> str:
    candidate = _read_str_env(_SCALE_ENV, default).lower()
    return candidate if candidate in _KNOWN_SCALES else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        history_capacity=_read_positive_int(_CAPACITY_ENV, 60),
        poll_interval_ms=_read_positive_int(_INTERVAL_ENV, 1000),
        surface_id=_read_str_env(_SURFACE_ENV, "tdsGraph"),
        quality_scale=_read_scale("standard"),
        overlap_fetches=_read_bool(_OVERLAP_ENV, True),
        log_level=_read_log_level("INFO"),
    )
