"""Recoverable error types raised inside the telemetry pipeline."""

from __future__ import annotations

from typing import Optional


class TelemetryError(Exception):
    """Base class for every error the dashboard pipeline recovers from."""

    def __init__(self, message: str, endpoint: Optional[str] = None) -> None:
        super().__init__(message)
        self.endpoint = endpoint


class FetchError(TelemetryError):
    """The sensor endpoint could not be reached or answered with an error status."""


class ParseError(TelemetryError):
    """The sensor endpoint answered with malformed JSON or invalid fields."""


class RenderPreconditionError(TelemetryError):
    """The drawing surface is not attached or has no identifier yet."""


class ActuatorError(TelemetryError):
    """The audio actuator failed to play, pause or rewind."""
