"""Pydantic schemas for the sensor HTTP API payloads."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List

from pydantic import BaseModel, ConfigDict, Field, RootModel

from models.records import Reading


class TdsMessage(BaseModel):
    """Single reading as returned by ``/last_message``."""

    # JSON numbers only; strings and booleans are not coerced.
    model_config = ConfigDict(strict=True)

    tds_ppm: float = Field(..., allow_inf_nan=False, description="Concentration in ppm.")
    timestamp: int = Field(..., description="Unix timestamp in seconds.")

    def to_reading(self) -> Reading:
        return Reading(
            value=self.tds_ppm,
            timestamp=datetime.fromtimestamp(self.timestamp, tz=timezone.utc),
        )


class TdsHistory(RootModel[List[TdsMessage]]):
    """Array payload returned by ``/tds_history``."""

    def to_readings(self) -> list[Reading]:
        return [message.to_reading() for message in self.root]
