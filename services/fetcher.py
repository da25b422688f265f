"""HTTP client for the sensor reading endpoints."""

from __future__ import annotations

from typing import Optional

import httpx
from pydantic import ValidationError

from models.records import Reading
from models.schemas import TdsHistory, TdsMessage
from services.errors import FetchError, ParseError

LATEST_PATH = "/last_message"
HISTORY_PATH = "/tds_history"


class TdsApiClient:
    """Async client returning parsed readings or raising pipeline errors."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout, transport=transport
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_latest(self) -> Reading:
        payload = await self._get_json(LATEST_PATH)
        try:
            return TdsMessage.model_validate(payload).to_reading()
        except (ValidationError, ValueError, OverflowError, OSError) as exc:
            raise ParseError(f"Invalid reading: {exc}", endpoint=LATEST_PATH) from exc

    async def fetch_history(self) -> list[Reading]:
        payload = await self._get_json(HISTORY_PATH)
        try:
            return TdsHistory.model_validate(payload).to_readings()
        except (ValidationError, ValueError, OverflowError, OSError) as exc:
            raise ParseError(f"Invalid history: {exc}", endpoint=HISTORY_PATH) from exc

    async def _get_json(self, path: str) -> object:
        try:
            response = await self._client.get(path)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FetchError(
                f"Server answered with status {exc.response.status_code}", endpoint=path
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"Request failed: {exc!r}", endpoint=path) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise ParseError("Malformed JSON body", endpoint=path) from exc
