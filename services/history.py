"""Bounded, deduplicating history window of readings."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Tuple

from models.records import Reading

DEFAULT_CAPACITY = 60

Window = Tuple[Reading, ...]
HistoryListener = Callable[[Window], None]

logger = logging.getLogger(__name__)


def append(window: Window, reading: Reading, capacity: int = DEFAULT_CAPACITY) -> Window:
    """Return a new window with ``reading`` at the tail.

    When the window is at capacity exactly one entry, the oldest, is dropped.
    """
    if len(window) >= capacity:
        window = window[len(window) - capacity + 1 :]
    return window + (reading,)


def hydrate(readings: Iterable[Reading], capacity: int = DEFAULT_CAPACITY) -> Window:
    """Build a window from a bulk history payload.

    Readings are sorted chronologically (stable), entries repeating an already
    seen timestamp are collapsed onto the first one, and only the most recent
    ``capacity`` entries are kept.
    """
    ordered = sorted(readings, key=lambda reading: reading.timestamp)
    collapsed: List[Reading] = []
    for reading in ordered:
        if collapsed and collapsed[-1].timestamp == reading.timestamp:
            continue
        collapsed.append(reading)
    return tuple(collapsed[-capacity:]) if capacity else ()


def is_refresh(window: Window, reading: Reading) -> bool:
    """True when ``reading`` repeats the timestamp of the window's tail."""
    return bool(window) and window[-1].timestamp == reading.timestamp


class HistoryBuffer:
    """Session-owned history window with explicit change notification."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._window: Window = ()
        self._listeners: List[HistoryListener] = []

    @property
    def window(self) -> Window:
        return self._window

    def __len__(self) -> int:
        return len(self._window)

    def latest(self) -> Reading | None:
        return self._window[-1] if self._window else None

    def subscribe(self, listener: HistoryListener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def replace(self, readings: Iterable[Reading]) -> None:
        self._window = hydrate(readings, self.capacity)

    def offer(self, reading: Reading) -> bool:
        """Append ``reading`` unless it only refreshes the current tail.

        Returns ``True`` when the window grew or rotated. A refresh, or a
        reading older than the tail, leaves the window untouched; the caller
        still publishes so listeners re-render.
        """
        if is_refresh(self._window, reading):
            logger.debug(
                "Refresh beat, timestamp unchanged",
                extra={"reading_ts": reading.timestamp.isoformat()},
            )
            return False
        if self._window and reading.timestamp < self._window[-1].timestamp:
            # A late response from an earlier tick; the window stays chronological.
            logger.debug(
                "Ignoring out-of-order reading",
                extra={"reading_ts": reading.timestamp.isoformat()},
            )
            return False
        self._window = append(self._window, reading, self.capacity)
        return True

    def publish(self) -> None:
        window = self._window
        for listener in list(self._listeners):
            listener(window)
