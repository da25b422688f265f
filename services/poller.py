"""Fixed-cadence polling session that drives the telemetry pipeline."""

from __future__ import annotations

import asyncio
import logging
from datetime import tzinfo
from typing import Any, Callable, List, Optional, Protocol, Set

from models.records import DashboardStatus, QualityBand, Reading
from services.alarm import AlarmActuator, AlarmStateMachine
from services.chart import ChartAdapter, ChartRegistry, RenderSink
from services.classifier import SCALES, QualityClassifier
from services.errors import FetchError, ParseError
from services.history import HistoryBuffer
from settings import Settings, get_settings

StatusListener = Callable[[DashboardStatus], None]

DISCONNECTED_VALUE = 0.0

logger = logging.getLogger(__name__)


class ReadingSource(Protocol):
    async def fetch_latest(self) -> Reading: ...

    async def fetch_history(self) -> list[Reading]: ...


class DashboardPoller:
    """Owns one dashboard session: history, alarm and chart state.

    Each tick fetches the latest reading and then, synchronously, appends it to
    the history, classifies it, drives the alarm and publishes the history to
    the chart. When ``overlap_fetches`` is set a slow fetch does not hold back
    the next tick, so responses may land out of order and the last one to
    arrive wins the current value.
    """

    def __init__(
        self,
        source: ReadingSource,
        history: HistoryBuffer,
        classifier: QualityClassifier,
        alarm: AlarmStateMachine,
        chart: ChartAdapter,
        interval: float = 1.0,
        overlap_fetches: bool = True,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.source = source
        self.history = history
        self.classifier = classifier
        self.alarm = alarm
        self.chart = chart
        self.interval = interval
        self.overlap_fetches = overlap_fetches

        self.current: Optional[Reading] = None
        self.band: QualityBand = classifier.classify(DISCONNECTED_VALUE)
        self._status_listeners: List[StatusListener] = []
        self._ticker: Optional[asyncio.Task[None]] = None
        self._inflight: Set[asyncio.Task[Any]] = set()
        self._session: object = object()
        self._closed = False
        history.subscribe(chart.on_history)

    @property
    def running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    def add_status_listener(self, listener: StatusListener) -> None:
        self._status_listeners.append(listener)

    def status(self) -> DashboardStatus:
        return DashboardStatus(
            current=self.current,
            band=self.band,
            alarm_state=self.alarm.state,
            window_size=len(self.history),
        )

    async def hydrate(self) -> None:
        """Replace the window with the bulk history, or leave it as is on failure.

        Readings appended by ticks that landed while the history request was in
        flight are offered again on top of the hydrated window.
        """
        session = self._session
        try:
            readings = await self.source.fetch_history()
        except (FetchError, ParseError) as exc:
            logger.warning(
                "History fetch failed",
                extra={"reason": str(exc), "endpoint": exc.endpoint},
            )
            return
        if self._is_stale(session):
            logger.debug("Discarding history received after stop")
            return
        landed = self.history.window
        self.history.replace(readings)
        for reading in landed:
            self.history.offer(reading)
        logger.info("History hydrated", extra={"window_size": len(self.history)})
        self.history.publish()

    async def tick(self) -> Optional[DashboardStatus]:
        """Fetch the latest reading and push it through the pipeline.

        Returns ``None`` when the session was stopped while the fetch was in
        flight; nothing is mutated in that case.
        """
        session = self._session
        reading: Optional[Reading]
        try:
            reading = await self.source.fetch_latest()
        except (FetchError, ParseError) as exc:
            logger.warning(
                "Latest reading unavailable",
                extra={"reason": str(exc), "endpoint": exc.endpoint},
            )
            reading = None
        if self._is_stale(session):
            logger.debug("Discarding reading received after stop")
            return None
        return self._apply(reading)

    async def start(self, max_ticks: Optional[int] = None) -> None:
        """Request the bulk history and begin ticking in the background."""
        if self.running:
            raise RuntimeError("Polling session is already running.")
        self._closed = False
        self._session = object()
        self._ticker = asyncio.create_task(self._run(max_ticks))

    async def wait(self) -> None:
        if self._ticker is not None:
            await asyncio.shield(self._ticker)

    async def stop(self) -> None:
        """Stop ticking; results of fetches still in flight are discarded."""
        self._closed = True
        self._session = object()
        tasks = [task for task in (self._ticker, *self._inflight) if task is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._ticker = None
        self._inflight.clear()

    async def _run(self, max_ticks: Optional[int]) -> None:
        self._track(asyncio.create_task(self.hydrate()))
        count = 0
        while not self._closed and (max_ticks is None or count < max_ticks):
            task = self._spawn_tick()
            count += 1
            if not self.overlap_fetches:
                await asyncio.wait({task})
            if max_ticks is not None and count >= max_ticks:
                break
            await asyncio.sleep(self.interval)
        if self._inflight:
            await asyncio.wait(set(self._inflight))

    def _spawn_tick(self) -> asyncio.Task[Optional[DashboardStatus]]:
        return self._track(asyncio.create_task(self.tick()))

    def _track(self, task: asyncio.Task[Any]) -> asyncio.Task[Any]:
        self._inflight.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Pipeline task failed", exc_info=exc)

    def _is_stale(self, session: object) -> bool:
        return self._closed or session is not self._session

    def _apply(self, reading: Optional[Reading]) -> DashboardStatus:
        self.current = reading
        if reading is not None:
            self.history.offer(reading)

        value = reading.value if reading is not None else DISCONNECTED_VALUE
        self.band = self.classifier.classify(value)
        self.alarm.transition(self.band)
        logger.debug(
            "Tick classified",
            extra={
                "value": value,
                "level": self.band.level.value,
                "alarm_state": self.alarm.state.value,
                "window_size": len(self.history),
            },
        )

        if reading is not None:
            self.history.publish()

        status = self.status()
        for listener in list(self._status_listeners):
            listener(status)
        return status


def build_dashboard(
    source: ReadingSource,
    sink: RenderSink,
    actuator: AlarmActuator,
    settings: Optional[Settings] = None,
    registry: Optional[ChartRegistry] = None,
    tz: Optional[tzinfo] = None,
) -> DashboardPoller:
    """Factory that wires a poller from settings."""
    settings = settings or get_settings()
    history = HistoryBuffer(capacity=settings.history_capacity)
    classifier = QualityClassifier(SCALES[settings.quality_scale])
    alarm = AlarmStateMachine(actuator)
    chart = ChartAdapter(sink, registry=registry, surface_id=settings.surface_id, tz=tz)
    return DashboardPoller(
        source=source,
        history=history,
        classifier=classifier,
        alarm=alarm,
        chart=chart,
        interval=settings.poll_interval,
        overlap_fetches=settings.overlap_fetches,
    )
