import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

from models.records import AlarmState, QualityLevel, Reading
from services.alarm import AlarmStateMachine
from services.chart import ChartAdapter, ChartRegistry
from services.classifier import QualityClassifier
from services.errors import FetchError, ParseError
from services.history import HistoryBuffer
from services.poller import DashboardPoller, build_dashboard
from settings import Settings

_EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)

Outcome = Union[Reading, Exception]


def _reading(second: int, value: float) -> Reading:
    return Reading(value=value, timestamp=_EPOCH + timedelta(seconds=second))


class ScriptedSource:
    """Returns queued outcomes; the last one repeats once the queue drains."""

    def __init__(
        self,
        latest: Sequence[Outcome] = (),
        history: Union[List[Reading], Exception, None] = None,
        delays: Sequence[float] = (),
    ) -> None:
        self._latest = list(latest)
        self._history = history if history is not None else []
        self._delays = list(delays)
        self.latest_calls = 0

    async def fetch_latest(self) -> Reading:
        index = min(self.latest_calls, len(self._latest) - 1)
        delay = self._delays[self.latest_calls] if self.latest_calls < len(self._delays) else 0.0
        self.latest_calls += 1
        if delay:
            await asyncio.sleep(delay)
        outcome = self._latest[index] if self._latest else FetchError("offline")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def fetch_history(self) -> List[Reading]:
        if isinstance(self._history, Exception):
            raise self._history
        return list(self._history)


class GatedSource:
    def __init__(self, reading: Reading) -> None:
        self.gate = asyncio.Event()
        self.reading = reading

    async def fetch_latest(self) -> Reading:
        await self.gate.wait()
        return self.reading

    async def fetch_history(self) -> List[Reading]:
        await self.gate.wait()
        return [self.reading]


class BlockingLatestSource:
    """History resolves at once; the latest-reading fetch never completes."""

    def __init__(self, reading: Reading) -> None:
        self.reading = reading
        self.latest_started = False

    async def fetch_latest(self) -> Reading:
        self.latest_started = True
        await asyncio.Event().wait()
        return self.reading

    async def fetch_history(self) -> List[Reading]:
        return [_reading(0, 10.0)]


class SlowHistorySource(ScriptedSource):
    """Bulk history resolves only after ``history_delay`` seconds."""

    def __init__(self, history_delay: float, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.history_delay = history_delay
        self.latest_started_at: List[float] = []

    async def fetch_latest(self) -> Reading:
        self.latest_started_at.append(asyncio.get_running_loop().time())
        return await super().fetch_latest()

    async def fetch_history(self) -> List[Reading]:
        await asyncio.sleep(self.history_delay)
        return await super().fetch_history()


class EventLog:
    def __init__(self) -> None:
        self.events: List[tuple] = []


class RecordingSink:
    def __init__(self, log: EventLog) -> None:
        self.log = log

    def create(self, surface_id: str, data: Dict[str, Any], options: Dict[str, Any]) -> str:
        self.log.events.append(("create", tuple(data["datasets"][0]["data"])))
        return surface_id

    def update(self, surface_id: str, data: Dict[str, Any]) -> None:
        self.log.events.append(("update", tuple(data["datasets"][0]["data"])))


class RecordingActuator:
    def __init__(self, log: EventLog) -> None:
        self.log = log

    def play(self) -> None:
        self.log.events.append(("play",))

    def pause(self) -> None:
        self.log.events.append(("pause",))

    def set_position(self, seconds: float) -> None:
        self.log.events.append(("set_position", seconds))


def _poller(
    source: Any,
    log: Optional[EventLog] = None,
    interval: float = 0.01,
    overlap_fetches: bool = True,
    surface_id: Optional[str] = "tdsGraph",
) -> DashboardPoller:
    log = log or EventLog()
    return DashboardPoller(
        source=source,
        history=HistoryBuffer(capacity=60),
        classifier=QualityClassifier(),
        alarm=AlarmStateMachine(RecordingActuator(log)),
        chart=ChartAdapter(RecordingSink(log), registry=ChartRegistry(), surface_id=surface_id, tz=timezone.utc),
        interval=interval,
        overlap_fetches=overlap_fetches,
    )


def test_hydrated_unacceptable_reading_raises_alarm() -> None:
    history = [_reading(1, 100.0), _reading(2, 500.0), _reading(3, 1300.0)]
    log = EventLog()
    poller = _poller(ScriptedSource(latest=[history[-1]], history=history), log)

    async def scenario():
        await poller.hydrate()
        return await poller.tick()

    status = asyncio.run(scenario())

    assert [reading.value for reading in poller.history.window] == [100.0, 500.0, 1300.0]
    assert status.band.level is QualityLevel.unacceptable
    assert status.alarm_state is AlarmState.unsafe
    assert log.events.count(("play",)) == 1
    assert log.events[0] == ("create", (100.0, 500.0, 1300.0))
    assert log.events[-1] == ("update", (100.0, 500.0, 1300.0))


def test_tick_orders_append_alarm_then_render() -> None:
    log = EventLog()
    poller = _poller(ScriptedSource(latest=[_reading(1, 1250.0)]), log)

    asyncio.run(poller.tick())

    assert log.events == [("play",), ("create", (1250.0,))]


def test_failed_fetches_clear_current_value() -> None:
    log = EventLog()
    source = ScriptedSource(
        latest=[_reading(1, 450.0), FetchError("timeout"), ParseError("bad json")],
    )
    poller = _poller(source, log)
    statuses = []
    poller.add_status_listener(statuses.append)

    async def scenario():
        for _ in range(3):
            await poller.tick()

    asyncio.run(scenario())

    assert len(poller.history) == 1
    assert poller.current is None
    assert [status.band.level for status in statuses] == [
        QualityLevel.good,
        QualityLevel.disconnected,
        QualityLevel.disconnected,
    ]
    assert statuses[-1].display_value == "0.0 ppm"
    assert statuses[-1].alarm_state is AlarmState.safe
    renders = [event for event in log.events if event[0] in {"create", "update"}]
    assert renders == [("create", (450.0,))]


def test_history_failure_leaves_window_empty(caplog) -> None:
    poller = _poller(ScriptedSource(history=FetchError("down", endpoint="/tds_history")))

    with caplog.at_level(logging.WARNING):
        asyncio.run(poller.hydrate())

    assert len(poller.history) == 0
    records = [r for r in caplog.records if r.name == "services.poller"]
    assert any(getattr(r, "endpoint", None) == "/tds_history" for r in records)


def test_repeated_timestamp_refreshes_without_growth() -> None:
    log = EventLog()
    poller = _poller(ScriptedSource(latest=[_reading(7, 200.0)]), log)

    async def scenario():
        await poller.tick()
        await poller.tick()

    asyncio.run(scenario())

    assert len(poller.history) == 1
    assert [event for event in log.events if event[0] in {"create", "update"}] == [
        ("create", (200.0,)),
        ("update", (200.0,)),
    ]


def test_missing_surface_skips_render_without_failing() -> None:
    log = EventLog()
    poller = _poller(ScriptedSource(latest=[_reading(1, 100.0)]), log, surface_id=None)

    status = asyncio.run(poller.tick())

    assert status is not None
    assert status.window_size == 1
    assert not [event for event in log.events if event[0] in {"create", "update"}]


def test_result_arriving_after_stop_is_ignored() -> None:
    log = EventLog()

    async def scenario():
        source = GatedSource(_reading(1, 1500.0))
        poller = _poller(source, log)
        pending = asyncio.create_task(poller.tick())
        await asyncio.sleep(0)
        await poller.stop()
        source.gate.set()
        return poller, await pending

    poller, result = asyncio.run(scenario())

    assert result is None
    assert len(poller.history) == 0
    assert poller.current is None
    assert log.events == []


def test_start_runs_requested_ticks() -> None:
    readings = [_reading(second, 100.0 + second) for second in range(10, 13)]
    source = ScriptedSource(latest=readings, history=[_reading(1, 50.0)])
    poller = _poller(source)
    statuses = []
    poller.add_status_listener(statuses.append)

    async def scenario():
        await poller.start(max_ticks=3)
        await poller.wait()
        await poller.stop()

    asyncio.run(scenario())

    assert source.latest_calls == 3
    assert len(statuses) == 3
    assert [reading.value for reading in poller.history.window] == [50.0, 110.0, 111.0, 112.0]
    assert not poller.running


def test_slow_history_does_not_delay_first_tick() -> None:
    readings = [_reading(second, 100.0 + second) for second in range(10, 13)]
    source = SlowHistorySource(
        history_delay=0.5,
        latest=readings,
        history=[_reading(1, 50.0), _reading(2, 60.0)],
    )
    poller = _poller(source, interval=0.01)

    async def scenario():
        started_at = asyncio.get_running_loop().time()
        await poller.start(max_ticks=3)
        await poller.wait()
        await poller.stop()
        return started_at

    started_at = asyncio.run(scenario())

    assert source.latest_started_at[0] - started_at < 0.1
    assert [reading.value for reading in poller.history.window] == [50.0, 60.0, 110.0, 111.0, 112.0]


def test_stop_cancels_pending_history_fetch() -> None:
    source = SlowHistorySource(history_delay=10.0, latest=[_reading(5, 200.0)], history=[_reading(1, 50.0)])
    poller = _poller(source, interval=10.0)

    async def scenario():
        await poller.start()
        while not source.latest_calls:
            await asyncio.sleep(0.001)
        await asyncio.sleep(0.01)
        await poller.stop()

    asyncio.run(scenario())

    assert not poller.running
    assert poller.history.window == (_reading(5, 200.0),)


def test_stop_cancels_inflight_fetch() -> None:
    log = EventLog()

    async def scenario():
        source = BlockingLatestSource(_reading(1, 1500.0))
        poller = _poller(source, log, interval=10.0)
        await poller.start()
        while not source.latest_started:
            await asyncio.sleep(0.001)
        await poller.stop()
        return poller

    poller = asyncio.run(scenario())

    assert not poller.running
    assert poller.history.window == (_reading(0, 10.0),)
    assert ("play",) not in log.events


def test_overlapping_fetches_last_response_wins() -> None:
    slow = _reading(1, 1300.0)
    fast = _reading(2, 200.0)
    source = ScriptedSource(latest=[slow, fast], delays=[0.05, 0.0])
    poller = _poller(source, interval=0.001, overlap_fetches=True)

    async def scenario():
        await poller.start(max_ticks=2)
        await poller.wait()
        await poller.stop()

    asyncio.run(scenario())

    assert poller.current == slow
    assert poller.history.window == (fast,)


def test_sequenced_fetches_apply_in_order() -> None:
    slow = _reading(1, 1300.0)
    fast = _reading(2, 200.0)
    source = ScriptedSource(latest=[slow, fast], delays=[0.05, 0.0])
    poller = _poller(source, interval=0.001, overlap_fetches=False)

    async def scenario():
        await poller.start(max_ticks=2)
        await poller.wait()
        await poller.stop()

    asyncio.run(scenario())

    assert poller.current == fast
    assert poller.history.window == (slow, fast)
    assert poller.alarm.state is AlarmState.safe


def test_build_dashboard_uses_settings() -> None:
    settings = Settings(
        history_capacity=5,
        poll_interval_ms=250,
        surface_id="canvas-1",
        quality_scale="legacy",
        overlap_fetches=False,
        log_level="INFO",
    )
    log = EventLog()

    poller = build_dashboard(
        ScriptedSource(),
        RecordingSink(log),
        RecordingActuator(log),
        settings=settings,
    )

    assert poller.history.capacity == 5
    assert poller.interval == 0.25
    assert poller.chart.surface_id == "canvas-1"
    assert poller.classifier.scale.name == "legacy"
    assert poller.overlap_fetches is False
