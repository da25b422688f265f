"""Two-state alarm driven by quality classifications."""

from __future__ import annotations

import logging
from typing import Callable, Protocol

from models.records import AlarmState, QualityBand, QualityLevel
from services.errors import ActuatorError

logger = logging.getLogger(__name__)


class AlarmActuator(Protocol):
    """Audio output used to sound the alarm.

    Implementations raise :class:`ActuatorError` when the device refuses an
    operation.
    """

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def set_position(self, seconds: float) -> None: ...


def next_state(band: QualityBand) -> AlarmState:
    if band.level is QualityLevel.unacceptable:
        return AlarmState.unsafe
    return AlarmState.safe


class AlarmStateMachine:
    """Tracks the alarm state and drives the actuator on each classification.

    Entering ``unsafe`` plays the alarm once; staying ``unsafe`` does nothing.
    Every ``safe`` classification pauses the actuator and rewinds it.
    """

    def __init__(self, actuator: AlarmActuator) -> None:
        self.actuator = actuator
        self.state = AlarmState.safe

    def transition(self, band: QualityBand) -> AlarmState:
        previous = self.state
        self.state = next_state(band)

        if self.state is AlarmState.unsafe:
            if previous is not AlarmState.unsafe:
                logger.warning(
                    "Alarm raised",
                    extra={"level": band.level.value, "alarm_state": self.state.value},
                )
                self._invoke("play", self.actuator.play)
        else:
            if previous is AlarmState.unsafe:
                logger.info(
                    "Alarm cleared",
                    extra={"level": band.level.value, "alarm_state": self.state.value},
                )
            self._invoke("pause", self.actuator.pause)
            self._invoke("set_position", lambda: self.actuator.set_position(0))
        return self.state

    @staticmethod
    def _invoke(operation: str, action: Callable[[], None]) -> None:
        try:
            action()
        except ActuatorError as exc:
            logger.warning(
                "Alarm actuator %s failed",
                operation,
                extra={"reason": str(exc)},
            )
