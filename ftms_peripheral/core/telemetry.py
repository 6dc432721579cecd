"""Per-tick telemetry policies standing in for a real trainer."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Protocol

from ftms_peripheral.core.state import TelemetrySnapshot

logger = logging.getLogger(__name__)


class TelemetryModel(Protocol):
    def advance(self, snapshot: TelemetrySnapshot) -> TelemetrySnapshot: ...


def _ramp(value: int, step: int, ceiling: int, restart: int) -> int:
    value += step
    if value > ceiling:
        return restart
    return value


@dataclass(frozen=True)
class RampTelemetry:
    """Dummy sawtooth: every value climbs by a fixed step and restarts past its ceiling."""

    cadence_step: int = 1
    cadence_ceiling: int = 120
    cadence_restart: int = 80
    power_step: int = 1
    power_ceiling: int = 400
    power_restart: int = 150
    speed_step: int = 100
    speed_ceiling: int = 3000
    speed_restart: int = 500

    def advance(self, snapshot: TelemetrySnapshot) -> TelemetrySnapshot:
        updated = replace(
            snapshot,
            cadence=_ramp(
                snapshot.cadence, self.cadence_step, self.cadence_ceiling, self.cadence_restart
            ),
            power=_ramp(snapshot.power, self.power_step, self.power_ceiling, self.power_restart),
            speed=_ramp(snapshot.speed, self.speed_step, self.speed_ceiling, self.speed_restart),
        )
        logger.debug(
            "Telemetry tick: cadence=%d rpm power=%d W speed=%.2f km/h",
            updated.cadence,
            updated.power,
            updated.speed / 100,
        )
        return updated
