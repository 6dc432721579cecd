"""State carried by the FTMS peripheral engine."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


@dataclass(frozen=True)
class DeviceIdentity:
    device_id: int

    @property
    def local_name(self) -> str:
        # Short name keeps the advertisement within its byte budget.
        return f"M {self.device_id}"


@dataclass(frozen=True)
class Capability:
    controllable: bool


@dataclass(frozen=True)
class TelemetrySnapshot:
    heart_rate: int = 0
    power: int = 150  # W
    cadence: int = 80  # rpm
    speed: int = 500  # 0.01 km/h


@dataclass(frozen=True)
class SimulationParameters:
    wind_speed: int = 0  # 0.001 m/s
    grade: int = 0  # 0.01 %
    rolling_resistance: int = 0  # 0.0001
    wind_resistance: int = 0  # 0.01 kg/m


@dataclass(frozen=True)
class TargetState:
    """Setpoints accepted from the central, read by the trainer side on each tick."""

    has_control: bool = False
    running: bool = False
    target_power: int | None = None
    target_resistance_level: int | None = None
    simulation: SimulationParameters | None = None


class SessionState(enum.Enum):
    ADVERTISING = "advertising"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class EngineState:
    session: SessionState = SessionState.DISCONNECTED
    telemetry: TelemetrySnapshot = field(default_factory=TelemetrySnapshot)
    targets: TargetState = field(default_factory=TargetState)
    central: str | None = None
