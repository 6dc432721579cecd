"""Runtime configuration for the emulated trainer."""

from __future__ import annotations

from dataclasses import dataclass

from ftms_peripheral.core.state import Capability, DeviceIdentity

RangeSpec = tuple[int, int, int]

DEFAULT_POWER_RANGE: RangeSpec = (0, 1400, 1)
DEFAULT_RESISTANCE_RANGE: RangeSpec = (0, 70, 1)


def _validate_range(name: str, value: RangeSpec) -> None:
    if len(value) != 3:
        raise ValueError(f"{name} must be (min, max, step)")
    minimum, maximum, step = value
    if not (-0x8000 <= minimum <= maximum <= 0x7FFF):
        raise ValueError(f"{name} bounds must satisfy -32768 <= min <= max <= 32767")
    if not 0 < step <= 0xFFFF:
        raise ValueError(f"{name} step must be in 1..65535")


@dataclass(frozen=True)
class PeripheralConfig:
    device_id: int
    controllable: bool = True
    tick_interval: float = 1.0
    power_range: RangeSpec = DEFAULT_POWER_RANGE
    resistance_range: RangeSpec = DEFAULT_RESISTANCE_RANGE
    # Off by default: any central may issue any command after connecting.
    require_control: bool = False

    def __post_init__(self) -> None:
        if not 0 <= self.device_id <= 0xFFFF:
            raise ValueError("device_id must be in 0..65535")
        if self.tick_interval <= 0:
            raise ValueError("tick_interval must be positive")
        _validate_range("power_range", self.power_range)
        _validate_range("resistance_range", self.resistance_range)

    @property
    def identity(self) -> DeviceIdentity:
        return DeviceIdentity(self.device_id)

    @property
    def capability(self) -> Capability:
        return Capability(controllable=self.controllable)
