"""Fitness Machine Control Point commands, one type per opcode."""

from __future__ import annotations

import struct
from dataclasses import astuple, dataclass
from typing import ClassVar, Union

from ftms_peripheral.ble.constants import ControlOpcode


@dataclass(frozen=True)
class _Command:
    OPCODE: ClassVar[ControlOpcode]
    # struct layout of the payload that follows the opcode byte
    FORMAT: ClassVar[str] = "<"

    @classmethod
    def payload_size(cls) -> int:
        return struct.calcsize(cls.FORMAT)

    @classmethod
    def from_payload(cls, payload: bytes) -> "_Command":
        return cls(*struct.unpack_from(cls.FORMAT, payload, 0))

    def to_payload(self) -> bytes:
        return struct.pack(self.FORMAT, *astuple(self))


@dataclass(frozen=True)
class RequestControl(_Command):
    OPCODE = ControlOpcode.REQUEST_CONTROL


@dataclass(frozen=True)
class Reset(_Command):
    OPCODE = ControlOpcode.RESET


@dataclass(frozen=True)
class SetTargetSpeed(_Command):
    OPCODE = ControlOpcode.SET_TARGET_SPEED
    FORMAT = "<H"

    speed: int  # 0.01 km/h


@dataclass(frozen=True)
class SetTargetInclination(_Command):
    OPCODE = ControlOpcode.SET_TARGET_INCLINATION
    FORMAT = "<h"

    inclination: int  # 0.1 %


@dataclass(frozen=True)
class SetTargetResistanceLevel(_Command):
    OPCODE = ControlOpcode.SET_TARGET_RESISTANCE_LEVEL
    FORMAT = "<b"

    level: int


@dataclass(frozen=True)
class SetTargetPower(_Command):
    OPCODE = ControlOpcode.SET_TARGET_POWER
    FORMAT = "<h"

    power: int  # W


@dataclass(frozen=True)
class SetTargetHeartRate(_Command):
    OPCODE = ControlOpcode.SET_TARGET_HEART_RATE
    FORMAT = "<B"

    heart_rate: int


@dataclass(frozen=True)
class StartResume(_Command):
    OPCODE = ControlOpcode.START_RESUME


@dataclass(frozen=True)
class StopPause(_Command):
    OPCODE = ControlOpcode.STOP_PAUSE
    FORMAT = "<B"

    STOP: ClassVar[int] = 0x01
    PAUSE: ClassVar[int] = 0x02

    parameter: int


@dataclass(frozen=True)
class SetTargetedExpendedEnergy(_Command):
    OPCODE = ControlOpcode.SET_TARGETED_EXPENDED_ENERGY
    FORMAT = "<H"

    energy: int


@dataclass(frozen=True)
class SetTargetedSteps(_Command):
    OPCODE = ControlOpcode.SET_TARGETED_STEPS
    FORMAT = "<H"

    steps: int


@dataclass(frozen=True)
class SetTargetedStrides(_Command):
    OPCODE = ControlOpcode.SET_TARGETED_STRIDES
    FORMAT = "<H"

    strides: int


@dataclass(frozen=True)
class SetTargetedDistance(_Command):
    OPCODE = ControlOpcode.SET_TARGETED_DISTANCE
    FORMAT = "<3s"

    distance: int  # metres, uint24

    @classmethod
    def from_payload(cls, payload: bytes) -> "SetTargetedDistance":
        return cls(int.from_bytes(payload[:3], "little"))

    def to_payload(self) -> bytes:
        return self.distance.to_bytes(3, "little")


@dataclass(frozen=True)
class SetTargetedTrainingTime(_Command):
    OPCODE = ControlOpcode.SET_TARGETED_TRAINING_TIME
    FORMAT = "<H"

    seconds: int


@dataclass(frozen=True)
class SetTargetedTimeTwoHrZones(_Command):
    OPCODE = ControlOpcode.SET_TARGETED_TIME_TWO_HR_ZONES
    FORMAT = "<HH"

    fat_burn: int
    fitness: int


@dataclass(frozen=True)
class SetTargetedTimeThreeHrZones(_Command):
    OPCODE = ControlOpcode.SET_TARGETED_TIME_THREE_HR_ZONES
    FORMAT = "<HHH"

    light: int
    moderate: int
    hard: int


@dataclass(frozen=True)
class SetTargetedTimeFiveHrZones(_Command):
    OPCODE = ControlOpcode.SET_TARGETED_TIME_FIVE_HR_ZONES
    FORMAT = "<HHHHH"

    very_light: int
    light: int
    moderate: int
    hard: int
    maximum: int


@dataclass(frozen=True)
class SetIndoorBikeSimulation(_Command):
    OPCODE = ControlOpcode.SET_INDOOR_BIKE_SIMULATION
    FORMAT = "<hhBB"

    wind_speed: int  # 0.001 m/s
    grade: int  # 0.01 %
    rolling_resistance: int  # 0.0001
    wind_resistance: int  # 0.01 kg/m


@dataclass(frozen=True)
class SetWheelCircumference(_Command):
    OPCODE = ControlOpcode.SET_WHEEL_CIRCUMFERENCE
    FORMAT = "<H"

    circumference: int  # 0.1 mm


@dataclass(frozen=True)
class SpinDownControl(_Command):
    OPCODE = ControlOpcode.SPIN_DOWN_CONTROL
    FORMAT = "<B"

    parameter: int


@dataclass(frozen=True)
class SetTargetedCadence(_Command):
    OPCODE = ControlOpcode.SET_TARGETED_CADENCE
    FORMAT = "<H"

    cadence: int  # 0.5 rpm


ControlCommand = Union[
    RequestControl,
    Reset,
    SetTargetSpeed,
    SetTargetInclination,
    SetTargetResistanceLevel,
    SetTargetPower,
    SetTargetHeartRate,
    StartResume,
    StopPause,
    SetTargetedExpendedEnergy,
    SetTargetedSteps,
    SetTargetedStrides,
    SetTargetedDistance,
    SetTargetedTrainingTime,
    SetTargetedTimeTwoHrZones,
    SetTargetedTimeThreeHrZones,
    SetTargetedTimeFiveHrZones,
    SetIndoorBikeSimulation,
    SetWheelCircumference,
    SpinDownControl,
    SetTargetedCadence,
]

COMMAND_TYPES: dict[ControlOpcode, type[_Command]] = {
    command_type.OPCODE: command_type
    for command_type in ControlCommand.__args__  # type: ignore[attr-defined]
}
