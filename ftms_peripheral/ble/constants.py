"""FTMS constants for the emulated Fitness Machine peripheral."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


def uuid16(short: int) -> str:
    """Expand a 16-bit SIG UUID onto the Bluetooth base UUID."""
    return f"0000{short:04x}-0000-1000-8000-00805f9b34fb"


FTMS_SERVICE = 0x1826
INDOOR_BIKE_DATA_CHAR = 0x2AD2
FITNESS_MACHINE_CONTROL_POINT_CHAR = 0x2AD9
FITNESS_MACHINE_FEATURE_CHAR = 0x2ACC
FITNESS_MACHINE_STATUS_CHAR = 0x2ADA
SUPPORTED_POWER_RANGE_CHAR = 0x2AD8
SUPPORTED_RESISTANCE_LEVEL_RANGE_CHAR = 0x2AD6
CLIENT_CHARACTERISTIC_CONFIGURATION = 0x2902

FTMS_SERVICE_UUID = uuid16(FTMS_SERVICE)
INDOOR_BIKE_DATA_CHAR_UUID = uuid16(INDOOR_BIKE_DATA_CHAR)
FITNESS_MACHINE_CONTROL_POINT_CHAR_UUID = uuid16(FITNESS_MACHINE_CONTROL_POINT_CHAR)
FITNESS_MACHINE_FEATURE_CHAR_UUID = uuid16(FITNESS_MACHINE_FEATURE_CHAR)
FITNESS_MACHINE_STATUS_CHAR_UUID = uuid16(FITNESS_MACHINE_STATUS_CHAR)
SUPPORTED_POWER_RANGE_CHAR_UUID = uuid16(SUPPORTED_POWER_RANGE_CHAR)
SUPPORTED_RESISTANCE_LEVEL_RANGE_CHAR_UUID = uuid16(SUPPORTED_RESISTANCE_LEVEL_RANGE_CHAR)
CLIENT_CHARACTERISTIC_CONFIGURATION_UUID = uuid16(CLIENT_CHARACTERISTIC_CONFIGURATION)

# Notifications disabled until the central writes the CCCD.
CCCD_DISABLED = b"\x00\x00"


class ControlOpcode(IntEnum):
    """Fitness Machine Control Point request opcodes."""

    REQUEST_CONTROL = 0x00
    RESET = 0x01
    SET_TARGET_SPEED = 0x02
    SET_TARGET_INCLINATION = 0x03
    SET_TARGET_RESISTANCE_LEVEL = 0x04
    SET_TARGET_POWER = 0x05
    SET_TARGET_HEART_RATE = 0x06
    START_RESUME = 0x07
    STOP_PAUSE = 0x08
    SET_TARGETED_EXPENDED_ENERGY = 0x09
    SET_TARGETED_STEPS = 0x0A
    SET_TARGETED_STRIDES = 0x0B
    SET_TARGETED_DISTANCE = 0x0C
    SET_TARGETED_TRAINING_TIME = 0x0D
    SET_TARGETED_TIME_TWO_HR_ZONES = 0x0E
    SET_TARGETED_TIME_THREE_HR_ZONES = 0x0F
    SET_TARGETED_TIME_FIVE_HR_ZONES = 0x10
    SET_INDOOR_BIKE_SIMULATION = 0x11
    SET_WHEEL_CIRCUMFERENCE = 0x12
    SPIN_DOWN_CONTROL = 0x13
    SET_TARGETED_CADENCE = 0x14


# First byte of every control point indication.
RESPONSE_CODE = 0x80


class ResultCode(IntEnum):
    SUCCESS = 0x01
    NOT_SUPPORTED = 0x02
    INVALID_PARAMETER = 0x03
    OPERATION_FAILED = 0x04
    CONTROL_NOT_PERMITTED = 0x05


class StatusOpcode(IntEnum):
    """Fitness Machine Status notification opcodes."""

    RESET = 0x01
    STOPPED_OR_PAUSED_BY_USER = 0x02
    STARTED_OR_RESUMED_BY_USER = 0x04
    TARGET_RESISTANCE_LEVEL_CHANGED = 0x07
    TARGET_POWER_CHANGED = 0x08
    INDOOR_BIKE_SIMULATION_CHANGED = 0x12


# Fitness Machine Feature (first uint32)
FEATURE_CADENCE_SUPPORTED = 1 << 1
FEATURE_RESISTANCE_LEVEL_SUPPORTED = 1 << 7
FEATURE_POWER_MEASUREMENT_SUPPORTED = 1 << 14

# Target Setting Features (second uint32)
TARGET_RESISTANCE_LEVEL_SUPPORTED = 1 << 2
TARGET_POWER_SUPPORTED = 1 << 3
TARGET_INDOOR_BIKE_SIMULATION_SUPPORTED = 1 << 13

CONTROLLABLE_FEATURES = (
    FEATURE_CADENCE_SUPPORTED
    | FEATURE_RESISTANCE_LEVEL_SUPPORTED
    | FEATURE_POWER_MEASUREMENT_SUPPORTED
)
CONTROLLABLE_TARGET_SETTINGS = (
    TARGET_RESISTANCE_LEVEL_SUPPORTED
    | TARGET_POWER_SUPPORTED
    | TARGET_INDOOR_BIKE_SIMULATION_SUPPORTED
)
READ_ONLY_FEATURES = FEATURE_CADENCE_SUPPORTED | FEATURE_POWER_MEASUREMENT_SUPPORTED
READ_ONLY_TARGET_SETTINGS = 0

# Indoor Bike Data flags
FLAG_MORE_DATA = 1 << 0
FLAG_AVERAGE_SPEED_PRESENT = 1 << 1
FLAG_INSTANTANEOUS_CADENCE_PRESENT = 1 << 2
FLAG_AVERAGE_CADENCE_PRESENT = 1 << 3
FLAG_TOTAL_DISTANCE_PRESENT = 1 << 4
FLAG_RESISTANCE_LEVEL_PRESENT = 1 << 5
FLAG_INSTANTANEOUS_POWER_PRESENT = 1 << 6
FLAG_AVERAGE_POWER_PRESENT = 1 << 7
FLAG_EXPENDED_ENERGY_PRESENT = 1 << 8
FLAG_HEART_RATE_PRESENT = 1 << 9
FLAG_METABOLIC_EQUIVALENT_PRESENT = 1 << 10
FLAG_ELAPSED_TIME_PRESENT = 1 << 11
FLAG_REMAINING_TIME_PRESENT = 1 << 12

# Frame 1 of each tick: cadence + power, speed deferred to the next frame.
CADENCE_POWER_FLAGS = (
    FLAG_MORE_DATA | FLAG_INSTANTANEOUS_CADENCE_PRESENT | FLAG_INSTANTANEOUS_POWER_PRESENT
)
# Frame 2: instantaneous speed only.
SPEED_ONLY_FLAGS = 0x0000


@dataclass(frozen=True)
class IndoorBikeDataFlags:
    more_data: bool
    average_speed_present: bool
    instantaneous_cadence_present: bool
    average_cadence_present: bool
    total_distance_present: bool
    resistance_level_present: bool
    instantaneous_power_present: bool
    average_power_present: bool
    expended_energy_present: bool
    heart_rate_present: bool
    metabolic_equivalent_present: bool
    elapsed_time_present: bool
    remaining_time_present: bool

    @property
    def instantaneous_speed_present(self) -> bool:
        return not self.more_data


def parse_indoor_bike_flags(raw_flags: int) -> IndoorBikeDataFlags:
    """Decode FTMS Indoor Bike Data flags into a typed structure."""
    return IndoorBikeDataFlags(
        more_data=bool(raw_flags & FLAG_MORE_DATA),
        average_speed_present=bool(raw_flags & FLAG_AVERAGE_SPEED_PRESENT),
        instantaneous_cadence_present=bool(raw_flags & FLAG_INSTANTANEOUS_CADENCE_PRESENT),
        average_cadence_present=bool(raw_flags & FLAG_AVERAGE_CADENCE_PRESENT),
        total_distance_present=bool(raw_flags & FLAG_TOTAL_DISTANCE_PRESENT),
        resistance_level_present=bool(raw_flags & FLAG_RESISTANCE_LEVEL_PRESENT),
        instantaneous_power_present=bool(raw_flags & FLAG_INSTANTANEOUS_POWER_PRESENT),
        average_power_present=bool(raw_flags & FLAG_AVERAGE_POWER_PRESENT),
        expended_energy_present=bool(raw_flags & FLAG_EXPENDED_ENERGY_PRESENT),
        heart_rate_present=bool(raw_flags & FLAG_HEART_RATE_PRESENT),
        metabolic_equivalent_present=bool(raw_flags & FLAG_METABOLIC_EQUIVALENT_PRESENT),
        elapsed_time_present=bool(raw_flags & FLAG_ELAPSED_TIME_PRESENT),
        remaining_time_present=bool(raw_flags & FLAG_REMAINING_TIME_PRESENT),
    )
