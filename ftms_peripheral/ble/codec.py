"""Binary encoders/decoders for the FTMS characteristic values."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Optional

from ftms_peripheral.ble.commands import COMMAND_TYPES, ControlCommand
from ftms_peripheral.ble.constants import (
    CADENCE_POWER_FLAGS,
    CONTROLLABLE_FEATURES,
    CONTROLLABLE_TARGET_SETTINGS,
    READ_ONLY_FEATURES,
    READ_ONLY_TARGET_SETTINGS,
    RESPONSE_CODE,
    SPEED_ONLY_FLAGS,
    ControlOpcode,
    ResultCode,
    StatusOpcode,
    parse_indoor_bike_flags,
)
from ftms_peripheral.core.state import Capability, TelemetrySnapshot


class DecodeFailure(enum.Enum):
    TRUNCATED = "truncated"
    UNKNOWN_OPCODE = "unknown_opcode"


class ControlPointDecodeError(ValueError):
    """Raised when a control point write cannot be turned into a command."""

    reason: DecodeFailure

    def __init__(self, message: str, data: bytes) -> None:
        super().__init__(message)
        self.data = bytes(data)


class TruncatedCommandError(ControlPointDecodeError):
    reason = DecodeFailure.TRUNCATED


class UnknownOpcodeError(ControlPointDecodeError):
    reason = DecodeFailure.UNKNOWN_OPCODE


@dataclass(frozen=True)
class ControlResponse:
    opcode: int
    result: ResultCode


@dataclass(frozen=True)
class IndoorBikeFields:
    """Indoor Bike Data field values in their raw wire units."""

    instantaneous_speed: Optional[int] = None  # 0.01 km/h
    average_speed: Optional[int] = None
    instantaneous_cadence: Optional[int] = None  # 0.5 rpm
    average_cadence: Optional[int] = None
    total_distance: Optional[int] = None  # m, uint24
    resistance_level: Optional[int] = None
    instantaneous_power: Optional[int] = None  # W
    average_power: Optional[int] = None
    total_energy: Optional[int] = None  # kcal
    energy_per_hour: Optional[int] = None
    energy_per_minute: Optional[int] = None
    heart_rate: Optional[int] = None  # bpm
    metabolic_equivalent: Optional[int] = None  # 0.1
    elapsed_time: Optional[int] = None  # s
    remaining_time: Optional[int] = None  # s

    @property
    def speed_kmh(self) -> Optional[float]:
        if self.instantaneous_speed is None:
            return None
        return self.instantaneous_speed / 100.0

    @property
    def cadence_rpm(self) -> Optional[float]:
        if self.instantaneous_cadence is None:
            return None
        return self.instantaneous_cadence / 2.0


# (presence attribute on IndoorBikeDataFlags, fields, struct format) in wire order
_INDOOR_BIKE_LAYOUT: tuple[tuple[str, tuple[str, ...], str], ...] = (
    ("instantaneous_speed_present", ("instantaneous_speed",), "<H"),
    ("average_speed_present", ("average_speed",), "<H"),
    ("instantaneous_cadence_present", ("instantaneous_cadence",), "<H"),
    ("average_cadence_present", ("average_cadence",), "<H"),
    ("total_distance_present", ("total_distance",), "<3s"),
    ("resistance_level_present", ("resistance_level",), "<h"),
    ("instantaneous_power_present", ("instantaneous_power",), "<h"),
    ("average_power_present", ("average_power",), "<h"),
    (
        "expended_energy_present",
        ("total_energy", "energy_per_hour", "energy_per_minute"),
        "<HHB",
    ),
    ("heart_rate_present", ("heart_rate",), "<B"),
    ("metabolic_equivalent_present", ("metabolic_equivalent",), "<B"),
    ("elapsed_time_present", ("elapsed_time",), "<H"),
    ("remaining_time_present", ("remaining_time",), "<H"),
)


def encode_feature(capability: Capability) -> bytes:
    if capability.controllable:
        return struct.pack("<II", CONTROLLABLE_FEATURES, CONTROLLABLE_TARGET_SETTINGS)
    return struct.pack("<II", READ_ONLY_FEATURES, READ_ONLY_TARGET_SETTINGS)


def decode_feature(payload: bytes) -> tuple[int, int]:
    if len(payload) < 8:
        raise ValueError("Fitness Machine Feature payload too short")
    features, target_settings = struct.unpack_from("<II", payload, 0)
    return features, target_settings


def encode_range(minimum: int, maximum: int, step: int) -> bytes:
    """Supported Power/Resistance Level Range value: int16 min, int16 max, uint16 step."""
    try:
        return struct.pack("<hhH", minimum, maximum, step)
    except struct.error as exc:
        raise ValueError(
            f"Range ({minimum}, {maximum}, {step}) does not fit int16/int16/uint16"
        ) from exc


def decode_range(payload: bytes) -> tuple[int, int, int]:
    if len(payload) < 6:
        raise ValueError("Supported range payload too short")
    minimum, maximum, step = struct.unpack_from("<hhH", payload, 0)
    return minimum, maximum, step


def encode_indoor_bike_frame(flags: int, fields: IndoorBikeFields) -> bytes:
    """Build an Indoor Bike Data value holding only the fields selected by `flags`."""
    presence = parse_indoor_bike_flags(flags)
    chunks = [struct.pack("<H", flags)]
    for present_attr, names, fmt in _INDOOR_BIKE_LAYOUT:
        if not getattr(presence, present_attr):
            continue
        values = [getattr(fields, name) for name in names]
        if any(value is None for value in values):
            raise ValueError(f"Flags 0x{flags:04X} select {', '.join(names)} but no value given")
        try:
            if names == ("total_distance",):
                chunks.append(values[0].to_bytes(3, "little"))
            else:
                chunks.append(struct.pack(fmt, *values))
        except (OverflowError, struct.error) as exc:
            raise ValueError(f"Value for {', '.join(names)} out of range: {values}") from exc
    return b"".join(chunks)


def _require_bytes(data: bytes, cursor: int, size: int) -> None:
    if cursor + size > len(data):
        raise ValueError(
            f"Invalid Indoor Bike Data payload: expected {size} bytes at offset {cursor}"
        )


def decode_indoor_bike_frame(payload: bytes) -> tuple[int, IndoorBikeFields]:
    """Parse an Indoor Bike Data value (0x2AD2) into its flags and raw fields."""
    if len(payload) < 2:
        raise ValueError("Indoor Bike Data payload too short")

    raw_flags = struct.unpack_from("<H", payload, 0)[0]
    presence = parse_indoor_bike_flags(raw_flags)
    cursor = 2
    values: dict[str, int] = {}

    for present_attr, names, fmt in _INDOOR_BIKE_LAYOUT:
        if not getattr(presence, present_attr):
            continue
        size = struct.calcsize(fmt)
        _require_bytes(payload, cursor, size)
        if names == ("total_distance",):
            values["total_distance"] = int.from_bytes(payload[cursor : cursor + 3], "little")
        else:
            values.update(zip(names, struct.unpack_from(fmt, payload, cursor)))
        cursor += size

    return raw_flags, IndoorBikeFields(**values)


def telemetry_frames(snapshot: TelemetrySnapshot) -> tuple[bytes, bytes]:
    """The two Indoor Bike Data notifications sent on every tick."""
    cadence_power = encode_indoor_bike_frame(
        CADENCE_POWER_FLAGS,
        IndoorBikeFields(
            instantaneous_cadence=snapshot.cadence * 2,
            instantaneous_power=snapshot.power,
        ),
    )
    speed = encode_indoor_bike_frame(
        SPEED_ONLY_FLAGS,
        IndoorBikeFields(instantaneous_speed=snapshot.speed),
    )
    return cadence_power, speed


def decode_control_command(data: bytes) -> ControlCommand:
    """Parse one control point write. Never reads past the end of `data`."""
    if len(data) < 1:
        raise TruncatedCommandError("Empty control point write", data)

    raw_opcode = data[0]
    try:
        opcode = ControlOpcode(raw_opcode)
    except ValueError:
        raise UnknownOpcodeError(f"Unknown control point opcode 0x{raw_opcode:02X}", data) from None

    command_type = COMMAND_TYPES[opcode]
    payload = bytes(data[1:])
    expected = command_type.payload_size()
    if len(payload) < expected:
        raise TruncatedCommandError(
            f"Opcode 0x{raw_opcode:02X} needs {expected} payload bytes, got {len(payload)}",
            data,
        )
    return command_type.from_payload(payload[:expected])  # type: ignore[return-value]


def encode_control_command(command: ControlCommand) -> bytes:
    return bytes([command.OPCODE]) + command.to_payload()


def encode_control_response(opcode: int, result: ResultCode) -> bytes:
    return struct.pack("<BBB", RESPONSE_CODE, opcode, result)


def decode_control_response(payload: bytes) -> ControlResponse:
    if len(payload) < 3 or payload[0] != RESPONSE_CODE:
        raise ValueError(f"Not a control point response: {bytes(payload).hex(' ')}")
    return ControlResponse(opcode=payload[1], result=ResultCode(payload[2]))


def encode_machine_status(opcode: StatusOpcode, parameter: bytes = b"") -> bytes:
    return bytes([opcode]) + parameter
