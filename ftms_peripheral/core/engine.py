"""Event-driven FTMS protocol engine.

`step` is a pure function of (state, event): it returns the next state and the
list of effects the session must apply to the BLE transport.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, replace
from typing import Union

from ftms_peripheral.ble.codec import (
    ControlPointDecodeError,
    decode_control_command,
    encode_control_response,
    encode_machine_status,
    telemetry_frames,
)
from ftms_peripheral.ble.commands import (
    ControlCommand,
    Reset,
    SetIndoorBikeSimulation,
    SetTargetPower,
    SetTargetResistanceLevel,
    StartResume,
    StopPause,
)
from ftms_peripheral.ble.constants import (
    FITNESS_MACHINE_CONTROL_POINT_CHAR_UUID,
    FITNESS_MACHINE_STATUS_CHAR_UUID,
    INDOOR_BIKE_DATA_CHAR_UUID,
    StatusOpcode,
)
from ftms_peripheral.ble.gatt import (
    Advertisement,
    ServiceDescriptor,
    build_advertisement,
    build_service_descriptor,
)
from ftms_peripheral.core import control_point
from ftms_peripheral.core.config import PeripheralConfig
from ftms_peripheral.core.state import EngineState, SessionState
from ftms_peripheral.core.telemetry import RampTelemetry, TelemetryModel

logger = logging.getLogger(__name__)


class ConcurrentConnectionError(RuntimeError):
    """A second central tried to connect while one is already connected."""


# Events delivered by the session and the transport.


@dataclass(frozen=True)
class SessionStarted:
    pass


@dataclass(frozen=True)
class AdvertisingStarted:
    pass


@dataclass(frozen=True)
class CentralConnected:
    address: str | None = None


@dataclass(frozen=True)
class CentralDisconnected:
    address: str | None = None


@dataclass(frozen=True)
class CharacteristicWritten:
    uuid: str
    data: bytes


@dataclass(frozen=True)
class TimerTick:
    pass


SessionEvent = Union[
    SessionStarted,
    AdvertisingStarted,
    CentralConnected,
    CentralDisconnected,
    CharacteristicWritten,
    TimerTick,
]


# Effects applied by the session.


@dataclass(frozen=True)
class RegisterService:
    descriptor: ServiceDescriptor


@dataclass(frozen=True)
class StartAdvertising:
    advertisement: Advertisement


@dataclass(frozen=True)
class Notify:
    uuid: str
    value: bytes


@dataclass(frozen=True)
class Indicate:
    uuid: str
    value: bytes


Effect = Union[RegisterService, StartAdvertising, Notify, Indicate]


def service_descriptor(config: PeripheralConfig) -> ServiceDescriptor:
    return build_service_descriptor(
        config.capability, config.power_range, config.resistance_range
    )


def _advertise(config: PeripheralConfig) -> list[Effect]:
    return [
        RegisterService(service_descriptor(config)),
        StartAdvertising(build_advertisement(config.identity)),
    ]


def _status_for(command: ControlCommand) -> bytes | None:
    """Fitness Machine Status notification reporting a successful command."""
    match command:
        case Reset():
            return encode_machine_status(StatusOpcode.RESET)
        case StartResume():
            return encode_machine_status(StatusOpcode.STARTED_OR_RESUMED_BY_USER)
        case StopPause(parameter=parameter):
            return encode_machine_status(
                StatusOpcode.STOPPED_OR_PAUSED_BY_USER, bytes([parameter])
            )
        case SetTargetPower(power=power):
            return encode_machine_status(
                StatusOpcode.TARGET_POWER_CHANGED, struct.pack("<h", power)
            )
        case SetTargetResistanceLevel(level=level):
            return encode_machine_status(
                StatusOpcode.TARGET_RESISTANCE_LEVEL_CHANGED, struct.pack("<b", level)
            )
        case SetIndoorBikeSimulation():
            return encode_machine_status(
                StatusOpcode.INDOOR_BIKE_SIMULATION_CHANGED, command.to_payload()
            )
    return None


def _on_control_point_write(
    state: EngineState, data: bytes, config: PeripheralConfig
) -> tuple[EngineState, list[Effect]]:
    try:
        command = decode_control_command(data)
    except ControlPointDecodeError as exc:
        # Malformed writes get no indication; the engine keeps serving.
        logger.warning("Dropping control point write %s: %s", data.hex(" "), exc)
        return state, []

    outcome = control_point.handle(
        command,
        config.capability,
        state.targets,
        require_control=config.require_control,
    )
    logger.debug(
        "Control point opcode=0x%02X result=%s", command.OPCODE, outcome.response.result.name
    )
    effects: list[Effect] = [
        Indicate(
            FITNESS_MACHINE_CONTROL_POINT_CHAR_UUID,
            encode_control_response(outcome.response.opcode, outcome.response.result),
        )
    ]
    if outcome.succeeded:
        status = _status_for(command)
        if status is not None:
            effects.append(Notify(FITNESS_MACHINE_STATUS_CHAR_UUID, status))
    return replace(state, targets=outcome.targets), effects


def step(
    state: EngineState,
    event: SessionEvent,
    config: PeripheralConfig,
    telemetry: TelemetryModel | None = None,
) -> tuple[EngineState, list[Effect]]:
    match event:
        case SessionStarted():
            return state, _advertise(config)

        case AdvertisingStarted():
            if state.session is SessionState.CONNECTED:
                return state, []
            return replace(state, session=SessionState.ADVERTISING), []

        case CentralConnected(address=address):
            if state.session is SessionState.CONNECTED:
                raise ConcurrentConnectionError(
                    f"Central {address or 'unknown'} rejected: "
                    f"{state.central or 'another central'} is already connected"
                )
            logger.info("Central connected: %s", address or "unknown")
            return replace(state, session=SessionState.CONNECTED, central=address), []

        case CentralDisconnected():
            logger.info("Central disconnected, advertising again")
            targets = replace(state.targets, has_control=False)
            return (
                replace(state, session=SessionState.DISCONNECTED, central=None, targets=targets),
                _advertise(config),
            )

        case CharacteristicWritten(uuid=uuid, data=data):
            if uuid.lower() != FITNESS_MACHINE_CONTROL_POINT_CHAR_UUID:
                logger.debug("Ignoring write to %s", uuid)
                return state, []
            return _on_control_point_write(state, bytes(data), config)

        case TimerTick():
            model = telemetry if telemetry is not None else RampTelemetry()
            snapshot = model.advance(state.telemetry)
            cadence_power, speed = telemetry_frames(snapshot)
            return replace(state, telemetry=snapshot), [
                Notify(INDOOR_BIKE_DATA_CHAR_UUID, cadence_power),
                Notify(INDOOR_BIKE_DATA_CHAR_UUID, speed),
            ]

    raise TypeError(f"Unhandled session event {event!r}")
