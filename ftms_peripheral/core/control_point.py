"""Fitness Machine Control Point request handling."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace

from ftms_peripheral.ble.codec import ControlResponse
from ftms_peripheral.ble.commands import (
    ControlCommand,
    RequestControl,
    Reset,
    SetIndoorBikeSimulation,
    SetTargetedCadence,
    SetTargetedDistance,
    SetTargetedExpendedEnergy,
    SetTargetedSteps,
    SetTargetedStrides,
    SetTargetedTimeFiveHrZones,
    SetTargetedTimeThreeHrZones,
    SetTargetedTimeTwoHrZones,
    SetTargetedTrainingTime,
    SetTargetHeartRate,
    SetTargetInclination,
    SetTargetPower,
    SetTargetResistanceLevel,
    SetTargetSpeed,
    SetWheelCircumference,
    SpinDownControl,
    StartResume,
    StopPause,
)
from ftms_peripheral.ble.constants import ResultCode
from ftms_peripheral.core.state import Capability, SimulationParameters, TargetState

logger = logging.getLogger(__name__)


class ControlPointState(enum.Enum):
    # Every command completes in one frame; spin-down would add states here.
    IDLE = "idle"


@dataclass(frozen=True)
class ControlOutcome:
    response: ControlResponse
    targets: TargetState
    state: ControlPointState = ControlPointState.IDLE

    @property
    def succeeded(self) -> bool:
        return self.response.result is ResultCode.SUCCESS


def _respond(command: ControlCommand, result: ResultCode, targets: TargetState) -> ControlOutcome:
    return ControlOutcome(ControlResponse(opcode=command.OPCODE, result=result), targets)


def handle(
    command: ControlCommand,
    capability: Capability,
    targets: TargetState,
    *,
    require_control: bool = False,
) -> ControlOutcome:
    """Apply one decoded command and return its response plus the new setpoints."""
    if require_control and not targets.has_control and not isinstance(command, RequestControl):
        logger.warning("Opcode 0x%02X refused: control not requested", command.OPCODE)
        return _respond(command, ResultCode.CONTROL_NOT_PERMITTED, targets)

    match command:
        case RequestControl():
            return _respond(command, ResultCode.SUCCESS, replace(targets, has_control=True))

        case Reset():
            logger.info("Control point reset")
            return _respond(command, ResultCode.SUCCESS, TargetState())

        case StartResume():
            return _respond(command, ResultCode.SUCCESS, replace(targets, running=True))

        case StopPause():
            return _respond(command, ResultCode.SUCCESS, replace(targets, running=False))

        case SetTargetPower(power=power):
            if not capability.controllable:
                return _respond(command, ResultCode.NOT_SUPPORTED, targets)
            logger.info("New target power: %d W", power)
            return _respond(command, ResultCode.SUCCESS, replace(targets, target_power=power))

        case SetTargetResistanceLevel(level=level):
            if not capability.controllable:
                return _respond(command, ResultCode.NOT_SUPPORTED, targets)
            logger.info("New target resistance level: %d", level)
            return _respond(
                command, ResultCode.SUCCESS, replace(targets, target_resistance_level=level)
            )

        case SetIndoorBikeSimulation():
            if not capability.controllable:
                return _respond(command, ResultCode.NOT_SUPPORTED, targets)
            simulation = SimulationParameters(
                wind_speed=command.wind_speed,
                grade=command.grade,
                rolling_resistance=command.rolling_resistance,
                wind_resistance=command.wind_resistance,
            )
            logger.info("New grade: %.2f %%", command.grade / 100)
            return _respond(command, ResultCode.SUCCESS, replace(targets, simulation=simulation))

        # Decodable but not offered by an indoor bike.
        case (
            SetTargetSpeed()
            | SetTargetInclination()
            | SetTargetHeartRate()
            | SetTargetedCadence()
            | SetWheelCircumference()
            | SetTargetedExpendedEnergy()
            | SetTargetedSteps()
            | SetTargetedStrides()
            | SetTargetedDistance()
            | SetTargetedTrainingTime()
            | SetTargetedTimeTwoHrZones()
            | SetTargetedTimeThreeHrZones()
            | SetTargetedTimeFiveHrZones()
            | SpinDownControl()
        ):
            return _respond(command, ResultCode.NOT_SUPPORTED, targets)

    raise TypeError(f"Unhandled control command {command!r}")
