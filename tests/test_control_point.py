from __future__ import annotations

import pytest

from ftms_peripheral.ble.codec import decode_control_command, encode_control_response
from ftms_peripheral.ble.commands import (
    COMMAND_TYPES,
    RequestControl,
    Reset,
    SetIndoorBikeSimulation,
    SetTargetedDistance,
    SetTargetPower,
    SetTargetResistanceLevel,
    SetTargetSpeed,
    SpinDownControl,
    StartResume,
    StopPause,
)
from ftms_peripheral.ble.constants import ControlOpcode, ResultCode
from ftms_peripheral.core import control_point
from ftms_peripheral.core.state import Capability, SimulationParameters, TargetState

CONTROLLABLE = Capability(controllable=True)
READ_ONLY = Capability(controllable=False)


def test_request_control_grants_control() -> None:
    outcome = control_point.handle(RequestControl(), CONTROLLABLE, TargetState())

    assert outcome.response.opcode == ControlOpcode.REQUEST_CONTROL
    assert outcome.response.result is ResultCode.SUCCESS
    assert outcome.targets.has_control is True
    assert outcome.state is control_point.ControlPointState.IDLE


def test_set_target_power_stores_setpoint() -> None:
    outcome = control_point.handle(SetTargetPower(power=1000), CONTROLLABLE, TargetState())

    assert outcome.succeeded
    assert outcome.targets.target_power == 1000


def test_set_target_resistance_stores_setpoint() -> None:
    outcome = control_point.handle(
        SetTargetResistanceLevel(level=-5), CONTROLLABLE, TargetState()
    )

    assert outcome.succeeded
    assert outcome.targets.target_resistance_level == -5


def test_indoor_bike_simulation_stores_parameters() -> None:
    command = SetIndoorBikeSimulation(
        wind_speed=0, grade=450, rolling_resistance=40, wind_resistance=51
    )

    outcome = control_point.handle(command, CONTROLLABLE, TargetState())

    assert outcome.succeeded
    assert outcome.targets.simulation == SimulationParameters(
        wind_speed=0, grade=450, rolling_resistance=40, wind_resistance=51
    )


def test_read_only_trainer_refuses_target_settings() -> None:
    targets = TargetState(has_control=True)

    for command in (
        SetTargetPower(power=200),
        SetTargetResistanceLevel(level=10),
        SetIndoorBikeSimulation(wind_speed=0, grade=100, rolling_resistance=0, wind_resistance=0),
    ):
        outcome = control_point.handle(command, READ_ONLY, targets)
        assert outcome.response.result is ResultCode.NOT_SUPPORTED
        assert outcome.targets == targets


def test_read_only_trainer_still_accepts_request_control() -> None:
    outcome = control_point.handle(RequestControl(), READ_ONLY, TargetState())
    assert outcome.response.result is ResultCode.SUCCESS


def test_unhandled_opcodes_answer_not_supported_without_state_change() -> None:
    targets = TargetState(has_control=True, target_power=150)

    for command in (
        SetTargetSpeed(speed=2500),
        SetTargetedDistance(distance=5000),
        SpinDownControl(parameter=1),
    ):
        outcome = control_point.handle(command, CONTROLLABLE, targets)
        assert outcome.response.opcode == command.OPCODE
        assert outcome.response.result is ResultCode.NOT_SUPPORTED
        assert outcome.targets is targets


def test_start_and_stop_toggle_running() -> None:
    started = control_point.handle(StartResume(), CONTROLLABLE, TargetState())
    assert started.targets.running is True

    stopped = control_point.handle(
        StopPause(parameter=StopPause.PAUSE), CONTROLLABLE, started.targets
    )
    assert stopped.succeeded
    assert stopped.targets.running is False


def test_reset_clears_setpoints_and_control() -> None:
    targets = TargetState(has_control=True, running=True, target_power=300)

    outcome = control_point.handle(Reset(), CONTROLLABLE, targets)

    assert outcome.succeeded
    assert outcome.targets == TargetState()


def test_require_control_refuses_commands_before_request() -> None:
    refused = control_point.handle(
        SetTargetPower(power=250), CONTROLLABLE, TargetState(), require_control=True
    )
    assert refused.response.result is ResultCode.CONTROL_NOT_PERMITTED
    assert refused.targets.target_power is None

    granted = control_point.handle(
        RequestControl(), CONTROLLABLE, refused.targets, require_control=True
    )
    accepted = control_point.handle(
        SetTargetPower(power=250), CONTROLLABLE, granted.targets, require_control=True
    )
    assert accepted.response.result is ResultCode.SUCCESS
    assert accepted.targets.target_power == 250


@pytest.mark.parametrize("capability", [CONTROLLABLE, READ_ONLY])
@pytest.mark.parametrize("opcode", list(ControlOpcode))
def test_every_opcode_gets_a_response_echoing_it(
    opcode: ControlOpcode, capability: Capability
) -> None:
    data = bytes([opcode]) + bytes(COMMAND_TYPES[opcode].payload_size())

    outcome = control_point.handle(decode_control_command(data), capability, TargetState())
    frame = encode_control_response(outcome.response.opcode, outcome.response.result)

    assert frame[0] == 0x80
    assert frame[1] == opcode
    assert frame[2] in {ResultCode.SUCCESS, ResultCode.NOT_SUPPORTED}
