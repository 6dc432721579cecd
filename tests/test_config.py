from __future__ import annotations

import pytest

from ftms_peripheral.cli.main import build_parser, config_from_args
from ftms_peripheral.core.config import PeripheralConfig


def test_defaults() -> None:
    config = PeripheralConfig(device_id=3)

    assert config.controllable is True
    assert config.tick_interval == 1.0
    assert config.power_range == (0, 1400, 1)
    assert config.resistance_range == (0, 70, 1)
    assert config.require_control is False
    assert config.identity.local_name == "M 3"
    assert config.capability.controllable is True


@pytest.mark.parametrize(
    "kwargs",
    [
        {"device_id": -1},
        {"device_id": 70000},
        {"device_id": 1, "tick_interval": 0},
        {"device_id": 1, "power_range": (500, 100, 1)},
        {"device_id": 1, "power_range": (0, 40000, 1)},
        {"device_id": 1, "resistance_range": (0, 70, 0)},
        {"device_id": 1, "resistance_range": (0, 70)},
    ],
)
def test_invalid_values_are_rejected(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        PeripheralConfig(**kwargs)


def test_cli_flags_build_config() -> None:
    args = build_parser().parse_args(
        ["--device-id", "12", "--read-only", "--tick-interval", "0.5", "--require-control"]
    )

    config = config_from_args(args)

    assert config == PeripheralConfig(
        device_id=12, controllable=False, tick_interval=0.5, require_control=True
    )


def test_cli_defaults() -> None:
    args = build_parser().parse_args([])

    assert config_from_args(args) == PeripheralConfig(device_id=1)
    assert args.probe is None
    assert args.scan is False
    assert args.debug_ftms is False


def test_cli_probe_without_target_means_auto() -> None:
    args = build_parser().parse_args(["--probe", "--erg", "200"])

    assert args.probe == "auto"
    assert args.erg == 200


def test_cli_scan_flag() -> None:
    assert build_parser().parse_args(["--scan"]).scan is True
