"""Terminal entrypoint for the FTMS trainer emulator."""

from __future__ import annotations

import argparse
import asyncio
import logging

from ftms_peripheral.ble.codec import IndoorBikeFields
from ftms_peripheral.ble.commands import RequestControl, SetTargetPower, StartResume
from ftms_peripheral.ble.probe_client import FTMSProbe
from ftms_peripheral.core.config import PeripheralConfig

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Emulated FTMS smart trainer")
    parser.add_argument(
        "--device-id",
        type=int,
        default=1,
        help="Numeric id advertised as 'M <id>'",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Advertise a non-controllable trainer (no ranges, no target settings)",
    )
    parser.add_argument(
        "--tick-interval",
        type=float,
        default=1.0,
        help="Seconds between Indoor Bike Data notifications",
    )
    parser.add_argument(
        "--require-control",
        action="store_true",
        help="Refuse control point commands until the central requests control",
    )
    parser.add_argument("--scan", action="store_true", help="Scan BLE devices and mark FTMS ones")
    parser.add_argument(
        "--probe",
        nargs="?",
        const="auto",
        default=None,
        help="Act as a central instead: connect to an FTMS device and exercise it",
    )
    parser.add_argument(
        "--erg",
        type=int,
        default=None,
        help="With --probe, send this target power in watts",
    )
    parser.add_argument(
        "--probe-seconds",
        type=float,
        default=10.0,
        help="With --probe, seconds to print Indoor Bike Data before disconnecting",
    )
    parser.add_argument(
        "--debug-ftms",
        action="store_true",
        help="Log raw FTMS frames and every telemetry tick",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> PeripheralConfig:
    return PeripheralConfig(
        device_id=args.device_id,
        controllable=not args.read_only,
        tick_interval=args.tick_interval,
        require_control=args.require_control,
    )


async def run_peripheral(config: PeripheralConfig) -> int:
    from ftms_peripheral.ble.bless_transport import BlessTransport
    from ftms_peripheral.core.session import PeripheralSession

    session = PeripheralSession(BlessTransport(), config)
    await session.start()
    try:
        await asyncio.Event().wait()
    finally:
        await session.close()
    return 0


def _print_frame(flags: int, fields: IndoorBikeFields) -> None:
    parts = [f"flags=0x{flags:04X}"]
    if fields.speed_kmh is not None:
        parts.append(f"speed={fields.speed_kmh:.2f} km/h")
    if fields.cadence_rpm is not None:
        parts.append(f"cadence={fields.cadence_rpm:.1f} rpm")
    if fields.instantaneous_power is not None:
        parts.append(f"power={fields.instantaneous_power} W")
    print(" | ".join(parts))


async def run_scan(timeout: float = 5.0) -> int:
    devices = await FTMSProbe().scan(timeout=timeout)

    if not devices:
        print("No BLE devices found")
        return 0

    for device in devices:
        ftms_flag = "FTMS" if device.has_ftms else "-"
        print(f"{device.name:<24} {device.address} RSSI={device.rssi:>4} [{ftms_flag}]")
    return 0


async def run_probe(target: str, erg_watts: int | None, seconds: float) -> int:
    probe = FTMSProbe()
    try:
        label = await probe.connect(target=target)
        print(f"Connected to {label}")

        caps = await probe.read_capabilities()
        print(
            f"Features=0x{caps.features:08X} TargetSettings=0x{caps.target_settings:08X} "
            f"power_range={caps.power_range} resistance_range={caps.resistance_range}"
        )

        await probe.subscribe(_print_frame)
        commands = [RequestControl(), StartResume()]
        if erg_watts is not None:
            commands.append(SetTargetPower(power=erg_watts))
        for command in commands:
            response = await probe.send_command(command)
            print(f"{type(command).__name__}: {response.result.name}")

        await asyncio.sleep(seconds)
    finally:
        await probe.disconnect()
    return 0


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug_ftms else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.scan:
        return asyncio.run(run_scan())

    if args.probe is not None:
        return asyncio.run(run_probe(args.probe, args.erg, args.probe_seconds))

    try:
        config = config_from_args(args)
    except ValueError as exc:
        parser.error(str(exc))

    try:
        return asyncio.run(run_peripheral(config))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
