"""Central-side probe that connects to an FTMS peripheral and exercises it."""

from __future__ import annotations

import asyncio
import contextlib
import importlib
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from ftms_peripheral.ble.codec import (
    ControlResponse,
    IndoorBikeFields,
    decode_control_response,
    decode_feature,
    decode_indoor_bike_frame,
    decode_range,
    encode_control_command,
)
from ftms_peripheral.ble.commands import ControlCommand
from ftms_peripheral.ble.constants import (
    FITNESS_MACHINE_CONTROL_POINT_CHAR_UUID,
    FITNESS_MACHINE_FEATURE_CHAR_UUID,
    FTMS_SERVICE_UUID,
    INDOOR_BIKE_DATA_CHAR_UUID,
    SUPPORTED_POWER_RANGE_CHAR_UUID,
    SUPPORTED_RESISTANCE_LEVEL_RANGE_CHAR_UUID,
)

_bleak: Any
try:
    _bleak = importlib.import_module("bleak")
except ImportError:  # pragma: no cover - runtime dependency guard
    _bleak = None

logger = logging.getLogger(__name__)

FrameCallback = Callable[[int, IndoorBikeFields], Awaitable[None] | None]


@dataclass(frozen=True)
class ScannedDevice:
    name: str
    address: str
    rssi: int
    has_ftms: bool


@dataclass(frozen=True)
class PeripheralCapabilities:
    features: int
    target_settings: int
    power_range: Optional[tuple[int, int, int]] = None
    resistance_range: Optional[tuple[int, int, int]] = None


def _ensure_bleak_available() -> None:
    if _bleak is None:
        raise RuntimeError("bleak is not installed. Run: pip install bleak")


class FTMSProbe:
    """Thin async BLE central used to check an emulated trainer end to end."""

    def __init__(self, response_timeout: float = 5.0) -> None:
        self._client: Optional[Any] = None
        self._response_timeout = response_timeout
        self._frame_callback: Optional[FrameCallback] = None
        self._pending_response: Optional[asyncio.Future[ControlResponse]] = None
        self._indications_enabled = False

    @property
    def is_connected(self) -> bool:
        return bool(self._client and self._client.is_connected)

    async def scan(self, timeout: float = 5.0) -> list[ScannedDevice]:
        _ensure_bleak_available()
        discovered = await _bleak.BleakScanner.discover(timeout=timeout, return_adv=True)
        devices: list[ScannedDevice] = []
        for _, (device, adv_data) in discovered.items():
            uuids = {u.lower() for u in (adv_data.service_uuids or [])}
            devices.append(
                ScannedDevice(
                    name=device.name or "Unknown",
                    address=device.address,
                    rssi=adv_data.rssi,
                    has_ftms=FTMS_SERVICE_UUID in uuids,
                )
            )
        devices.sort(key=lambda d: d.rssi, reverse=True)
        return devices

    async def connect(self, target: Optional[str] = None, timeout: float = 20.0) -> str:
        """Connect to a BLE address/name, or the first device advertising FTMS."""
        _ensure_bleak_available()
        if target and target != "auto":
            device = await _bleak.BleakScanner.find_device_by_filter(
                lambda d, _: (d.address.lower() == target.lower())
                or ((d.name or "").lower() == target.lower()),
                timeout=timeout,
            )
        else:
            device = await _bleak.BleakScanner.find_device_by_filter(
                lambda _, adv: FTMS_SERVICE_UUID
                in {u.lower() for u in (adv.service_uuids or [])},
                timeout=timeout,
            )
        if device is None:
            raise RuntimeError(f"No FTMS device found ({target or 'auto'})")

        client = _bleak.BleakClient(device)
        await client.connect(timeout=timeout)
        self._client = client
        logger.info("Connected to %s (%s)", device.name or "Unknown", device.address)
        return f"{device.name or 'Unknown'} ({device.address})"

    async def disconnect(self) -> None:
        if self._client:
            await self._client.disconnect()
            self._client = None
            self._indications_enabled = False

    async def read_capabilities(self) -> PeripheralCapabilities:
        client = self._require_client()
        features, target_settings = decode_feature(
            bytes(await client.read_gatt_char(FITNESS_MACHINE_FEATURE_CHAR_UUID))
        )
        power_range = await self._read_optional_range(SUPPORTED_POWER_RANGE_CHAR_UUID)
        resistance_range = await self._read_optional_range(
            SUPPORTED_RESISTANCE_LEVEL_RANGE_CHAR_UUID
        )
        return PeripheralCapabilities(
            features=features,
            target_settings=target_settings,
            power_range=power_range,
            resistance_range=resistance_range,
        )

    async def subscribe(self, callback: FrameCallback) -> None:
        client = self._require_client()
        self._frame_callback = callback
        await client.start_notify(INDOOR_BIKE_DATA_CHAR_UUID, self.handle_indoor_bike_data)

    async def send_command(self, command: ControlCommand) -> ControlResponse:
        """Write one control point command and wait for its indication."""
        client = self._require_client()
        if not self._indications_enabled:
            await client.start_notify(
                FITNESS_MACHINE_CONTROL_POINT_CHAR_UUID, self.handle_control_point_indication
            )
            self._indications_enabled = True

        self._pending_response = asyncio.get_running_loop().create_future()
        try:
            await client.write_gatt_char(
                FITNESS_MACHINE_CONTROL_POINT_CHAR_UUID,
                encode_control_command(command),
                response=True,
            )
            return await asyncio.wait_for(self._pending_response, self._response_timeout)
        finally:
            self._pending_response = None

    def handle_indoor_bike_data(self, _sender: object, data: bytearray) -> None:
        payload = bytes(data)
        try:
            flags, fields = decode_indoor_bike_frame(payload)
        except ValueError as exc:
            logger.warning("Undecodable Indoor Bike Data %s: %s", payload.hex(" "), exc)
            return
        logger.debug("Indoor Bike Data flags=0x%04X payload=%s", flags, payload.hex(" "))
        if self._frame_callback is None:
            return
        maybe_coro = self._frame_callback(flags, fields)
        if asyncio.iscoroutine(maybe_coro):
            asyncio.create_task(maybe_coro)

    def handle_control_point_indication(self, _sender: object, data: bytearray) -> None:
        payload = bytes(data)
        try:
            response = decode_control_response(payload)
        except ValueError as exc:
            logger.warning("Unexpected control point indication: %s", exc)
            return
        logger.debug(
            "Control point response req=0x%02X result=%s", response.opcode, response.result.name
        )
        if self._pending_response is not None and not self._pending_response.done():
            self._pending_response.set_result(response)

    async def _read_optional_range(self, uuid: str) -> Optional[tuple[int, int, int]]:
        client = self._require_client()
        try:
            raw = bytes(await client.read_gatt_char(uuid))
        except Exception as exc:  # pragma: no cover - optional BLE characteristic
            logger.debug("Range characteristic %s unavailable: %s", uuid, exc)
            return None
        with contextlib.suppress(ValueError):
            return decode_range(raw)
        logger.warning("Range characteristic %s payload too short: %s", uuid, raw.hex(" "))
        return None

    def _require_client(self) -> Any:
        if not self._client:
            raise RuntimeError("Not connected")
        return self._client
