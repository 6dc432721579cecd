"""BLE peripheral transport backed by bless (BlueZ, CoreBluetooth, WinRT)."""

from __future__ import annotations

import asyncio
import contextlib
import importlib
import logging
import sys
from typing import Any, Callable, Optional

from ftms_peripheral.ble.gatt import Advertisement, CharProperty, ServiceDescriptor
from ftms_peripheral.core.engine import (
    CentralConnected,
    CentralDisconnected,
    CharacteristicWritten,
    SessionEvent,
)

_bless: Any
try:
    _bless = importlib.import_module("bless")
except ImportError:  # pragma: no cover - runtime dependency guard
    _bless = None

logger = logging.getLogger(__name__)

EventSink = Callable[[SessionEvent], None]


def _ensure_bless_available() -> None:
    if _bless is None:
        raise RuntimeError("bless is not installed. Run: pip install bless")


def _gatt_properties(properties: CharProperty) -> Any:
    flags = _bless.GATTCharacteristicProperties
    mapped = 0
    if CharProperty.READ in properties:
        mapped |= flags.read
    if CharProperty.WRITE in properties:
        mapped |= flags.write
    if CharProperty.NOTIFY in properties:
        mapped |= flags.notify
    if CharProperty.INDICATE in properties:
        mapped |= flags.indicate
    return flags(mapped)


def _gatt_permissions(properties: CharProperty) -> Any:
    perms = _bless.GATTAttributePermissions
    if CharProperty.WRITE in properties:
        return perms.readable | perms.writeable
    return perms.readable


class BlessTransport:
    """Serves one ServiceDescriptor through a bless GATT server.

    bless builds the client characteristic configuration descriptors itself,
    so the descriptor's CCCD entries are not registered explicitly.
    """

    def __init__(self, connection_poll_interval: float = 1.0) -> None:
        self._server: Optional[Any] = None
        self._descriptor: Optional[ServiceDescriptor] = None
        self._sink: Optional[EventSink] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._poll_interval = connection_poll_interval
        self._watch_task: Optional[asyncio.Task[None]] = None
        self._connected = False

    def bind(self, sink: EventSink) -> None:
        self._sink = sink
        self._loop = asyncio.get_running_loop()

    async def register_service(self, descriptor: ServiceDescriptor) -> None:
        _ensure_bless_available()
        # The service is attached to a fresh server each time advertising starts.
        self._descriptor = descriptor

    async def start_advertising(self, advertisement: Advertisement) -> None:
        _ensure_bless_available()
        if self._descriptor is None:
            raise RuntimeError("register_service() must run before start_advertising()")

        await self._shutdown_server()
        loop = self._loop or asyncio.get_running_loop()
        if sys.platform == "linux":
            server = _bless.BlessServer(name=advertisement.local_name, loop=loop)
        else:
            server = _bless.BlessServer(name=advertisement.local_name, name_overwrite=True)
        server.read_request_func = self._read_request
        server.write_request_func = self._write_request

        await server.add_new_service(self._descriptor.uuid)
        for char in self._descriptor.characteristics:
            await server.add_new_characteristic(
                self._descriptor.uuid,
                char.uuid,
                _gatt_properties(char.properties),
                bytearray(char.value) if char.value else None,
                _gatt_permissions(char.properties),
            )
        await server.start()
        self._server = server
        self._connected = False
        self._watch_task = asyncio.create_task(self._watch_connection())

    def notify(self, uuid: str, value: bytes) -> None:
        self._push(uuid, value)

    def indicate(self, uuid: str, value: bytes) -> None:
        # bless picks notify vs indicate from the characteristic properties.
        self._push(uuid, value)

    async def stop(self) -> None:
        await self._shutdown_server()

    def _push(self, uuid: str, value: bytes) -> None:
        if self._server is None or self._descriptor is None:
            logger.debug("No GATT server yet, dropping update for %s", uuid)
            return
        characteristic = self._server.get_characteristic(uuid)
        if characteristic is None:
            logger.debug("Characteristic %s not registered, dropping update", uuid)
            return
        characteristic.value = bytearray(value)
        self._server.update_value(self._descriptor.uuid, uuid)

    def _read_request(self, characteristic: Any, **kwargs: Any) -> bytearray:
        return bytearray(characteristic.value or b"")

    def _write_request(self, characteristic: Any, value: Any, **kwargs: Any) -> None:
        characteristic.value = value
        self._emit(CharacteristicWritten(str(characteristic.uuid).lower(), bytes(value)))

    def _emit(self, event: SessionEvent) -> None:
        if self._sink is None or self._loop is None:
            logger.debug("Transport not bound, dropping %s", event)
            return
        # bless may call back from its own thread on macOS/Windows.
        self._loop.call_soon_threadsafe(self._sink, event)

    async def _watch_connection(self) -> None:
        while self._server is not None:
            try:
                connected = bool(await self._server.is_connected())
            except Exception:
                logger.exception("Connection state query failed")
                await asyncio.sleep(self._poll_interval)
                continue
            if connected and not self._connected:
                self._connected = True
                self._emit(CentralConnected())
            elif not connected and self._connected:
                self._connected = False
                self._emit(CentralDisconnected())
            await asyncio.sleep(self._poll_interval)

    async def _shutdown_server(self) -> None:
        if self._watch_task is not None:
            self._watch_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._watch_task
            self._watch_task = None
        if self._server is not None:
            server = self._server
            self._server = None
            await server.stop()
