from __future__ import annotations

import asyncio
import enum
import types
from typing import Any, Optional

import pytest

from ftms_peripheral.ble import bless_transport
from ftms_peripheral.ble.bless_transport import BlessTransport
from ftms_peripheral.ble.constants import (
    FITNESS_MACHINE_CONTROL_POINT_CHAR_UUID,
    FITNESS_MACHINE_FEATURE_CHAR_UUID,
    FTMS_SERVICE_UUID,
    INDOOR_BIKE_DATA_CHAR_UUID,
)
from ftms_peripheral.ble.gatt import build_advertisement, build_service_descriptor
from ftms_peripheral.core.engine import CentralConnected, CentralDisconnected, CharacteristicWritten
from ftms_peripheral.core.state import Capability, DeviceIdentity


class Properties(enum.IntFlag):
    read = 0x02
    write = 0x08
    notify = 0x10
    indicate = 0x20


class Permissions(enum.IntFlag):
    readable = 0x1
    writeable = 0x2


class FakeCharacteristic:
    def __init__(self, uuid: str, properties: Properties, value: Optional[bytearray]) -> None:
        self.uuid = uuid
        self.properties = properties
        self.value = value


class FakeServer:
    instances: list["FakeServer"] = []

    def __init__(self, name: str, **kwargs: Any) -> None:
        self.name = name
        self.services: list[str] = []
        self.characteristics: dict[str, FakeCharacteristic] = {}
        self.order: list[str] = []
        self.updates: list[tuple[str, str, bytes]] = []
        self.connected = False
        self.started = False
        self.stopped = False
        self.read_request_func: Any = None
        self.write_request_func: Any = None
        FakeServer.instances.append(self)

    async def add_new_service(self, uuid: str) -> None:
        self.services.append(uuid)

    async def add_new_characteristic(
        self,
        service_uuid: str,
        char_uuid: str,
        properties: Properties,
        value: Optional[bytearray],
        permissions: Permissions,
    ) -> None:
        self.order.append(char_uuid)
        self.characteristics[char_uuid] = FakeCharacteristic(char_uuid, properties, value)

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.stopped = True

    async def is_connected(self) -> bool:
        return self.connected

    def get_characteristic(self, uuid: str) -> Optional[FakeCharacteristic]:
        return self.characteristics.get(uuid)

    def update_value(self, service_uuid: str, char_uuid: str) -> None:
        value = self.characteristics[char_uuid].value or bytearray()
        self.updates.append((service_uuid, char_uuid, bytes(value)))


@pytest.fixture
def fake_bless(monkeypatch: pytest.MonkeyPatch) -> type[FakeServer]:
    FakeServer.instances = []
    module = types.SimpleNamespace(
        BlessServer=FakeServer,
        GATTCharacteristicProperties=Properties,
        GATTAttributePermissions=Permissions,
    )
    monkeypatch.setattr(bless_transport, "_bless", module)
    return FakeServer


def _descriptor():
    return build_service_descriptor(Capability(controllable=True), (0, 1400, 1), (0, 70, 1))


async def _advertising_transport(events: list[Any], poll: float = 60.0) -> BlessTransport:
    transport = BlessTransport(connection_poll_interval=poll)
    transport.bind(events.append)
    await transport.register_service(_descriptor())
    await transport.start_advertising(build_advertisement(DeviceIdentity(9)))
    return transport


def test_service_is_added_in_descriptor_order(fake_bless: type[FakeServer]) -> None:
    async def _run() -> None:
        transport = await _advertising_transport([])
        server = fake_bless.instances[-1]

        assert server.name == "M 9"
        assert server.services == [FTMS_SERVICE_UUID]
        assert tuple(server.order) == _descriptor().characteristic_uuids
        assert server.started
        control_point = server.characteristics[FITNESS_MACHINE_CONTROL_POINT_CHAR_UUID]
        assert control_point.properties == Properties.write | Properties.indicate
        feature = server.characteristics[FITNESS_MACHINE_FEATURE_CHAR_UUID]
        assert bytes(feature.value) == bytes.fromhex("824000000c200000")
        await transport.stop()
        assert server.stopped

    asyncio.run(_run())


def test_notify_pushes_value(fake_bless: type[FakeServer]) -> None:
    async def _run() -> None:
        transport = await _advertising_transport([])
        server = fake_bless.instances[-1]

        transport.notify(INDOOR_BIKE_DATA_CHAR_UUID, b"\x00\x00\xf4\x01")

        assert server.updates == [(FTMS_SERVICE_UUID, INDOOR_BIKE_DATA_CHAR_UUID, b"\x00\x00\xf4\x01")]
        await transport.stop()

    asyncio.run(_run())


def test_notify_before_advertising_is_dropped(fake_bless: type[FakeServer]) -> None:
    transport = BlessTransport()
    transport.notify(INDOOR_BIKE_DATA_CHAR_UUID, b"\x00\x00")
    assert fake_bless.instances == []


def test_write_request_becomes_event(fake_bless: type[FakeServer]) -> None:
    async def _run() -> None:
        events: list[Any] = []
        transport = await _advertising_transport(events)
        server = fake_bless.instances[-1]
        char = server.characteristics[FITNESS_MACHINE_CONTROL_POINT_CHAR_UUID]

        server.write_request_func(char, bytearray([0x05, 0xE8, 0x03]))
        await asyncio.sleep(0)

        assert events == [
            CharacteristicWritten(FITNESS_MACHINE_CONTROL_POINT_CHAR_UUID, bytes([0x05, 0xE8, 0x03]))
        ]
        await transport.stop()

    asyncio.run(_run())


def test_connection_edges_become_events(fake_bless: type[FakeServer]) -> None:
    async def _run() -> None:
        events: list[Any] = []
        transport = await _advertising_transport(events, poll=0.01)
        server = fake_bless.instances[-1]

        server.connected = True
        await asyncio.sleep(0.05)
        server.connected = False
        await asyncio.sleep(0.05)

        assert events == [CentralConnected(), CentralDisconnected()]
        await transport.stop()

    asyncio.run(_run())


def test_readvertising_replaces_the_server(fake_bless: type[FakeServer]) -> None:
    async def _run() -> None:
        transport = await _advertising_transport([])
        await transport.register_service(_descriptor())
        await transport.start_advertising(build_advertisement(DeviceIdentity(9)))

        first, second = fake_bless.instances
        assert first.stopped
        assert second.started and not second.stopped
        await transport.stop()

    asyncio.run(_run())


def test_advertising_requires_a_registered_service(fake_bless: type[FakeServer]) -> None:
    async def _run() -> None:
        transport = BlessTransport()
        with pytest.raises(RuntimeError):
            await transport.start_advertising(build_advertisement(DeviceIdentity(1)))

    asyncio.run(_run())


def test_connection_watch_survives_a_failed_query(fake_bless: type[FakeServer]) -> None:
    async def _run() -> None:
        events: list[Any] = []
        transport = await _advertising_transport(events, poll=0.01)
        server = fake_bless.instances[-1]
        healthy = server.is_connected
        failures = [OSError("D-Bus call failed")]

        async def flaky_is_connected() -> bool:
            if failures:
                raise failures.pop()
            return await healthy()

        server.is_connected = flaky_is_connected
        await asyncio.sleep(0.05)
        server.connected = True
        await asyncio.sleep(0.05)

        assert failures == []
        assert events == [CentralConnected()]
        await transport.stop()

    asyncio.run(_run())
