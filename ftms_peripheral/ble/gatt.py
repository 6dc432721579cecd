"""Declarative FTMS GATT service and advertisement."""

from __future__ import annotations

import enum
import functools
from dataclasses import dataclass

from ftms_peripheral.ble.codec import encode_feature, encode_range
from ftms_peripheral.ble.constants import (
    CCCD_DISABLED,
    CLIENT_CHARACTERISTIC_CONFIGURATION_UUID,
    FITNESS_MACHINE_CONTROL_POINT_CHAR_UUID,
    FITNESS_MACHINE_FEATURE_CHAR_UUID,
    FITNESS_MACHINE_STATUS_CHAR_UUID,
    FTMS_SERVICE_UUID,
    INDOOR_BIKE_DATA_CHAR_UUID,
    SUPPORTED_POWER_RANGE_CHAR_UUID,
    SUPPORTED_RESISTANCE_LEVEL_RANGE_CHAR_UUID,
)
from ftms_peripheral.core.state import Capability, DeviceIdentity


class CharProperty(enum.Flag):
    READ = enum.auto()
    WRITE = enum.auto()
    NOTIFY = enum.auto()
    INDICATE = enum.auto()


@dataclass(frozen=True)
class DescriptorSpec:
    uuid: str
    value: bytes


@dataclass(frozen=True)
class CharacteristicSpec:
    uuid: str
    properties: CharProperty
    value: bytes = b""
    descriptors: tuple[DescriptorSpec, ...] = ()


@dataclass(frozen=True)
class ServiceDescriptor:
    uuid: str
    characteristics: tuple[CharacteristicSpec, ...]

    @property
    def characteristic_uuids(self) -> tuple[str, ...]:
        return tuple(char.uuid for char in self.characteristics)

    def characteristic(self, uuid: str) -> CharacteristicSpec:
        for char in self.characteristics:
            if char.uuid == uuid.lower():
                return char
        raise KeyError(uuid)


@dataclass(frozen=True)
class Advertisement:
    local_name: str
    service_uuids: tuple[str, ...]
    general_discoverable: bool = True
    include_tx_power: bool = True


def _characteristic(
    uuid: str, properties: CharProperty, value: bytes = b""
) -> CharacteristicSpec:
    # Every characteristic starts with notifications/indications off.
    cccd = DescriptorSpec(CLIENT_CHARACTERISTIC_CONFIGURATION_UUID, CCCD_DISABLED)
    return CharacteristicSpec(uuid, properties, value, (cccd,))


@functools.lru_cache(maxsize=None)
def build_service_descriptor(
    capability: Capability,
    power_range: tuple[int, int, int],
    resistance_range: tuple[int, int, int],
) -> ServiceDescriptor:
    """Build the FTMS service; repeated calls return the same descriptor object.

    Characteristic order is fixed, with the optional range characteristics last.
    """
    characteristics = [
        _characteristic(INDOOR_BIKE_DATA_CHAR_UUID, CharProperty.NOTIFY),
        _characteristic(
            FITNESS_MACHINE_CONTROL_POINT_CHAR_UUID,
            CharProperty.WRITE | CharProperty.INDICATE,
        ),
        _characteristic(
            FITNESS_MACHINE_FEATURE_CHAR_UUID,
            CharProperty.READ,
            encode_feature(capability),
        ),
        _characteristic(FITNESS_MACHINE_STATUS_CHAR_UUID, CharProperty.NOTIFY),
    ]
    if capability.controllable:
        characteristics.append(
            _characteristic(
                SUPPORTED_POWER_RANGE_CHAR_UUID,
                CharProperty.READ,
                encode_range(*power_range),
            )
        )
        characteristics.append(
            _characteristic(
                SUPPORTED_RESISTANCE_LEVEL_RANGE_CHAR_UUID,
                CharProperty.READ,
                encode_range(*resistance_range),
            )
        )
    return ServiceDescriptor(FTMS_SERVICE_UUID, tuple(characteristics))


def build_advertisement(identity: DeviceIdentity) -> Advertisement:
    return Advertisement(local_name=identity.local_name, service_uuids=(FTMS_SERVICE_UUID,))
