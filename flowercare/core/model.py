"""Core data models shared by discovery, device protocol, and CLI."""

from __future__ import annotations

import numbers
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from flowercare.core.errors import InvalidArgumentError


class DeviceType(str, Enum):
    MONITOR = "Monitor"
    POT = "Pot"
    UNKNOWN = "Unknown"


class ConnectionState(str, Enum):
    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting"
    CONNECTED = "Connected"
    DISCONNECTING = "Disconnecting"


class Capability(str, Enum):
    BLINK = "blink"


class ModeCommand(bytes, Enum):
    """Two-byte opcodes written to the mode characteristic."""

    SERIAL = b"\xb0\xff"
    REALTIME_ENABLE = b"\xa0\x1f"
    REALTIME_DISABLE = b"\xc0\x1f"


@dataclass(frozen=True)
class ServiceData:
    uuid: str
    payload: bytes


@dataclass(frozen=True)
class Advertisement:
    """Raw advertisement as reported by the adapter.

    `peripheral` is the adapter's connectable handle for the advertiser and is
    opaque to everything except the connection layer.
    """

    address: str
    local_name: str
    service_data: tuple[ServiceData, ...]
    rssi: int | None = None
    peripheral: Any = None


@dataclass(frozen=True)
class DeviceIdentity:
    address: str
    name: str
    type: DeviceType
    product_id: int


@dataclass(frozen=True)
class CharacteristicRef:
    service_uuid: str
    characteristic_uuid: str
    handle: Any = None


@dataclass(frozen=True)
class FirmwareInfo:
    battery: int
    firmware: str


@dataclass(frozen=True)
class SensorValues:
    temperature: float
    lux: int
    moisture: int
    fertility: int


@dataclass(frozen=True)
class QueryResult:
    address: str
    type: DeviceType
    firmware_info: FirmwareInfo
    sensor_values: SensorValues


@dataclass(frozen=True)
class DiscoverOptions:
    duration: float = 10.0
    addresses: tuple[str, ...] = ()
    ignore_unknown: bool = False
    clear_devices: bool = False

    @classmethod
    def build(
        cls,
        *,
        duration: Any = 10.0,
        addresses: Any = None,
        ignore_unknown: bool = False,
        clear_devices: bool = False,
    ) -> DiscoverOptions:
        if isinstance(duration, bool) or not isinstance(duration, numbers.Real):
            raise InvalidArgumentError(f"duration must be a number of seconds, got {duration!r}")
        if duration <= 0:
            raise InvalidArgumentError(f"duration must be positive, got {duration!r}")
        if addresses is None:
            addresses = ()
        if isinstance(addresses, (str, bytes)) or not isinstance(addresses, Iterable):
            raise InvalidArgumentError(f"addresses must be a list of strings, got {addresses!r}")
        addresses = tuple(addresses)
        for address in addresses:
            if not isinstance(address, str):
                raise InvalidArgumentError(f"address must be a string, got {address!r}")
        return cls(
            duration=float(duration),
            addresses=addresses,
            ignore_unknown=bool(ignore_unknown),
            clear_devices=bool(clear_devices),
        )


@dataclass
class ScanSession:
    deadline: float
    target_addresses: frozenset[str]
    ignore_unknown: bool
    discovered: dict[str, Any] = field(default_factory=dict)

    def accepts(self, address: str) -> bool:
        return not self.ignore_unknown or address in self.target_addresses

    def targets_complete(self) -> bool:
        return bool(self.target_addresses) and self.target_addresses.issubset(self.discovered)
