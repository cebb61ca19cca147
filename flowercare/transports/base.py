"""Adapter interfaces.

UUIDs crossing these interfaces are compact lowercase hex strings without
dashes; 16-bit UUIDs on the Bluetooth base UUID are four hex digits.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Protocol

from flowercare.core.model import Advertisement

AdvertisementCallback = Callable[[Advertisement], None]
DisconnectCallback = Callable[[], None]


class Characteristic(Protocol):
    uuid: str

    async def read(self) -> bytes:
        """Issue a GATT read and return the raw value."""

    async def write(self, data: bytes, *, without_response: bool) -> None:
        """Issue a GATT write of exactly `data`."""


class Peripheral(Protocol):
    address: str

    @property
    def is_connected(self) -> bool: ...

    async def connect(self) -> None:
        """Return once the adapter reports the link as connected."""

    async def disconnect(self) -> None:
        """Return once the adapter reports the link as closed."""

    async def discover_characteristics(
        self,
        service_uuid: str,
        characteristic_uuid: str,
    ) -> list[Characteristic]:
        """Return the matching characteristics (possibly none)."""

    def set_disconnect_callback(self, callback: DisconnectCallback | None) -> None:
        """Register a callback for link loss not requested by the caller."""


class Adapter(Protocol):
    async def wait_powered_on(self) -> None:
        """Suspend until the adapter reports the powered-on state."""

    async def start_scan(
        self,
        service_uuids: Sequence[str],
        callback: AdvertisementCallback,
        *,
        allow_duplicates: bool = True,
    ) -> None:
        """Begin scanning, delivering advertisements to `callback` in arrival order."""

    async def stop_scan(self) -> None:
        """Stop a running scan."""
