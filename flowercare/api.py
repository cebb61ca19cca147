"""Stable public API for building tooling on top of flowercare.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from flowercare.core.config import Settings
from flowercare.core.device import FlowerCareDevice
from flowercare.core.discovery import DiscoveryEngine
from flowercare.core.errors import (
    AdapterError,
    AlreadyScanningError,
    CharacteristicNotFoundError,
    ConfigLoadError,
    ConfigValidationError,
    DeviceSelectionError,
    FlowerCareError,
    InvalidArgumentError,
    ModeSwitchError,
    OperationTimeoutError,
    PayloadDecodeError,
    UnsupportedOperationError,
)
from flowercare.core.identity import normalize_address
from flowercare.core.model import (
    Capability,
    ConnectionState,
    DeviceType,
    DiscoverOptions,
    FirmwareInfo,
    ModeCommand,
    QueryResult,
    SensorValues,
)
from flowercare.transports.base import Adapter

__all__ = [
    "FlowerCareError",
    "AdapterError",
    "AlreadyScanningError",
    "CharacteristicNotFoundError",
    "ConfigLoadError",
    "ConfigValidationError",
    "DeviceSelectionError",
    "InvalidArgumentError",
    "ModeSwitchError",
    "OperationTimeoutError",
    "PayloadDecodeError",
    "UnsupportedOperationError",
    "Capability",
    "ConnectionState",
    "DeviceType",
    "DiscoverOptions",
    "FirmwareInfo",
    "ModeCommand",
    "QueryResult",
    "SensorValues",
    "Settings",
    "FlowerCareDevice",
    "DiscoveryEngine",
    "Client",
    "normalize_address",
]


def _default_adapter(settings: Settings) -> Adapter:
    from flowercare.transports.bleak_adapter import BleakAdapter

    return BleakAdapter(connect_timeout_s=settings.connect_timeout_s)


class Client:
    """Public client for discovering and querying Flower Care sensors.

    A `Client` owns one discovery engine bound to one adapter. Settings supply
    the defaults for every discovery option that is not passed explicitly.
    """

    def __init__(
        self,
        *,
        adapter: Adapter | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self._engine = DiscoveryEngine(
            adapter or _default_adapter(self.settings),
            include_unknown=self.settings.include_unknown,
            connect_timeout_s=self.settings.connect_timeout_s,
            io_timeout_s=self.settings.io_timeout_s,
        )

    @property
    def devices(self) -> list[FlowerCareDevice]:
        return self._engine.devices

    async def discover(
        self,
        *,
        duration: Any = None,
        addresses: Iterable[str] | None = None,
        ignore_unknown: bool | None = None,
        clear_devices: bool = False,
    ) -> list[FlowerCareDevice]:
        options = DiscoverOptions.build(
            duration=self.settings.scan_duration_s if duration is None else duration,
            addresses=self.settings.addresses if addresses is None else addresses,
            ignore_unknown=self.settings.ignore_unknown if ignore_unknown is None else ignore_unknown,
            clear_devices=clear_devices,
        )
        return await self._engine.discover(options)

    async def find(self, target: str, *, duration: Any = None) -> FlowerCareDevice:
        """Return the device for an alias or address, scanning until it shows up."""
        address = self.settings.resolve_target(target)
        device = self._engine.get(address)
        if device is not None:
            return device
        await self.discover(duration=duration, addresses=[address], ignore_unknown=True)
        device = self._engine.get(address)
        if device is None:
            raise DeviceSelectionError(f"No device found matching '{target}'")
        return device

    async def query_all(self) -> list[QueryResult]:
        """Query every known device in turn, closing each link afterwards."""
        results: list[QueryResult] = []
        for device in self._engine.devices:
            try:
                results.append(await device.query())
            finally:
                await device.disconnect()
        return results
