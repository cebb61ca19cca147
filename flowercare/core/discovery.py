"""Scan-driven discovery and deduplication of Flower Care devices."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from flowercare.core.connection import DEFAULT_CONNECT_TIMEOUT_S
from flowercare.core.device import FlowerCareDevice
from flowercare.core.errors import AlreadyScanningError, InvalidArgumentError
from flowercare.core.gatt import DEFAULT_IO_TIMEOUT_S
from flowercare.core.identity import normalize_address, resolve_advertisement
from flowercare.core.model import Advertisement, DiscoverOptions, ScanSession
from flowercare.core.protocol import VENDOR_SERVICE_UUID
from flowercare.transports.base import Adapter

LOGGER = logging.getLogger(__name__)


class DiscoveryEngine:
    """Turns advertisements into a stable, address-keyed set of devices.

    Devices accumulate across `discover()` calls unless `clear_devices` is
    requested. Only one scan may run at a time per engine.
    """

    def __init__(
        self,
        adapter: Adapter,
        *,
        include_unknown: bool = False,
        connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S,
        io_timeout_s: float = DEFAULT_IO_TIMEOUT_S,
    ) -> None:
        self._adapter = adapter
        self.include_unknown = include_unknown
        self.connect_timeout_s = connect_timeout_s
        self.io_timeout_s = io_timeout_s
        self._devices: dict[str, FlowerCareDevice] = {}
        self._session: ScanSession | None = None
        self._scanning = False

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    @property
    def devices(self) -> list[FlowerCareDevice]:
        return list(self._devices.values())

    def get(self, address: str) -> FlowerCareDevice | None:
        return self._devices.get(normalize_address(address))

    async def discover(
        self,
        options: DiscoverOptions | None = None,
        *,
        duration: Any = None,
        addresses: Iterable[str] | None = None,
        ignore_unknown: bool | None = None,
        clear_devices: bool | None = None,
    ) -> list[FlowerCareDevice]:
        """Scan and return every known device.

        Pass either a prebuilt `options` or the individual keyword arguments,
        not both.
        """
        if self._scanning:
            raise AlreadyScanningError("Discovery is already in progress")
        keywords = (duration, addresses, ignore_unknown, clear_devices)
        if options is None:
            options = DiscoverOptions.build(
                duration=DiscoverOptions.duration if duration is None else duration,
                addresses=addresses,
                ignore_unknown=bool(ignore_unknown),
                clear_devices=bool(clear_devices),
            )
        elif any(value is not None for value in keywords):
            raise InvalidArgumentError("Pass DiscoverOptions or keyword arguments, not both")

        self._scanning = True
        try:
            return await self._run_scan(options)
        finally:
            self._session = None
            self._scanning = False

    async def _run_scan(self, options: DiscoverOptions) -> list[FlowerCareDevice]:
        await self._adapter.wait_powered_on()

        if options.clear_devices:
            self._devices.clear()

        loop = asyncio.get_running_loop()
        session = ScanSession(
            deadline=loop.time() + options.duration,
            target_addresses=frozenset(normalize_address(a) for a in options.addresses),
            ignore_unknown=options.ignore_unknown,
            discovered=self._devices,
        )
        self._session = session
        targets_found = asyncio.Event()

        def _on_advertisement(advertisement: Advertisement) -> None:
            if self._session is not session:
                return
            if self._accept(session, advertisement) and session.targets_complete():
                targets_found.set()

        LOGGER.debug(
            "starting scan for %.1f seconds (targets: %s)",
            options.duration,
            ", ".join(sorted(session.target_addresses)) or "any",
        )
        await self._adapter.start_scan(
            [VENDOR_SERVICE_UUID],
            _on_advertisement,
            allow_duplicates=True,
        )
        try:
            if session.targets_complete():
                targets_found.set()
            remaining = session.deadline - loop.time()
            try:
                await asyncio.wait_for(targets_found.wait(), timeout=max(remaining, 0))
                LOGGER.debug("all target devices discovered, stopping early")
            except asyncio.TimeoutError:
                pass
        finally:
            self._session = None
            await self._adapter.stop_scan()
            LOGGER.debug("finished scan, %d device(s) known", len(self._devices))

        return list(self._devices.values())

    def _accept(self, session: ScanSession, advertisement: Advertisement) -> bool:
        """Insert the advertiser if it is new and passes the session filters.

        Returns True only when a device was inserted.
        """
        identity = resolve_advertisement(advertisement, include_unknown=self.include_unknown)
        if identity is None:
            return False

        existing = session.discovered.get(identity.address)
        if existing is not None:
            existing.mark_seen(rssi=advertisement.rssi)
            return False
        if not session.accepts(identity.address):
            return False

        device = FlowerCareDevice(
            identity,
            advertisement.peripheral,
            rssi=advertisement.rssi,
            connect_timeout_s=self.connect_timeout_s,
            io_timeout_s=self.io_timeout_s,
        )
        session.discovered[identity.address] = device
        LOGGER.debug("discovered %s '%s' @ %s", device.type.value, device.name, device.address)
        return True
