"""Characteristic resolution and typed read/write."""

from __future__ import annotations

import logging

from flowercare.core.connection import DeviceConnection
from flowercare.core.errors import CharacteristicNotFoundError
from flowercare.core.model import CharacteristicRef
from flowercare.core.timeouts import with_timeout
from flowercare.transports.base import Characteristic

DEFAULT_IO_TIMEOUT_S = 10.0

LOGGER = logging.getLogger(__name__)


class CharacteristicAccess:
    def __init__(self, connection: DeviceConnection, *, timeout_s: float = DEFAULT_IO_TIMEOUT_S) -> None:
        self._connection = connection
        self.timeout_s = timeout_s

    async def resolve(self, service_uuid: str, characteristic_uuid: str) -> Characteristic:
        connection = self._connection
        if not connection.is_connected:
            await connection.connect()

        ref = connection.cached(service_uuid, characteristic_uuid)
        if ref is not None:
            return ref.handle

        generation = connection.generation
        LOGGER.debug("[%s] resolving characteristic %s", connection.address, characteristic_uuid)
        matches = await with_timeout(
            connection.peripheral.discover_characteristics(service_uuid, characteristic_uuid),
            self.timeout_s,
            what=f"discovery of {characteristic_uuid} on {connection.address}",
        )
        if not matches:
            raise CharacteristicNotFoundError(
                f"Characteristic {characteristic_uuid} of service {service_uuid} "
                f"not found on {connection.address}"
            )
        handle = matches[0]
        connection.remember(
            generation,
            CharacteristicRef(service_uuid, characteristic_uuid, handle),
        )
        return handle

    async def read(self, service_uuid: str, characteristic_uuid: str) -> bytes:
        characteristic = await self.resolve(service_uuid, characteristic_uuid)
        data = await with_timeout(
            characteristic.read(),
            self.timeout_s,
            what=f"read of {characteristic_uuid} on {self._connection.address}",
        )
        data = bytes(data)
        LOGGER.debug(
            "[%s] read 0x%s from %s", self._connection.address, data.hex(), characteristic_uuid
        )
        return data

    async def write(self, service_uuid: str, characteristic_uuid: str, data: bytes) -> None:
        characteristic = await self.resolve(service_uuid, characteristic_uuid)
        LOGGER.debug(
            "[%s] writing 0x%s to %s", self._connection.address, data.hex(), characteristic_uuid
        )
        await with_timeout(
            characteristic.write(bytes(data), without_response=True),
            self.timeout_s,
            what=f"write to {characteristic_uuid} on {self._connection.address}",
        )
