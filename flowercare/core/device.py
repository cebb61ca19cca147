"""Device protocol operations for a single Flower Care sensor."""

from __future__ import annotations

import asyncio
import logging
import time

from flowercare.core.connection import DEFAULT_CONNECT_TIMEOUT_S, DeviceConnection
from flowercare.core.errors import ModeSwitchError, UnsupportedOperationError
from flowercare.core.gatt import DEFAULT_IO_TIMEOUT_S, CharacteristicAccess
from flowercare.core.model import (
    Capability,
    ConnectionState,
    DeviceIdentity,
    DeviceType,
    FirmwareInfo,
    ModeCommand,
    QueryResult,
    SensorValues,
)
from flowercare.core.protocol import (
    BLINK_COMMAND,
    DATA_CHARACTERISTIC_UUID,
    DATA_SERVICE_UUID,
    FIRMWARE_CHARACTERISTIC_UUID,
    MODE_CHARACTERISTIC_UUID,
    parse_firmware,
    parse_sensor_values,
)
from flowercare.transports.base import Peripheral

LOGGER = logging.getLogger(__name__)

TYPE_CAPABILITIES: dict[DeviceType, frozenset[Capability]] = {
    DeviceType.MONITOR: frozenset({Capability.BLINK}),
}


class FlowerCareDevice:
    """A discovered sensor and the operations it supports.

    Operations connect lazily and leave the link open so several queries can
    share one connection; call `disconnect()` (or use the device as an async
    context manager) when done. Public operations are serialized per device.
    """

    def __init__(
        self,
        identity: DeviceIdentity,
        peripheral: Peripheral,
        *,
        rssi: int | None = None,
        connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S,
        io_timeout_s: float = DEFAULT_IO_TIMEOUT_S,
    ) -> None:
        self.address = identity.address
        self.name = identity.name
        self.type = identity.type
        self.product_id = identity.product_id
        self.capabilities = TYPE_CAPABILITIES.get(identity.type, frozenset())
        self.rssi = rssi
        self.last_discovery = time.time()
        self._connection = DeviceConnection(
            identity.address,
            peripheral,
            connect_timeout_s=connect_timeout_s,
        )
        self._gatt = CharacteristicAccess(self._connection, timeout_s=io_timeout_s)
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"FlowerCareDevice(address={self.address!r}, name={self.name!r}, type={self.type.value})"

    async def __aenter__(self) -> FlowerCareDevice:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    @property
    def connection_state(self) -> ConnectionState:
        return self._connection.state

    @property
    def is_connected(self) -> bool:
        return self._connection.is_connected

    def has_capability(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def mark_seen(self, *, rssi: int | None = None) -> None:
        self.last_discovery = time.time()
        if rssi is not None:
            self.rssi = rssi

    async def connect(self) -> None:
        async with self._lock:
            await self._connection.connect()

    async def disconnect(self) -> None:
        async with self._lock:
            await self._connection.disconnect()

    async def query_firmware_info(self) -> FirmwareInfo:
        async with self._lock:
            return await self._query_firmware_info()

    async def query_sensor_values(self) -> SensorValues:
        async with self._lock:
            return await self._query_sensor_values()

    async def query_serial(self) -> str:
        async with self._lock:
            LOGGER.debug("[%s] querying serial number", self.address)
            await self._set_mode(ModeCommand.SERIAL)
            data = await self._gatt.read(DATA_SERVICE_UUID, DATA_CHARACTERISTIC_UUID)
            serial = data.hex()
            LOGGER.debug("[%s] successfully queried serial: %s", self.address, serial)
            return serial

    async def query(self) -> QueryResult:
        async with self._lock:
            LOGGER.debug("[%s] querying multiple information", self.address)
            firmware_info = await self._query_firmware_info()
            sensor_values = await self._query_sensor_values()
            return QueryResult(
                address=self.address,
                type=self.type,
                firmware_info=firmware_info,
                sensor_values=sensor_values,
            )

    async def set_mode(self, command: ModeCommand | bytes) -> bytes:
        async with self._lock:
            return await self._set_mode(command)

    async def disable_realtime(self) -> bytes:
        async with self._lock:
            LOGGER.debug("[%s] disabling realtime data mode", self.address)
            return await self._set_mode(ModeCommand.REALTIME_DISABLE)

    async def blink(self) -> None:
        if not self.has_capability(Capability.BLINK):
            raise UnsupportedOperationError(
                f"Device {self.address} ({self.type.value}) does not support blink"
            )
        async with self._lock:
            LOGGER.debug("[%s] blinking", self.address)
            await self._gatt.write(DATA_SERVICE_UUID, MODE_CHARACTERISTIC_UUID, BLINK_COMMAND)

    async def _query_firmware_info(self) -> FirmwareInfo:
        LOGGER.debug("[%s] querying firmware information", self.address)
        data = await self._gatt.read(DATA_SERVICE_UUID, FIRMWARE_CHARACTERISTIC_UUID)
        info = parse_firmware(data)
        LOGGER.debug("[%s] successfully queried firmware information: %s", self.address, info)
        return info

    async def _query_sensor_values(self) -> SensorValues:
        LOGGER.debug("[%s] querying sensor values", self.address)
        await self._set_mode(ModeCommand.REALTIME_ENABLE)
        data = await self._gatt.read(DATA_SERVICE_UUID, DATA_CHARACTERISTIC_UUID)
        values = parse_sensor_values(data)
        LOGGER.debug("[%s] successfully queried sensor values: %s", self.address, values)
        return values

    async def _set_mode(self, command: ModeCommand | bytes) -> bytes:
        expected = bytes(command)
        LOGGER.debug("[%s] changing device mode to 0x%s", self.address, expected.hex())
        await self._gatt.write(DATA_SERVICE_UUID, MODE_CHARACTERISTIC_UUID, expected)
        actual = await self._gatt.read(DATA_SERVICE_UUID, MODE_CHARACTERISTIC_UUID)
        if actual != expected:
            raise ModeSwitchError(expected, actual)
        LOGGER.debug("[%s] successfully changed device mode", self.address)
        return actual
