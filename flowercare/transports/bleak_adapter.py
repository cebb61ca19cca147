"""BLE adapter implementation on top of bleak."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from uuid import UUID

from bleak import BleakClient, BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from flowercare.core.errors import AdapterError, OperationTimeoutError
from flowercare.core.model import Advertisement, ServiceData
from flowercare.transports.base import AdvertisementCallback, DisconnectCallback

_BASE_UUID_SUFFIX = "00001000800000805f9b34fb"

LOGGER = logging.getLogger(__name__)


def to_bleak_uuid(value: str) -> str:
    compact = value.replace("-", "").lower()
    if len(compact) == 4:
        compact = f"0000{compact}{_BASE_UUID_SUFFIX}"
    return str(UUID(compact))


def to_compact_uuid(value: str) -> str:
    compact = value.replace("-", "").lower()
    if len(compact) == 32 and compact.startswith("0000") and compact.endswith(_BASE_UUID_SUFFIX):
        return compact[4:8]
    return compact


class BleakCharacteristic:
    def __init__(self, client: BleakClient, characteristic: BleakGATTCharacteristic) -> None:
        self._client = client
        self._characteristic = characteristic
        self.uuid = to_compact_uuid(characteristic.uuid)

    async def read(self) -> bytes:
        try:
            return bytes(await self._client.read_gatt_char(self._characteristic))
        except (BleakError, OSError) as exc:
            raise AdapterError(f"BLE read of {self.uuid} failed: {exc}") from exc

    async def write(self, data: bytes, *, without_response: bool) -> None:
        try:
            await self._client.write_gatt_char(
                self._characteristic,
                data,
                response=not without_response,
            )
        except (BleakError, OSError) as exc:
            raise AdapterError(f"BLE write to {self.uuid} failed: {exc}") from exc


class BleakPeripheral:
    def __init__(self, device: BLEDevice, *, connect_timeout_s: float = 10.0) -> None:
        self.address = device.address
        self._device = device
        self._connect_timeout_s = connect_timeout_s
        self._client: BleakClient | None = None
        self._disconnect_callback: DisconnectCallback | None = None
        self._closing = False

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    def set_disconnect_callback(self, callback: DisconnectCallback | None) -> None:
        self._disconnect_callback = callback

    def update_device(self, device: BLEDevice) -> None:
        self._device = device

    async def connect(self) -> None:
        client = BleakClient(
            self._device,
            disconnected_callback=self._on_disconnected,
            timeout=self._connect_timeout_s,
        )
        try:
            await client.connect()
        except TimeoutError as exc:
            raise OperationTimeoutError(f"BLE connect to {self.address} timed out") from exc
        except (BleakError, OSError) as exc:
            raise AdapterError(f"BLE connect to {self.address} failed: {exc}") from exc
        if not client.is_connected:
            raise AdapterError(f"BLE connect failed for {self.address}")
        self._client = client

    async def disconnect(self) -> None:
        client = self._client
        if client is None:
            return
        self._closing = True
        try:
            await client.disconnect()
        except (BleakError, OSError) as exc:
            raise AdapterError(f"BLE disconnect from {self.address} failed: {exc}") from exc
        finally:
            self._closing = False
            self._client = None

    async def discover_characteristics(
        self,
        service_uuid: str,
        characteristic_uuid: str,
    ) -> list[BleakCharacteristic]:
        client = self._client
        if client is None or not client.is_connected:
            raise AdapterError(f"BLE peripheral {self.address} is not connected")
        try:
            service = client.services.get_service(to_bleak_uuid(service_uuid))
        except BleakError as exc:
            raise AdapterError(f"BLE service discovery on {self.address} failed: {exc}") from exc
        if service is None:
            return []
        characteristic = service.get_characteristic(to_bleak_uuid(characteristic_uuid))
        if characteristic is None:
            return []
        return [BleakCharacteristic(client, characteristic)]

    def _on_disconnected(self, _: BleakClient) -> None:
        self._client = None
        if self._closing:
            return
        LOGGER.debug("Link to %s lost", self.address)
        callback = self._disconnect_callback
        if callback is not None:
            callback()


class BleakAdapter:
    """Adapter backed by the platform's default bleak backend.

    bleak does not publish controller power events; its backends wait for the
    controller inside `BleakScanner.start()` / `BleakClient.connect()` and raise
    if it never becomes usable, so `wait_powered_on()` returns immediately.
    """

    def __init__(self, *, connect_timeout_s: float = 10.0) -> None:
        self._connect_timeout_s = connect_timeout_s
        self._scanner: BleakScanner | None = None
        self._peripherals: dict[str, BleakPeripheral] = {}

    async def wait_powered_on(self) -> None:
        return None

    async def start_scan(
        self,
        service_uuids: Sequence[str],
        callback: AdvertisementCallback,
        *,
        allow_duplicates: bool = True,
    ) -> None:
        if self._scanner is not None:
            raise AdapterError("BLE scan already running on this adapter")

        def _detection_callback(device: BLEDevice, adv: AdvertisementData) -> None:
            callback(self._to_advertisement(device, adv))

        scanner = BleakScanner(
            detection_callback=_detection_callback,
            service_uuids=[to_bleak_uuid(uuid) for uuid in service_uuids],
            bluez={"filters": {"DuplicateData": allow_duplicates}},
        )
        try:
            await scanner.start()
        except (BleakError, OSError) as exc:
            raise AdapterError(f"BLE scan could not start: {exc}") from exc
        self._scanner = scanner
        LOGGER.debug("Scan started")

    async def stop_scan(self) -> None:
        scanner = self._scanner
        if scanner is None:
            return
        self._scanner = None
        try:
            await scanner.stop()
        except (BleakError, OSError) as exc:
            raise AdapterError(f"BLE scan could not stop: {exc}") from exc
        LOGGER.debug("Scan stopped")

    def _to_advertisement(self, device: BLEDevice, adv: AdvertisementData) -> Advertisement:
        peripheral = self._peripherals.get(device.address)
        if peripheral is None:
            peripheral = BleakPeripheral(device, connect_timeout_s=self._connect_timeout_s)
            self._peripherals[device.address] = peripheral
        else:
            peripheral.update_device(device)
        return Advertisement(
            address=device.address,
            local_name=adv.local_name or device.name or "",
            service_data=tuple(
                ServiceData(uuid=to_compact_uuid(uuid), payload=bytes(payload))
                for uuid, payload in adv.service_data.items()
            ),
            rssi=adv.rssi,
            peripheral=peripheral,
        )
