from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from flowercare.core.model import Advertisement, ServiceData
from flowercare.core.protocol import (
    DATA_CHARACTERISTIC_UUID,
    DATA_SERVICE_UUID,
    FIRMWARE_CHARACTERISTIC_UUID,
    MODE_CHARACTERISTIC_UUID,
    VENDOR_SERVICE_UUID,
)

SERIAL_MODE = b"\xb0\xff"

# battery 99 %, firmware "3.2.1"
FIRMWARE_PAYLOAD = bytes.fromhex("63 27") + b"3.2.1"
# 24.2 C, 419 lux, 27 %, 88 uS/cm
SENSOR_PAYLOAD = bytes.fromhex("f2 00 00 a3 01 00 00 1b 58 00 02 3c 00 fb 34 9b")
SERIAL_PAYLOAD = bytes.fromhex("0123456789abcdef")


class FakeCharacteristic:
    def __init__(self, peripheral: FakeFlowerCare, uuid: str) -> None:
        self._peripheral = peripheral
        self.uuid = uuid

    async def read(self) -> bytes:
        return await self._peripheral.handle_read(self.uuid)

    async def write(self, data: bytes, *, without_response: bool) -> None:
        await self._peripheral.handle_write(self.uuid, data, without_response)


class FakeFlowerCare:
    """In-memory peripheral speaking the sensor's GATT protocol."""

    def __init__(self, address: str = "C4:7C:8D:65:D5:26") -> None:
        self.address = address
        self.connected = False
        self.mode = b""
        self.mode_readback: bytes | None = None
        self.firmware_payload = FIRMWARE_PAYLOAD
        self.sensor_payload = SENSOR_PAYLOAD
        self.serial_payload = SERIAL_PAYLOAD
        self.missing: set[str] = set()
        self.connect_error: BaseException | None = None
        self.hang_on: set[str] = set()
        self.operations: list[tuple] = []
        self.discover_calls = 0
        self._disconnect_callback: Callable[[], None] | None = None

    @property
    def is_connected(self) -> bool:
        return self.connected

    def set_disconnect_callback(self, callback: Callable[[], None] | None) -> None:
        self._disconnect_callback = callback

    def drop_link(self) -> None:
        self.connected = False
        if self._disconnect_callback is not None:
            self._disconnect_callback()

    async def _maybe_hang(self, step: str) -> None:
        if step in self.hang_on:
            await asyncio.Event().wait()

    async def connect(self) -> None:
        self.operations.append(("connect",))
        await self._maybe_hang("connect")
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    async def disconnect(self) -> None:
        self.operations.append(("disconnect",))
        await self._maybe_hang("disconnect")
        self.connected = False

    async def discover_characteristics(self, service_uuid: str, characteristic_uuid: str) -> list[FakeCharacteristic]:
        self.discover_calls += 1
        self.operations.append(("discover", characteristic_uuid))
        await self._maybe_hang("discover")
        known = {MODE_CHARACTERISTIC_UUID, DATA_CHARACTERISTIC_UUID, FIRMWARE_CHARACTERISTIC_UUID}
        if service_uuid != DATA_SERVICE_UUID or characteristic_uuid not in known - self.missing:
            return []
        return [FakeCharacteristic(self, characteristic_uuid)]

    async def handle_read(self, uuid: str) -> bytes:
        self.operations.append(("read", uuid))
        await self._maybe_hang("read")
        if uuid == FIRMWARE_CHARACTERISTIC_UUID:
            return self.firmware_payload
        if uuid == MODE_CHARACTERISTIC_UUID:
            return self.mode if self.mode_readback is None else self.mode_readback
        if self.mode == SERIAL_MODE:
            return self.serial_payload
        return self.sensor_payload

    async def handle_write(self, uuid: str, data: bytes, without_response: bool) -> None:
        self.operations.append(("write", uuid, data, without_response))
        await self._maybe_hang("write")
        if uuid == MODE_CHARACTERISTIC_UUID:
            self.mode = data


class FakeAdapter:
    def __init__(self, *, powered: bool = True) -> None:
        self._powered = asyncio.Event()
        if powered:
            self.power_on()
        self.scan_calls: list[tuple[list[str], bool]] = []
        self.stop_calls = 0
        self.start_error: BaseException | None = None
        self._callback = None

    @property
    def scanning(self) -> bool:
        return self._callback is not None

    def power_on(self) -> None:
        self._powered.set()

    async def wait_powered_on(self) -> None:
        await self._powered.wait()

    async def start_scan(self, service_uuids, callback, *, allow_duplicates: bool = True) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.scan_calls.append((list(service_uuids), allow_duplicates))
        self._callback = callback

    async def stop_scan(self) -> None:
        self.stop_calls += 1
        self._callback = None

    def advertise(self, advertisement: Advertisement) -> None:
        if self._callback is not None:
            self._callback(advertisement)


def mibeacon_payload(product_id: int, mac: str | None = None) -> bytes:
    frame = bytes([0x71, 0x20]) + product_id.to_bytes(2, "little") + bytes([0x01])
    if mac is not None:
        frame += bytes(reversed(bytes.fromhex(mac.replace(":", "").replace("-", ""))))
    return frame


@pytest.fixture
def adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def unpowered_adapter() -> FakeAdapter:
    return FakeAdapter(powered=False)


@pytest.fixture
def make_peripheral() -> Callable[..., FakeFlowerCare]:
    return FakeFlowerCare


@pytest.fixture
def make_advertisement() -> Callable[..., Advertisement]:
    def _make(
        address: str = "C4:7C:8D:65:D5:26",
        *,
        product_id: int = 152,
        name: str = "Flower care",
        rssi: int | None = -60,
        mac: str | None = None,
        service_uuid: str = VENDOR_SERVICE_UUID,
        payload: bytes | None = None,
    ) -> Advertisement:
        if payload is None:
            payload = mibeacon_payload(product_id, mac)
        return Advertisement(
            address=address,
            local_name=name,
            service_data=(ServiceData(uuid=service_uuid, payload=payload),),
            rssi=rssi,
            peripheral=FakeFlowerCare(address or mac or ""),
        )

    return _make
