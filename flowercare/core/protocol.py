"""Wire constants and payload decoders for Flower Care devices.

UUIDs use the compact lowercase form (no dashes; 16-bit UUIDs as four hex
digits) that the adapter contract in `flowercare.transports.base` expects.

Sensor data layout (data characteristic, realtime mode)::

    offset  size  field
    0       2     temperature, int16 LE, tenths of a degree Celsius
    2       1     unused
    3       4     light, uint32 LE, lux
    7       1     moisture, uint8, percent
    8       2     fertility, uint16 LE, uS/cm
    10..    -     unused

Firmware characteristic layout: byte 0 battery percent, byte 1 unused,
bytes 2.. ASCII firmware version.
"""

from __future__ import annotations

import struct

from flowercare.core.errors import PayloadDecodeError
from flowercare.core.model import FirmwareInfo, SensorValues

VENDOR_SERVICE_UUID = "fe95"
DATA_SERVICE_UUID = "0000120400001000800000805f9b34fb"
MODE_CHARACTERISTIC_UUID = "00001a0000001000800000805f9b34fb"
DATA_CHARACTERISTIC_UUID = "00001a0100001000800000805f9b34fb"
FIRMWARE_CHARACTERISTIC_UUID = "00001a0200001000800000805f9b34fb"

BLINK_COMMAND = b"\xfd\xff"

PRODUCT_ID_OFFSET = 2
ADVERTISED_MAC_OFFSET = 5

_SENSOR_STRUCT = struct.Struct("<hxIBH")
_PRODUCT_ID_STRUCT = struct.Struct("<H")


def parse_firmware(data: bytes) -> FirmwareInfo:
    if len(data) < 2:
        raise PayloadDecodeError(f"Firmware payload too short ({len(data)} bytes)")
    return FirmwareInfo(
        battery=data[0],
        firmware=data[2:].decode("ascii", errors="replace").rstrip("\x00"),
    )


def parse_sensor_values(data: bytes) -> SensorValues:
    if len(data) < _SENSOR_STRUCT.size:
        raise PayloadDecodeError(f"Sensor payload too short ({len(data)} bytes, need {_SENSOR_STRUCT.size})")
    temperature, lux, moisture, fertility = _SENSOR_STRUCT.unpack_from(data)
    return SensorValues(
        temperature=temperature / 10,
        lux=lux,
        moisture=moisture,
        fertility=fertility,
    )


def parse_product_id(payload: bytes) -> int:
    if len(payload) < PRODUCT_ID_OFFSET + _PRODUCT_ID_STRUCT.size:
        raise PayloadDecodeError(f"Service data too short for product id ({len(payload)} bytes)")
    (product_id,) = _PRODUCT_ID_STRUCT.unpack_from(payload, PRODUCT_ID_OFFSET)
    return product_id


def parse_advertised_mac(payload: bytes) -> str:
    """Return the MAC carried in a MiBeacon frame, most significant byte first."""
    raw = payload[ADVERTISED_MAC_OFFSET : ADVERTISED_MAC_OFFSET + 6]
    if len(raw) != 6:
        raise PayloadDecodeError(f"Service data too short for MAC ({len(payload)} bytes)")
    return ":".join(f"{b:02x}" for b in reversed(raw))
