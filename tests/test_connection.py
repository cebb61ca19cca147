from __future__ import annotations

import pytest

from flowercare.core.connection import DeviceConnection
from flowercare.core.errors import AdapterError, CharacteristicNotFoundError, OperationTimeoutError
from flowercare.core.gatt import CharacteristicAccess
from flowercare.core.model import ConnectionState
from flowercare.core.protocol import (
    DATA_SERVICE_UUID,
    FIRMWARE_CHARACTERISTIC_UUID,
    MODE_CHARACTERISTIC_UUID,
)


def _connection(peripheral, **kwargs) -> DeviceConnection:
    return DeviceConnection("c4:7c:8d:65:d5:26", peripheral, **kwargs)


@pytest.mark.asyncio
async def test_connect_is_idempotent(make_peripheral) -> None:
    peripheral = make_peripheral()
    connection = _connection(peripheral)

    await connection.connect()
    await connection.connect()

    assert connection.state is ConnectionState.CONNECTED
    assert peripheral.operations == [("connect",)]


@pytest.mark.asyncio
async def test_disconnect_is_idempotent(make_peripheral) -> None:
    peripheral = make_peripheral()
    connection = _connection(peripheral)

    await connection.disconnect()
    assert peripheral.operations == []

    await connection.connect()
    await connection.disconnect()
    await connection.disconnect()
    assert connection.state is ConnectionState.DISCONNECTED
    assert peripheral.operations == [("connect",), ("disconnect",)]


@pytest.mark.asyncio
async def test_connect_failure_leaves_disconnected(make_peripheral) -> None:
    peripheral = make_peripheral()
    peripheral.connect_error = AdapterError("le-connection-abort-by-local")
    connection = _connection(peripheral)

    with pytest.raises(AdapterError, match="le-connection-abort-by-local"):
        await connection.connect()
    assert connection.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_connect_timeout_leaves_disconnected(make_peripheral) -> None:
    peripheral = make_peripheral()
    peripheral.hang_on.add("connect")
    connection = _connection(peripheral, connect_timeout_s=0.001)

    with pytest.raises(OperationTimeoutError):
        await connection.connect()
    assert connection.state is ConnectionState.DISCONNECTED
    assert peripheral.operations == [("connect",)]


@pytest.mark.asyncio
async def test_resolve_connects_lazily_and_caches(make_peripheral) -> None:
    peripheral = make_peripheral()
    connection = _connection(peripheral)
    gatt = CharacteristicAccess(connection)

    first = await gatt.resolve(DATA_SERVICE_UUID, MODE_CHARACTERISTIC_UUID)
    second = await gatt.resolve(DATA_SERVICE_UUID, MODE_CHARACTERISTIC_UUID)

    assert first is second
    assert connection.is_connected
    assert peripheral.discover_calls == 1


@pytest.mark.asyncio
async def test_reconnect_invalidates_cache(make_peripheral) -> None:
    peripheral = make_peripheral()
    connection = _connection(peripheral)
    gatt = CharacteristicAccess(connection)

    await gatt.resolve(DATA_SERVICE_UUID, MODE_CHARACTERISTIC_UUID)
    await connection.disconnect()
    assert connection.cached(DATA_SERVICE_UUID, MODE_CHARACTERISTIC_UUID) is None

    await gatt.resolve(DATA_SERVICE_UUID, MODE_CHARACTERISTIC_UUID)
    assert peripheral.discover_calls == 2
    assert connection.generation == 2


@pytest.mark.asyncio
async def test_link_loss_clears_state(make_peripheral) -> None:
    peripheral = make_peripheral()
    connection = _connection(peripheral)
    gatt = CharacteristicAccess(connection)
    await gatt.resolve(DATA_SERVICE_UUID, MODE_CHARACTERISTIC_UUID)

    peripheral.drop_link()

    assert connection.state is ConnectionState.DISCONNECTED
    assert connection.cached(DATA_SERVICE_UUID, MODE_CHARACTERISTIC_UUID) is None

    await gatt.read(DATA_SERVICE_UUID, FIRMWARE_CHARACTERISTIC_UUID)
    assert connection.is_connected
    assert peripheral.operations.count(("connect",)) == 2


@pytest.mark.asyncio
async def test_missing_characteristic_raises(make_peripheral) -> None:
    peripheral = make_peripheral()
    peripheral.missing.add(FIRMWARE_CHARACTERISTIC_UUID)
    gatt = CharacteristicAccess(_connection(peripheral))

    with pytest.raises(CharacteristicNotFoundError):
        await gatt.read(DATA_SERVICE_UUID, FIRMWARE_CHARACTERISTIC_UUID)


@pytest.mark.asyncio
async def test_write_is_without_response(make_peripheral) -> None:
    peripheral = make_peripheral()
    gatt = CharacteristicAccess(_connection(peripheral))

    await gatt.write(DATA_SERVICE_UUID, MODE_CHARACTERISTIC_UUID, b"\xa0\x1f")

    assert peripheral.operations[-1] == ("write", MODE_CHARACTERISTIC_UUID, b"\xa0\x1f", True)


@pytest.mark.asyncio
async def test_hanging_read_times_out(make_peripheral) -> None:
    peripheral = make_peripheral()
    peripheral.hang_on.add("read")
    gatt = CharacteristicAccess(_connection(peripheral), timeout_s=0.001)

    with pytest.raises(OperationTimeoutError):
        await gatt.read(DATA_SERVICE_UUID, FIRMWARE_CHARACTERISTIC_UUID)


@pytest.mark.asyncio
async def test_hanging_discovery_does_not_populate_cache(make_peripheral) -> None:
    peripheral = make_peripheral()
    peripheral.hang_on.add("discover")
    connection = _connection(peripheral)
    gatt = CharacteristicAccess(connection, timeout_s=0.001)

    with pytest.raises(OperationTimeoutError):
        await gatt.resolve(DATA_SERVICE_UUID, MODE_CHARACTERISTIC_UUID)
    assert connection.cached(DATA_SERVICE_UUID, MODE_CHARACTERISTIC_UUID) is None
