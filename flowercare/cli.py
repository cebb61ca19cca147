"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import NoReturn, TypeVar

import typer

from flowercare.api import Client
from flowercare.core.config import load_settings
from flowercare.core.device import FlowerCareDevice
from flowercare.core.errors import FlowerCareError
from flowercare.core.model import FirmwareInfo, SensorValues

T = TypeVar("T")

app = typer.Typer(help="Read Xiaomi Flower Care soil sensors over Bluetooth LE")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log protocol traffic"),
    config: Path | None = typer.Option(None, "--config", help="Settings file to use"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = config


def _build_client(ctx: typer.Context) -> Client:
    loaded = load_settings(ctx.obj)
    for warning in loaded.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    return Client(settings=loaded.settings)


def _echo_firmware(info: FirmwareInfo) -> None:
    typer.echo(f"  battery: {info.battery}%")
    typer.echo(f"  firmware: {info.firmware}")


def _echo_sensors(values: SensorValues) -> None:
    typer.echo(f"  temperature: {values.temperature:.1f} C")
    typer.echo(f"  light: {values.lux} lux")
    typer.echo(f"  moisture: {values.moisture}%")
    typer.echo(f"  fertility: {values.fertility} uS/cm")


def _run_on_device(
    ctx: typer.Context,
    target: str,
    duration: float | None,
    operation: Callable[[FlowerCareDevice], Awaitable[T]],
) -> tuple[FlowerCareDevice, T]:
    client = _build_client(ctx)

    async def _run() -> tuple[FlowerCareDevice, T]:
        device = await client.find(target, duration=duration)
        try:
            return device, await operation(device)
        finally:
            await device.disconnect()

    return asyncio.run(_run())


def _fail(exc: FlowerCareError) -> NoReturn:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1) from None


TARGET_ARGUMENT = typer.Argument(..., help="Device address or configured alias")
DURATION_OPTION = typer.Option(None, "--duration", "-d", help="Maximum seconds to scan")


@app.command("discover")
def discover(
    ctx: typer.Context,
    duration: float | None = DURATION_OPTION,
    address: list[str] | None = typer.Option(
        None, "--address", "-a", help="Stop early once these addresses are seen"
    ),
    ignore_unknown: bool | None = typer.Option(
        None,
        "--ignore-unknown/--no-ignore-unknown",
        help="Only keep the addresses given with --address (default from settings)",
    ),
) -> None:
    """Scan for sensors and list them."""
    try:
        client = _build_client(ctx)
        devices = asyncio.run(
            client.discover(
                duration=duration,
                addresses=address or None,
                ignore_unknown=ignore_unknown,
            )
        )
    except FlowerCareError as exc:
        _fail(exc)

    if not devices:
        typer.echo("No devices found")
        return
    for device in sorted(devices, key=lambda d: d.address):
        rssi = f" rssi={device.rssi}" if device.rssi is not None else ""
        typer.echo(f"{device.address} {device.type.value} '{device.name}'{rssi}")


@app.command("query")
def query(
    ctx: typer.Context,
    target: str = TARGET_ARGUMENT,
    duration: float | None = DURATION_OPTION,
) -> None:
    """Read firmware information and sensor values."""
    try:
        device, result = _run_on_device(ctx, target, duration, lambda d: d.query())
    except FlowerCareError as exc:
        _fail(exc)
    typer.echo(f"{device.address} ({device.type.value})")
    _echo_firmware(result.firmware_info)
    _echo_sensors(result.sensor_values)


@app.command("firmware")
def firmware(
    ctx: typer.Context,
    target: str = TARGET_ARGUMENT,
    duration: float | None = DURATION_OPTION,
) -> None:
    """Read battery level and firmware version."""
    try:
        device, info = _run_on_device(ctx, target, duration, lambda d: d.query_firmware_info())
    except FlowerCareError as exc:
        _fail(exc)
    typer.echo(f"{device.address} ({device.type.value})")
    _echo_firmware(info)


@app.command("sensors")
def sensors(
    ctx: typer.Context,
    target: str = TARGET_ARGUMENT,
    duration: float | None = DURATION_OPTION,
) -> None:
    """Read live sensor values."""
    try:
        device, values = _run_on_device(ctx, target, duration, lambda d: d.query_sensor_values())
    except FlowerCareError as exc:
        _fail(exc)
    typer.echo(f"{device.address} ({device.type.value})")
    _echo_sensors(values)


@app.command("serial")
def serial(
    ctx: typer.Context,
    target: str = TARGET_ARGUMENT,
    duration: float | None = DURATION_OPTION,
) -> None:
    """Read the device serial number."""
    try:
        device, serial_hex = _run_on_device(ctx, target, duration, lambda d: d.query_serial())
    except FlowerCareError as exc:
        _fail(exc)
    typer.echo(f"{device.address} serial={serial_hex}")


@app.command("blink")
def blink(
    ctx: typer.Context,
    target: str = TARGET_ARGUMENT,
    duration: float | None = DURATION_OPTION,
) -> None:
    """Flash the device LED to locate it."""
    try:
        device, _ = _run_on_device(ctx, target, duration, lambda d: d.blink())
    except FlowerCareError as exc:
        _fail(exc)
    typer.echo(f"Blinked {device.address}")


@app.command("query-all")
def query_all(
    ctx: typer.Context,
    duration: float | None = DURATION_OPTION,
) -> None:
    """Discover sensors, then query each one in turn."""
    try:
        client = _build_client(ctx)

        async def _run():
            await client.discover(duration=duration)
            return await client.query_all()

        results = asyncio.run(_run())
    except FlowerCareError as exc:
        _fail(exc)

    if not results:
        typer.echo("No devices found")
        return
    for result in results:
        typer.echo(f"{result.address} ({result.type.value})")
        _echo_firmware(result.firmware_info)
        _echo_sensors(result.sensor_values)


def run() -> None:
    app()


if __name__ == "__main__":
    run()
