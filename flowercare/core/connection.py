"""Per-device connection lifecycle."""

from __future__ import annotations

import logging

from flowercare.core.model import CharacteristicRef, ConnectionState
from flowercare.core.timeouts import with_timeout
from flowercare.transports.base import Peripheral

DEFAULT_CONNECT_TIMEOUT_S = 10.0

LOGGER = logging.getLogger(__name__)


class DeviceConnection:
    """Connect/disconnect state machine for one peripheral.

    Owns the characteristic cache. Every successful connect starts a new
    generation and empties the cache, since a fresh link may expose different
    handles; disconnects and link losses empty it as well.
    """

    def __init__(
        self,
        address: str,
        peripheral: Peripheral,
        *,
        connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S,
    ) -> None:
        self.address = address
        self.connect_timeout_s = connect_timeout_s
        self._peripheral = peripheral
        self._state = ConnectionState.DISCONNECTED
        self._generation = 0
        self._characteristics: dict[tuple[str, str], CharacteristicRef] = {}
        peripheral.set_disconnect_callback(self._handle_link_lost)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def peripheral(self) -> Peripheral:
        return self._peripheral

    async def connect(self) -> None:
        if self._state is ConnectionState.CONNECTED:
            return
        LOGGER.debug("[%s] initiating connection", self.address)
        self._state = ConnectionState.CONNECTING
        try:
            await with_timeout(
                self._peripheral.connect(),
                self.connect_timeout_s,
                what=f"connect to {self.address}",
            )
        except BaseException:
            self._state = ConnectionState.DISCONNECTED
            raise
        self._generation += 1
        self._characteristics.clear()
        self._state = ConnectionState.CONNECTED
        LOGGER.debug("[%s] connected", self.address)

    async def disconnect(self) -> None:
        if self._state is ConnectionState.DISCONNECTED:
            return
        LOGGER.debug("[%s] closing connection", self.address)
        self._state = ConnectionState.DISCONNECTING
        try:
            await with_timeout(
                self._peripheral.disconnect(),
                self.connect_timeout_s,
                what=f"disconnect from {self.address}",
            )
        finally:
            self._characteristics.clear()
            self._state = ConnectionState.DISCONNECTED
        LOGGER.debug("[%s] disconnected", self.address)

    def cached(self, service_uuid: str, characteristic_uuid: str) -> CharacteristicRef | None:
        return self._characteristics.get((service_uuid, characteristic_uuid))

    def remember(self, generation: int, ref: CharacteristicRef) -> bool:
        """Cache `ref` if the link it was resolved on is still the current one."""
        if generation != self._generation or not self.is_connected:
            return False
        self._characteristics[(ref.service_uuid, ref.characteristic_uuid)] = ref
        return True

    def _handle_link_lost(self) -> None:
        if self._state is ConnectionState.DISCONNECTING:
            return
        LOGGER.debug("[%s] link lost", self.address)
        self._characteristics.clear()
        self._state = ConnectionState.DISCONNECTED
