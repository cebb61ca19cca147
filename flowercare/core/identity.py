"""Advertisement-to-device classification."""

from __future__ import annotations

import logging
import re

from flowercare.core.model import Advertisement, DeviceIdentity, DeviceType
from flowercare.core.protocol import VENDOR_SERVICE_UUID, parse_advertised_mac, parse_product_id

_ADDRESS_RE = re.compile(r"^[0-9a-f]{2}([:-])[0-9a-f]{2}(?:\1[0-9a-f]{2}){4}$", re.IGNORECASE)

PRODUCT_TYPES: dict[int, DeviceType] = {
    152: DeviceType.MONITOR,
    349: DeviceType.POT,
}

LOGGER = logging.getLogger(__name__)


def normalize_address(address: str) -> str:
    return address.replace("-", ":").lower()


def is_valid_address(address: str | None) -> bool:
    return bool(address) and _ADDRESS_RE.match(address) is not None


def product_type(product_id: int) -> DeviceType:
    return PRODUCT_TYPES.get(product_id, DeviceType.UNKNOWN)


def _vendor_payload(advertisement: Advertisement) -> bytes | None:
    for entry in advertisement.service_data:
        if entry.uuid.lower() == VENDOR_SERVICE_UUID:
            return entry.payload
    return None


def resolve_advertisement(
    advertisement: Advertisement,
    *,
    include_unknown: bool = False,
) -> DeviceIdentity | None:
    """Classify an advertisement, or return None when it is not a recognized device.

    Malformed vendor payloads are treated like foreign advertisements: they are
    logged and dropped rather than raised, so one bad frame never aborts a scan.
    """
    payload = _vendor_payload(advertisement)
    if payload is None:
        return None

    try:
        product_id = parse_product_id(payload)
    except ValueError as exc:
        LOGGER.debug("Ignoring advertisement from %r: %s", advertisement.address, exc)
        return None

    device_type = product_type(product_id)
    if device_type is DeviceType.UNKNOWN and not include_unknown:
        LOGGER.debug(
            "Ignoring unknown product id %d from %r", product_id, advertisement.address
        )
        return None

    address = advertisement.address
    if not is_valid_address(address):
        try:
            address = parse_advertised_mac(payload)
        except ValueError as exc:
            LOGGER.debug("Ignoring advertisement without usable address: %s", exc)
            return None

    return DeviceIdentity(
        address=normalize_address(address),
        name=advertisement.local_name or "",
        type=device_type,
        product_id=product_id,
    )
