"""Domain-specific errors for flowercare."""

from __future__ import annotations


class FlowerCareError(Exception):
    """Base error for flowercare."""


class ConfigValidationError(FlowerCareError):
    """Raised when a settings file does not conform to schema or semantics."""


class ConfigLoadError(FlowerCareError):
    """Raised when reading a settings file fails."""


class InvalidArgumentError(FlowerCareError, ValueError):
    """Raised when caller-supplied options are malformed."""


class DeviceSelectionError(FlowerCareError):
    """Raised when no discovered device matches the requested address."""


class AlreadyScanningError(FlowerCareError):
    """Raised when discovery is started while another scan is active."""


class UnsupportedOperationError(FlowerCareError):
    """Raised when a device lacks the capability an operation needs."""


class OperationTimeoutError(FlowerCareError, TimeoutError):
    """Raised when a network step does not settle before its deadline."""


class AdapterError(FlowerCareError):
    """Raised when the BLE adapter reports a failure."""


class CharacteristicNotFoundError(FlowerCareError):
    """Raised when a service/characteristic pair is absent on the device."""


class ModeSwitchError(FlowerCareError):
    """Raised when a mode command is not echoed back byte for byte."""

    def __init__(self, expected: bytes, actual: bytes) -> None:
        super().__init__(
            f"Mode switch failed: wrote {expected.hex()} but read back {actual.hex() or '<empty>'}"
        )
        self.expected = expected
        self.actual = actual


class PayloadDecodeError(FlowerCareError, ValueError):
    """Raised when a device payload is too short or malformed to decode."""
