"""
Landed Cost Engine - Error taxonomy

All engine errors derive from ValueError so callers that already catch
ValueError around input handling keep working. Every error aborts the
pipeline; nothing is retried and no partial result is returned.
"""

from typing import Optional


class LandedCostError(ValueError):
    """Base class for every error raised by the landed cost engine."""


class ShipmentValidationError(LandedCostError):
    """
    Shipment input rejected by the validator.

    Attributes:
        field: Wire name of the offending input field (e.g. "baseCost")
        message: Human-readable description of the violated constraint
    """

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class MissingFieldError(ShipmentValidationError):
    """A required field is absent or blank."""


class InvalidRangeError(ShipmentValidationError):
    """A numeric field is outside its allowed range (or not a number at all)."""


class InvalidEnumError(ShipmentValidationError):
    """A field holds a value outside its enumerated set."""

    def __init__(self, field: str, message: str, value: Optional[str] = None):
        super().__init__(field, message)
        self.value = value


class UnsupportedShippingMethodError(LandedCostError):
    """Raised by the freight calculator for a shipping method it cannot price."""

    def __init__(self, method):
        super().__init__(f"Unsupported shipping method: {method}")
        self.method = method
