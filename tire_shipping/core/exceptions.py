"""
Tire Shop Shipping Exception Hierarchy

All exceptions include code, message, and details for audit trail and
debugging. Carrier errors additionally carry the carrier's raw HTTP
status and raw error payload.

Exception Hierarchy:
    TireShopError
    └── ShippingError
        ├── ShippingValidationError
        ├── CarrierNotFoundError
        ├── OrderNotFoundError
        └── CarrierError
            ├── CarrierAPIError
            └── CarrierConfigError
"""
import logging
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


class TireShopError(Exception):
    """
    Base exception for all tire shop custom errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging/audit
        severity: P0-P3 severity level
    """

    default_code: str = "TIRESHOP_ERROR"
    default_severity: str = "P2"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[str] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.severity = severity or self.default_severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# SHIPPING ERRORS
# =============================================================================

class ShippingError(TireShopError):
    """Base exception for shipping-related errors."""
    default_code = "SHIPPING_ERROR"
    default_severity = "P1"


class ShippingValidationError(ShippingError):
    """Malformed or missing request fields. Raised before any carrier call."""
    default_code = "SHIPPING_VALIDATION_FAILED"
    default_severity = "P3"

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        details["field"] = field
        super().__init__(message, details=details, **kwargs)


class CarrierNotFoundError(ShippingError):
    """No adapter registered under the requested provider name."""
    default_code = "CARRIER_NOT_FOUND"
    default_severity = "P3"

    def __init__(self, provider_name: str, **kwargs):
        details = kwargs.pop("details", {})
        details["provider_name"] = provider_name
        super().__init__(
            f"Unknown shipping provider: {provider_name}",
            details=details,
            **kwargs,
        )


class OrderNotFoundError(ShippingError):
    """Order record could not be loaded from the order store."""
    default_code = "ORDER_NOT_FOUND"
    default_severity = "P3"


class CarrierError(ShippingError):
    """Any failure inside a carrier adapter."""
    default_code = "CARRIER_ERROR"


class CarrierAPIError(CarrierError):
    """
    Carrier API call failed.

    Uniform shape across carriers: human-readable message, the carrier's
    raw HTTP status (None for transport failures) and raw error payload.
    """
    default_code = "CARRIER_API_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Optional[Any] = None,
        provider_name: Optional[str] = None,
        **kwargs
    ):
        self.status_code = status_code
        self.payload = payload
        self.provider_name = provider_name
        details = kwargs.pop("details", {})
        details.update({
            "status_code": status_code,
            "provider_name": provider_name,
        })
        super().__init__(message, details=details, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["payload"] = self.payload
        return data


class CarrierConfigError(CarrierError):
    """Carrier credentials or shipper address are not configured."""
    default_code = "CARRIER_NOT_CONFIGURED"
    default_severity = "P0"

    def __init__(self, message: str, missing: Optional[list] = None, **kwargs):
        details = kwargs.pop("details", {})
        details["missing"] = missing or []
        super().__init__(message, details=details, **kwargs)
