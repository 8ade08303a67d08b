"""
Shipping Module

- BaseCarrier interface for all carrier implementations
- CarrierFactory for dependency injection
- Provider-neutral request/response dataclasses
"""
from tire_shipping.modules.shipping.carriers import CarrierFactory, register_carrier
from tire_shipping.modules.shipping.carriers.base import (
    Address,
    AddressValidationResult,
    BaseCarrier,
    Package,
    RateQuote,
    RateRequest,
    ServiceType,
    ShipmentRequest,
    ShipmentResult,
    TrackingEvent,
    TrackingResponse,
    TrackingStatus,
)

__all__ = [
    "Address",
    "AddressValidationResult",
    "BaseCarrier",
    "CarrierFactory",
    "Package",
    "RateQuote",
    "RateRequest",
    "ServiceType",
    "ShipmentRequest",
    "ShipmentResult",
    "TrackingEvent",
    "TrackingResponse",
    "TrackingStatus",
    "register_carrier",
]
