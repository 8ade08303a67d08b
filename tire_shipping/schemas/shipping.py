"""
Shipping Schemas

Pydantic models for shipping API requests and responses. The storefront
sends and expects camelCase; snake_case input is accepted as well.
"""
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from tire_shipping.modules.shipping.carriers.base import Address, Package, ServiceType, TrackingStatus


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


# ==================== Address Schemas ====================


class AddressIn(CamelModel):
    """Address as sent by checkout. Country may be a name or a code."""
    contact_name: str = Field("", max_length=100)
    company_name: Optional[str] = Field(None, max_length=100)
    phone: str = Field("", max_length=30)
    email: str = Field("", max_length=100)
    address_line1: str = Field("", max_length=100)
    address_line2: Optional[str] = Field(None, max_length=100)
    city: str = Field("", max_length=100)
    state_province: str = Field("", max_length=50)
    postal_code: str = Field("", max_length=20)
    country_code: str = Field("US", max_length=60)

    @field_validator("postal_code", "city", "address_line1", "contact_name")
    @classmethod
    def strip_whitespace(cls, v):
        return v.strip() if isinstance(v, str) else v

    def to_address(self) -> Address:
        return Address(
            contact_name=self.contact_name,
            company_name=self.company_name,
            phone=self.phone,
            email=self.email,
            address_line1=self.address_line1,
            address_line2=self.address_line2,
            city=self.city,
            state_province=self.state_province,
            postal_code=self.postal_code,
            country_code=self.country_code,
        )


class AddressValidationResponse(CamelModel):
    """Address validation result. Advisory only."""
    is_valid: bool
    suggested_address: Optional[AddressIn] = None
    messages: List[str] = []


# ==================== Package Schemas ====================


class PackageIn(CamelModel):
    """Package details. Units must be consistent within one request."""
    weight: float = Field(..., gt=0)
    length: float = Field(0.0, ge=0)
    width: float = Field(0.0, ge=0)
    height: float = Field(0.0, ge=0)
    description: Optional[str] = Field(None, max_length=200)

    def to_package(self) -> Package:
        return Package(
            weight=self.weight,
            length=self.length,
            width=self.width,
            height=self.height,
            description=self.description,
        )


# ==================== Rate Schemas ====================


class RateRequestIn(CamelModel):
    """
    Request shipping rates.

    shipper/recipient/packages are optional here so that a missing field
    is answered with 400 by the route rather than a schema error.
    """
    shipper: Optional[AddressIn] = None
    recipient: Optional[AddressIn] = None
    packages: Optional[List[PackageIn]] = None
    service_type: Optional[ServiceType] = None
    reference: Optional[str] = None
    provider: Optional[str] = None


class RateQuoteOut(CamelModel):
    """A single shipping rate option."""
    provider_name: str
    service_type: ServiceType
    delivery_date: Optional[datetime] = None
    total_amount: float
    currency: str
    transit_days: Optional[int] = None
    rate_id: Optional[str] = None


class RateListResponse(CamelModel):
    """Rates, plus diagnostics when the carrier failed and fallback rates were used."""
    rates: List[RateQuoteOut]
    degraded: bool = False
    warning: Optional[str] = None
    api_error: Optional[Any] = None
    error_status: Optional[int] = None


# ==================== Shipment Schemas ====================


class ShipmentCreateIn(CamelModel):
    """Create the carrier shipment for a persisted order."""
    order_id: int
    shipping_address: Optional[AddressIn] = None
    packages: List[PackageIn] = []
    service_level: Optional[str] = None
    provider: Optional[str] = None
    insurance_value: Optional[float] = Field(None, ge=0)


class ShipmentRetryIn(CamelModel):
    """Operator retry of shipment creation."""
    shipping_address: Optional[AddressIn] = None
    packages: List[PackageIn] = []
    service_level: Optional[str] = None
    provider: Optional[str] = None
    insurance_value: Optional[float] = Field(None, ge=0)
    force: bool = False


class ManualShipmentIn(CamelModel):
    """Record a shipment created outside the carrier API."""
    order_id: int
    provider: Optional[str] = None
    tracking_number: Optional[str] = Field(None, max_length=100)
    packages: List[PackageIn] = []


class ShipmentResponse(CamelModel):
    """Outcome of shipment creation. created=False is not an error."""
    order_id: int
    created: bool
    message: Optional[str] = None
    shipment_id: Optional[str] = None
    tracking_number: Optional[str] = None
    label_url: Optional[str] = None
    total_amount: Optional[float] = None
    currency: Optional[str] = None
    provider_name: Optional[str] = None
    estimated_delivery: Optional[datetime] = None


# ==================== Tracking Schemas ====================


class TrackingEventOut(CamelModel):
    timestamp: datetime
    status: TrackingStatus
    description: str
    location: str = ""


class TrackingResponseOut(CamelModel):
    """Tracking info with dashboard progress. Events newest first."""
    tracking_number: str
    provider_name: str
    status: TrackingStatus
    progress: int
    estimated_delivery: Optional[datetime] = None
    tracking_url: Optional[str] = None
    events: List[TrackingEventOut] = []


# ==================== Settings Schemas ====================


class ShippingSettingsOut(CamelModel):
    default_provider: str
    available_providers: List[str]


class ShippingSettingsUpdate(CamelModel):
    default_provider: str = Field(..., min_length=1, max_length=50)
