"""
Base Carrier Interface

- All carriers implement this interface
- The orchestration services (rates, shipments, tracking) only see these
  provider-neutral shapes; each adapter owns its wire protocol, auth and
  error translation
- Each carrier provides its own:
  - Rate calculation
  - Shipment creation
  - Address validation
  - Tracking
  - Status mapping
"""
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

BE_POSTAL_CODE = re.compile(r"^\d{4}$")
NL_POSTAL_CODE = re.compile(r"^\d{4} ?[A-Z]{2}$")


class ServiceType(str, Enum):
    """Shipping speed tier, standardized across carriers."""
    ECONOMY = "ECONOMY"
    STANDARD = "STANDARD"
    EXPRESS = "EXPRESS"
    PRIORITY = "PRIORITY"


class TrackingStatus(str, Enum):
    """
    Normalized shipment state.

    CREATED -> PICKED_UP -> IN_TRANSIT -> OUT_FOR_DELIVERY -> DELIVERED.
    EXCEPTION and UNKNOWN are reachable from any state.
    """
    CREATED = "CREATED"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    EXCEPTION = "EXCEPTION"
    UNKNOWN = "UNKNOWN"


# =============================================================================
# Carrier-Agnostic Data Classes
# =============================================================================

@dataclass
class Address:
    """Ship-from / ship-to address with contact details."""
    contact_name: str
    address_line1: str
    city: str
    postal_code: str
    country_code: str = "US"
    state_province: str = ""
    phone: str = ""
    email: str = ""
    company_name: Optional[str] = None
    address_line2: Optional[str] = None

    def with_country(self, country_code: str) -> "Address":
        return replace(self, country_code=country_code)


@dataclass
class Package:
    """Package dimensions and weight. Units must be consistent within a request."""
    weight: float
    length: float = 0.0
    width: float = 0.0
    height: float = 0.0
    description: Optional[str] = None


@dataclass(frozen=True)
class RateRequest:
    """Input to rate quotation."""
    shipper: Address
    recipient: Address
    packages: List[Package]
    service_type: Optional[ServiceType] = None
    reference: Optional[str] = None

    @property
    def total_weight(self) -> float:
        return sum(pkg.weight for pkg in self.packages)


@dataclass
class RateQuote:
    """Shipping rate quote for one service level."""
    provider_name: str
    service_type: ServiceType
    total_amount: float
    currency: str = "USD"
    delivery_date: Optional[datetime] = None
    transit_days: Optional[int] = None
    rate_id: Optional[str] = None


@dataclass
class ShipmentRequest:
    """Request to create a shipment. Built only after an order is confirmed."""
    shipper: Address
    recipient: Address
    packages: List[Package]
    service_type: ServiceType = ServiceType.STANDARD
    reference: Optional[str] = None
    provider_name: Optional[str] = None
    label_format: str = "pdf"
    insurance_value: Optional[float] = None

    @property
    def total_weight(self) -> float:
        return sum(pkg.weight for pkg in self.packages)


@dataclass
class ShipmentResult:
    """Result of shipment creation."""
    shipment_id: str
    tracking_number: str
    label_url: str = ""
    total_amount: float = 0.0
    currency: str = "USD"
    provider_name: Optional[str] = None
    estimated_delivery: Optional[datetime] = None

    def provider_metadata(self) -> Dict[str, Any]:
        """Carrier details stored on the order alongside the tracking number."""
        return {
            "provider_name": self.provider_name,
            "shipment_id": self.shipment_id,
            "label_url": self.label_url,
            "total_shipping_cost": self.total_amount,
            "currency": self.currency,
            "estimated_delivery": self.estimated_delivery.isoformat() if self.estimated_delivery else None,
        }


@dataclass
class AddressValidationResult:
    """Result of address validation. Advisory only."""
    is_valid: bool
    suggested_address: Optional[Address] = None
    messages: List[str] = field(default_factory=list)


@dataclass
class TrackingEvent:
    """A single tracking event."""
    timestamp: datetime
    status: TrackingStatus
    description: str
    location: str = ""


@dataclass
class TrackingResponse:
    """Full tracking information. Events are chronological, oldest first."""
    tracking_number: str
    status: TrackingStatus
    provider_name: str
    estimated_delivery: Optional[datetime] = None
    events: List[TrackingEvent] = field(default_factory=list)

    def newest_first(self) -> List[TrackingEvent]:
        return sorted(self.events, key=lambda e: e.timestamp, reverse=True)


def parse_carrier_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO timestamp from a carrier, tolerating a trailing Z.

    Naive timestamps are taken as UTC. Returns None when the value is
    missing or unreadable.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (TypeError, ValueError):
        logger.debug(f"Unparseable carrier timestamp: {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# =============================================================================
# Base Carrier Interface
# =============================================================================

class BaseCarrier(ABC):
    """
    Abstract base class for all shipping carriers.

    Adapters raise CarrierAPIError / CarrierConfigError on failure. They do
    not fall back on their own: rate fallback belongs to the rate service.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the registry name of this carrier (e.g. "DHL")."""
        pass

    @abstractmethod
    async def get_rates(self, request: RateRequest) -> List[RateQuote]:
        """
        Get live shipping rates from the carrier.

        Args:
            request: RateRequest with normalized addresses

        Returns:
            List of RateQuote objects, one per available service level
        """
        pass

    @abstractmethod
    async def create_shipment(self, request: ShipmentRequest) -> ShipmentResult:
        """
        Create a shipment and generate a label.

        Args:
            request: ShipmentRequest with all shipment details

        Returns:
            ShipmentResult with tracking number, label URL and cost
        """
        pass

    @abstractmethod
    async def validate_address(self, address: Address) -> AddressValidationResult:
        """
        Validate an address with the carrier's API.

        Best effort: an unreachable carrier must not raise.
        """
        pass

    @abstractmethod
    async def get_tracking(self, tracking_number: str) -> TrackingResponse:
        """
        Get tracking information for a shipment.

        Args:
            tracking_number: The tracking number to look up

        Returns:
            TrackingResponse with normalized status and events
        """
        pass

    @abstractmethod
    def map_status(self, carrier_status: Optional[str]) -> TrackingStatus:
        """
        Map a carrier-specific status to TrackingStatus.

        Unrecognized statuses map to UNKNOWN; never raises.
        """
        pass

    @abstractmethod
    def get_tracking_url(self, tracking_number: str) -> str:
        """Public tracking page URL for a shipment."""
        pass

    async def close(self) -> None:
        """Release network resources held by the carrier."""
        return None

    @staticmethod
    def validate_address_locally(address: Address) -> AddressValidationResult:
        """Structural checks used when the carrier cannot be reached."""
        messages = []

        if not address.address_line1 or len(address.address_line1) < 3:
            messages.append("Please provide a valid street address")
        if not address.city or len(address.city) < 2:
            messages.append("Please provide a valid city")

        postal_code = address.postal_code
        if not postal_code:
            messages.append("Please provide a postal code")
        elif address.country_code == "BE" and not BE_POSTAL_CODE.match(postal_code):
            messages.append("Belgian postal codes should be 4 digits")
        elif address.country_code == "NL" and not NL_POSTAL_CODE.match(postal_code):
            messages.append("Dutch postal codes should be in format 1234 AB")

        return AddressValidationResult(is_valid=not messages, messages=messages)
