"""
GLS Carrier Implementation

- Implements BaseCarrier interface
- Wraps GLSClient (wire protocol, auth, retries)
- Registered via @register_carrier decorator
"""
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from tire_shipping.core.exceptions import CarrierAPIError, CarrierError
from tire_shipping.modules.shipping.carriers import register_carrier
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
    parse_carrier_datetime,
)
from tire_shipping.services.gls_client import (
    PROVIDER_NAME,
    GLSClient,
    GLSCredentials,
    build_gls_credentials,
)

logger = logging.getLogger(__name__)

GLS_TRACKING_URL = "https://gls-group.eu/EU/en/parcel-tracking?match={tracking_number}"

# ServiceType -> GLS service code
SERVICE_CODE_MAP = {
    ServiceType.STANDARD: "PARCEL",
    ServiceType.EXPRESS: "EXPRESS",
    ServiceType.PRIORITY: "EXPRESS_1200",
    ServiceType.ECONOMY: "ECONOMY",
}

SERVICE_TYPE_MAP = {code: service for service, code in SERVICE_CODE_MAP.items()}

# GLS tracking status to TrackingStatus mapping
GLS_STATUS_MAP = {
    "PRE_ANNOUNCED": TrackingStatus.CREATED,
    "PICKEDUP": TrackingStatus.PICKED_UP,
    "IN_DEPOT": TrackingStatus.IN_TRANSIT,
    "IN_TRANSIT": TrackingStatus.IN_TRANSIT,
    "OUT_FOR_DELIVERY": TrackingStatus.OUT_FOR_DELIVERY,
    "DELIVERED": TrackingStatus.DELIVERED,
    "DELIVERY_FAILED": TrackingStatus.EXCEPTION,
}


@register_carrier(PROVIDER_NAME)
class GLSCarrier(BaseCarrier):
    """
    GLS parcel carrier.

    Labels come back inline as base64 PDF data and are stored as a data URL.
    """

    def __init__(self, credentials: GLSCredentials, client: Optional[GLSClient] = None):
        self.credentials = credentials
        self._client = client or GLSClient(credentials)

    @classmethod
    def from_settings(cls, source) -> "GLSCarrier":
        return cls(build_gls_credentials(source))

    @property
    def provider_name(self) -> str:
        return PROVIDER_NAME

    async def close(self) -> None:
        await self._client.close()

    # ==================== Payload helpers ====================

    @staticmethod
    def _address_payload(address: Address) -> Dict[str, Any]:
        return {
            "name1": address.contact_name,
            "name2": address.company_name or "",
            "street1": address.address_line1,
            "street2": address.address_line2 or "",
            "city": address.city,
            "zipCode": address.postal_code,
            "countryCode": address.country_code,
            "province": address.state_province,
            "contact": address.contact_name,
            "phone": address.phone,
            "email": address.email,
        }

    @staticmethod
    def _parcel_payload(package: Package) -> Dict[str, Any]:
        return {
            "weight": package.weight,
            "length": package.length,
            "width": package.width,
            "height": package.height,
            "content": package.description or "Tires",
        }

    def _service_to_code(self, service_type: Optional[ServiceType]) -> str:
        return SERVICE_CODE_MAP.get(service_type or ServiceType.STANDARD, "PARCEL")

    def _code_to_service(self, code: Optional[str]) -> ServiceType:
        return SERVICE_TYPE_MAP.get(code or "", ServiceType.STANDARD)

    # ==================== Rates ====================

    def build_rate_payload(self, request: RateRequest) -> Dict[str, Any]:
        payload = {
            "customerId": self.credentials.customer_id,
            "sender": self._address_payload(request.shipper),
            "recipient": self._address_payload(request.recipient),
            "parcels": [self._parcel_payload(p) for p in request.packages],
            "shipmentDate": date.today().isoformat(),
            "isResidential": False,
        }
        if request.service_type:
            payload["serviceType"] = self._service_to_code(request.service_type)
        return payload

    async def get_rates(self, request: RateRequest) -> List[RateQuote]:
        data = await self._client.get_rates(self.build_rate_payload(request))

        rates = data.get("rates") or []
        if not rates:
            raise CarrierAPIError(
                message="GLS returned no rates for this shipment",
                payload=data,
                provider_name=self.provider_name,
            )

        quotes = []
        for rate in rates:
            price = rate.get("totalPrice") or {}
            quotes.append(RateQuote(
                provider_name=self.provider_name,
                service_type=self._code_to_service(rate.get("serviceType")),
                total_amount=float(price.get("amount", 0.0)),
                currency=price.get("currency", "EUR"),
                delivery_date=parse_carrier_datetime(rate.get("estimatedDeliveryDate")),
                transit_days=rate.get("transitDays"),
                rate_id=rate.get("rateId"),
            ))

        logger.info(f"GLS returned {len(quotes)} rate(s)")
        return quotes

    # ==================== Shipments ====================

    def build_shipment_payload(self, request: ShipmentRequest) -> Dict[str, Any]:
        return {
            "customerId": self.credentials.customer_id,
            "sender": self._address_payload(request.shipper),
            "recipient": self._address_payload(request.recipient),
            "parcels": [self._parcel_payload(p) for p in request.packages],
            "shipmentDate": date.today().isoformat(),
            "serviceType": self._service_to_code(request.service_type),
            "reference": request.reference,
            "labelFormat": request.label_format.upper(),
            "isResidential": False,
        }

    async def create_shipment(self, request: ShipmentRequest) -> ShipmentResult:
        data = await self._client.create_shipment(self.build_shipment_payload(request))

        tracking_number = data.get("trackingId")
        if not tracking_number:
            raise CarrierAPIError(
                message="GLS shipment response did not include a tracking number",
                payload=data,
                provider_name=self.provider_name,
            )

        label_data = data.get("labelData")
        price = data.get("totalPrice") or {}

        result = ShipmentResult(
            shipment_id=str(data.get("shipmentId") or tracking_number),
            tracking_number=tracking_number,
            label_url=f"data:application/pdf;base64,{label_data}" if label_data else "",
            total_amount=float(price.get("amount", 0.0)),
            currency=price.get("currency", "EUR"),
            provider_name=self.provider_name,
            estimated_delivery=parse_carrier_datetime(data.get("estimatedDeliveryDate")),
        )
        logger.info(f"GLS shipment created: {result.tracking_number}")
        return result

    # ==================== Address Validation ====================

    async def validate_address(self, address: Address) -> AddressValidationResult:
        payload = {
            "address": {
                "street1": address.address_line1,
                "street2": address.address_line2 or "",
                "city": address.city,
                "province": address.state_province,
                "zipCode": address.postal_code,
                "countryCode": address.country_code,
            }
        }
        try:
            data = await self._client.validate_address(payload)
        except CarrierError as e:
            logger.warning(f"GLS address validation unavailable, using local checks: {e.message}")
            return self.validate_address_locally(address)

        result = AddressValidationResult(is_valid=data.get("valid") is True)

        suggestions = data.get("suggestions") or []
        if not result.is_valid and suggestions:
            suggestion = suggestions[0]
            result.suggested_address = Address(
                contact_name=address.contact_name,
                company_name=address.company_name,
                phone=address.phone,
                email=address.email,
                address_line1=suggestion.get("street1", address.address_line1),
                address_line2=suggestion.get("street2") or None,
                city=suggestion.get("city", address.city),
                state_province=suggestion.get("province") or address.state_province,
                postal_code=suggestion.get("zipCode", address.postal_code),
                country_code=suggestion.get("countryCode", address.country_code),
            )
            result.messages.append("Address was corrected based on GLS recommendations")

        return result

    # ==================== Tracking ====================

    async def get_tracking(self, tracking_number: str) -> TrackingResponse:
        data = await self._client.track(tracking_number)

        try:
            return self._parse_tracking(tracking_number, data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed GLS tracking response for {tracking_number}: {e!r}")
            raise CarrierAPIError(
                message="GLS returned an unreadable tracking response",
                payload=data if isinstance(data, dict) else {"raw": data},
                provider_name=self.provider_name,
                code="MALFORMED_RESPONSE",
            )

    def _parse_tracking(self, tracking_number: str, data: Dict[str, Any]) -> TrackingResponse:
        if not data.get("status") and not data.get("events"):
            raise CarrierAPIError(
                message="No tracking information found for this number",
                status_code=404,
                payload=data,
                provider_name=self.provider_name,
                code="NOT_FOUND",
            )

        events = []
        for event in data.get("events") or []:
            timestamp = parse_carrier_datetime(event.get("timestamp"))
            if timestamp is None:
                logger.warning(f"Dropping GLS event without a usable timestamp: {event!r}")
                continue
            events.append(TrackingEvent(
                timestamp=timestamp,
                status=self.map_status(event.get("status")),
                description=event.get("description") or "No description available",
                location=event.get("location") or "Unknown Location",
            ))
        events.sort(key=lambda e: e.timestamp)

        return TrackingResponse(
            tracking_number=tracking_number,
            status=self.map_status(data.get("status")),
            provider_name=self.provider_name,
            estimated_delivery=parse_carrier_datetime(data.get("estimatedDelivery")),
            events=events,
        )

    def map_status(self, carrier_status: Optional[str]) -> TrackingStatus:
        """Map GLS status code to TrackingStatus."""
        if not carrier_status:
            return TrackingStatus.UNKNOWN
        return GLS_STATUS_MAP.get(carrier_status.strip().upper(), TrackingStatus.UNKNOWN)

    def get_tracking_url(self, tracking_number: str) -> str:
        return GLS_TRACKING_URL.format(tracking_number=tracking_number)
