"""
DHL Carrier Implementation

- Implements BaseCarrier interface
- Wraps DHLClient (wire protocol, auth, retries)
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
from tire_shipping.services.dhl_client import (
    PROVIDER_NAME,
    DHLClient,
    DHLCredentials,
    build_dhl_credentials,
)

logger = logging.getLogger(__name__)

DHL_TRACKING_URL = "https://www.dhl.com/en/express/tracking.html?AWB={tracking_number}"

# ServiceType -> DHL product code
PRODUCT_CODE_MAP = {
    ServiceType.STANDARD: "P",  # Parcel
    ServiceType.EXPRESS: "N",   # Express Worldwide
    ServiceType.PRIORITY: "D",  # Express 9:00
    ServiceType.ECONOMY: "U",   # Express Worldwide (economy)
}

SERVICE_TYPE_MAP = {code: service for service, code in PRODUCT_CODE_MAP.items()}

# DHL tracking status to TrackingStatus mapping
DHL_STATUS_MAP = {
    # Created
    "pre-transit": TrackingStatus.CREATED,
    "shipment-information-received": TrackingStatus.CREATED,
    # Picked Up
    "pickup": TrackingStatus.PICKED_UP,
    # In Transit
    "transit": TrackingStatus.IN_TRANSIT,
    "processed": TrackingStatus.IN_TRANSIT,
    # Out for Delivery
    "processed-at-delivery-facility": TrackingStatus.OUT_FOR_DELIVERY,
    "out-for-delivery": TrackingStatus.OUT_FOR_DELIVERY,
    # Delivered
    "delivered": TrackingStatus.DELIVERED,
    # Exception
    "failure": TrackingStatus.EXCEPTION,
}

LABEL_TEMPLATE = "ECOM26_84_001"


@register_carrier(PROVIDER_NAME)
class DHLCarrier(BaseCarrier):
    """
    DHL Express carrier.

    Builds MyDHL payloads from provider-neutral requests and maps the
    responses back. HTTP failures surface as CarrierAPIError from the client.
    """

    def __init__(self, credentials: DHLCredentials, client: Optional[DHLClient] = None):
        self.credentials = credentials
        self._client = client or DHLClient(credentials)

    @classmethod
    def from_settings(cls, source) -> "DHLCarrier":
        return cls(build_dhl_credentials(source))

    @property
    def provider_name(self) -> str:
        return PROVIDER_NAME

    async def close(self) -> None:
        await self._client.close()

    # ==================== Payload helpers ====================

    @staticmethod
    def _package_payload(package: Package) -> Dict[str, Any]:
        return {
            "weight": package.weight,
            "dimensions": {
                "length": package.length,
                "width": package.width,
                "height": package.height,
            },
        }

    @staticmethod
    def _address_payload(address: Address) -> Dict[str, Any]:
        payload = {
            "postalCode": address.postal_code,
            "cityName": address.city,
            "countryCode": address.country_code,
            "addressLine1": address.address_line1,
        }
        if address.address_line2:
            payload["addressLine2"] = address.address_line2
        if address.state_province:
            payload["provinceCode"] = address.state_province
        return payload

    def _party_payload(self, address: Address) -> Dict[str, Any]:
        return {
            "postalAddress": self._address_payload(address),
            "contactInformation": {
                "phone": address.phone,
                "companyName": address.company_name or address.contact_name,
                "fullName": address.contact_name,
                "email": address.email,
            },
        }

    def _service_to_product(self, service_type: Optional[ServiceType]) -> str:
        return PRODUCT_CODE_MAP.get(service_type or ServiceType.STANDARD, "P")

    def _product_to_service(self, product_code: Optional[str]) -> ServiceType:
        return SERVICE_TYPE_MAP.get(product_code or "", ServiceType.STANDARD)

    # ==================== Rates ====================

    def build_rate_payload(self, request: RateRequest) -> Dict[str, Any]:
        payload = {
            "customerDetails": {
                "shipperDetails": {
                    "postalCode": request.shipper.postal_code,
                    "cityName": request.shipper.city,
                    "countryCode": request.shipper.country_code,
                },
                "receiverDetails": {
                    "postalCode": request.recipient.postal_code,
                    "cityName": request.recipient.city,
                    "countryCode": request.recipient.country_code,
                },
            },
            "plannedShippingDate": date.today().isoformat(),
            "unitOfMeasurement": "metric",
            "packages": [self._package_payload(p) for p in request.packages],
        }
        if self.credentials.account_number:
            payload["accounts"] = [{"typeCode": "shipper", "number": self.credentials.account_number}]
        if request.service_type:
            payload["productCode"] = self._service_to_product(request.service_type)
        return payload

    async def get_rates(self, request: RateRequest) -> List[RateQuote]:
        data = await self._client.get_rates(self.build_rate_payload(request))

        products = data.get("products") or []
        if not products:
            raise CarrierAPIError(
                message="DHL returned no rates for this shipment",
                payload=data,
                provider_name=self.provider_name,
            )

        quotes = []
        for product in products:
            prices = product.get("totalPrice") or [{}]
            capabilities = product.get("deliveryCapabilities") or {}
            quotes.append(RateQuote(
                provider_name=self.provider_name,
                service_type=self._product_to_service(product.get("productCode")),
                total_amount=float(prices[0].get("price", 0.0)),
                currency=prices[0].get("currencyCode", "USD"),
                delivery_date=parse_carrier_datetime(capabilities.get("estimatedDeliveryDate")),
                transit_days=capabilities.get("estimatedDeliveryTimeInDays"),
                rate_id=product.get("productCode"),
            ))

        logger.info(f"DHL returned {len(quotes)} rate(s)")
        return quotes

    # ==================== Shipments ====================

    def build_shipment_payload(self, request: ShipmentRequest) -> Dict[str, Any]:
        reference = request.reference or ""
        payload = {
            "plannedShippingDate": date.today().isoformat(),
            "productCode": self._service_to_product(request.service_type),
            "accounts": [{"typeCode": "shipper", "number": self.credentials.account_number}],
            "customerReferences": [{"value": reference, "typeCode": "CU"}],
            "customerDetails": {
                "shipperDetails": self._party_payload(request.shipper),
                "receiverDetails": self._party_payload(request.recipient),
            },
            "content": {
                "packages": [
                    {
                        "weight": pkg.weight,
                        "dimensions": {
                            "length": pkg.length,
                            "width": pkg.width,
                            "height": pkg.height,
                        },
                        "customerReferences": [{"value": reference, "typeCode": "CU"}],
                        "description": pkg.description or "Tires",
                    }
                    for pkg in request.packages
                ],
                "unitOfMeasurement": "metric",
            },
            "outputImageProperties": {
                "printerDPI": 300,
                "encodingFormat": request.label_format,
                "imageOptions": [{"typeCode": "label", "templateName": LABEL_TEMPLATE}],
            },
        }
        if request.insurance_value:
            payload["valueAddedServices"] = [{
                "serviceCode": "II",
                "value": request.insurance_value,
                "currency": "USD",
            }]
        return payload

    async def create_shipment(self, request: ShipmentRequest) -> ShipmentResult:
        data = await self._client.create_shipment(self.build_shipment_payload(request))

        packages = data.get("packages") or []
        tracking_number = packages[0].get("trackingNumber") if packages else None
        tracking_number = tracking_number or data.get("shipmentTrackingNumber")
        if not tracking_number:
            raise CarrierAPIError(
                message="DHL shipment response did not include a tracking number",
                payload=data,
                provider_name=self.provider_name,
            )

        documents = data.get("documents") or []
        total_price = data.get("totalPrice") or {}
        if isinstance(total_price, list):
            total_price = total_price[0] if total_price else {}

        result = ShipmentResult(
            shipment_id=str(data.get("id") or tracking_number),
            tracking_number=tracking_number,
            label_url=documents[0].get("url", "") if documents else "",
            total_amount=float(total_price.get("price", 0.0)),
            currency=total_price.get("currencyCode", "USD"),
            provider_name=self.provider_name,
            estimated_delivery=parse_carrier_datetime(data.get("estimatedDeliveryDate")),
        )
        logger.info(f"DHL shipment created: {result.tracking_number}")
        return result

    # ==================== Address Validation ====================

    async def validate_address(self, address: Address) -> AddressValidationResult:
        payload = {
            "address": {
                "addressLine1": address.address_line1,
                "addressLine2": address.address_line2 or "",
                "city": address.city,
                "postalCode": address.postal_code,
                "countryCode": address.country_code,
            }
        }
        try:
            data = await self._client.validate_address(payload)
        except CarrierError as e:
            logger.warning(f"DHL address validation unavailable, using local checks: {e.message}")
            return self.validate_address_locally(address)

        result = AddressValidationResult(is_valid=data.get("valid") is True)

        suggestions = data.get("suggestedAddresses") or []
        if suggestions:
            suggestion = suggestions[0]
            result.suggested_address = Address(
                contact_name=address.contact_name,
                company_name=address.company_name,
                phone=address.phone,
                email=address.email,
                address_line1=suggestion.get("addressLine1", address.address_line1),
                address_line2=suggestion.get("addressLine2"),
                city=suggestion.get("city", address.city),
                state_province=address.state_province,
                postal_code=suggestion.get("postalCode", address.postal_code),
                country_code=suggestion.get("countryCode", address.country_code),
            )
            result.messages.append("Address was corrected based on DHL recommendations")

        for msg in data.get("messages") or []:
            result.messages.append(msg.get("text") or "Address validation message")

        return result

    # ==================== Tracking ====================

    async def get_tracking(self, tracking_number: str) -> TrackingResponse:
        data = await self._client.track(tracking_number)

        try:
            return self._parse_tracking(tracking_number, data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed DHL tracking response for {tracking_number}: {e!r}")
            raise CarrierAPIError(
                message="DHL returned an unreadable tracking response",
                payload=data if isinstance(data, dict) else {"raw": data},
                provider_name=self.provider_name,
                code="MALFORMED_RESPONSE",
            )

    def _parse_tracking(self, tracking_number: str, data: Dict[str, Any]) -> TrackingResponse:
        shipments = data.get("shipments") or []
        if not shipments:
            raise CarrierAPIError(
                message="No tracking information found for this number",
                status_code=404,
                payload=data,
                provider_name=self.provider_name,
                code="NOT_FOUND",
            )

        shipment = shipments[0]
        events = []
        for event in shipment.get("events") or []:
            timestamp = parse_carrier_datetime(event.get("timestamp"))
            if timestamp is None:
                # No invented milestone times
                logger.warning(f"Dropping DHL event without a usable timestamp: {event!r}")
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
            status=self.map_status(shipment.get("status")),
            provider_name=self.provider_name,
            estimated_delivery=parse_carrier_datetime(shipment.get("estimatedDeliveryDate")),
            events=events,
        )

    def map_status(self, carrier_status: Optional[str]) -> TrackingStatus:
        """Map DHL status to TrackingStatus."""
        if not carrier_status:
            return TrackingStatus.UNKNOWN
        return DHL_STATUS_MAP.get(carrier_status.strip().lower(), TrackingStatus.UNKNOWN)

    def get_tracking_url(self, tracking_number: str) -> str:
        return DHL_TRACKING_URL.format(tracking_number=tracking_number)
