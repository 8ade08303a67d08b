"""
FedEx Carrier Implementation

- Implements BaseCarrier interface
- Wraps FedExClient (OAuth, wire protocol, retries)
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
from tire_shipping.services.fedex_client import (
    PROVIDER_NAME,
    FedExClient,
    FedExCredentials,
    build_fedex_credentials,
)

logger = logging.getLogger(__name__)

FEDEX_TRACKING_URL = "https://www.fedex.com/fedextrack/?trknbr={tracking_number}"

# ServiceType -> FedEx service type
SERVICE_CODE_MAP = {
    ServiceType.STANDARD: "FEDEX_GROUND",
    ServiceType.EXPRESS: "FEDEX_2_DAY",
    ServiceType.PRIORITY: "PRIORITY_OVERNIGHT",
    ServiceType.ECONOMY: "FEDEX_EXPRESS_SAVER",
}

# FedEx service type -> ServiceType
SERVICE_TYPE_MAP = {
    "FEDEX_GROUND": ServiceType.STANDARD,
    "FEDEX_2_DAY": ServiceType.EXPRESS,
    "FEDEX_2_DAY_AM": ServiceType.EXPRESS,
    "PRIORITY_OVERNIGHT": ServiceType.PRIORITY,
    "STANDARD_OVERNIGHT": ServiceType.PRIORITY,
    "FEDEX_EXPRESS_SAVER": ServiceType.ECONOMY,
}

# FedEx scan event codes to TrackingStatus mapping
FEDEX_STATUS_MAP = {
    # Created
    "AA": TrackingStatus.CREATED,
    "AC": TrackingStatus.CREATED,
    "AD": TrackingStatus.CREATED,
    # Picked Up
    "PU": TrackingStatus.PICKED_UP,
    # In Transit
    "IT": TrackingStatus.IN_TRANSIT,
    "AR": TrackingStatus.IN_TRANSIT,
    "DP": TrackingStatus.IN_TRANSIT,
    # Out for Delivery
    "OD": TrackingStatus.OUT_FOR_DELIVERY,
    # Delivered
    "DL": TrackingStatus.DELIVERED,
    # Exception
    "DE": TrackingStatus.EXCEPTION,
    "CA": TrackingStatus.EXCEPTION,
}

TRANSIT_DAYS_MAP = {
    "ONE_DAY": 1,
    "TWO_DAYS": 2,
    "THREE_DAYS": 3,
    "FOUR_DAYS": 4,
    "FIVE_DAYS": 5,
    "SIX_DAYS": 6,
    "SEVEN_DAYS": 7,
}

# DPV confirmation codes meaning the address is deliverable
DELIVERABLE_DPV_CODES = {"Y", "S", "D"}


@register_carrier(PROVIDER_NAME)
class FedExCarrier(BaseCarrier):
    """FedEx carrier (REST APIs, metric units)."""

    def __init__(self, credentials: FedExCredentials, client: Optional[FedExClient] = None):
        self.credentials = credentials
        self._client = client or FedExClient(credentials)

    @classmethod
    def from_settings(cls, source) -> "FedExCarrier":
        return cls(build_fedex_credentials(source))

    @property
    def provider_name(self) -> str:
        return PROVIDER_NAME

    async def close(self) -> None:
        await self._client.close()

    # ==================== Payload helpers ====================

    @staticmethod
    def _street_lines(address: Address) -> List[str]:
        return [line for line in (address.address_line1, address.address_line2) if line]

    def _party_payload(self, address: Address) -> Dict[str, Any]:
        return {
            "personName": address.contact_name,
            "companyName": address.company_name or "",
            "phoneNumber": address.phone,
            "emailAddress": address.email,
            "address": {
                "streetLines": self._street_lines(address),
                "city": address.city,
                "stateOrProvinceCode": address.state_province,
                "postalCode": address.postal_code,
                "countryCode": address.country_code,
                "residential": True,
            },
        }

    @staticmethod
    def _packages_payload(packages: List[Package]) -> List[Dict[str, Any]]:
        return [
            {
                "sequenceNumber": str(index + 1),
                "groupPackageCount": 1,
                "weight": {"units": "KG", "value": pkg.weight},
                "dimensions": {
                    "length": pkg.length,
                    "width": pkg.width,
                    "height": pkg.height,
                    "units": "CM",
                },
                "contentRecord": [{"description": pkg.description}] if pkg.description else [],
            }
            for index, pkg in enumerate(packages)
        ]

    def _service_to_code(self, service_type: Optional[ServiceType]) -> str:
        return SERVICE_CODE_MAP.get(service_type or ServiceType.STANDARD, "FEDEX_GROUND")

    def _code_to_service(self, code: Optional[str]) -> ServiceType:
        return SERVICE_TYPE_MAP.get(code or "", ServiceType.STANDARD)

    @staticmethod
    def _net_charge(details: Optional[List[Dict[str, Any]]]) -> Dict[str, Any]:
        if not details:
            return {}
        return details[0].get("totalNetCharge") or {}

    # ==================== Rates ====================

    def build_rate_payload(self, request: RateRequest) -> Dict[str, Any]:
        requested_shipment = {
            "shipper": self._party_payload(request.shipper),
            "recipient": self._party_payload(request.recipient),
            "pickupType": "REGULAR_PICKUP",
            "rateRequestType": ["LIST", "ACCOUNT"],
            "preferredCurrency": "USD",
            "packages": self._packages_payload(request.packages),
        }
        if request.service_type:
            requested_shipment["serviceType"] = self._service_to_code(request.service_type)
        return {
            "accountNumber": {"value": self.credentials.account_number},
            "requestedShipment": requested_shipment,
        }

    async def get_rates(self, request: RateRequest) -> List[RateQuote]:
        data = await self._client.get_rates(self.build_rate_payload(request))

        details = (data.get("output") or {}).get("rateReplyDetails") or []
        if not details:
            raise CarrierAPIError(
                message="FedEx returned no rates for this shipment",
                payload=data,
                provider_name=self.provider_name,
            )

        quotes = []
        for rate in details:
            charge = self._net_charge(rate.get("ratedShipmentDetails"))
            quotes.append(RateQuote(
                provider_name=self.provider_name,
                service_type=self._code_to_service(rate.get("serviceType")),
                total_amount=float(charge.get("amount", 0.0)),
                currency=charge.get("currency", "USD"),
                delivery_date=parse_carrier_datetime(rate.get("deliveryTimestamp")),
                transit_days=TRANSIT_DAYS_MAP.get(rate.get("transitTime") or ""),
                rate_id=rate.get("rateId") or rate.get("serviceType"),
            ))

        logger.info(f"FedEx returned {len(quotes)} rate(s)")
        return quotes

    # ==================== Shipments ====================

    def build_shipment_payload(self, request: ShipmentRequest) -> Dict[str, Any]:
        requested_shipment = {
            "shipper": self._party_payload(request.shipper),
            "recipients": [self._party_payload(request.recipient)],
            "shipDatestamp": date.today().isoformat(),
            "serviceType": self._service_to_code(request.service_type),
            "packagingType": "YOUR_PACKAGING",
            "pickupType": "REGULAR_PICKUP",
            "requestedPackageLineItems": self._packages_payload(request.packages),
            "shippingChargesPayment": {
                "paymentType": "SENDER",
                "payor": {
                    "responsibleParty": {
                        "accountNumber": {"value": self.credentials.account_number},
                    },
                },
            },
            "labelSpecification": {
                "labelFormatType": "COMMON2D",
                "imageType": request.label_format.upper(),
                "labelStockType": "PAPER_85X11_TOP_HALF_LABEL",
            },
            "customerReferences": [
                {"customerReferenceType": "CUSTOMER_REFERENCE", "value": request.reference},
            ] if request.reference else [],
        }
        if request.insurance_value:
            requested_shipment["totalDeclaredValue"] = {
                "amount": request.insurance_value,
                "currency": "USD",
            }
        return {
            "labelResponseOptions": "URL_ONLY",
            "accountNumber": {"value": self.credentials.account_number},
            "requestedShipment": requested_shipment,
        }

    async def create_shipment(self, request: ShipmentRequest) -> ShipmentResult:
        data = await self._client.create_shipment(self.build_shipment_payload(request))

        completed = (data.get("output") or {}).get("completedShipmentDetail") or {}

        tracking_number = completed.get("masterTrackingNumber")
        if not tracking_number:
            raise CarrierAPIError(
                message="FedEx shipment response did not include a tracking number",
                payload=data,
                provider_name=self.provider_name,
            )

        documents = completed.get("shipmentDocuments") or []
        rating = completed.get("shipmentRating") or {}
        charge = self._net_charge(rating.get("shipmentRateDetails"))
        operational = completed.get("operationalDetail") or {}

        result = ShipmentResult(
            shipment_id=str(completed.get("shipmentId") or tracking_number),
            tracking_number=tracking_number,
            label_url=documents[0].get("url", "") if documents else "",
            total_amount=float(charge.get("amount", 0.0)),
            currency=charge.get("currency", "USD"),
            provider_name=self.provider_name,
            estimated_delivery=parse_carrier_datetime(operational.get("deliveryDate")),
        )
        logger.info(f"FedEx shipment created: {result.tracking_number}")
        return result

    # ==================== Address Validation ====================

    async def validate_address(self, address: Address) -> AddressValidationResult:
        payload = {
            "addressesToValidate": [{
                "address": {
                    "streetLines": self._street_lines(address),
                    "city": address.city,
                    "stateOrProvinceCode": address.state_province,
                    "postalCode": address.postal_code,
                    "countryCode": address.country_code,
                    "residential": True,
                },
            }],
        }
        try:
            data = await self._client.validate_address(payload)
        except CarrierError as e:
            logger.warning(f"FedEx address validation unavailable, using local checks: {e.message}")
            return self.validate_address_locally(address)

        resolved = (data.get("output") or {}).get("resolvedAddresses") or []
        if not resolved:
            logger.warning("FedEx address validation returned no result, using local checks")
            return self.validate_address_locally(address)
        resolved = resolved[0]

        dpv_code = next(
            (a.get("value") for a in resolved.get("attributes") or [] if a.get("name") == "DPV_CONFIRMATION_CODE"),
            None,
        )
        result = AddressValidationResult(is_valid=dpv_code in DELIVERABLE_DPV_CODES)

        messages = resolved.get("customerMessages") or []
        if any(m.get("code") == "STANDARDIZATION.APPLIED" for m in messages):
            suggested = resolved.get("resolvedAddress") or resolved
            street_lines = suggested.get("streetLines") or [address.address_line1]
            result.suggested_address = Address(
                contact_name=address.contact_name,
                company_name=address.company_name,
                phone=address.phone,
                email=address.email,
                address_line1=street_lines[0],
                address_line2=street_lines[1] if len(street_lines) > 1 else None,
                city=suggested.get("city", address.city),
                state_province=suggested.get("stateOrProvinceCode") or address.state_province,
                postal_code=suggested.get("postalCode", address.postal_code),
                country_code=address.country_code,
            )
            result.messages.append("Address was standardized by FedEx")

        return result

    # ==================== Tracking ====================

    async def get_tracking(self, tracking_number: str) -> TrackingResponse:
        data = await self._client.track(tracking_number)

        try:
            return self._parse_tracking(tracking_number, data)
        except (AttributeError, KeyError, TypeError, ValueError, IndexError) as e:
            logger.error(f"Malformed FedEx tracking response for {tracking_number}: {e!r}")
            raise CarrierAPIError(
                message="FedEx returned an unreadable tracking response",
                payload=data if isinstance(data, dict) else {"raw": data},
                provider_name=self.provider_name,
                code="MALFORMED_RESPONSE",
            )

    def _parse_tracking(self, tracking_number: str, data: Dict[str, Any]) -> TrackingResponse:
        complete = (data.get("output") or {}).get("completeTrackResults") or []
        results = (complete[0].get("trackResults") or []) if complete else []
        track = results[0] if results else None

        if not track or track.get("error"):
            raise CarrierAPIError(
                message="No tracking information found for this number",
                status_code=404,
                payload=data,
                provider_name=self.provider_name,
                code="NOT_FOUND",
            )

        events = []
        for scan in track.get("scanEvents") or []:
            raw = scan.get("date")
            if raw and scan.get("time"):
                raw = f"{raw}T{scan['time']}"
            timestamp = parse_carrier_datetime(raw)
            if timestamp is None:
                logger.warning(f"Dropping FedEx scan without a usable timestamp: {scan!r}")
                continue
            events.append(TrackingEvent(
                timestamp=timestamp,
                status=self.map_status(scan.get("eventType")),
                description=scan.get("eventDescription") or "No description available",
                location=self._scan_location(scan.get("scanLocation")),
            ))
        events.sort(key=lambda e: e.timestamp)

        latest = track.get("latestStatusDetail") or {}
        estimated = track.get("estimatedDeliveryTimestamp")
        if not estimated:
            window = (track.get("estimatedDeliveryTimeWindow") or {}).get("window") or {}
            estimated = window.get("ends")

        return TrackingResponse(
            tracking_number=tracking_number,
            status=self.map_status(latest.get("code")),
            provider_name=self.provider_name,
            estimated_delivery=parse_carrier_datetime(estimated),
            events=events,
        )

    @staticmethod
    def _scan_location(location: Optional[Dict[str, Any]]) -> str:
        if not location:
            return "Unknown Location"
        parts = [
            location.get("city"),
            location.get("stateOrProvinceCode"),
            location.get("countryCode"),
        ]
        return ", ".join(p for p in parts if p) or "Unknown Location"

    def map_status(self, carrier_status: Optional[str]) -> TrackingStatus:
        """Map FedEx status code to TrackingStatus."""
        if not carrier_status:
            return TrackingStatus.UNKNOWN
        return FEDEX_STATUS_MAP.get(carrier_status.strip().upper(), TrackingStatus.UNKNOWN)

    def get_tracking_url(self, tracking_number: str) -> str:
        return FEDEX_TRACKING_URL.format(tracking_number=tracking_number)
