"""
Shipment Creation Service

Creates the carrier shipment (label + tracking number) for an order that
has already been persisted. Shipment creation is best effort: a carrier
failure is logged and reported as None so the order itself is never
failed or rolled back. Operators retry later by order id.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Union

from tire_shipping.core.config import ShipperConfig
from tire_shipping.core.exceptions import CarrierConfigError
from tire_shipping.modules.shipping.carriers import CarrierFactory
from tire_shipping.modules.shipping.carriers.base import (
    Address,
    Package,
    ServiceType,
    ShipmentRequest,
    ShipmentResult,
)
from tire_shipping.services.address_normalizer import normalize_country_code

logger = logging.getLogger(__name__)

# Used when the caller has no package details for an order
DEFAULT_PACKAGE_WEIGHT = 0.5
DEFAULT_PACKAGE_DIMENSION = 10.0

# Manual shipments: flat estimate, no carrier call
MANUAL_BASE_COST = 10.0
MANUAL_COST_PER_UNIT = 2.0
MANUAL_TRANSIT_DAYS = 5


def coerce_service_type(value: Union[ServiceType, str, None]) -> ServiceType:
    """Service level from a ServiceType or its name; unknown means STANDARD."""
    if isinstance(value, ServiceType):
        return value
    if value:
        try:
            return ServiceType(str(value).strip().upper())
        except ValueError:
            logger.warning(f"Unknown service level {value!r}, using STANDARD")
    return ServiceType.STANDARD


def default_packages(description: Optional[str] = None) -> List[Package]:
    return [Package(
        weight=DEFAULT_PACKAGE_WEIGHT,
        length=DEFAULT_PACKAGE_DIMENSION,
        width=DEFAULT_PACKAGE_DIMENSION,
        height=DEFAULT_PACKAGE_DIMENSION,
        description=description,
    )]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ShipmentCreationService:
    """
    Best-effort shipment creation for confirmed orders.

    The shipper address comes from the ShipperConfig built at startup.
    """

    def __init__(
        self,
        carrier_factory: CarrierFactory,
        shipper_config: ShipperConfig,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.carrier_factory = carrier_factory
        self.shipper_config = shipper_config
        self.clock = clock

    def shipper_address(self) -> Address:
        """Ship-from address; raises CarrierConfigError if incomplete."""
        config = self.shipper_config
        if not config.is_complete:
            raise CarrierConfigError(
                "Shipper address is not configured",
                missing=[f"SHIPPER_{name.upper()}" for name in config.missing_fields],
            )
        return Address(
            contact_name=config.contact_name,
            company_name=config.company_name or None,
            phone=config.phone,
            email=config.email,
            address_line1=config.address_line1,
            address_line2=config.address_line2 or None,
            city=config.city,
            state_province=config.state_province,
            postal_code=config.postal_code,
            country_code=normalize_country_code(config.country_code),
        )

    def build_shipment_request(
        self,
        order,
        shipping_address: Address,
        packages: List[Package],
        service_level: Union[ServiceType, str, None],
        provider_name: str,
        insurance_value: Optional[float] = None,
    ) -> ShipmentRequest:
        recipient = shipping_address.with_country(normalize_country_code(shipping_address.country_code))
        return ShipmentRequest(
            shipper=self.shipper_address(),
            recipient=recipient,
            packages=list(packages) or default_packages(order.order_number),
            service_type=coerce_service_type(service_level),
            reference=order.order_number,
            provider_name=provider_name,
            insurance_value=insurance_value,
        )

    async def create_shipment_for_order(
        self,
        order,
        shipping_address: Address,
        packages: List[Package],
        service_level: Union[ServiceType, str, None],
        provider_name: str,
        force: bool = False,
        insurance_value: Optional[float] = None,
    ) -> Optional[ShipmentResult]:
        """
        Create a carrier shipment for an order.

        Never raises. Returns None when the order already has a tracking
        number (unless force=True) or when anything goes wrong; the order
        record is not modified here.
        """
        if order.tracking_number and not force:
            logger.warning(
                f"Order {order.order_number} already has tracking number "
                f"{order.tracking_number}, skipping shipment creation"
            )
            return None

        try:
            carrier = self.carrier_factory.get_carrier(provider_name)
            request = self.build_shipment_request(
                order, shipping_address, packages, service_level,
                carrier.provider_name, insurance_value=insurance_value,
            )
            result = await carrier.create_shipment(request)
        except Exception as e:
            logger.error(
                f"Shipment creation failed for order {order.order_number} "
                f"via {provider_name}: {e}"
            )
            return None

        if not result.provider_name:
            result.provider_name = carrier.provider_name
        logger.info(
            f"Shipment created for order {order.order_number}: "
            f"{result.provider_name} {result.tracking_number}"
        )
        return result

    def create_manual_shipment(
        self,
        order,
        packages: List[Package],
        provider_name: str,
        tracking_number: Optional[str] = None,
    ) -> ShipmentResult:
        """
        Record a shipment made outside the carrier API.

        Without a tracking number one is generated as
        MANUAL-<PROVIDER>-<8 digits>. Cost is 10 + 2 per unit of weight.
        """
        now = self.clock()
        provider = provider_name.strip().upper()
        if not tracking_number:
            stamp = str(int(now.timestamp() * 1000))[-8:]
            tracking_number = f"MANUAL-{provider}-{stamp}"

        total_weight = sum(p.weight for p in packages) if packages else DEFAULT_PACKAGE_WEIGHT
        result = ShipmentResult(
            shipment_id=tracking_number,
            tracking_number=tracking_number,
            label_url="",
            total_amount=round(MANUAL_BASE_COST + MANUAL_COST_PER_UNIT * total_weight, 2),
            currency="USD",
            provider_name=provider,
            estimated_delivery=now + timedelta(days=MANUAL_TRANSIT_DAYS),
        )
        logger.warning(f"Manual shipment recorded for order {order.order_number}: {tracking_number}")
        return result
