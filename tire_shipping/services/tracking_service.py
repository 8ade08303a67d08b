"""
Tracking Service

Looks up a tracking number with a carrier. Carrier errors propagate:
there is no safe tracking state to invent for a customer.
"""
import logging
from typing import Awaitable, Callable, Optional

from tire_shipping.core.exceptions import ShippingValidationError
from tire_shipping.modules.shipping.carriers import CarrierFactory
from tire_shipping.modules.shipping.carriers.base import TrackingResponse, TrackingStatus
from tire_shipping.services.site_settings import FALLBACK_SHIPPING_PROVIDER

logger = logging.getLogger(__name__)

# Dashboard progress bar, percent complete per status
PROGRESS_BY_STATUS = {
    TrackingStatus.CREATED: 10,
    TrackingStatus.PICKED_UP: 25,
    TrackingStatus.IN_TRANSIT: 50,
    TrackingStatus.OUT_FOR_DELIVERY: 75,
    TrackingStatus.DELIVERED: 100,
    TrackingStatus.EXCEPTION: 0,
    TrackingStatus.UNKNOWN: 0,
}


def progress_percentage(status: TrackingStatus) -> int:
    return PROGRESS_BY_STATUS.get(status, 0)


async def _fallback_provider() -> str:
    return FALLBACK_SHIPPING_PROVIDER


class TrackingService:
    """Tracking lookups, defaulting the carrier through the resolver."""

    def __init__(
        self,
        carrier_factory: CarrierFactory,
        provider_resolver: Optional[Callable[[], Awaitable[str]]] = None,
    ):
        self.carrier_factory = carrier_factory
        self.provider_resolver = provider_resolver or _fallback_provider

    async def track(self, tracking_number: str, provider_name: Optional[str] = None) -> TrackingResponse:
        tracking_number = (tracking_number or "").strip()
        if not tracking_number:
            raise ShippingValidationError("Tracking number is required", field="trackingNumber")

        if not provider_name:
            provider_name = await self.provider_resolver()
            logger.debug(f"No provider given for {tracking_number}, using default {provider_name}")

        carrier = self.carrier_factory.get_carrier(provider_name)
        return await carrier.get_tracking(tracking_number)
