"""
Rate Quotation Service

Asks the selected carrier for live rates. When the carrier fails for any
reason the customer still gets a price: three fallback quotes computed
from fixed per-level constants, flagged as degraded.

Fallback table (amount = max(floor, total_weight * per_unit)):

    ECONOMY   floor 15  per unit  5  transit 5 days
    STANDARD  floor 20  per unit  7  transit 3 days
    EXPRESS   floor 30  per unit 10  transit 1 day
"""
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional

from tire_shipping.core.exceptions import ShippingError, ShippingValidationError
from tire_shipping.modules.shipping.carriers import CarrierFactory
from tire_shipping.modules.shipping.carriers.base import RateQuote, RateRequest, ServiceType
from tire_shipping.services.address_normalizer import normalize_country_code
from tire_shipping.services.rate_cache import RateCache

logger = logging.getLogger(__name__)

FALLBACK_CURRENCY = "USD"


@dataclass(frozen=True)
class FallbackRate:
    service_type: ServiceType
    floor: float
    per_unit: float
    transit_days: int

    @property
    def rate_id(self) -> str:
        return f"fallback-{self.service_type.value.lower()}"

    def amount_for(self, total_weight: float) -> float:
        return round(max(self.floor, total_weight * self.per_unit), 2)


FALLBACK_RATE_TABLE = (
    FallbackRate(ServiceType.ECONOMY, floor=15.0, per_unit=5.0, transit_days=5),
    FallbackRate(ServiceType.STANDARD, floor=20.0, per_unit=7.0, transit_days=3),
    FallbackRate(ServiceType.EXPRESS, floor=30.0, per_unit=10.0, transit_days=1),
)


@dataclass
class RateQuoteResult:
    """Outcome of a quote: live rates, or fallback rates plus diagnostics."""
    rates: List[RateQuote]
    degraded: bool = False
    warning: Optional[str] = None
    error_status: Optional[int] = None
    api_error: Optional[Any] = None
    cached: bool = field(default=False, compare=False)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_fallback_quotes(
    request: RateRequest,
    provider_name: str,
    now: datetime,
) -> List[RateQuote]:
    """Deterministic quotes for ECONOMY/STANDARD/EXPRESS from total weight."""
    total_weight = request.total_weight
    return [
        RateQuote(
            provider_name=provider_name,
            service_type=entry.service_type,
            total_amount=entry.amount_for(total_weight),
            currency=FALLBACK_CURRENCY,
            delivery_date=now + timedelta(days=entry.transit_days),
            transit_days=entry.transit_days,
            rate_id=entry.rate_id,
        )
        for entry in FALLBACK_RATE_TABLE
    ]


def normalize_rate_request(request: RateRequest) -> RateRequest:
    """Copy of the request with both country codes normalized."""
    return replace(
        request,
        shipper=request.shipper.with_country(normalize_country_code(request.shipper.country_code)),
        recipient=request.recipient.with_country(normalize_country_code(request.recipient.country_code)),
    )


class RateQuotationService:
    """
    Quotes shipping rates with degraded-mode fallback.

    Unknown provider names and empty package lists are caller errors and
    raise; everything the carrier does wrong becomes a fallback.
    """

    def __init__(
        self,
        carrier_factory: CarrierFactory,
        cache: Optional[RateCache] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.carrier_factory = carrier_factory
        self.cache = cache
        self.clock = clock

    async def quote(self, request: RateRequest, provider_name: str) -> RateQuoteResult:
        if not request.packages:
            raise ShippingValidationError("At least one package is required", field="packages")

        request = normalize_rate_request(request)
        carrier = self.carrier_factory.get_carrier(provider_name)

        if self.cache is not None:
            cached = self.cache.get(request, carrier.provider_name)
            if cached is not None:
                return RateQuoteResult(rates=cached, cached=True)

        try:
            rates = await carrier.get_rates(request)
        except ShippingError as e:
            logger.warning(
                f"{carrier.provider_name} rate request failed, using fallback rates: {e.message}"
            )
            return self._degraded(
                request,
                provider_name=carrier.provider_name,
                warning=e.message,
                error_status=getattr(e, "status_code", None),
                api_error=getattr(e, "payload", None) or e.to_dict(),
            )
        except Exception as e:
            logger.exception(f"Unexpected error from {carrier.provider_name} rate request")
            return self._degraded(
                request,
                provider_name=carrier.provider_name,
                warning=str(e) or e.__class__.__name__,
            )

        if self.cache is not None and rates:
            self.cache.set(request, carrier.provider_name, rates)

        return RateQuoteResult(rates=rates)

    def _degraded(
        self,
        request: RateRequest,
        provider_name: str,
        warning: str,
        error_status: Optional[int] = None,
        api_error: Optional[Any] = None,
    ) -> RateQuoteResult:
        return RateQuoteResult(
            rates=build_fallback_quotes(request, provider_name, self.clock()),
            degraded=True,
            warning=warning,
            error_status=error_status,
            api_error=api_error,
        )
