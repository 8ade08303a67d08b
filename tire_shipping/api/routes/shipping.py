"""
Shipping API Routes

Provides endpoints for:
- Rate quoting (degrades to fallback rates, never 5xx on carrier failure)
- Shipment creation for persisted orders, operator retry, manual shipments
- Tracking lookup and dashboard view
- Address validation (advisory)
- Default carrier settings
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from tire_shipping.api.deps import (
    get_carrier_factory,
    get_order_repository,
    get_rate_service,
    get_shipment_service,
    get_tracking_service,
)
from tire_shipping.core.database import get_db
from tire_shipping.core.exceptions import (
    CarrierAPIError,
    CarrierError,
    OrderNotFoundError,
    ShippingError,
)
from tire_shipping.models.order import Order
from tire_shipping.modules.shipping.carriers import CarrierFactory
from tire_shipping.modules.shipping.carriers.base import Address, Package, RateRequest, TrackingResponse
from tire_shipping.schemas.shipping import (
    AddressIn,
    AddressValidationResponse,
    ManualShipmentIn,
    PackageIn,
    RateListResponse,
    RateQuoteOut,
    RateRequestIn,
    ShipmentCreateIn,
    ShipmentResponse,
    ShipmentRetryIn,
    ShippingSettingsOut,
    ShippingSettingsUpdate,
    TrackingEventOut,
    TrackingResponseOut,
)
from tire_shipping.services.address_normalizer import normalize_country_code
from tire_shipping.services.order_shipping import OrderShippingRepository
from tire_shipping.services.rate_service import RateQuotationService
from tire_shipping.services.shipment_service import ShipmentCreationService
from tire_shipping.services.site_settings import resolve_default_provider, set_default_provider
from tire_shipping.services.tracking_service import TrackingService, progress_percentage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shipping", tags=["shipping"])


# ==================== Helper Functions ====================


async def _resolve_provider(
    requested: Optional[str],
    carrier_factory: CarrierFactory,
    db: AsyncSession,
    order: Optional[Order] = None,
) -> str:
    """Requested provider, else the order's provider, else the site default."""
    provider = requested or (order.shipping_provider if order is not None else None)
    if not provider:
        provider = await resolve_default_provider(db)
    if not carrier_factory.has_carrier(provider):
        raise HTTPException(status_code=400, detail=f"Unknown shipping provider: {provider}")
    return provider.strip().upper()


async def _load_order(repo: OrderShippingRepository, order_id: int) -> Order:
    try:
        return await repo.get_order(order_id)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


def _order_address(order: Order, override: Optional[AddressIn]) -> Address:
    if override is not None:
        return override.to_address()
    if order.shipping_address:
        try:
            return AddressIn.model_validate(order.shipping_address).to_address()
        except ValidationError as e:
            logger.warning(f"Order {order.order_number} has an unusable shipping address: {e.errors()}")
            raise HTTPException(
                status_code=400,
                detail=f"Order {order.order_number} has an invalid shipping address; send shippingAddress to override it",
            )
    raise HTTPException(status_code=400, detail="Shipping address is required")


def _packages(packages: List[PackageIn]) -> List[Package]:
    return [p.to_package() for p in packages]


def _tracking_out(tracking: TrackingResponse, carrier_factory: CarrierFactory, newest_first: bool) -> TrackingResponseOut:
    events = tracking.newest_first() if newest_first else tracking.events
    carrier = carrier_factory.get_carrier(tracking.provider_name)
    return TrackingResponseOut(
        tracking_number=tracking.tracking_number,
        provider_name=tracking.provider_name,
        status=tracking.status,
        progress=progress_percentage(tracking.status),
        estimated_delivery=tracking.estimated_delivery,
        tracking_url=carrier.get_tracking_url(tracking.tracking_number),
        events=[TrackingEventOut.model_validate(e) for e in events],
    )


async def _create_and_persist(
    order: Order,
    address: Address,
    packages: List[Package],
    service_level: Optional[str],
    provider: str,
    insurance_value: Optional[float],
    force: bool,
    response: Response,
    shipment_service: ShipmentCreationService,
    repo: OrderShippingRepository,
) -> ShipmentResponse:
    result = await shipment_service.create_shipment_for_order(
        order,
        address,
        packages,
        service_level or order.shipping_method,
        provider,
        force=force,
        insurance_value=insurance_value,
    )

    if result is None:
        response.status_code = status.HTTP_202_ACCEPTED
        return ShipmentResponse(
            order_id=order.id,
            created=False,
            message="Shipment could not be created now; it can be retried later",
            provider_name=provider,
        )

    await repo.update_order_shipping_info(
        order.id,
        tracking_number=result.tracking_number,
        label_url=result.label_url,
        provider_metadata=result.provider_metadata(),
        provider_name=result.provider_name,
    )
    await repo.db.commit()

    return ShipmentResponse(
        order_id=order.id,
        created=True,
        shipment_id=result.shipment_id,
        tracking_number=result.tracking_number,
        label_url=result.label_url,
        total_amount=result.total_amount,
        currency=result.currency,
        provider_name=result.provider_name,
        estimated_delivery=result.estimated_delivery,
    )


# ==================== Rate Endpoints ====================


@router.post("/rates", response_model=RateListResponse, response_model_exclude_none=True)
async def get_shipping_rates(
    body: RateRequestIn,
    rate_service: RateQuotationService = Depends(get_rate_service),
    carrier_factory: CarrierFactory = Depends(get_carrier_factory),
    db: AsyncSession = Depends(get_db),
):
    """
    Get shipping rates for a cart.

    When the carrier fails the response still succeeds, with fallback
    rates, degraded=true and the carrier's error for diagnostics.
    """
    missing = [name for name in ("shipper", "recipient", "packages") if not getattr(body, name)]
    if missing:
        raise HTTPException(
            status_code=400,
            detail=f"Missing required fields: {', '.join(missing)}",
        )

    provider = await _resolve_provider(body.provider, carrier_factory, db)
    rate_request = RateRequest(
        shipper=body.shipper.to_address(),
        recipient=body.recipient.to_address(),
        packages=_packages(body.packages),
        service_type=body.service_type,
        reference=body.reference,
    )

    try:
        result = await rate_service.quote(rate_request, provider)
    except ShippingError as e:
        raise HTTPException(status_code=400, detail=e.message)

    return RateListResponse(
        rates=[RateQuoteOut.model_validate(rate) for rate in result.rates],
        degraded=result.degraded,
        warning=result.warning,
        api_error=result.api_error,
        error_status=result.error_status,
    )


# ==================== Shipment Endpoints ====================


@router.post("/shipments", response_model=ShipmentResponse, status_code=status.HTTP_201_CREATED)
async def create_shipment(
    body: ShipmentCreateIn,
    response: Response,
    shipment_service: ShipmentCreationService = Depends(get_shipment_service),
    carrier_factory: CarrierFactory = Depends(get_carrier_factory),
    repo: OrderShippingRepository = Depends(get_order_repository),
    db: AsyncSession = Depends(get_db),
):
    """
    Create the carrier shipment for a persisted order.

    Called by the order-creation flow. A carrier failure does not fail the
    request: the response is 202 with created=false and the order is left
    for a later retry.
    """
    order = await _load_order(repo, body.order_id)

    if order.tracking_number:
        response.status_code = status.HTTP_200_OK
        return ShipmentResponse(
            order_id=order.id,
            created=False,
            message="Order already has a shipment",
            tracking_number=order.tracking_number,
            label_url=order.label_url,
            provider_name=order.shipping_provider,
        )

    address = _order_address(order, body.shipping_address)
    provider = await _resolve_provider(body.provider, carrier_factory, db, order)

    return await _create_and_persist(
        order, address, _packages(body.packages), body.service_level, provider,
        body.insurance_value, False, response, shipment_service, repo,
    )


@router.post("/shipments/{order_id}/retry", response_model=ShipmentResponse, status_code=status.HTTP_201_CREATED)
async def retry_shipment(
    order_id: int,
    body: ShipmentRetryIn,
    response: Response,
    shipment_service: ShipmentCreationService = Depends(get_shipment_service),
    carrier_factory: CarrierFactory = Depends(get_carrier_factory),
    repo: OrderShippingRepository = Depends(get_order_repository),
    db: AsyncSession = Depends(get_db),
):
    """Operator retry of shipment creation for an order."""
    order = await _load_order(repo, order_id)

    if order.tracking_number and not body.force:
        raise HTTPException(
            status_code=409,
            detail=f"Order {order.order_number} already has tracking number {order.tracking_number}",
        )

    address = _order_address(order, body.shipping_address)
    provider = await _resolve_provider(body.provider, carrier_factory, db, order)

    return await _create_and_persist(
        order, address, _packages(body.packages), body.service_level, provider,
        body.insurance_value, body.force, response, shipment_service, repo,
    )


@router.post("/manual-shipments", response_model=ShipmentResponse, status_code=status.HTTP_201_CREATED)
async def create_manual_shipment(
    body: ManualShipmentIn,
    shipment_service: ShipmentCreationService = Depends(get_shipment_service),
    carrier_factory: CarrierFactory = Depends(get_carrier_factory),
    repo: OrderShippingRepository = Depends(get_order_repository),
    db: AsyncSession = Depends(get_db),
):
    """Record a shipment made outside the carrier API (e.g. carrier outage)."""
    order = await _load_order(repo, body.order_id)

    if order.tracking_number:
        raise HTTPException(
            status_code=409,
            detail=f"Order {order.order_number} already has tracking number {order.tracking_number}",
        )

    provider = await _resolve_provider(body.provider, carrier_factory, db, order)
    result = shipment_service.create_manual_shipment(
        order, _packages(body.packages), provider, tracking_number=body.tracking_number,
    )

    await repo.update_order_shipping_info(
        order.id,
        tracking_number=result.tracking_number,
        label_url=result.label_url,
        provider_metadata=result.provider_metadata(),
        provider_name=result.provider_name,
        shipping_cost=result.total_amount,
    )
    await db.commit()

    return ShipmentResponse(
        order_id=order.id,
        created=True,
        message="Manual shipment recorded",
        shipment_id=result.shipment_id,
        tracking_number=result.tracking_number,
        label_url=result.label_url,
        total_amount=result.total_amount,
        currency=result.currency,
        provider_name=result.provider_name,
        estimated_delivery=result.estimated_delivery,
    )


# ==================== Tracking Endpoints ====================


async def _lookup_tracking(
    tracking_service: TrackingService,
    tracking_number: Optional[str],
    provider: Optional[str],
) -> TrackingResponse:
    if not tracking_number or not tracking_number.strip():
        raise HTTPException(status_code=400, detail="Tracking number is required")

    try:
        return await tracking_service.track(tracking_number, provider)
    except CarrierAPIError as e:
        if e.status_code == 404:
            raise HTTPException(status_code=404, detail=e.message)
        raise HTTPException(status_code=502, detail=e.message)
    except CarrierError as e:
        raise HTTPException(status_code=502, detail=e.message)
    except ShippingError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except Exception:
        logger.exception(f"Tracking lookup for {tracking_number} failed unexpectedly")
        raise HTTPException(status_code=502, detail="Tracking information is unavailable right now")


@router.get("/track", response_model=TrackingResponseOut)
async def track_shipment(
    tracking_number: Optional[str] = Query(None, alias="trackingNumber"),
    provider: Optional[str] = Query(None),
    tracking_service: TrackingService = Depends(get_tracking_service),
    carrier_factory: CarrierFactory = Depends(get_carrier_factory),
):
    """Tracking lookup. Events in chronological order."""
    tracking = await _lookup_tracking(tracking_service, tracking_number, provider)
    return _tracking_out(tracking, carrier_factory, newest_first=False)


@router.get("/track/dashboard", response_model=TrackingResponseOut)
async def track_shipment_dashboard(
    tracking_number: Optional[str] = Query(None, alias="trackingNumber"),
    provider: Optional[str] = Query(None),
    tracking_service: TrackingService = Depends(get_tracking_service),
    carrier_factory: CarrierFactory = Depends(get_carrier_factory),
):
    """Tracking lookup for the dashboard. Events newest first."""
    tracking = await _lookup_tracking(tracking_service, tracking_number, provider)
    return _tracking_out(tracking, carrier_factory, newest_first=True)


# ==================== Address Endpoints ====================


@router.post("/validate-address", response_model=AddressValidationResponse)
async def validate_address(
    address_data: AddressIn,
    provider: Optional[str] = Query(None),
    carrier_factory: CarrierFactory = Depends(get_carrier_factory),
    db: AsyncSession = Depends(get_db),
):
    """
    Validate an address with the carrier.

    Advisory only: falls back to local structural checks when the carrier
    cannot be reached.
    """
    provider = await _resolve_provider(provider, carrier_factory, db)
    carrier = carrier_factory.get_carrier(provider)

    address = address_data.to_address()
    address = address.with_country(normalize_country_code(address.country_code))
    result = await carrier.validate_address(address)

    return AddressValidationResponse(
        is_valid=result.is_valid,
        suggested_address=AddressIn.model_validate(result.suggested_address) if result.suggested_address else None,
        messages=result.messages,
    )


# ==================== Settings Endpoints ====================


@router.get("/settings", response_model=ShippingSettingsOut)
async def get_shipping_settings(
    carrier_factory: CarrierFactory = Depends(get_carrier_factory),
    db: AsyncSession = Depends(get_db),
):
    """Current default carrier and the carriers this deployment supports."""
    return ShippingSettingsOut(
        default_provider=await resolve_default_provider(db),
        available_providers=carrier_factory.available_providers(),
    )


@router.put("/settings", response_model=ShippingSettingsOut)
async def update_shipping_settings(
    body: ShippingSettingsUpdate,
    carrier_factory: CarrierFactory = Depends(get_carrier_factory),
    db: AsyncSession = Depends(get_db),
):
    """Switch the default carrier."""
    if not carrier_factory.has_carrier(body.default_provider.strip()):
        raise HTTPException(status_code=400, detail=f"Unknown shipping provider: {body.default_provider}")

    provider = await set_default_provider(db, body.default_provider)
    await db.commit()

    return ShippingSettingsOut(
        default_provider=provider,
        available_providers=carrier_factory.available_providers(),
    )
