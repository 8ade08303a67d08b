"""
API dependencies

Shared objects (carrier factory, rate cache, shipper config) are built once
in create_app() and kept on app.state; services are assembled per request.
"""
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tire_shipping.core.config import ShipperConfig
from tire_shipping.core.database import get_db
from tire_shipping.modules.shipping.carriers import CarrierFactory
from tire_shipping.services.order_shipping import OrderShippingRepository
from tire_shipping.services.rate_service import RateQuotationService
from tire_shipping.services.shipment_service import ShipmentCreationService
from tire_shipping.services.site_settings import resolve_default_provider
from tire_shipping.services.tracking_service import TrackingService


def get_carrier_factory(request: Request) -> CarrierFactory:
    return request.app.state.carrier_factory


def get_shipper_config(request: Request) -> ShipperConfig:
    return request.app.state.shipper_config


def get_rate_service(
    request: Request,
    carrier_factory: CarrierFactory = Depends(get_carrier_factory),
) -> RateQuotationService:
    return RateQuotationService(carrier_factory, cache=request.app.state.rate_cache)


def get_shipment_service(
    carrier_factory: CarrierFactory = Depends(get_carrier_factory),
    shipper_config: ShipperConfig = Depends(get_shipper_config),
) -> ShipmentCreationService:
    return ShipmentCreationService(carrier_factory, shipper_config)


def get_tracking_service(
    carrier_factory: CarrierFactory = Depends(get_carrier_factory),
    db: AsyncSession = Depends(get_db),
) -> TrackingService:
    async def resolver() -> str:
        return await resolve_default_provider(db)

    return TrackingService(carrier_factory, provider_resolver=resolver)


def get_order_repository(db: AsyncSession = Depends(get_db)) -> OrderShippingRepository:
    return OrderShippingRepository(db)
