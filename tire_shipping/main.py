"""
Tire Shop Shipping Service
FastAPI application entry point

- Carrier credentials and shipper address are read once here and injected
- Carrier HTTP clients are closed on shutdown
- Escaped ShippingErrors are rendered as JSON {detail, code}
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from starlette.responses import JSONResponse

from tire_shipping import __version__
from tire_shipping.api.routes import shipping
from tire_shipping.core.config import Settings, ShipperConfig, build_shipper_config, settings
from tire_shipping.core.exceptions import (
    CarrierConfigError,
    CarrierError,
    CarrierNotFoundError,
    ShippingError,
    ShippingValidationError,
)
from tire_shipping.modules.shipping.carriers import CarrierFactory
from tire_shipping.services.rate_cache import RateCache

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _status_for(exc: ShippingError) -> int:
    if isinstance(exc, (ShippingValidationError, CarrierNotFoundError)):
        return 400
    if isinstance(exc, CarrierConfigError):
        return 503
    if isinstance(exc, CarrierError):
        return 502
    return 400


async def shipping_error_handler(request: Request, exc: ShippingError) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path} failed: {exc!r}")
    return JSONResponse(
        status_code=_status_for(exc),
        content={"detail": exc.message, "code": exc.code},
    )


def create_app(
    config: Optional[Settings] = None,
    carrier_factory: Optional[CarrierFactory] = None,
    shipper_config: Optional[ShipperConfig] = None,
    rate_cache: Optional[RateCache] = None,
) -> FastAPI:
    """
    Build the application.

    Collaborators default to ones built from settings; tests pass fakes.
    """
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"{config.APP_NAME} starting, carriers: {app.state.carrier_factory.available_providers()}")
        if not app.state.shipper_config.is_complete:
            logger.warning(f"Shipper address incomplete, missing: {app.state.shipper_config.missing_fields}")

        yield

        # Close carrier HTTP clients to prevent connection leaks
        await app.state.carrier_factory.close()
        logger.info("Carrier HTTP clients closed")

    app = FastAPI(
        lifespan=lifespan,
        title=config.APP_NAME,
        version=__version__,
    )

    app.state.carrier_factory = carrier_factory or CarrierFactory(config)
    app.state.shipper_config = shipper_config or build_shipper_config(config)
    if rate_cache is None and config.SHIPPING_RATE_CACHE_ENABLED:
        rate_cache = RateCache(
            ttl_seconds=config.SHIPPING_RATE_CACHE_TTL_SECONDS,
            max_size=config.SHIPPING_RATE_CACHE_MAX_SIZE,
        )
    app.state.rate_cache = rate_cache

    app.add_exception_handler(ShippingError, shipping_error_handler)
    app.include_router(shipping.router, prefix="/api", tags=["Shipping"])

    @app.get("/health", tags=["Health"])
    async def health_check():
        return {
            "status": "healthy",
            "carriers": app.state.carrier_factory.available_providers(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


app = create_app()
