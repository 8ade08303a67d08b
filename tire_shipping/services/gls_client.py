"""
GLS Client

Wire-level client for the GLS endpoints used by the shipping layer:
- Rating (POST /shipping/rates)
- Shipping (POST /shipping/shipments)
- Address Validation (POST /address-validation)
- Tracking (GET /tracking/{number})
"""
from dataclasses import dataclass
from typing import Dict
from urllib.parse import quote

from tire_shipping.core.exceptions import CarrierConfigError
from tire_shipping.services.carrier_http import CarrierHTTPClient, basic_auth

PROVIDER_NAME = "GLS"

GLS_DEFAULT_URL = "https://api.gls-group.eu"

# API endpoints
RATES_PATH = "/shipping/rates"
SHIPMENTS_PATH = "/shipping/shipments"
ADDRESS_VALIDATION_PATH = "/address-validation"
TRACKING_PATH = "/tracking/{tracking_number}"


@dataclass(frozen=True)
class GLSCredentials:
    """GLS API credentials and transport settings."""
    api_key: str
    api_secret: str
    customer_id: str = ""
    api_url: str = GLS_DEFAULT_URL
    timeout: float = 20.0
    max_retries: int = 2
    backoff_seconds: float = 0.2

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_secret)

    @property
    def base_url(self) -> str:
        return self.api_url.rstrip("/")


def build_gls_credentials(source=None) -> GLSCredentials:
    """Snapshot the GLS_* settings into GLSCredentials."""
    if source is None:
        from tire_shipping.core.config import settings as source
    return GLSCredentials(
        api_key=source.GLS_API_KEY,
        api_secret=source.GLS_API_SECRET,
        customer_id=source.GLS_CUSTOMER_ID,
        api_url=source.GLS_API_URL or GLS_DEFAULT_URL,
        timeout=source.GLS_TIMEOUT_SECONDS,
        max_retries=source.GLS_MAX_RETRIES,
    )


class GLSClient(CarrierHTTPClient):
    """GLS API client. Every request carries HTTP basic auth."""

    provider_name = PROVIDER_NAME

    async def _auth_headers(self) -> Dict[str, str]:
        if not self.credentials.is_configured:
            missing = [
                name for name, value in (
                    ("GLS_API_KEY", self.credentials.api_key),
                    ("GLS_API_SECRET", self.credentials.api_secret),
                ) if not value
            ]
            raise CarrierConfigError("GLS API credentials are not configured", missing=missing)
        return {"Authorization": basic_auth(self.credentials.api_key, self.credentials.api_secret)}

    async def get_rates(self, payload: Dict) -> Dict:
        return await self._make_request("POST", RATES_PATH, data=payload)

    async def create_shipment(self, payload: Dict) -> Dict:
        return await self._make_request("POST", SHIPMENTS_PATH, data=payload)

    async def validate_address(self, payload: Dict) -> Dict:
        return await self._make_request("POST", ADDRESS_VALIDATION_PATH, data=payload)

    async def track(self, tracking_number: str) -> Dict:
        path = TRACKING_PATH.format(tracking_number=quote(tracking_number, safe=""))
        return await self._make_request("GET", path)
