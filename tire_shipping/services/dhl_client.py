"""
DHL Express (MyDHL API) Client

Wire-level client for the DHL endpoints used by the shipping layer:
- Rating (POST /rates)
- Shipping (POST /shipments)
- Address Validation (POST /address-validation)
- Tracking (GET /tracking/{number})

Requests, retries and error translation live in CarrierHTTPClient.
"""
from dataclasses import dataclass
from typing import Dict
from urllib.parse import quote

from tire_shipping.core.exceptions import CarrierConfigError
from tire_shipping.services.carrier_http import CarrierHTTPClient, basic_auth

PROVIDER_NAME = "DHL"

DHL_MOCK_URL = "https://api-mock.dhl.com/mydhl/v1"

# API endpoints
RATES_PATH = "/rates"
SHIPMENTS_PATH = "/shipments"
ADDRESS_VALIDATION_PATH = "/address-validation"
TRACKING_PATH = "/tracking/{tracking_number}"


@dataclass(frozen=True)
class DHLCredentials:
    """DHL API credentials and transport settings."""
    api_key: str
    api_secret: str
    account_number: str = ""
    api_url: str = DHL_MOCK_URL
    timeout: float = 20.0
    max_retries: int = 2
    backoff_seconds: float = 0.2

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_secret)

    @property
    def base_url(self) -> str:
        return self.api_url.rstrip("/")


def build_dhl_credentials(source=None) -> DHLCredentials:
    """Snapshot the DHL_* settings into DHLCredentials."""
    if source is None:
        from tire_shipping.core.config import settings as source
    return DHLCredentials(
        api_key=source.DHL_API_KEY,
        api_secret=source.DHL_API_SECRET,
        account_number=source.DHL_ACCOUNT_NUMBER,
        api_url=source.DHL_API_URL or DHL_MOCK_URL,
        timeout=source.DHL_TIMEOUT_SECONDS,
        max_retries=source.DHL_MAX_RETRIES,
    )


class DHLClient(CarrierHTTPClient):
    """DHL API client with HTTP basic authentication."""

    provider_name = PROVIDER_NAME

    async def _auth_headers(self) -> Dict[str, str]:
        if not self.credentials.is_configured:
            missing = [
                name for name, value in (
                    ("DHL_API_KEY", self.credentials.api_key),
                    ("DHL_API_SECRET", self.credentials.api_secret),
                ) if not value
            ]
            raise CarrierConfigError("DHL API credentials are not configured", missing=missing)
        return {"Authorization": basic_auth(self.credentials.api_key, self.credentials.api_secret)}

    # ==================== Endpoints ====================

    async def get_rates(self, payload: Dict) -> Dict:
        return await self._make_request("POST", RATES_PATH, data=payload)

    async def create_shipment(self, payload: Dict) -> Dict:
        return await self._make_request("POST", SHIPMENTS_PATH, data=payload)

    async def validate_address(self, payload: Dict) -> Dict:
        return await self._make_request("POST", ADDRESS_VALIDATION_PATH, data=payload)

    async def track(self, tracking_number: str) -> Dict:
        path = TRACKING_PATH.format(tracking_number=quote(tracking_number, safe=""))
        return await self._make_request("GET", path)
