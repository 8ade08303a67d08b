"""
FedEx API Client

Wire-level client for the FedEx REST endpoints used by the shipping layer:
- OAuth (POST /oauth/token)
- Rating (POST /rate/v1/rates/quotes)
- Shipping (POST /ship/v1/shipments)
- Address Validation (POST /address/v1/addresses/resolve)
- Tracking (POST /track/v1/trackingnumbers)

Handles OAuth token refresh; requests, retries and error translation live
in CarrierHTTPClient.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import httpx

from tire_shipping.core.exceptions import CarrierAPIError, CarrierConfigError
from tire_shipping.services.carrier_http import CarrierHTTPClient

logger = logging.getLogger(__name__)

PROVIDER_NAME = "FEDEX"

FEDEX_SANDBOX_URL = "https://apis-sandbox.fedex.com"

# API endpoints
OAUTH_TOKEN_PATH = "/oauth/token"
RATES_PATH = "/rate/v1/rates/quotes"
SHIPMENTS_PATH = "/ship/v1/shipments"
ADDRESS_VALIDATION_PATH = "/address/v1/addresses/resolve"
TRACKING_PATH = "/track/v1/trackingnumbers"


@dataclass(frozen=True)
class FedExCredentials:
    """FedEx API credentials and transport settings."""
    api_key: str
    api_secret: str
    account_number: str = ""
    meter_number: str = ""
    api_url: str = FEDEX_SANDBOX_URL
    timeout: float = 20.0
    max_retries: int = 2
    backoff_seconds: float = 0.2

    @property
    def missing_fields(self) -> list:
        required = {
            "FEDEX_API_KEY": self.api_key,
            "FEDEX_API_SECRET": self.api_secret,
            "FEDEX_ACCOUNT_NUMBER": self.account_number,
            "FEDEX_METER_NUMBER": self.meter_number,
        }
        return [name for name, value in required.items() if not value]

    @property
    def is_configured(self) -> bool:
        return not self.missing_fields

    @property
    def base_url(self) -> str:
        return self.api_url.rstrip("/")


def build_fedex_credentials(source=None) -> FedExCredentials:
    """Snapshot the FEDEX_* settings into FedExCredentials."""
    if source is None:
        from tire_shipping.core.config import settings as source
    return FedExCredentials(
        api_key=source.FEDEX_API_KEY,
        api_secret=source.FEDEX_API_SECRET,
        account_number=source.FEDEX_ACCOUNT_NUMBER,
        meter_number=source.FEDEX_METER_NUMBER,
        api_url=source.FEDEX_API_URL or FEDEX_SANDBOX_URL,
        timeout=source.FEDEX_TIMEOUT_SECONDS,
        max_retries=source.FEDEX_MAX_RETRIES,
    )


class FedExClient(CarrierHTTPClient):
    """FedEx API client with OAuth client-credentials authentication."""

    provider_name = PROVIDER_NAME

    def __init__(self, credentials: FedExCredentials, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(credentials, transport=transport)
        self._access_token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None

    async def _ensure_token(self) -> str:
        """Ensure we have a valid OAuth token."""
        if self._access_token and self._token_expires_at:
            # Refresh 5 minutes before expiry
            if datetime.now(timezone.utc) < self._token_expires_at - timedelta(minutes=5):
                return self._access_token

        client = await self._get_http_client()
        url = f"{self.credentials.base_url}{OAUTH_TOKEN_PATH}"

        try:
            response = await client.post(
                url,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.credentials.api_key,
                    "client_secret": self.credentials.api_secret,
                },
            )
        except httpx.TimeoutException as e:
            logger.error(f"FedEx OAuth request timed out: {e}")
            raise CarrierAPIError(
                message=f"FedEx authentication timed out after {self.credentials.timeout}s",
                code="TIMEOUT",
                provider_name=PROVIDER_NAME,
            )
        except httpx.RequestError as e:
            logger.error(f"FedEx OAuth request failed: {e}")
            raise CarrierAPIError(
                message=f"Network error during authentication: {e}",
                code="NETWORK_ERROR",
                provider_name=PROVIDER_NAME,
            )

        if response.status_code != 200:
            logger.error(f"FedEx OAuth failed: {response.status_code} - {response.text[:500]}")
            raise CarrierAPIError(
                message="Failed to authenticate with FedEx",
                status_code=response.status_code,
                payload={"raw": response.text[:500]},
                provider_name=PROVIDER_NAME,
                code="AUTH_FAILED",
            )

        try:
            data = response.json()
            self._access_token = data["access_token"]
            expires_in = int(data.get("expires_in", 3600))
        except (ValueError, KeyError, TypeError):
            raise CarrierAPIError(
                message="FedEx authentication response did not include an access token",
                status_code=response.status_code,
                payload={"raw": response.text[:500]},
                provider_name=PROVIDER_NAME,
                code="AUTH_FAILED",
            )
        self._token_expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)

        logger.info(f"FedEx OAuth token obtained, expires in {expires_in}s")
        return self._access_token

    async def _auth_headers(self) -> Dict[str, str]:
        if not self.credentials.is_configured:
            raise CarrierConfigError(
                "FedEx API credentials are not configured",
                missing=self.credentials.missing_fields,
            )
        token = await self._ensure_token()
        return {"Authorization": f"Bearer {token}"}

    # ==================== Endpoints ====================

    async def get_rates(self, payload: Dict) -> Dict:
        return await self._make_request("POST", RATES_PATH, data=payload)

    async def create_shipment(self, payload: Dict) -> Dict:
        return await self._make_request("POST", SHIPMENTS_PATH, data=payload)

    async def validate_address(self, payload: Dict) -> Dict:
        return await self._make_request("POST", ADDRESS_VALIDATION_PATH, data=payload)

    async def track(self, tracking_number: str) -> Dict:
        payload = {
            "includeDetailedScans": True,
            "trackingInfo": [{"trackingNumberInfo": {"trackingNumber": tracking_number}}],
        }
        return await self._make_request("POST", TRACKING_PATH, data=payload)
