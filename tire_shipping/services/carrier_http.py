"""
Carrier HTTP Client Base

Wire plumbing shared by the carrier API clients:
- Lazily created httpx.AsyncClient (a transport can be injected for tests)
- Authorization headers supplied by each concrete client
- Transport failures and 5xx responses retried with exponential backoff
- Error bodies translated into CarrierAPIError carrying the raw HTTP
  status and payload
"""
import asyncio
import base64
import logging
from typing import Any, Dict, Optional

import httpx

from tire_shipping.core.exceptions import CarrierAPIError

logger = logging.getLogger(__name__)

# Statuses worth another attempt
RETRYABLE_STATUS_CODES = {500, 502, 503, 504}


def basic_auth(username: str, password: str) -> str:
    auth_string = f"{username}:{password}"
    return "Basic " + base64.b64encode(auth_string.encode()).decode()


class CarrierHTTPClient:
    """
    Base for carrier API clients.

    `credentials` must expose base_url, timeout, max_retries and
    backoff_seconds. Subclasses set `provider_name` and implement
    `_auth_headers`.
    """

    provider_name = ""

    def __init__(self, credentials, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.credentials = credentials
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.credentials.timeout,
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                transport=self._transport,
            )
        return self._http_client

    async def close(self):
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _auth_headers(self) -> Dict[str, str]:
        raise NotImplementedError

    def _error_message(self, status_code: int, error_data: Any) -> str:
        """Pull a readable message out of a carrier error body."""
        if isinstance(error_data, dict):
            for key in ("detail", "message", "title"):
                if error_data.get(key):
                    return str(error_data[key])
            errors = error_data.get("errors")
            if isinstance(errors, list) and errors and isinstance(errors[0], dict):
                if errors[0].get("message"):
                    return str(errors[0]["message"])
        return f"{self.provider_name} API error: {status_code}"

    async def _make_request(
        self,
        method: str,
        path: str,
        data: Optional[Dict] = None,
        params: Optional[Dict] = None,
    ) -> Dict:
        """Make authenticated API request, retrying transient failures."""
        headers = await self._auth_headers()
        client = await self._get_http_client()
        url = f"{self.credentials.base_url}{path}"
        attempts = self.credentials.max_retries + 1
        name = self.provider_name

        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1
            try:
                if method.upper() == "GET":
                    response = await client.get(url, headers=headers, params=params)
                elif method.upper() == "POST":
                    response = await client.post(url, headers=headers, json=data, params=params)
                else:
                    raise ValueError(f"Unsupported HTTP method: {method}")

            except httpx.TimeoutException as e:
                logger.error(f"{name} API {method} {path} timed out (attempt {attempt + 1}/{attempts}): {e}")
                if last_attempt:
                    raise CarrierAPIError(
                        message=f"{name} API request timed out after {self.credentials.timeout}s",
                        code="TIMEOUT",
                        provider_name=name,
                    )
                await self._backoff(attempt)
                continue

            except httpx.RequestError as e:
                logger.error(f"{name} API {method} {path} failed (attempt {attempt + 1}/{attempts}): {e}")
                if last_attempt:
                    raise CarrierAPIError(
                        message=f"Network error: {e}",
                        code="NETWORK_ERROR",
                        provider_name=name,
                    )
                await self._backoff(attempt)
                continue

            logger.debug(f"{name} API {method} {path} -> {response.status_code}")

            if response.status_code in RETRYABLE_STATUS_CODES and not last_attempt:
                logger.warning(f"{name} API {method} {path} returned {response.status_code}, retrying")
                await self._backoff(attempt)
                continue

            if response.status_code >= 400:
                try:
                    error_data = response.json()
                except ValueError:
                    error_data = {"raw": response.text[:500]}

                error_msg = self._error_message(response.status_code, error_data)
                logger.error(f"{name} API error: {response.status_code} - {error_msg}")
                raise CarrierAPIError(
                    message=error_msg,
                    status_code=response.status_code,
                    payload=error_data,
                    provider_name=name,
                )

            try:
                return response.json()
            except ValueError:
                raise CarrierAPIError(
                    message=f"{name} API returned a non-JSON response",
                    status_code=response.status_code,
                    payload={"raw": response.text[:500]},
                    provider_name=name,
                )

        # Unreachable: the final attempt either returns or raises
        raise CarrierAPIError(f"{name} API request failed", provider_name=name)

    async def _backoff(self, attempt: int) -> None:
        delay = self.credentials.backoff_seconds * (2 ** attempt)
        if delay > 0:
            await asyncio.sleep(delay)
