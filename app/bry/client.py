"""
BRy AR (registration authority) HTTP client.

Used by the status sync path to read the authority's current view of a
certificate request when the webhook may not have arrived.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from app.config import Settings, get_settings
from app.exceptions import BryApiError, NotFoundError

logger = logging.getLogger(__name__)


class BryArClient:
    """Thin async client for the BRy AR API."""

    def __init__(self, settings: Optional[Settings] = None, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or get_settings()
        self._http_client = http_client

    @property
    def base_url(self) -> str:
        return self.settings.get_bry_ar_base_url()

    def is_configured(self) -> bool:
        return bool(self.settings.bry_ar_client_id and self.settings.bry_ar_client_secret)

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.base_url}{path}"
        kwargs.setdefault("timeout", self.settings.bry_timeout_seconds)
        try:
            if self._http_client is not None:
                return await self._http_client.request(method, url, **kwargs)
            async with httpx.AsyncClient() as client:
                return await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise BryApiError(f"BRy AR request timed out: {path}") from e
        except httpx.HTTPError as e:
            raise BryApiError(f"BRy AR request failed: {e}") from e

    @staticmethod
    def _json_object(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"BRy AR returned a non-JSON body: {response.text[:200]}")
            raise BryApiError("Invalid BRy AR response") from e
        if not isinstance(body, dict):
            raise BryApiError("Invalid BRy AR response")
        return body

    async def authenticate(self) -> str:
        """Exchange client credentials for an access token."""
        if not self.is_configured():
            raise BryApiError("BRy AR credentials not configured (BRY_AR_CLIENT_ID / BRY_AR_CLIENT_SECRET)")

        logger.info("Authenticating with BRy AR")
        response = await self._request(
            "POST",
            "/api/auth",
            json={
                "client_id": self.settings.bry_ar_client_id,
                "client_secret": self.settings.bry_ar_client_secret,
            },
        )

        if response.status_code != 200:
            logger.error(f"BRy AR auth error {response.status_code}: {response.text[:200]}")
            raise BryApiError(
                f"BRy AR authentication failed: {response.status_code}",
                upstream_status=response.status_code,
            )

        token = self._json_object(response).get("access_token")
        if not token:
            raise BryApiError("BRy AR authentication response has no access_token")
        return token

    async def get_request(self, protocol: str, access_token: Optional[str] = None) -> Dict[str, Any]:
        """
        Fetch a certificate request by protocol.

        Raises:
            NotFoundError: BRy does not know the protocol
            BryApiError: any other failure
        """
        token = access_token or await self.authenticate()

        response = await self._request(
            "GET",
            f"/api/certificate-requests/protocol/{protocol}",
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
        )

        if response.status_code == 404:
            raise NotFoundError("Certificate request", protocol)

        if response.status_code != 200:
            logger.error(f"BRy AR get request error {response.status_code}: {response.text[:200]}")
            raise BryApiError(
                f"Error fetching request {protocol}: {response.status_code}",
                upstream_status=response.status_code,
            )

        return self._json_object(response)


def get_bry_client() -> BryArClient:
    """FastAPI dependency."""
    return BryArClient()
