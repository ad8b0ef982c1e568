"""
HTTP client for the Siigo accounting API.

All calls are asynchronous and use a fresh ``httpx.AsyncClient`` per
operation. Retries are the caller's concern: the token provider and the
purchases fetcher each apply their own policy on top of this client.
"""

from typing import Any, Dict, Optional

import httpx
from loguru import logger

from .config import Settings


class SiigoError(Exception):
    """Base exception for Siigo-related errors."""

    pass


class SiigoAuthError(SiigoError):
    """Authentication with Siigo is unavailable or was rejected."""

    pass


class SiigoConnectionError(SiigoError):
    """Transport-level failure (connection refused, timeout, DNS...)."""

    pass


class SiigoAPIError(SiigoError):
    """Siigo answered with a non-2xx status."""

    def __init__(
        self,
        status_code: int,
        message: str,
        details: Any = None,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.details = details
        self.retry_after = retry_after


class SiigoClient:
    """
    Thin async wrapper around the Siigo REST endpoints.

    Provides:
    - authenticate(): POST /auth
    - get_purchases_page(): GET /purchases (one page)
    - create_purchase() / create_invoice(): POST /purchases, /invoices
    - search_by_cufe(): GET /purchases?cufe=...
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize Siigo client.

        Args:
            settings: Integration settings (URLs, partner id, timeouts)
            transport: Optional httpx transport, used by tests to mock Siigo
        """
        self.settings = settings
        self.base_url = settings.api_base_url.rstrip("/")
        self.timeout = settings.request_timeout
        self._transport = transport

    def _client(self, timeout: float | None = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(timeout or self.timeout),
            transport=self._transport,
        )

    def _headers(self, token: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Partner-Id": self.settings.partner_id,
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def authenticate(self) -> httpx.Response:
        """
        Request an access token.

        Returns the raw response so the token provider can decide what counts
        as a failed attempt.

        Raises:
            SiigoConnectionError: If the request could not be sent
        """
        payload = {
            "username": self.settings.username,
            "access_key": self.settings.access_key,
        }
        logger.debug(f"[Siigo] POST {self.settings.auth_url}")
        try:
            async with self._client() as client:
                return await client.post(
                    self.settings.auth_url,
                    json=payload,
                    headers=self._headers(),
                )
        except httpx.RequestError as exc:
            raise SiigoConnectionError(f"Connection error: {exc}") from exc

    async def get_purchases_page(
        self,
        token: str,
        page: int,
        page_size: int,
        created_start: Optional[str] = None,
        created_end: Optional[str] = None,
    ) -> Any:
        """
        Fetch a single page of purchases.

        Returns:
            Decoded JSON body (shape varies, see fetcher)

        Raises:
            SiigoAuthError: On HTTP 401
            SiigoAPIError: On any other non-2xx status or undecodable body
            SiigoConnectionError: On transport errors and timeouts
        """
        params: Dict[str, Any] = {"page": page, "page_size": page_size}
        if created_start:
            params["created_start"] = created_start
        if created_end:
            params["created_end"] = created_end

        url = f"{self.base_url}/purchases"
        logger.debug(f"[Siigo] GET {url} page={page} page_size={page_size}")
        return await self._request("GET", url, token, params=params)

    async def create_purchase(self, token: str, payload: Dict[str, Any]) -> Any:
        """Register a purchase invoice."""
        return await self._request(
            "POST", f"{self.base_url}/purchases", token, json=payload
        )

    async def create_invoice(self, token: str, payload: Dict[str, Any]) -> Any:
        """Register a sales invoice."""
        return await self._request(
            "POST", f"{self.base_url}/invoices", token, json=payload
        )

    async def search_by_cufe(self, token: str, cufe: str) -> Any:
        """Look up a purchase by its CUFE (electronic invoice unique code)."""
        return await self._request(
            "GET", f"{self.base_url}/purchases", token, params={"cufe": cufe}
        )

    async def _request(
        self,
        method: str,
        url: str,
        token: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        try:
            async with self._client() as client:
                resp = await client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=self._headers(token),
                )
        except httpx.TimeoutException as exc:
            logger.warning(f"[Siigo] Timeout calling {method} {url}: {exc}")
            raise SiigoConnectionError(f"Timeout: {exc}") from exc
        except httpx.RequestError as exc:
            logger.error(f"[Siigo] Request error calling {method} {url}: {exc}")
            raise SiigoConnectionError(f"Connection error: {exc}") from exc

        if resp.status_code == 401:
            raise SiigoAuthError(f"Siigo rejected the token for {method} {url}")

        body = _decode(resp)
        if resp.is_error:
            logger.error(
                f"[Siigo] HTTP {resp.status_code} calling {method} {url}: {resp.text}"
            )
            raise SiigoAPIError(
                resp.status_code,
                f"HTTP {resp.status_code}: {resp.reason_phrase}",
                details=body,
                retry_after=_retry_after(resp),
            )
        if body is None:
            raise SiigoAPIError(resp.status_code, "Siigo returned a non-JSON body")
        return body


def _decode(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None


def _retry_after(resp: httpx.Response) -> Optional[float]:
    value = resp.headers.get("retry-after", "")
    return float(value) if value.strip().isdigit() else None
