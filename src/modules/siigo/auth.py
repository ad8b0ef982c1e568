"""Token acquisition for the Siigo API with retry and in-memory caching."""

import asyncio
from typing import Awaitable, Callable, Optional

from loguru import logger

from .cache import TTLCache
from .client import SiigoClient, SiigoConnectionError
from .config import Settings

TOKEN_CACHE_KEY = "siigo:token"
DEFAULT_EXPIRES_IN = 86400


class TokenProvider:
    """
    Obtains bearer tokens from ``POST /auth``.

    ``get_token`` never raises: it returns None when authentication is
    unavailable (missing credentials or retries exhausted) and the caller is
    expected to answer with a 401.
    """

    def __init__(
        self,
        settings: Settings,
        client: SiigoClient,
        cache: TTLCache,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.client = client
        self.cache = cache
        self._sleep = sleep

    async def get_token(self) -> Optional[str]:
        cached = self.cache.get(TOKEN_CACHE_KEY)
        if cached:
            logger.debug("[Auth] Using cached token")
            return cached

        missing = self.settings.missing_credentials()
        if missing:
            logger.error(f"[Auth] Siigo credentials not configured: {', '.join(missing)}")
            return None

        attempts = max(1, self.settings.token_max_attempts)
        for attempt in range(1, attempts + 1):
            token, expires_in = await self._attempt(attempt, attempts)
            if token:
                self._store(token, expires_in)
                logger.info(f"[Auth] Token obtained: {token[:10]}... (expires_in={expires_in}s)")
                return token

            if attempt < attempts:
                wait_time = self.settings.token_retry_delay * attempt
                logger.info(f"[Auth] Waiting {wait_time:.1f}s before retry")
                await self._sleep(wait_time)

        logger.error(f"[Auth] Could not obtain a Siigo token after {attempts} attempts")
        return None

    def invalidate(self) -> None:
        """Forget the cached token, e.g. after Siigo answered 401."""
        if self.cache.invalidate(TOKEN_CACHE_KEY):
            logger.info("[Auth] Cached token invalidated")

    async def _attempt(self, attempt: int, attempts: int) -> tuple[Optional[str], int]:
        try:
            resp = await self.client.authenticate()
        except SiigoConnectionError as exc:
            logger.warning(f"[Auth] Attempt {attempt}/{attempts} failed: {exc}")
            return None, 0

        if resp.is_error:
            logger.warning(
                f"[Auth] Attempt {attempt}/{attempts} failed: HTTP {resp.status_code} {resp.text}"
            )
            return None, 0

        try:
            data = resp.json()
        except ValueError:
            logger.warning(f"[Auth] Attempt {attempt}/{attempts}: non-JSON auth response")
            return None, 0

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            logger.warning(f"[Auth] Attempt {attempt}/{attempts}: no access_token in response")
            return None, 0

        expires_in = data.get("expires_in") or DEFAULT_EXPIRES_IN
        try:
            expires_in = int(expires_in)
        except (TypeError, ValueError):
            expires_in = DEFAULT_EXPIRES_IN
        return token, expires_in

    def _store(self, token: str, expires_in: int) -> None:
        ttl = expires_in - self.settings.token_expiry_margin
        if ttl <= 0:
            logger.debug("[Auth] Token lifetime below safety margin, not caching")
            return
        self.cache.set(TOKEN_CACHE_KEY, token, ttl_seconds=ttl)
