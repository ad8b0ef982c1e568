"""
Dependency wiring for the Siigo integration.

Initializes and wires together:
- TTLCache (token + purchases snapshots)
- SiigoClient (HTTP access)
- TokenProvider
- PurchaseFetcher
- AnalyticsService
"""

from functools import lru_cache

from loguru import logger

from .analytics import AnalyticsService
from .auth import TokenProvider
from .cache import get_cache
from .client import SiigoClient
from .config import get_settings
from .fetcher import PurchaseFetcher


@lru_cache(maxsize=1)
def get_client() -> SiigoClient:
    """
    Get or create the Siigo HTTP client.

    Returns:
        Configured SiigoClient instance
    """
    settings = get_settings()
    client = SiigoClient(settings)
    logger.info(f"[DI] Siigo client initialized: {settings.api_base_url}")
    return client


@lru_cache(maxsize=1)
def get_token_provider() -> TokenProvider:
    logger.info("[DI] Initializing TokenProvider")
    return TokenProvider(get_settings(), get_client(), get_cache())


@lru_cache(maxsize=1)
def get_fetcher() -> PurchaseFetcher:
    settings = get_settings()
    logger.info(
        f"[DI] Initializing PurchaseFetcher (page_size={settings.page_size}, "
        f"max_pages={settings.max_pages})"
    )
    return PurchaseFetcher(settings, get_client(), get_cache())


@lru_cache(maxsize=1)
def get_analytics_service() -> AnalyticsService:
    logger.info("[DI] Initializing AnalyticsService")
    return AnalyticsService(get_token_provider(), get_fetcher())


def reset_dependencies() -> None:
    """Drop every cached instance (used by tests and after config changes)."""
    for factory in (get_client, get_token_provider, get_fetcher, get_analytics_service):
        factory.cache_clear()
