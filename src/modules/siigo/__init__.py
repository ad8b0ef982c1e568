"""Siigo integration module initialization."""

from .aggregator import MonthlyAggregator
from .analytics import AnalyticsAssembler, AnalyticsService
from .auth import TokenProvider
from .cache import TTLCache
from .client import (
    SiigoAPIError,
    SiigoAuthError,
    SiigoClient,
    SiigoConnectionError,
    SiigoError,
)
from .fetcher import PurchaseFetcher

__all__ = [
    "AnalyticsAssembler",
    "AnalyticsService",
    "MonthlyAggregator",
    "PurchaseFetcher",
    "SiigoAPIError",
    "SiigoAuthError",
    "SiigoClient",
    "SiigoConnectionError",
    "SiigoError",
    "TTLCache",
    "TokenProvider",
]
