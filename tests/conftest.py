"""Shared fixtures: settings, a fake Siigo backend and recorded sleeps."""

from typing import Callable, List

import httpx
import pytest

from src.modules.siigo.cache import TTLCache, reset_cache
from src.modules.siigo.client import SiigoClient
from src.modules.siigo.config import Settings, get_settings
from src.modules.siigo.di import reset_dependencies


class SleepRecorder:
    """Async stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeTokenProvider:
    """Token provider double returning a fixed token (or None)."""

    def __init__(self, token="tok-123"):
        self.token = token
        self.invalidated = False

    async def get_token(self):
        return self.token

    def invalidate(self):
        self.invalidated = True


def no_jitter(low: float, high: float) -> float:
    return 0.0


def make_settings(**overrides) -> Settings:
    values = {
        "username": "compras@example.com",
        "access_key": "secret-key",
        "auth_url": "https://siigo.test/auth",
        "api_base_url": "https://siigo.test/v1",
        "page_size": 2,
        "max_pages": 20,
        "fan_out_max_pages": 5,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def mock_client(settings: Settings, handler: Callable[[httpx.Request], httpx.Response]) -> SiigoClient:
    return SiigoClient(settings, transport=httpx.MockTransport(handler))


def page_response(records, total_results=None) -> httpx.Response:
    body = {"results": records}
    if total_results is not None:
        body["pagination"] = {"page": 1, "page_size": 2, "total_results": total_results}
    return httpx.Response(200, json=body)


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Give each test fresh settings, cache and dependency instances."""
    get_settings.cache_clear()
    reset_cache()
    reset_dependencies()
    yield
    get_settings.cache_clear()
    reset_cache()
    reset_dependencies()


@pytest.fixture()
def settings() -> Settings:
    return make_settings()


@pytest.fixture()
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture()
def cache() -> TTLCache:
    return TTLCache(ttl_seconds=300)
