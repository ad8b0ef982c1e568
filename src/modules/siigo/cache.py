"""In-memory TTL cache shared by the token provider and the purchases fetcher."""

import time
from typing import Any, Callable, Optional


class TTLCache:
    """
    Process-local cache whose entries expire after a fixed time-to-live.

    Entries are only invalidated by expiry or by an explicit ``invalidate`` /
    ``clear`` call. There is no locking: the service runs on a single event
    loop, so two concurrent misses may both refill the same key.
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize cache.

        Args:
            ttl_seconds: Default time-to-live for new entries
            clock: Monotonic time source (injectable for tests)
        """
        self.cache: dict[str, dict[str, Any]] = {}
        self.ttl = ttl_seconds
        self._clock = clock
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when absent or expired."""
        entry = self.cache.get(key)

        if not entry:
            self.misses += 1
            return None

        if self._clock() >= entry["expires_at"]:
            # Expired entry cleanup
            del self.cache[key]
            self.misses += 1
            return None

        self.hits += 1
        return entry["value"]

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        """Store a value; a non-positive ttl stores nothing."""
        ttl = self.ttl if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            self.cache.pop(key, None)
            return
        self.cache[key] = {
            "value": value,
            "expires_at": self._clock() + ttl,
        }

    def invalidate(self, key: str) -> bool:
        """Drop a single entry. Returns True if it existed."""
        return self.cache.pop(key, None) is not None

    def clear(self):
        """Clear all cache entries."""
        self.cache.clear()

    def cleanup_expired(self) -> int:
        """
        Remove expired entries from cache.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired_keys = [
            key for key, entry in self.cache.items() if now >= entry["expires_at"]
        ]

        for key in expired_keys:
            del self.cache[key]

        return len(expired_keys)

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        now = self._clock()
        valid_entries = sum(
            1 for entry in self.cache.values() if now < entry["expires_at"]
        )

        return {
            "total_entries": len(self.cache),
            "valid_entries": valid_entries,
            "expired_entries": len(self.cache) - valid_entries,
            "hits": self.hits,
            "misses": self.misses,
            "ttl_seconds": self.ttl,
        }


# Global singleton instance
_cache: Optional[TTLCache] = None


def get_cache() -> TTLCache:
    """Get or create the process-wide cache instance."""
    global _cache
    if _cache is None:
        from .config import get_settings

        _cache = TTLCache(ttl_seconds=get_settings().cache_ttl_seconds)
    return _cache


def reset_cache():
    """Reset the global cache (useful for testing)."""
    global _cache
    _cache = None
