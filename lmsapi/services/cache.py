"""
TTLCache - short-lived in-memory cache with per-entry expiration.

Features:
- Per-entry TTL; an expired entry is indistinguishable from a missing one
- Lazy purge on read plus a periodic sweep (cleanup_expired)
- Oldest-first eviction when max_size is reached
- Synchronous: mutations happen on the event loop thread without awaits
"""

import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Generic, TypeVar

from loguru import logger

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry with metadata."""

    data: T
    created_at: float
    ttl: timedelta

    def is_expired(self, now: float) -> bool:
        """Check if entry is past its TTL."""
        return now - self.created_at > self.ttl.total_seconds()


class TTLCache:
    """
    Usage:
        cache = TTLCache(default_ttl=timedelta(seconds=30))

        progress = cache.get("progress_7")
        if progress is None:
            progress = await fetch_progress(7)
            cache.set("progress_7", progress, ttl=timedelta(seconds=30))
    """

    def __init__(
        self,
        default_ttl: timedelta = timedelta(seconds=30),
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
        debug: bool = False,
    ):
        self._memory: dict[str, CacheEntry[Any]] = {}
        self._default_ttl = default_ttl
        self._max_size = max_size
        self._clock = clock
        self._debug = debug
        self._stats = CacheStats()

    def get(self, key: str) -> Any | None:
        """
        Get value from cache.

        Returns the data if present and within its TTL, None otherwise.
        """
        entry = self._memory.get(key)
        if entry is None:
            self._stats.misses += 1
            self._log(f"MISS: {key[:50]}")
            return None

        if entry.is_expired(self._clock()):
            del self._memory[key]
            self._stats.misses += 1
            self._stats.expirations += 1
            self._log(f"EXPIRED: {key[:50]}")
            return None

        self._stats.hits += 1
        self._log(f"HIT: {key[:50]}")
        return entry.data

    def set(self, key: str, data: Any, ttl: timedelta | None = None) -> None:
        """
        Set value in cache.

        Args:
            key: Cache key
            data: Data to cache
            ttl: Time to live (uses default if not specified)
        """
        ttl = ttl if ttl is not None else self._default_ttl

        if len(self._memory) >= self._max_size and key not in self._memory:
            self._evict_oldest()

        self._memory[key] = CacheEntry(data=data, created_at=self._clock(), ttl=ttl)
        self._log(f"SET: {key[:50]} (TTL: {ttl.total_seconds()}s)")

    def clear(self, key: str | None = None) -> None:
        """Clear one key, or every entry when key is None."""
        if key is not None:
            if self._memory.pop(key, None) is not None:
                self._log(f"DELETE: {key[:50]}")
            return

        count = len(self._memory)
        self._memory.clear()
        self._log(f"CLEAR: {count} entries removed")

    def cleanup_expired(self) -> int:
        """Remove all expired entries. Returns count of removed entries."""
        now = self._clock()
        expired_keys = [k for k, v in self._memory.items() if v.is_expired(now)]
        for key in expired_keys:
            del self._memory[key]

        self._stats.expirations += len(expired_keys)
        if expired_keys:
            self._log(f"CLEANUP: {len(expired_keys)} expired entries removed")

        return len(expired_keys)

    def _evict_oldest(self) -> None:
        """Evict the oldest entry."""
        if not self._memory:
            return

        oldest_key = min(
            self._memory.keys(),
            key=lambda k: self._memory[k].created_at,
        )
        del self._memory[oldest_key]
        self._stats.evictions += 1
        self._log(f"EVICT: {oldest_key[:50]}")

    def __contains__(self, key: str) -> bool:
        entry = self._memory.get(key)
        return entry is not None and not entry.is_expired(self._clock())

    def __len__(self) -> int:
        return len(self._memory)

    def get_stats(self) -> "CacheStats":
        """Get cache statistics."""
        self._stats.size = len(self._memory)
        self._stats.max_size = self._max_size
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[TTLCache] {message}")


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    expirations: int = 0
    evictions: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "expirations": self.expirations,
            "evictions": self.evictions,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }
