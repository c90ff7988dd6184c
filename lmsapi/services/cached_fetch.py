"""
CachedFetcher - TTLCache in front of a SingleFlight guard.

Pollers call get_or_fetch with a key shared by every caller that wants the
same resource. A fresh cache entry is returned directly; otherwise one fetch
runs for the key and its result is cached. Failures are not cached.
"""

from datetime import timedelta
from typing import Any, Awaitable, Callable, TypeVar

from lmsapi.services.cache import TTLCache
from lmsapi.services.single_flight import SingleFlight

T = TypeVar("T")

TTLSpec = timedelta | Callable[[Any], timedelta] | None


class CachedFetcher:
    def __init__(self, cache: TTLCache, guard: SingleFlight):
        self.cache = cache
        self.guard = guard

    async def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Awaitable[T]],
        ttl: TTLSpec = None,
        fallback: Any = None,
        join: bool = True,
    ) -> Any:
        """
        Return the cached value for key, fetching it on a miss.

        Args:
            key: Cache and single-flight key
            fetch: Coroutine factory producing the value
            ttl: Fixed TTL, or a function of the fetched value returning one
            fallback: Returned in skip mode while a fetch is in flight;
                callers pass their last known value
            join: True to wait for an in-flight fetch, False to skip it and
                return fallback

        None results are never served from the cache.
        """
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        async def fetch_and_store() -> T:
            value = await fetch()
            entry_ttl = ttl(value) if callable(ttl) else ttl
            self.cache.set(key, value, entry_ttl)
            return value

        if join:
            return await self.guard.do(key, fetch_and_store)

        return await self.guard.try_run(key, fetch_and_store, fallback=fallback)

    def invalidate(self, key: str) -> None:
        self.cache.clear(key)
