"""
Backend health monitor.

Scheduled polls and manual refreshes share the `backend_health` key: a
refresh that races a running poll returns the last known status instead of
starting a second request.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from loguru import logger

from lmsapi.services.cached_fetch import CachedFetcher
from lmsapi.services.client import ApiClient
from lmsapi.services.errors import ApiError

HEALTH_KEY = "backend_health"


@dataclass(frozen=True)
class BackendStatus:
    is_connected: bool
    message: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_connected": self.is_connected,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


class HealthMonitor:
    def __init__(
        self,
        client: ApiClient,
        fetcher: CachedFetcher,
        path: str = "/health",
        ttl: timedelta = timedelta(seconds=60),
    ):
        self._client = client
        self._fetcher = fetcher
        self._path = path
        self._ttl = ttl
        self._status = BackendStatus(False, "Checking connection...")

    @property
    def status(self) -> BackendStatus:
        """Last known backend status."""
        return self._status

    async def _probe(self) -> BackendStatus:
        try:
            await self._client.read(
                self._path, skip_auth=True, skip_error_surface=True, max_retries=0
            )
        except ApiError as e:
            logger.warning(f"Backend health check failed: {e.message}")
            return BackendStatus(False, "Backend disconnected")
        return BackendStatus(True, "Backend connected")

    async def check(self) -> BackendStatus:
        """Return the cached status, probing the backend when it has expired."""
        status = await self._fetcher.get_or_fetch(
            HEALTH_KEY, self._probe, ttl=self._ttl, fallback=self._status, join=False
        )
        if status.is_connected != self._status.is_connected:
            logger.info(f"Backend status changed: {status.message}")
        self._status = status
        return status

    async def refresh(self) -> BackendStatus:
        """Drop the cached status and check again."""
        self._fetcher.invalidate(HEALTH_KEY)
        return await self.check()
