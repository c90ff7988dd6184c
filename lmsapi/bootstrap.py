"""
ApiContext - explicit construction and teardown of the request pipeline.

Nothing in lmsapi is a module-level singleton except settings; the
application builds one ApiContext at startup and passes its parts around.
"""

from loguru import logger

from lmsapi.pollers.health import HealthMonitor
from lmsapi.pollers.progress import ProgressTracker
from lmsapi.pollers.scheduler import PollScheduler
from lmsapi.services.cache import TTLCache
from lmsapi.services.cached_fetch import CachedFetcher
from lmsapi.services.client import ApiClient
from lmsapi.services.session import FileTokenStore, SessionState, TokenStore
from lmsapi.services.single_flight import SingleFlight
from lmsapi.services.transport import HttpTransport
from lmsapi.settings import Settings


class ApiContext:
    """
    Usage:
        ctx = ApiContext(Settings.from_env())
        ctx.start()
        ...
        progress = await ctx.progress.get_progress(7)
        ...
        await ctx.shutdown()
    """

    def __init__(
        self,
        settings: Settings,
        token_store: TokenStore | None = None,
        transport: HttpTransport | None = None,
    ):
        self.settings = settings
        self.session = SessionState(
            token_store or FileTokenStore(settings.token_store_path)
        )
        self.client = ApiClient(settings, self.session, transport=transport)

        self.cache = TTLCache(
            default_ttl=settings.progress_cache_ttl, debug=settings.cache_debug
        )
        self.single_flight = SingleFlight(debug=settings.cache_debug)
        self.fetcher = CachedFetcher(self.cache, self.single_flight)

        self.progress = ProgressTracker(
            self.client,
            self.fetcher,
            ttl=settings.progress_cache_ttl,
            default_ttl=settings.progress_default_ttl,
        )
        self.health = HealthMonitor(
            self.client,
            self.fetcher,
            path=settings.health_path,
            ttl=settings.health_cache_ttl,
        )
        self.scheduler = PollScheduler(
            self.cache,
            health=self.health,
            sweep_interval_seconds=settings.cache_sweep_interval_seconds,
            health_interval_seconds=settings.health_poll_interval_seconds,
        )

    def start(self) -> None:
        """Start background polling. Requires a running event loop."""
        self.scheduler.start()
        logger.info(f"ApiContext started against {self.settings.api_url}")

    def login(self, token: str) -> None:
        self.session.set_token(token)

    def logout(self) -> None:
        """
        Clear the credential and everything cached for the old session.

        Reads still in flight are cancelled; their callers get
        ApiError(kind=CANCELLED).
        """
        self.session.clear_token()
        self.cache.clear()
        self.single_flight.cancel_all()

    async def shutdown(self) -> None:
        if self.scheduler.is_running:
            self.scheduler.stop()
        self.single_flight.cancel_all()
        self.cache.clear()
        await self.client.close()
        logger.info("ApiContext stopped")

    def get_health_status(self) -> dict:
        """Get status of the pipeline components."""
        return {
            "backend": self.health.status.to_dict(),
            "requests": self.client.get_stats(),
            "cache": self.cache.get_stats().to_dict(),
            "single_flight": self.single_flight.get_stats().to_dict(),
            "authenticated": self.session.is_authenticated,
        }
