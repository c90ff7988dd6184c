"""Tests for the progress tracker, health monitor and poll scheduler."""

import asyncio
import json
from datetime import timedelta
from unittest.mock import AsyncMock

import httpx
import pytest

from lmsapi.pollers.health import HEALTH_KEY, BackendStatus, HealthMonitor
from lmsapi.pollers.progress import DEFAULT_PROGRESS, ProgressTracker, progress_key
from lmsapi.pollers.scheduler import PollScheduler
from lmsapi.services.cache import TTLCache
from lmsapi.services.cached_fetch import CachedFetcher
from lmsapi.services.errors import ApiError
from lmsapi.services.single_flight import SingleFlight


class Backend:
    """MockTransport handler routing by method and path."""

    def __init__(self, routes: dict[tuple[str, str], httpx.Response]):
        self.routes = routes
        self.requests: list[httpx.Request] = []
        self.gate: asyncio.Event | None = None

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        template = self.routes[(request.method, request.url.path)]
        if isinstance(template, Exception):
            raise template
        return httpx.Response(template.status_code, content=template.content)

    def count(self, method: str, path: str) -> int:
        return sum(
            1 for r in self.requests if r.method == method and r.url.path == path
        )


PROGRESS_PATH = "/api/lessons/7/progress"


@pytest.fixture
def fetcher(clock):
    return CachedFetcher(TTLCache(clock=clock), SingleFlight())


class TestProgressTracker:
    def make(self, make_client, fetcher, backend):
        return ProgressTracker(make_client(backend), fetcher)

    async def test_reads_progress_data(self, make_client, fetcher):
        backend = Backend(
            {("GET", PROGRESS_PATH): httpx.Response(
                200, json={"data": {"progress": 40, "completed": False}, "success": True}
            )}
        )
        tracker = self.make(make_client, fetcher, backend)

        assert await tracker.get_progress(7) == {"progress": 40, "completed": False}
        assert progress_key(7) in fetcher.cache

    async def test_cached_for_thirty_seconds(self, make_client, fetcher, clock):
        backend = Backend(
            {("GET", PROGRESS_PATH): httpx.Response(
                200, json={"data": {"progress": 40}, "success": True}
            )}
        )
        tracker = self.make(make_client, fetcher, backend)

        await tracker.get_progress(7)
        clock.advance(29)
        await tracker.get_progress(7)
        assert backend.count("GET", PROGRESS_PATH) == 1

        clock.advance(2)
        await tracker.get_progress(7)
        assert backend.count("GET", PROGRESS_PATH) == 2

    async def test_missing_progress_yields_default(self, make_client, fetcher, clock):
        backend = Backend(
            {("GET", PROGRESS_PATH): httpx.Response(
                404, json={"message": "Lesson progress not found"}
            )}
        )
        tracker = self.make(make_client, fetcher, backend)

        assert await tracker.get_progress(7) == DEFAULT_PROGRESS
        clock.advance(9)
        await tracker.get_progress(7)
        assert backend.count("GET", PROGRESS_PATH) == 1

        # The default is re-checked sooner than real progress
        clock.advance(2)
        await tracker.get_progress(7)
        assert backend.count("GET", PROGRESS_PATH) == 2

    async def test_default_is_not_shared_between_lessons(self, make_client, fetcher):
        backend = Backend(
            {
                ("GET", PROGRESS_PATH): httpx.Response(404, json={"message": "not found"}),
                ("GET", "/api/lessons/8/progress"): httpx.Response(
                    404, json={"message": "not found"}
                ),
            }
        )
        tracker = self.make(make_client, fetcher, backend)

        first = await tracker.get_progress(7)
        first["progress"] = 99
        assert await tracker.get_progress(8) == DEFAULT_PROGRESS

    async def test_concurrent_reads_fetch_once(self, make_client, fetcher):
        backend = Backend(
            {("GET", PROGRESS_PATH): httpx.Response(
                200, json={"data": {"progress": 40}, "success": True}
            )}
        )
        tracker = self.make(make_client, fetcher, backend)

        results = await asyncio.gather(tracker.get_progress(7), tracker.get_progress(7))

        assert results == [{"progress": 40}, {"progress": 40}]
        assert backend.count("GET", PROGRESS_PATH) == 1

    async def test_server_error_propagates_and_is_not_cached(
        self, make_client, fetcher
    ):
        backend = Backend(
            {("GET", PROGRESS_PATH): httpx.Response(500, json={"message": "boom"})}
        )
        tracker = self.make(make_client, fetcher, backend)

        with pytest.raises(ApiError) as exc_info:
            await tracker.get_progress(7)
        assert exc_info.value.status == 500
        assert progress_key(7) not in fetcher.cache

    async def test_update_progress_invalidates(self, make_client, fetcher):
        backend = Backend(
            {
                ("GET", PROGRESS_PATH): httpx.Response(
                    200, json={"data": {"progress": 40}, "success": True}
                ),
                ("PATCH", PROGRESS_PATH): httpx.Response(
                    200, json={"data": {"progress": 60}, "success": True}
                ),
            }
        )
        tracker = self.make(make_client, fetcher, backend)

        await tracker.get_progress(7)
        assert await tracker.update_progress(7, 60) == {"progress": 60}
        assert progress_key(7) not in fetcher.cache

        patch = next(r for r in backend.requests if r.method == "PATCH")
        assert json.loads(patch.content) == {"progress": 60}

        await tracker.get_progress(7)
        assert backend.count("GET", PROGRESS_PATH) == 2

    async def test_mark_completed_invalidates(self, make_client, fetcher):
        backend = Backend(
            {
                ("GET", PROGRESS_PATH): httpx.Response(
                    200, json={"data": {"progress": 90}, "success": True}
                ),
                ("POST", "/api/lessons/7/complete"): httpx.Response(
                    200, json={"data": {"completed": True}, "success": True}
                ),
            }
        )
        tracker = self.make(make_client, fetcher, backend)

        await tracker.get_progress(7)
        assert await tracker.mark_completed(7) == {"completed": True}
        assert progress_key(7) not in fetcher.cache


HEALTH_PATH = "/api/health"


class TestHealthMonitor:
    def make(self, make_client, fetcher, backend):
        return HealthMonitor(make_client(backend), fetcher, ttl=timedelta(seconds=60))

    async def test_initial_status(self, make_client, fetcher):
        monitor = self.make(make_client, fetcher, Backend({}))
        assert monitor.status.is_connected is False
        assert monitor.status.message == "Checking connection..."

    async def test_connected(self, make_client, fetcher, session):
        session.set_token("secret")
        backend = Backend({("GET", HEALTH_PATH): httpx.Response(200, json={"status": "ok"})})
        monitor = self.make(make_client, fetcher, backend)

        status = await monitor.check()

        assert status.is_connected is True
        assert monitor.status is status
        # health probes never carry the credential
        assert "authorization" not in backend.requests[0].headers

    async def test_disconnected_is_not_retried(self, make_client, fetcher, log_records):
        backend = Backend({("GET", HEALTH_PATH): httpx.ConnectError("refused")})
        monitor = self.make(make_client, fetcher, backend)

        status = await monitor.check()

        assert status == BackendStatus(False, "Backend disconnected", status.timestamp)
        assert backend.count("GET", HEALTH_PATH) == 1
        assert not [r for r in log_records if r["level"].name == "ERROR"]

    async def test_status_is_cached(self, make_client, fetcher, clock):
        backend = Backend({("GET", HEALTH_PATH): httpx.Response(200, json={})})
        monitor = self.make(make_client, fetcher, backend)

        await monitor.check()
        clock.advance(59)
        await monitor.check()
        assert backend.count("GET", HEALTH_PATH) == 1

        clock.advance(2)
        await monitor.check()
        assert backend.count("GET", HEALTH_PATH) == 2

    async def test_refresh_bypasses_cache(self, make_client, fetcher):
        backend = Backend({("GET", HEALTH_PATH): httpx.Response(200, json={})})
        monitor = self.make(make_client, fetcher, backend)

        await monitor.check()
        await monitor.refresh()
        assert backend.count("GET", HEALTH_PATH) == 2

    async def test_refresh_during_poll_returns_last_status(self, make_client, fetcher):
        backend = Backend({("GET", HEALTH_PATH): httpx.Response(200, json={})})
        backend.gate = asyncio.Event()
        monitor = self.make(make_client, fetcher, backend)
        previous = monitor.status

        poll = asyncio.create_task(monitor.check())
        await asyncio.sleep(0)
        assert fetcher.guard.is_active(HEALTH_KEY)

        assert await monitor.refresh() is previous

        backend.gate.set()
        assert (await poll).is_connected is True
        assert backend.count("GET", HEALTH_PATH) == 1


class TestPollScheduler:
    async def test_registers_jobs(self, clock):
        health = AsyncMock(spec=HealthMonitor)
        scheduler = PollScheduler(TTLCache(clock=clock), health=health)

        scheduler.start()
        try:
            assert scheduler.is_running
            job_ids = {job.id for job in scheduler.scheduler.get_jobs()}
            assert job_ids == {"cache_sweep", "health_poll"}
        finally:
            scheduler.stop()
        assert not scheduler.is_running

    async def test_no_health_job_without_monitor(self, clock):
        scheduler = PollScheduler(TTLCache(clock=clock))
        scheduler.start()
        try:
            assert [job.id for job in scheduler.scheduler.get_jobs()] == ["cache_sweep"]
        finally:
            scheduler.stop()

    async def test_sweep_job_removes_expired(self, clock):
        cache = TTLCache(clock=clock)
        cache.set("old", 1, timedelta(seconds=10))
        cache.set("fresh", 2, timedelta(seconds=60))
        clock.advance(30)

        await PollScheduler(cache)._sweep_job()

        assert len(cache) == 1
        assert "fresh" in cache

    async def test_health_job_logs_failures(self, clock, log_records):
        health = AsyncMock(spec=HealthMonitor)
        health.check.side_effect = RuntimeError("boom")

        await PollScheduler(TTLCache(clock=clock), health=health)._health_job()

        health.check.assert_awaited_once()
        assert any(
            r["level"].name == "ERROR" and "boom" in r["message"] for r in log_records
        )

    async def test_stop_when_not_running_is_noop(self, clock):
        scheduler = PollScheduler(TTLCache(clock=clock))
        scheduler.stop()
        assert not scheduler.is_running
