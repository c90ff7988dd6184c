import sys
from pathlib import Path
from typing import Callable

import httpx
import pytest
from loguru import logger

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from lmsapi.services.client import ApiClient  # noqa: E402
from lmsapi.services.observer import NullObserver  # noqa: E402
from lmsapi.services.retry import RetryPolicy  # noqa: E402
from lmsapi.services.session import MemoryTokenStore, SessionState  # noqa: E402
from lmsapi.services.transport import HttpTransport  # noqa: E402
from lmsapi.settings import Settings  # noqa: E402


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)

    @property
    def total(self) -> float:
        return sum(self.delays)


@pytest.fixture
def settings():
    return Settings(
        API_URL="http://lms.test/api",
        ENVIRONMENT="test",
        API_TIMEOUT=5.0,
        API_MAX_RETRIES=2,
        API_RETRY_BACKOFF=1.0,
        TOKEN_STORE_PATH="/nonexistent/session.json",
    )


@pytest.fixture
def session():
    return SessionState(MemoryTokenStore())


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def log_records():
    """Capture loguru records emitted during the test."""
    records = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)


@pytest.fixture
def make_client(settings, session, sleeps):
    """Build an ApiClient whose HTTP layer is an httpx.MockTransport."""

    def factory(handler: Callable, **overrides) -> ApiClient:
        transport = HttpTransport(
            default_timeout=settings.request_timeout,
            http_transport=httpx.MockTransport(handler),
        )
        client = ApiClient(
            overrides.get("settings", settings),
            overrides.get("session", session),
            transport=transport,
            retry=RetryPolicy(backoff=settings.retry_backoff, sleep=sleeps),
            observer=overrides.get("observer", NullObserver()),
        )
        return client

    return factory
