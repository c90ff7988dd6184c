"""Tests for the retry policy."""

import time

import httpx
import pytest

from lmsapi.services.errors import DeadlineExceeded, RequestAborted, TransportFailure
from lmsapi.services.retry import RetryPolicy

URL = "http://lms.test/x"


def flaky(failures: list[Exception], result="ok"):
    """Coroutine factory raising each queued failure once, then returning."""
    calls = {"n": 0}

    async def invoke():
        calls["n"] += 1
        if failures:
            raise failures.pop(0)
        return result

    return invoke, calls


def network_failure() -> TransportFailure:
    return TransportFailure(URL, httpx.ConnectError("refused"))


class TestRetryPolicy:
    async def test_success_first_try_does_not_sleep(self, sleeps):
        invoke, calls = flaky([])
        assert await RetryPolicy(sleep=sleeps).run(invoke, max_retries=2) == "ok"
        assert calls["n"] == 1
        assert sleeps.delays == []

    async def test_two_failures_then_success(self, sleeps):
        """max_retries=2, two transport failures, success on the third attempt."""
        invoke, calls = flaky([network_failure(), network_failure()])
        result = await RetryPolicy(backoff=1.0, sleep=sleeps).run(invoke, max_retries=2)
        assert result == "ok"
        assert calls["n"] == 3
        assert sleeps.total >= 2.0

    async def test_budget_exhausted_reraises_last_failure(self, sleeps):
        failures = [network_failure() for _ in range(5)]
        last = failures[2]
        invoke, calls = flaky(failures)
        with pytest.raises(TransportFailure) as exc_info:
            await RetryPolicy(sleep=sleeps).run(invoke, max_retries=2)
        assert exc_info.value is last
        assert calls["n"] == 3
        assert sleeps.delays == [1.0, 1.0]

    async def test_deadline_is_retried(self, sleeps):
        invoke, calls = flaky([DeadlineExceeded(URL, 30.0)])
        assert await RetryPolicy(sleep=sleeps).run(invoke, max_retries=1) == "ok"
        assert calls["n"] == 2

    async def test_abort_is_not_retried(self, sleeps):
        invoke, calls = flaky([RequestAborted(URL)])
        with pytest.raises(RequestAborted):
            await RetryPolicy(sleep=sleeps).run(invoke, max_retries=2)
        assert calls["n"] == 1
        assert sleeps.delays == []

    async def test_other_exceptions_pass_through(self, sleeps):
        invoke, calls = flaky([ValueError("bug")])
        with pytest.raises(ValueError):
            await RetryPolicy(sleep=sleeps).run(invoke, max_retries=2)
        assert calls["n"] == 1

    async def test_zero_retries(self, sleeps):
        invoke, calls = flaky([network_failure()])
        with pytest.raises(TransportFailure):
            await RetryPolicy(sleep=sleeps).run(invoke, max_retries=0)
        assert calls["n"] == 1

    async def test_real_sleep_elapsed_time(self):
        """Elapsed wall time covers every backoff delay."""
        invoke, _ = flaky([network_failure(), network_failure()])
        start = time.monotonic()
        await RetryPolicy(backoff=0.05).run(invoke, max_retries=2)
        assert time.monotonic() - start >= 0.09
