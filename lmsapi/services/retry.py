"""
RetryPolicy - bounded retry with a fixed delay between attempts.

Only transport-class failures are retried: TransportFailure and
DeadlineExceeded. A response of any status ends the loop. A caller abort
(RequestAborted) or task cancellation propagates immediately.
"""

import asyncio
from typing import Awaitable, Callable, TypeVar

from loguru import logger

from lmsapi.services.errors import DeadlineExceeded, TransportFailure

T = TypeVar("T")

RETRYABLE = (TransportFailure, DeadlineExceeded)


class RetryPolicy:
    """
    Usage:
        policy = RetryPolicy(backoff=1.0)
        response = await policy.run(lambda: transport.send("GET", url), max_retries=2)
    """

    def __init__(
        self,
        backoff: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.backoff = backoff
        self._sleep = sleep

    async def run(
        self,
        invoke: Callable[[], Awaitable[T]],
        max_retries: int = 2,
    ) -> T:
        """
        Call `invoke` until it returns, retrying retryable failures.

        Total attempts are at most max_retries + 1. When the budget is spent
        the last failure is re-raised unchanged.
        """
        retries_left = max(0, max_retries)
        attempt = 0

        while True:
            attempt += 1
            try:
                return await invoke()
            except RETRYABLE as e:
                if retries_left <= 0:
                    if attempt > 1:
                        logger.warning(f"Giving up after {attempt} attempts: {e}")
                    raise
                logger.warning(
                    f"Request failed, retrying... ({retries_left} attempts left): {e}"
                )
                retries_left -= 1
                await self._sleep(self.backoff)
