"""
SingleFlight - at most one in-flight call per key.

When several callers ask for the same key at once, only one call runs.
Callers either join that call (do) or skip it and take a fallback (try_run).
The in-flight flag is cleared when the call settles, success or failure.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

from lmsapi.services.errors import CANCELLED_MESSAGE, ApiError, ErrorKind

T = TypeVar("T")


@dataclass(frozen=True)
class InFlightFlag:
    """Snapshot of the guard state for one key."""

    key: str
    active: bool


class SingleFlight:
    """
    Usage:
        guard = SingleFlight()

        # Join an in-flight call for the same key
        status = await guard.do("backend_health", check_health)

        # Or skip when one is already running
        status = await guard.try_run("backend_health", check_health, fallback=last)
    """

    def __init__(self, debug: bool = False):
        self._in_flight: dict[str, asyncio.Task[Any]] = {}
        self._debug = debug
        self._stats = SingleFlightStats()

    def is_active(self, key: str) -> bool:
        return key in self._in_flight

    def flag(self, key: str) -> InFlightFlag:
        return InFlightFlag(key=key, active=self.is_active(key))

    def active_keys(self) -> list[str]:
        """Get keys of all in-flight calls."""
        return list(self._in_flight.keys())

    def _start(self, key: str, fn: Callable[[], Awaitable[T]]) -> "asyncio.Task[T]":
        # Check-and-set happens without an await in between
        self._stats.total += 1
        self._log(f"NEW: Starting call: {key[:50]}")
        task = asyncio.create_task(self._execute_and_cleanup(key, fn))
        self._in_flight[key] = task
        return task

    async def do(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run fn for key, or join the call already running for key.

        All joined callers receive the same result or the same exception.
        """
        task = self._in_flight.get(key)
        if task is not None:
            self._stats.joined += 1
            self._log(f"JOIN: Waiting for in-flight call: {key[:50]}")
        else:
            task = self._start(key, fn)

        return await self._await_shared(task)

    async def try_run(
        self,
        key: str,
        fn: Callable[[], Awaitable[T]],
        fallback: Any = None,
    ) -> Any:
        """
        Run fn for key unless a call for key is already in flight.

        Returns fallback without calling fn when the key is active.
        """
        if key in self._in_flight:
            self._stats.skipped += 1
            self._log(f"SKIP: Call already in flight: {key[:50]}")
            return fallback

        return await self._await_shared(self._start(key, fn))

    async def _await_shared(self, task: "asyncio.Task[T]") -> T:
        # shield: one waiter being cancelled must not cancel the shared call
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # Only cancel_all cancels the shared task itself
            if task.cancelled():
                raise ApiError(
                    CANCELLED_MESSAGE,
                    kind=ErrorKind.CANCELLED,
                    status=0,
                    code="CANCELLED",
                ) from None
            raise

    async def _execute_and_cleanup(
        self,
        key: str,
        fn: Callable[[], Awaitable[T]],
    ) -> T:
        """Execute call and release the flag when done."""
        try:
            return await fn()
        finally:
            # A newer call may own the key after cancel_all
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]
            self._log(f"DONE: Call settled: {key[:50]}")

    def cancel_all(self) -> int:
        """
        Cancel all in-flight calls.

        Callers waiting on a cancelled call receive ApiError(kind=CANCELLED);
        a bare CancelledError still means the caller's own task was cancelled.
        """
        count = len(self._in_flight)
        for task in self._in_flight.values():
            task.cancel()
        self._in_flight.clear()
        if count:
            self._log(f"CANCEL_ALL: {count} calls cancelled")
        return count

    def get_stats(self) -> "SingleFlightStats":
        """Get single-flight statistics."""
        self._stats.in_flight = len(self._in_flight)
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[SingleFlight] {message}")


class SingleFlightStats:
    """Statistics for single-flight calls."""

    def __init__(self):
        self.total: int = 0  # Calls actually started
        self.joined: int = 0  # Callers that joined an in-flight call
        self.skipped: int = 0  # Callers that took the fallback
        self.in_flight: int = 0

    @property
    def dedup_rate(self) -> float:
        """Share of callers that did not start their own call."""
        total = self.total + self.joined + self.skipped
        if total == 0:
            return 0.0
        return (self.joined + self.skipped) / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_calls": self.total,
            "joined": self.joined,
            "skipped": self.skipped,
            "in_flight": self.in_flight,
            "dedup_rate": f"{self.dedup_rate:.2%}",
        }
