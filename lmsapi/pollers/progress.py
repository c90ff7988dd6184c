"""
Lesson progress reads with a short-lived cache.

Lesson pages poll progress repeatedly; every reader shares the key
`progress_<lessonId>`, so concurrent reads collapse into one request and
repeated reads within the TTL never reach the backend.
"""

from datetime import timedelta
from typing import Any

from loguru import logger

from lmsapi.services.cached_fetch import CachedFetcher
from lmsapi.services.client import ApiClient, ApiResponse

DEFAULT_PROGRESS = {"progress": 0, "completed": False}


def progress_key(lesson_id: int | str) -> str:
    return f"progress_{lesson_id}"


class ProgressTracker:
    def __init__(
        self,
        client: ApiClient,
        fetcher: CachedFetcher,
        ttl: timedelta = timedelta(seconds=30),
        default_ttl: timedelta = timedelta(seconds=10),
    ):
        self._client = client
        self._fetcher = fetcher
        self._ttl = ttl
        self._default_ttl = default_ttl

    def _ttl_for(self, response: ApiResponse) -> timedelta:
        # Progress that does not exist yet is re-checked sooner
        return self._ttl if response.success else self._default_ttl

    async def get_progress(self, lesson_id: int | str) -> dict[str, Any]:
        """Get progress for a lesson; a missing record yields DEFAULT_PROGRESS."""

        async def fetch() -> ApiResponse:
            return await self._client.read_or_default(
                f"/lessons/{lesson_id}/progress", dict(DEFAULT_PROGRESS)
            )

        response = await self._fetcher.get_or_fetch(
            progress_key(lesson_id), fetch, ttl=self._ttl_for
        )
        return response.data

    async def update_progress(self, lesson_id: int | str, progress: int) -> Any:
        """Report progress (0-100) and drop the cached value."""
        response = await self._client.partial_update(
            f"/lessons/{lesson_id}/progress", {"progress": progress}
        )
        self._fetcher.invalidate(progress_key(lesson_id))
        logger.debug(f"Lesson {lesson_id} progress updated to {progress}")
        return response.data

    async def mark_completed(self, lesson_id: int | str) -> Any:
        """Mark a lesson completed and drop the cached value."""
        response = await self._client.create(f"/lessons/{lesson_id}/complete")
        self._fetcher.invalidate(progress_key(lesson_id))
        logger.info(f"Lesson {lesson_id} marked completed")
        return response.data
