"""
HttpTransport - issues exactly one HTTP call under a hard deadline.

A well-formed response of any status is a normal result here. Only the
absence of a response is an error:
- DeadlineExceeded when the deadline fires
- RequestAborted when the caller's abort signal is set
- TransportFailure for connection-level errors
"""

import asyncio
from typing import Any

import httpx
from loguru import logger

from lmsapi.services.errors import DeadlineExceeded, RequestAborted, TransportFailure


class AbortSignal:
    """
    Caller-side cancellation handle.

    Usage:
        signal = AbortSignal()
        task = asyncio.create_task(client.read("/courses", abort=signal))
        ...
        signal.abort()  # the pending call raises ApiError(kind=CANCELLED)
    """

    def __init__(self):
        self._event = asyncio.Event()

    def abort(self) -> None:
        self._event.set()

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class HttpTransport:
    """Thin wrapper over httpx.AsyncClient that enforces a total deadline."""

    def __init__(
        self,
        default_timeout: float = 30.0,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._default_timeout = default_timeout
        # Injected transport (e.g. httpx.MockTransport in tests)
        self._http_transport = http_transport
        self._http_client: httpx.AsyncClient | None = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._default_timeout),
                follow_redirects=True,
                transport=self._http_transport,
            )
        return self._http_client

    async def send(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
        files: dict[str, Any] | None = None,
        form_data: dict[str, str] | None = None,
        timeout: float | None = None,
        abort: AbortSignal | None = None,
    ) -> httpx.Response:
        """
        Perform one HTTP request.

        Args:
            method: HTTP method
            url: Absolute URL
            headers: Request headers
            params: Query parameters
            json_data: JSON body (mutually exclusive with files/form_data)
            files: Multipart file parts
            form_data: Multipart scalar fields
            timeout: Total deadline in seconds for this attempt
            abort: Optional caller abort signal

        Returns:
            The response, whatever its status code

        Raises:
            DeadlineExceeded: If the deadline fires first
            RequestAborted: If the abort signal is set first
            TransportFailure: If no response could be obtained
        """
        deadline = timeout if timeout is not None else self._default_timeout

        if abort is not None and abort.aborted:
            raise RequestAborted(url)

        client = await self._get_http_client()
        request = client.build_request(
            method=method,
            url=url,
            headers=headers,
            params=params,
            json=json_data,
            files=files,
            data=form_data,
            # httpx phase timeouts follow this attempt's deadline
            timeout=httpx.Timeout(deadline),
        )

        call = asyncio.ensure_future(client.send(request))
        waiter = asyncio.ensure_future(abort.wait()) if abort is not None else None

        try:
            pending = {call, waiter} if waiter is not None else {call}
            done, _ = await asyncio.wait(
                pending, timeout=deadline, return_when=asyncio.FIRST_COMPLETED
            )

            if call in done:
                return call.result()

            if waiter is not None and waiter in done:
                logger.debug(f"{method} {url} aborted by caller")
                raise RequestAborted(url)

            raise DeadlineExceeded(url, deadline)

        except httpx.TimeoutException as e:
            raise DeadlineExceeded(url, deadline) from e

        except httpx.RequestError as e:
            raise TransportFailure(url, e) from e

        finally:
            if not call.done():
                call.cancel()
            if waiter is not None and not waiter.done():
                waiter.cancel()

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
