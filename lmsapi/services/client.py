"""
ApiClient - the single request path to the LMS backend.

Every call runs the same pipeline:
    attach bearer token -> retry(transport) -> classify -> envelope

Successful calls return an ApiResponse envelope. Every failure is raised as
an ApiError; transport exceptions never reach the caller.
"""

import dataclasses
import json
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError

from lmsapi.services.errors import (
    ApiError,
    TransportError,
    classify_exception,
    classify_response,
    invalid_response,
    parse_body,
    report_error,
)
from lmsapi.services.observer import LoguruObserver, RequestObserver
from lmsapi.services.retry import RetryPolicy
from lmsapi.services.session import SessionState, attach_auth
from lmsapi.services.transport import AbortSignal, HttpTransport
from lmsapi.settings import Settings


class ApiResponse(BaseModel):
    """Response envelope: {data, success, message?, meta?}."""

    model_config = ConfigDict(extra="allow")

    data: Any = None
    success: bool = True
    message: str | None = None
    meta: dict[str, Any] | None = None


@dataclass(frozen=True)
class MultipartBody:
    """Multipart payload: one file part plus scalar form fields."""

    file: Any
    fields: dict[str, str] = field(default_factory=dict)
    file_field: str = "file"


@dataclass(frozen=True)
class RequestConfig:
    """Per-call request options. timeout/max_retries fall back to settings."""

    method: str = "GET"
    path: str = "/"
    body: Any = None
    headers: dict[str, str] | None = None
    params: dict[str, Any] | None = None
    timeout: float | None = None
    max_retries: int | None = None
    skip_auth: bool = False
    skip_error_surface: bool = False
    abort: AbortSignal | None = None


@dataclass
class RequestStats:
    """Request counters for health reporting."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    failures_by_kind: Counter = field(default_factory=Counter)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "failures_by_kind": dict(self.failures_by_kind),
        }


class ApiClient:
    """
    Request facade for the LMS backend.

    Usage:
        session = SessionState(FileTokenStore(settings.token_store_path))
        async with ApiClient(settings, session) as client:
            courses = await client.read("/courses")
            await client.partial_update("/lessons/7/progress", {"progress": 40})
    """

    def __init__(
        self,
        settings: Settings,
        session: SessionState,
        transport: HttpTransport | None = None,
        retry: RetryPolicy | None = None,
        observer: RequestObserver | None = None,
    ):
        self._settings = settings
        self._session = session
        self._base_url = settings.api_url.rstrip("/")
        self._transport = transport or HttpTransport(
            default_timeout=settings.request_timeout
        )
        self._retry = retry or RetryPolicy(backoff=settings.retry_backoff)
        self._observer = observer or LoguruObserver(
            enabled=not settings.is_production
        )
        self._stats = RequestStats()

    @property
    def session(self) -> SessionState:
        return self._session

    def _build_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._base_url}{path}"

    def _build_headers(self, config: RequestConfig) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        caller_headers = dict(config.headers or {})

        if isinstance(config.body, MultipartBody):
            # httpx sets the multipart boundary itself
            caller_headers = {
                k: v for k, v in caller_headers.items() if k.lower() != "content-type"
            }
        else:
            headers["Content-Type"] = "application/json"

        headers.update(caller_headers)
        return attach_auth(headers, self._session.get_token(), config.skip_auth)

    async def request(self, config: RequestConfig) -> ApiResponse:
        """
        Execute a request through the full pipeline.

        Returns:
            ApiResponse envelope with the backend's data field unmodified

        Raises:
            ApiError: For every failure (cancelled, timeout, network, HTTP)
        """
        method = config.method.upper()
        url = self._build_url(config.path)
        headers = self._build_headers(config)
        timeout = (
            config.timeout
            if config.timeout is not None
            else self._settings.request_timeout
        )
        max_retries = (
            config.max_retries
            if config.max_retries is not None
            else self._settings.max_retries
        )

        send_kwargs: dict[str, Any] = {}
        if isinstance(config.body, MultipartBody):
            send_kwargs["files"] = {config.body.file_field: config.body.file}
            send_kwargs["form_data"] = config.body.fields
        elif config.body is not None:
            send_kwargs["json_data"] = config.body

        self._observer.on_request(method, url, headers, config.body)
        self._stats.total += 1

        async def do_request() -> httpx.Response:
            return await self._transport.send(
                method=method,
                url=url,
                headers=headers,
                params=config.params,
                timeout=timeout,
                abort=config.abort,
                **send_kwargs,
            )

        try:
            response = await self._retry.run(do_request, max_retries=max_retries)
        except TransportError as e:
            raise self._fail(classify_exception(e), config) from e

        if not response.is_success:
            raise self._fail(classify_response(response), config)

        try:
            body = parse_body(response)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise self._fail(invalid_response(response, e), config) from e

        try:
            envelope = self._to_envelope(body)
        except ValidationError as e:
            raise self._fail(invalid_response(response, e), config) from e

        self._observer.on_response(method, url, response.status_code, body)
        self._stats.succeeded += 1
        return envelope

    def _fail(self, error: ApiError, config: RequestConfig) -> ApiError:
        self._stats.failed += 1
        self._stats.failures_by_kind[error.kind.value] += 1
        report_error(error, skip_surface=config.skip_error_surface)
        return error

    @staticmethod
    def _to_envelope(body: Any) -> ApiResponse:
        if isinstance(body, dict) and ("data" in body or "success" in body):
            return ApiResponse.model_validate(body)
        # Bare payloads (lists, plain objects) are wrapped as-is
        return ApiResponse(data=body, success=True)

    def _config(
        self,
        method: str,
        path: str,
        config: RequestConfig | None,
        **options: Any,
    ) -> RequestConfig:
        base = config or RequestConfig()
        return dataclasses.replace(base, method=method, path=path, **options)

    # Convenience methods

    async def read(
        self, path: str, config: RequestConfig | None = None, **options: Any
    ) -> ApiResponse:
        """GET path."""
        return await self.request(self._config("GET", path, config, **options))

    async def create(
        self,
        path: str,
        body: Any = None,
        config: RequestConfig | None = None,
        **options: Any,
    ) -> ApiResponse:
        """POST a JSON body to path."""
        return await self.request(self._config("POST", path, config, body=body, **options))

    async def replace(
        self,
        path: str,
        body: Any = None,
        config: RequestConfig | None = None,
        **options: Any,
    ) -> ApiResponse:
        """PUT a JSON body to path."""
        return await self.request(self._config("PUT", path, config, body=body, **options))

    async def partial_update(
        self,
        path: str,
        body: Any = None,
        config: RequestConfig | None = None,
        **options: Any,
    ) -> ApiResponse:
        """PATCH a JSON body to path."""
        return await self.request(
            self._config("PATCH", path, config, body=body, **options)
        )

    async def remove(
        self, path: str, config: RequestConfig | None = None, **options: Any
    ) -> ApiResponse:
        """DELETE path."""
        return await self.request(self._config("DELETE", path, config, **options))

    async def upload_binary(
        self,
        path: str,
        file: Any,
        extra_fields: dict[str, Any] | None = None,
        config: RequestConfig | None = None,
        **options: Any,
    ) -> ApiResponse:
        """
        POST a multipart body with one file part.

        Args:
            path: Upload endpoint
            file: bytes, a binary file object, or (filename, content[, content_type])
            extra_fields: Scalar form fields, sent as strings
            config: Base request options
        """
        fields = {k: str(v) for k, v in (extra_fields or {}).items()}
        body = MultipartBody(file=file, fields=fields)
        return await self.request(self._config("POST", path, config, body=body, **options))

    async def read_or_default(
        self,
        path: str,
        default: Any,
        config: RequestConfig | None = None,
        **options: Any,
    ) -> ApiResponse:
        """
        GET path, treating a 404 as "resource does not exist yet".

        On 404 the envelope carries `default` with success=False. Every other
        failure is raised as usual.
        """
        try:
            return await self.read(path, config, **options)
        except ApiError as e:
            if e.status != 404:
                raise
            logger.debug(f"{path} not found, using default")
            return ApiResponse(data=default, success=False, message=e.message)

    async def close(self) -> None:
        """Close the HTTP transport."""
        await self._transport.close()
        logger.debug("ApiClient closed")

    async def __aenter__(self) -> "ApiClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def get_stats(self) -> dict[str, Any]:
        """Get request counters."""
        return self._stats.to_dict()
