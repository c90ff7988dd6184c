"""
Request pipeline exceptions and the error classifier.

Two families live here:
- TransportError and its subclasses: raised by the transport, consumed by the
  retry policy and the classifier, never seen by callers of ApiClient.
- ApiError: the only error type that leaves ApiClient.
"""

import json
from enum import Enum
from typing import Any

import httpx
from loguru import logger

TIMEOUT_MESSAGE = "Request timeout - please check your connection"
NETWORK_MESSAGE = "Network error - please check your connection"
CANCELLED_MESSAGE = "Request cancelled"


class TransportError(Exception):
    """Base exception for failures where no HTTP response was obtained."""

    def __init__(self, message: str, url: str | None = None):
        self.url = url
        super().__init__(message)


class TransportFailure(TransportError):
    """Connection-level failure (DNS, refused connection, reset)."""

    def __init__(self, url: str, cause: BaseException):
        self.cause = cause
        super().__init__(f"Transport failure for {url}: {cause}", url=url)


class DeadlineExceeded(TransportError):
    """The request ran longer than its deadline and was aborted."""

    def __init__(self, url: str, timeout: float):
        self.timeout = timeout
        super().__init__(f"Request to {url} timed out after {timeout}s", url=url)


class RequestAborted(TransportError):
    """The caller aborted the request through its abort signal."""

    def __init__(self, url: str):
        super().__init__(f"Request to {url} was aborted by the caller", url=url)


class ErrorKind(str, Enum):
    """Discriminator for ApiError."""

    CANCELLED = "CANCELLED"
    TIMEOUT = "TIMEOUT"
    NETWORK = "NETWORK"
    HTTP = "HTTP"


class ApiError(Exception):
    """
    Classified request failure.

    Mirrors the backend's error body: message, status, code, details, field.
    `kind` tells callers which failure class they are looking at without
    inspecting status codes.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.HTTP,
        status: int | None = None,
        code: str | None = None,
        details: Any = None,
        field: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.status = status
        self.code = code
        self.details = details
        self.field = field

    @property
    def is_expected(self) -> bool:
        """404/429 and "not found" responses are routine for pollers."""
        if self.kind != ErrorKind.HTTP:
            return False
        return self.status in (404, 429) or "not found" in self.message.lower()

    @property
    def is_forbidden(self) -> bool:
        if self.kind != ErrorKind.HTTP:
            return False
        return self.status == 403 or "forbidden" in self.message.lower()

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire shape used by the backend."""
        return {
            "message": self.message,
            "status": self.status,
            "code": self.code,
            "details": self.details,
            "field": self.field,
        }

    def __repr__(self) -> str:
        return (
            f"ApiError(kind={self.kind.value}, status={self.status}, "
            f"code={self.code!r}, message={self.message!r})"
        )


def classify_exception(exc: BaseException) -> ApiError:
    """Map a transport-level failure to an ApiError."""
    if isinstance(exc, RequestAborted):
        return ApiError(
            CANCELLED_MESSAGE, kind=ErrorKind.CANCELLED, status=0, code="CANCELLED"
        )

    if isinstance(exc, DeadlineExceeded):
        return ApiError(
            TIMEOUT_MESSAGE, kind=ErrorKind.TIMEOUT, status=408, code="TIMEOUT_ERROR"
        )

    cause = exc.cause if isinstance(exc, TransportFailure) else exc
    return ApiError(
        NETWORK_MESSAGE,
        kind=ErrorKind.NETWORK,
        status=0,
        code="NETWORK_ERROR",
        details=cause,
    )


def parse_body(response: httpx.Response) -> Any:
    """Parse a JSON body, returning None for empty bodies."""
    if not response.content:
        return None
    return response.json()


def classify_response(response: httpx.Response) -> ApiError:
    """Map a non-2xx response to an ApiError, using the body when it has one."""
    try:
        body = parse_body(response)
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = None

    if not isinstance(body, dict):
        body = {}

    message = body.get("message") or (
        f"HTTP {response.status_code}: {response.reason_phrase}"
    )
    return ApiError(
        str(message),
        kind=ErrorKind.HTTP,
        status=response.status_code,
        code=body.get("code"),
        details=body.get("details"),
        field=body.get("field"),
    )


def invalid_response(response: httpx.Response, exc: Exception) -> ApiError:
    """A 2xx response whose body could not be parsed."""
    return ApiError(
        f"Invalid response body from server: {exc}",
        kind=ErrorKind.HTTP,
        status=response.status_code,
        code="INVALID_RESPONSE",
        details=response.text[:200],
    )


def report_error(error: ApiError, skip_surface: bool = False) -> None:
    """
    Log a classified error at the severity its class deserves.

    Only side effects happen here; the error itself is raised by the caller
    regardless of what is logged.
    """
    if skip_surface or error.kind == ErrorKind.CANCELLED:
        return

    if error.is_forbidden:
        logger.warning(f"Access denied: {error.message}")
    elif error.is_expected:
        logger.info(f"Expected API response: {error.message}")
    elif error.kind == ErrorKind.TIMEOUT:
        logger.error(f"API timeout: {error.message}")
    elif error.kind == ErrorKind.NETWORK:
        logger.error(f"API network error: {error.message} ({error.details})")
    else:
        logger.error(f"API error: {error.message}")
