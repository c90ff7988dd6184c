"""
Request tracing hooks.

ApiClient reports each request and response to a RequestObserver. The
default LoguruObserver writes structured debug traces outside production
and does nothing in production.
"""

from typing import Any, Protocol

from loguru import logger

REDACTED = "***"


class RequestObserver(Protocol):
    def on_request(
        self, method: str, url: str, headers: dict[str, str], body: Any
    ) -> None: ...

    def on_response(self, method: str, url: str, status: int, data: Any) -> None: ...


class NullObserver:
    """Observer that records nothing."""

    def on_request(
        self, method: str, url: str, headers: dict[str, str], body: Any
    ) -> None:
        return None

    def on_response(self, method: str, url: str, status: int, data: Any) -> None:
        return None


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Mask the bearer credential so it never reaches the logs."""
    redacted = {}
    for name, value in headers.items():
        if name.lower() == "authorization":
            scheme = value.split(" ", 1)[0] if " " in value else ""
            redacted[name] = f"{scheme} {REDACTED}".strip()
        else:
            redacted[name] = value
    return redacted


class LoguruObserver:
    """Debug tracing of requests and responses through loguru."""

    def __init__(self, enabled: bool = True, max_body_chars: int = 500):
        self.enabled = enabled
        self._max_body_chars = max_body_chars

    def _truncate(self, value: Any) -> str:
        text = repr(value)
        if len(text) > self._max_body_chars:
            return text[: self._max_body_chars] + "..."
        return text

    def on_request(
        self, method: str, url: str, headers: dict[str, str], body: Any
    ) -> None:
        if not self.enabled:
            return
        logger.bind(method=method, url=url).debug(
            f"API {method} {url} headers={redact_headers(headers)}"
            + (f" body={self._truncate(body)}" if body is not None else "")
        )

    def on_response(self, method: str, url: str, status: int, data: Any) -> None:
        if not self.enabled:
            return
        logger.bind(method=method, url=url, status=status).debug(
            f"API response {status} for {method} {url}: {self._truncate(data)}"
        )
