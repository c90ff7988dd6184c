"""
Service layer - the resilient request pipeline to the LMS backend.

Provides:
- ApiClient: request facade (auth, retry, classification)
- HttpTransport: single HTTP call under a hard deadline
- RetryPolicy: bounded retry with fixed backoff
- SessionState: bearer credential owner
- TTLCache / SingleFlight / CachedFetcher: duplicate-read suppression
"""

from lmsapi.services.errors import (
    ApiError,
    ErrorKind,
    TransportError,
    TransportFailure,
    DeadlineExceeded,
    RequestAborted,
)
from lmsapi.services.cache import TTLCache, CacheEntry, CacheStats
from lmsapi.services.single_flight import InFlightFlag, SingleFlight
from lmsapi.services.cached_fetch import CachedFetcher
from lmsapi.services.session import (
    FileTokenStore,
    MemoryTokenStore,
    SessionState,
    TokenStore,
    attach_auth,
)
from lmsapi.services.observer import LoguruObserver, NullObserver, RequestObserver
from lmsapi.services.retry import RetryPolicy
from lmsapi.services.transport import AbortSignal, HttpTransport
from lmsapi.services.client import ApiClient, ApiResponse, MultipartBody, RequestConfig

__all__ = [
    # Errors
    "ApiError",
    "ErrorKind",
    "TransportError",
    "TransportFailure",
    "DeadlineExceeded",
    "RequestAborted",
    # Cache
    "TTLCache",
    "CacheEntry",
    "CacheStats",
    # Single-flight
    "InFlightFlag",
    "SingleFlight",
    "CachedFetcher",
    # Session
    "FileTokenStore",
    "MemoryTokenStore",
    "SessionState",
    "TokenStore",
    "attach_auth",
    # Tracing
    "LoguruObserver",
    "NullObserver",
    "RequestObserver",
    # Pipeline
    "RetryPolicy",
    "AbortSignal",
    "HttpTransport",
    # Client
    "ApiClient",
    "ApiResponse",
    "MultipartBody",
    "RequestConfig",
]
