"""
Service layer infrastructure - resilience patterns for OOREP API calls.

Provides:
- TTLCache / HttpCacheControlCache: in-memory caches with expiry
- RequestDeduplicator: Prevents duplicate concurrent requests
- CookieSessionManager: Cookie session bootstrap and refresh
- RequestExecutor: Timeout-bounded, retrying GET execution
"""

from oorep.services.errors import (
    OOREPError,
    ValidationError,
    NetworkError,
    ResponseParseError,
    RequestTimeoutError,
    RateLimitError,
    NotFoundError,
    sanitize_error,
)
from oorep.services.cache import TTLCache, CacheEntry, CacheStats
from oorep.services.http_cache import HttpCacheControlCache, HttpCacheMetadata
from oorep.services.deduplicator import RequestDeduplicator
from oorep.services.session import CookieSessionManager, SessionState
from oorep.services.executor import RequestExecutor, create_http_client

__all__ = [
    # Errors
    "OOREPError",
    "ValidationError",
    "NetworkError",
    "ResponseParseError",
    "RequestTimeoutError",
    "RateLimitError",
    "NotFoundError",
    "sanitize_error",
    # Cache
    "TTLCache",
    "CacheEntry",
    "CacheStats",
    "HttpCacheControlCache",
    "HttpCacheMetadata",
    # Deduplicator
    "RequestDeduplicator",
    # Session
    "CookieSessionManager",
    "SessionState",
    # Executor
    "RequestExecutor",
    "create_http_client",
]
