"""
HttpCacheControlCache - Cache whose per-entry TTL follows HTTP response headers.

Respects:
- Cache-Control: max-age=N
- Cache-Control: no-cache / no-store (entry is not stored)
- Expires (used only when Cache-Control carries no max-age)

Entries without usable headers fall back to the default TTL.
"""

import re
import time
from dataclasses import dataclass, field
from datetime import timedelta
from email.utils import parsedate_to_datetime
from typing import Generic, Mapping, TypeVar

from loguru import logger

from oorep.services import cache as cache_module
from oorep.services.cache import CacheEntry, CacheStats

T = TypeVar("T")

_MAX_AGE_RE = re.compile(r"max-age\s*=\s*(-?\d+)", re.IGNORECASE)


@dataclass
class HttpCacheMetadata:
    """Response metadata used to derive an entry's TTL."""

    headers: Mapping[str, str] = field(default_factory=dict)
    fetched_at: float = field(default_factory=time.time)  # wall clock, epoch seconds

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


def parse_cache_control(cache_control: str | None) -> float | None:
    """
    Parse a Cache-Control header.

    Returns TTL seconds, 0 for "do not cache", or None when the header says
    nothing about freshness.
    """
    if not cache_control:
        return None

    directives = cache_control.lower()
    if "no-cache" in directives or "no-store" in directives:
        return 0

    match = _MAX_AGE_RE.search(cache_control)
    if match:
        seconds = int(match.group(1))
        return seconds if seconds > 0 else 0

    return None


def parse_expires(expires: str | None, fetched_at: float) -> float | None:
    """
    Parse an Expires header relative to fetched_at.

    Returns TTL seconds, 0 when already expired, or None when unparsable.
    """
    if not expires:
        return None

    try:
        expires_at = parsedate_to_datetime(expires)
    except (TypeError, ValueError):
        return None
    if expires_at is None:
        return None

    ttl = expires_at.timestamp() - fetched_at
    return ttl if ttl > 0 else 0


class HttpCacheControlCache(Generic[T]):
    """
    Async cache that derives each entry's lifetime from HTTP headers.

    Usage:
        cache = HttpCacheControlCache(default_ttl=timedelta(minutes=5))

        await cache.set(
            "remedies",
            data,
            HttpCacheMetadata(headers=dict(response.headers)),
        )
        cached = await cache.get("remedies")
    """

    def __init__(
        self,
        default_ttl: timedelta = timedelta(minutes=5),
        debug: bool = False,
    ):
        self._store: dict[str, CacheEntry[T]] = {}
        self._default_ttl = default_ttl.total_seconds()
        self._debug = debug
        self._stats = CacheStats(ttl=self._default_ttl)

    def ttl_for(self, metadata: HttpCacheMetadata | None) -> float:
        """Determine the TTL in seconds for an entry with this metadata."""
        if metadata is None or not metadata.headers:
            return self._default_ttl

        max_age = parse_cache_control(metadata.header("cache-control"))
        if max_age is not None:
            return max_age

        expires_ttl = parse_expires(metadata.header("expires"), metadata.fetched_at)
        if expires_ttl is not None:
            return expires_ttl

        return self._default_ttl

    async def get(self, key: str) -> T | None:
        entry = self._store.get(key)
        if entry is None:
            self._stats.misses += 1
            self._log(f"MISS: {key[:50]}")
            return None

        if entry.is_expired():
            del self._store[key]
            self._stats.misses += 1
            self._stats.expirations += 1
            self._log(f"EXPIRED: {key[:50]}")
            return None

        self._stats.hits += 1
        self._log(f"HIT: {key[:50]}")
        return entry.value

    async def set(
        self,
        key: str,
        value: T,
        metadata: HttpCacheMetadata | None = None,
    ) -> bool:
        """
        Store a value with a TTL derived from metadata.

        Returns False when the headers forbid caching.
        """
        ttl = self.ttl_for(metadata)
        if ttl <= 0:
            self._log(f"SKIP (disabled by headers): {key[:50]}")
            return False

        self._store[key] = CacheEntry(value=value, expires_at=cache_module._now() + ttl)
        self._log(f"SET: {key[:50]} (TTL: {ttl}s)")
        return True

    async def has(self, key: str) -> bool:
        return await self.get(key) is not None

    async def delete(self, key: str) -> bool:
        return self._store.pop(key, None) is not None

    async def clear(self) -> None:
        count = len(self._store)
        self._store.clear()
        self._log(f"CLEAR: {count} entries removed")

    def cleanup(self) -> int:
        """Remove all expired entries. Returns count of removed entries."""
        now = cache_module._now()
        expired_keys = [k for k, v in self._store.items() if v.is_expired(now)]
        for key in expired_keys:
            del self._store[key]
        if expired_keys:
            self._stats.expirations += len(expired_keys)
            self._log(f"CLEANUP: {len(expired_keys)} expired entries removed")
        return len(expired_keys)

    def get_stats(self) -> CacheStats:
        self._stats.size = len(self._store)
        return self._stats

    async def destroy(self) -> None:
        await self.clear()
        self._log("DESTROYED")

    def _log(self, message: str) -> None:
        if self._debug:
            logger.debug(f"[HttpCacheControlCache] {message}")
