"""
TTLCache - In-memory cache with a fixed TTL and a background sweep.

Features:
- Entries are stamped with an expiry time on set
- Lazy expiry: an expired entry is dropped when it is next read
- Periodic sweep every min(ttl, 1h) to bound memory between reads
- Deterministic teardown via destroy()
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Generic, TypeVar

from loguru import logger

T = TypeVar("T")

MAX_SWEEP_INTERVAL = timedelta(hours=1)


def _now() -> float:
    """Monotonic clock used for expiry. Tests patch this."""
    return time.monotonic()


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry."""

    value: T
    expires_at: float

    def is_expired(self, now: float | None = None) -> bool:
        """Check if entry is past its expiry time."""
        return (now if now is not None else _now()) >= self.expires_at


@dataclass
class CacheStats:
    """Cache statistics."""

    size: int = 0
    ttl: float = 0.0
    hits: int = 0
    misses: int = 0
    expirations: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "size": self.size,
            "ttl": self.ttl,
            "hits": self.hits,
            "misses": self.misses,
            "expirations": self.expirations,
            "hit_rate": f"{self.hit_rate:.2%}",
        }


class TTLCache(Generic[T]):
    """
    Key/value cache where every entry lives for the same TTL.

    All operations are synchronous, so no other coroutine can observe a
    half-written entry. The sweep task is only scheduled when an event loop
    is running; outside a loop lazy expiry alone keeps reads correct.

    Usage:
        cache = TTLCache(ttl=timedelta(minutes=5))

        value = cache.get("my_key")
        if value is None:
            value = await fetch_data()
            cache.set("my_key", value)

        cache.destroy()
    """

    def __init__(self, ttl: timedelta = timedelta(minutes=5), debug: bool = False):
        self._store: dict[str, CacheEntry[T]] = {}
        self._ttl = ttl.total_seconds()
        self._debug = debug
        self._stats = CacheStats(ttl=self._ttl)
        self._sweep_task: asyncio.Task[None] | None = None
        self._destroyed = False

        self._ensure_sweeper()

    @property
    def ttl(self) -> float:
        """TTL in seconds."""
        return self._ttl

    @property
    def sweep_interval(self) -> float:
        """Seconds between background sweeps."""
        return min(self._ttl, MAX_SWEEP_INTERVAL.total_seconds())

    def get(self, key: str) -> T | None:
        """Return the cached value, or None if missing or expired."""
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

    def set(self, key: str, value: T) -> None:
        """Store a value, stamped with now + ttl."""
        if self._ttl <= 0:
            self._log(f"SKIP (ttl disabled): {key[:50]}")
            return

        self._store[key] = CacheEntry(value=value, expires_at=_now() + self._ttl)
        self._log(f"SET: {key[:50]} (TTL: {self._ttl}s)")
        self._ensure_sweeper()

    def has(self, key: str) -> bool:
        """Check if key exists and is not expired."""
        return self.get(key) is not None

    def delete(self, key: str) -> bool:
        """Delete a specific key from cache."""
        if self._store.pop(key, None) is not None:
            self._log(f"DELETE: {key[:50]}")
            return True
        return False

    def clear(self) -> None:
        """Clear all cache entries."""
        count = len(self._store)
        self._store.clear()
        self._log(f"CLEAR: {count} entries removed")

    def cleanup(self) -> int:
        """Remove all expired entries. Returns count of removed entries."""
        now = _now()
        expired_keys = [k for k, v in self._store.items() if v.is_expired(now)]
        for key in expired_keys:
            del self._store[key]

        if expired_keys:
            self._stats.expirations += len(expired_keys)
            self._log(f"CLEANUP: {len(expired_keys)} expired entries removed")

        return len(expired_keys)

    def get_stats(self) -> CacheStats:
        """Get cache statistics."""
        self._stats.size = len(self._store)
        return self._stats

    def destroy(self) -> None:
        """Stop the background sweep and drop all entries. Safe to call twice."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            self._sweep_task = None
        self._destroyed = True
        self._store.clear()
        self._log("DESTROYED")

    @property
    def is_sweeping(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def _ensure_sweeper(self) -> None:
        """Start the sweep task on the running loop if it is not running yet."""
        if self._destroyed or self._ttl <= 0 or self.is_sweeping:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._sweep_task = loop.create_task(self._sweep_loop())

    async def _sweep_loop(self) -> None:
        interval = self.sweep_interval
        while True:
            await asyncio.sleep(interval)
            self.cleanup()

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[TTLCache] {message}")
