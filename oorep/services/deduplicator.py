"""
RequestDeduplicator - Prevents duplicate concurrent requests.

When multiple callers request the same key simultaneously,
only one actual request is made and the outcome is shared.
Every in-flight request also carries a deadline; whichever of
the request and the deadline settles first decides the outcome.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

from oorep.services.errors import RequestTimeoutError

T = TypeVar("T")

DEFAULT_TIMEOUT = 60.0


@dataclass
class PendingCall:
    """An in-flight request registered under its key."""

    key: str
    future: asyncio.Future[Any]
    task: asyncio.Task[Any]
    timer: asyncio.TimerHandle | None = None
    settled: bool = field(default=False)


class RequestDeduplicator:
    """
    Deduplicates concurrent async requests.

    Registration of a new key happens before the first await in
    deduplicate(), so two callers that arrive back to back can never both
    start the factory. Deduplication only collapses overlapping calls; once
    a call has settled the next one runs the factory again.

    Usage:
        dedup = RequestDeduplicator()

        async def fetch_data(url: str):
            return await dedup.deduplicate(
                key=url,
                factory=lambda: http_client.get(url),
            )
    """

    def __init__(self, debug: bool = False):
        self._pending: dict[str, PendingCall] = {}
        self._orphans: set[asyncio.Task[Any]] = set()
        self._debug = debug
        self._stats = DeduplicatorStats()

    async def deduplicate(
        self,
        key: str,
        factory: Callable[[], Awaitable[T]],
        timeout: float = DEFAULT_TIMEOUT,
    ) -> T:
        """
        Execute factory with deduplication.

        If a request with the same key is already in flight, wait for and
        return its outcome instead of making a new request.

        Args:
            key: Unique identifier for this request
            factory: Zero-argument callable returning an awaitable
            timeout: Seconds before the shared request is abandoned

        Returns:
            Result of factory (either fresh or from the in-flight request)

        Raises:
            RequestTimeoutError: If the request did not settle within timeout
        """
        pending = self._pending.get(key)
        if pending is not None:
            self._stats.deduplicated += 1
            self._log(f"DEDUPE: Waiting for in-flight request: {key[:50]}")
            return await asyncio.shield(pending.future)

        loop = asyncio.get_running_loop()
        self._stats.total += 1
        self._log(f"NEW: Starting request: {key[:50]}")

        task = asyncio.ensure_future(factory())
        call = PendingCall(key=key, future=loop.create_future(), task=task)
        call.timer = loop.call_later(timeout, self._expire, call, timeout)
        self._pending[key] = call
        task.add_done_callback(lambda t: self._settle(call, t))

        return await asyncio.shield(call.future)

    def _settle(self, call: PendingCall, task: asyncio.Task[Any]) -> None:
        """Propagate the task outcome unless the deadline already fired."""
        self._orphans.discard(task)
        exc = None if task.cancelled() else task.exception()

        if call.settled:
            if exc is not None:
                self._log(f"LATE FAILURE after timeout: {call.key[:50]}: {exc!r}")
            return

        call.settled = True
        if call.timer is not None:
            call.timer.cancel()
        self._remove(call)

        if task.cancelled():
            call.future.cancel()
        elif exc is not None:
            call.future.set_exception(exc)
            # Retrieved here so a failure nobody awaits is not reported as lost.
            call.future.exception()
        else:
            call.future.set_result(task.result())
        self._log(f"DONE: Request completed: {call.key[:50]}")

    def _expire(self, call: PendingCall, timeout: float) -> None:
        """Deadline reached before the task settled."""
        if call.settled:
            return

        call.settled = True
        self._remove(call)
        self._orphans.add(call.task)
        self._stats.timeouts += 1

        call.future.set_exception(
            RequestTimeoutError(f"Request timeout after {timeout}s", timeout=timeout)
        )
        logger.warning(f"[Deduplicator] Request timed out after {timeout}s: {call.key[:50]}")

    def _remove(self, call: PendingCall) -> None:
        if self._pending.get(call.key) is call:
            del self._pending[call.key]

    async def cancel_all(self) -> int:
        """Cancel all in-flight requests, including ones abandoned after a timeout."""
        calls = list(self._pending.values())
        for call in calls:
            call.task.cancel()
        for task in list(self._orphans):
            task.cancel()
        count = len(calls)
        if count:
            self._log(f"CANCEL_ALL: {count} requests cancelled")
        return count

    def get_pending_count(self) -> int:
        """Get number of in-flight requests."""
        return len(self._pending)

    def get_pending_keys(self) -> list[str]:
        """Get keys of all in-flight requests."""
        return list(self._pending.keys())

    def get_stats(self) -> "DeduplicatorStats":
        """Get deduplication statistics."""
        self._stats.in_flight = len(self._pending)
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[Deduplicator] {message}")


class DeduplicatorStats:
    """Statistics for request deduplication."""

    def __init__(self):
        self.total: int = 0  # Total unique requests made
        self.deduplicated: int = 0  # Requests that joined an in-flight one
        self.timeouts: int = 0  # Requests abandoned at their deadline
        self.in_flight: int = 0  # Current in-flight requests

    @property
    def dedup_rate(self) -> float:
        """Calculate deduplication rate."""
        total = self.total + self.deduplicated
        if total == 0:
            return 0.0
        return self.deduplicated / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_requests": self.total,
            "deduplicated": self.deduplicated,
            "timeouts": self.timeouts,
            "in_flight": self.in_flight,
            "dedup_rate": f"{self.dedup_rate:.2%}",
        }
