"""
CookieSessionManager - Owns the OOREP session cookies.

States:
- NO_SESSION: no cookie held yet
- ACTIVE: at least one cookie held
- REFRESHING: a bootstrap request is in flight

Transitions:
- NO_SESSION → REFRESHING: first ensure_session()
- ACTIVE → REFRESHING: ensure_session(force_refresh=True), e.g. after a 401
- REFRESHING → ACTIVE: bootstrap succeeded
- REFRESHING → NO_SESSION: bootstrap failed, the error is propagated

At most one bootstrap is in flight at any time; concurrent callers join it.
"""

import asyncio
from enum import Enum
from typing import Iterable

import httpx
from loguru import logger

from oorep.services.errors import NetworkError, RateLimitError, RequestTimeoutError

BOOTSTRAP_ENDPOINT = "/api/available_remedies"

DEFAULT_RETRY_AFTER = 60


class SessionState(str, Enum):
    """Session manager states."""

    NO_SESSION = "NO_SESSION"
    ACTIVE = "ACTIVE"
    REFRESHING = "REFRESHING"


class CookieJar:
    """Name → value store fed from Set-Cookie headers."""

    def __init__(self):
        self._cookies: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._cookies)

    def __bool__(self) -> bool:
        return bool(self._cookies)

    def clear(self) -> None:
        self._cookies.clear()

    def update_from_set_cookie(self, headers: Iterable[str]) -> int:
        """Merge Set-Cookie header values. Returns how many cookies were stored."""
        stored = 0
        for header in headers:
            pair = header.split(";", 1)[0]
            name, sep, value = pair.partition("=")
            name, value = name.strip(), value.strip()
            if not sep or not name or not value:
                continue
            self._cookies[name] = value
            stored += 1
        return stored

    def header_value(self) -> str | None:
        if not self._cookies:
            return None
        return "; ".join(f"{name}={value}" for name, value in self._cookies.items())

    def names(self) -> list[str]:
        return list(self._cookies)


def parse_retry_after(value: str | None) -> int:
    """Retry-After in seconds, or DEFAULT_RETRY_AFTER when absent or unparsable."""
    if value is None:
        return DEFAULT_RETRY_AFTER
    try:
        return int(value.strip())
    except ValueError:
        return DEFAULT_RETRY_AFTER


def set_cookie_headers(response: httpx.Response) -> list[str]:
    """All Set-Cookie header values of a response, matched case-insensitively."""
    return response.headers.get_list("set-cookie")


class CookieSessionManager:
    """
    Cookie-based session manager for the OOREP API.

    One instance belongs to one client; nothing here is process-global.

    Usage:
        session = CookieSessionManager(http_client, "https://www.oorep.com")

        await session.ensure_session()
        response = await http_client.get(url, headers=session.get_auth_headers())
        session.handle_response(response)
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
    ):
        self._http_client = http_client
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._headers = headers or {}
        self._jar = CookieJar()
        self._init_task: asyncio.Task[None] | None = None
        self.bootstrap_count = 0

    @property
    def state(self) -> SessionState:
        if self._init_task is not None:
            return SessionState.REFRESHING
        if self._jar:
            return SessionState.ACTIVE
        return SessionState.NO_SESSION

    @property
    def has_session(self) -> bool:
        return bool(self._jar)

    async def ensure_session(self, force_refresh: bool = False) -> None:
        """
        Make sure a session cookie is held.

        Args:
            force_refresh: Discard the current cookies and bootstrap again.
                If a bootstrap is already in flight it is joined instead.

        Raises:
            NetworkError: If the bootstrap request failed
            RateLimitError: If the bootstrap request was rate limited
            RequestTimeoutError: If the bootstrap request timed out
        """
        if self._init_task is not None:
            # The bootstrap we join is as fresh as a forced one, even if it
            # came back without cookies.
            await asyncio.shield(self._init_task)
            return

        if not force_refresh and self._jar:
            return

        if force_refresh:
            self._jar.clear()
        self._init_task = asyncio.ensure_future(self._run_bootstrap())

        await asyncio.shield(self._init_task)

    async def _run_bootstrap(self) -> None:
        try:
            await self._bootstrap()
        except BaseException:
            self._jar.clear()
            raise
        finally:
            self._init_task = None

    async def _bootstrap(self) -> None:
        url = f"{self._base_url}{BOOTSTRAP_ENDPOINT}"
        self.bootstrap_count += 1
        logger.debug(f"Initializing OOREP session: {url}")

        try:
            response = await asyncio.wait_for(
                self._http_client.get(url, params={"limit": 1}, headers=self._headers),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise RequestTimeoutError(
                f"Session bootstrap timed out after {self._timeout}s",
                timeout=self._timeout,
                cause=e,
            ) from e
        except httpx.RequestError as e:
            raise NetworkError(f"Session bootstrap failed: {e}", cause=e) from e

        if response.status_code == 429:
            raise RateLimitError(
                "Rate limit exceeded. Please try again later.",
                retry_after=parse_retry_after(response.headers.get("retry-after")),
            )

        if not response.is_success:
            raise NetworkError(
                f"Session bootstrap failed: HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        stored = self._jar.update_from_set_cookie(set_cookie_headers(response))
        if stored:
            logger.debug(f"OOREP session initialized ({', '.join(self._jar.names())})")
        else:
            logger.warning("OOREP session bootstrap returned no cookies")

    def get_auth_headers(self) -> dict[str, str]:
        """Headers that authenticate a request with the current session."""
        cookie = self._jar.header_value()
        if cookie is None:
            return {}
        return {"Cookie": cookie}

    def handle_response(self, response: httpx.Response) -> None:
        """Merge any cookies the upstream rotated on this response."""
        self._jar.update_from_set_cookie(set_cookie_headers(response))

    def clear_session(self) -> None:
        self._jar.clear()
        logger.debug("OOREP session cleared")
