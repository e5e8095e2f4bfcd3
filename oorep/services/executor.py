"""
RequestExecutor - Issues one logical GET against the OOREP API.

Per attempt:
1. Ensure a session cookie is held
2. Send the request with session and identification headers, bounded by a timeout
3. Classify the response

Two independent retry axes:
- Session retry: a 401 forces one session refresh and one immediate retry;
  a 401 on that retry is final
- Transport retry: network and timeout errors back off 2**attempt * backoff_base
  seconds, up to max_retries times

Rate limit errors are never retried, whether they come from the request
itself or from the session bootstrap.
"""

import asyncio
import http.cookiejar
import json
from typing import Any

import httpx
from loguru import logger

from oorep import __version__
from oorep.services.errors import (
    NetworkError,
    OOREPError,
    RateLimitError,
    RequestTimeoutError,
    ResponseParseError,
)
from oorep.services.session import CookieSessionManager, parse_retry_after

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "User-Agent": f"oorep-client/{__version__}",
}


def create_http_client(
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Shared AsyncClient whose own cookie jar never stores or sends anything."""
    # CookieSessionManager is the only owner of session cookies.
    jar = http.cookiejar.CookieJar(policy=http.cookiejar.DefaultCookiePolicy(allowed_domains=[]))
    return httpx.AsyncClient(
        transport=transport,
        cookies=jar,
        timeout=httpx.Timeout(timeout),
        follow_redirects=True,
    )


def build_params(params: dict[str, Any] | None) -> dict[str, str]:
    """Render query parameters, skipping None values."""
    rendered: dict[str, str] = {}
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            rendered[key] = "true" if value else "false"
        else:
            rendered[key] = str(value)
    return rendered


class SessionExpired(Exception):
    """Internal signal: upstream answered 401."""


class RequestExecutor:
    """
    Resilient GET executor for one upstream service.

    Usage:
        executor = RequestExecutor(base_url, session, http_client, timeout=30.0)
        data = await executor.request("/api/lookup_rep", {"symptom": "headache"})
    """

    def __init__(
        self,
        base_url: str,
        session: CookieSessionManager,
        http_client: httpx.AsyncClient,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_base: float = 1.0,
    ):
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._http_client = http_client
        self._timeout = timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base

    @property
    def session(self) -> CookieSessionManager:
        return self._session

    async def request(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        """
        Make a GET request with session handling and retries.

        Args:
            endpoint: Path below the base URL, e.g. "/api/lookup_rep"
            params: Query parameters; None values are skipped

        Returns:
            Parsed JSON body, or None for 204 / empty responses

        Raises:
            RateLimitError: Upstream answered 429, on the request or the bootstrap
            RequestTimeoutError: Last attempt timed out
            NetworkError: Last attempt failed at transport or HTTP level
        """
        url = f"{self._base_url}{endpoint}"
        query = build_params(params)
        attempt = 0
        session_retried = False
        force_refresh = False

        while True:
            try:
                await self._prepare_session(force_refresh)
                force_refresh = False
                return await self._attempt(url, query)

            except SessionExpired:
                if session_retried:
                    logger.error(f"Session rejected again after refresh on {endpoint}")
                    raise NetworkError(
                        "HTTP 401: session rejected after refresh", status_code=401
                    ) from None
                session_retried = True
                force_refresh = True
                logger.info(f"Session expired on {endpoint}, refreshing and retrying once")

            except (NetworkError, RequestTimeoutError) as e:
                if not await self._backoff(attempt, e, endpoint):
                    raise
                attempt += 1

            except OOREPError:
                raise

            except Exception as e:
                logger.error(f"Unexpected error in API request to {endpoint}: {e!r}")
                raise NetworkError("Failed to fetch data from OOREP API", cause=e) from e

    async def _backoff(self, attempt: int, error: OOREPError, endpoint: str) -> bool:
        """Sleep before the next transport retry. False when retries are exhausted."""
        if attempt >= self.max_retries:
            logger.error(f"Request to {endpoint} failed after {attempt + 1} attempts: {error}")
            return False

        delay = self.backoff_base * (2**attempt)
        logger.warning(
            f"Request to {endpoint} failed ({error}), retrying in {delay}s "
            f"(attempt {attempt + 1}/{self.max_retries})"
        )
        await asyncio.sleep(delay)
        return True

    async def _prepare_session(self, force_refresh: bool) -> None:
        try:
            await self._session.ensure_session(force_refresh=force_refresh)
        except (RateLimitError, RequestTimeoutError):
            raise
        except Exception as e:
            raise NetworkError(
                "Failed to initialize OOREP session",
                status_code=getattr(e, "status_code", None),
                cause=e,
            ) from e

    async def _attempt(self, url: str, query: dict[str, str]) -> Any:
        """One upstream call. Raises SessionExpired on 401."""
        headers = {**DEFAULT_HEADERS, **self._session.get_auth_headers()}
        logger.debug(f"Fetching {url} {query}")

        try:
            response = await asyncio.wait_for(
                self._http_client.get(url, params=query, headers=headers),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise RequestTimeoutError(
                f"Request timeout after {self._timeout}s", timeout=self._timeout, cause=e
            ) from e
        except httpx.RequestError as e:
            raise NetworkError(f"Request failed: {type(e).__name__}", cause=e) from e

        self._session.handle_response(response)
        return self._classify(response)

    def _classify(self, response: httpx.Response) -> Any:
        status = response.status_code

        if status == 401:
            raise SessionExpired()

        if status == 429:
            retry_after = parse_retry_after(response.headers.get("retry-after"))
            raise RateLimitError(
                "Rate limit exceeded. Please try again later.",
                retry_after=retry_after,
            )

        if not response.is_success:
            raise NetworkError(
                f"HTTP {status}: {response.text[:200]}",
                status_code=status,
            )

        if status == 204 or not response.content.strip():
            return None

        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ResponseParseError(
                f"Failed to parse OOREP response as JSON (HTTP {status})",
                status_code=status,
                cause=e,
            ) from e

    async def aclose(self) -> None:
        await self._http_client.aclose()
