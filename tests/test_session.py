"""Tests for cookie session bootstrap and refresh."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from conftest import BASE_URL, fail, respond, session_cookie
from oorep.services.errors import NetworkError, RateLimitError, RequestTimeoutError
from oorep.services.session import CookieJar, CookieSessionManager, SessionState


class TestCookieJar:
    def test_parses_name_and_value(self):
        jar = CookieJar()
        stored = jar.update_from_set_cookie(["JSESSIONID=abc; Path=/; HttpOnly"])
        assert stored == 1
        assert jar.header_value() == "JSESSIONID=abc"

    def test_merges_and_overwrites_by_name(self):
        jar = CookieJar()
        jar.update_from_set_cookie(["a=1", "b=2"])
        jar.update_from_set_cookie(["b=3; Secure"])
        assert jar.header_value() == "a=1; b=3"
        assert len(jar) == 2

    @pytest.mark.parametrize("header", ["novalue", "=orphan", "empty=", "  ;Path=/"])
    def test_ignores_malformed_entries(self, header):
        jar = CookieJar()
        assert jar.update_from_set_cookie([header]) == 0
        assert not jar
        assert jar.header_value() is None

    def test_value_may_contain_equals(self):
        jar = CookieJar()
        jar.update_from_set_cookie(["token=a=b=c; Path=/"])
        assert jar.header_value() == "token=a=b=c"


class TestEnsureSession:
    async def test_no_session_means_no_auth_headers(self, session):
        assert session.get_auth_headers() == {}
        assert session.state is SessionState.NO_SESSION

    async def test_bootstrap_stores_cookie(self, session, upstream):
        await session.ensure_session()

        assert session.get_auth_headers() == {"Cookie": "JSESSIONID=abc123"}
        assert session.state is SessionState.ACTIVE
        bootstrap = upstream.calls("bootstrap")[0]
        assert bootstrap.url.path == "/api/available_remedies"
        assert bootstrap.url.params["limit"] == "1"

    async def test_held_session_is_reused(self, session, upstream):
        await session.ensure_session()
        await session.ensure_session()
        assert upstream.count("bootstrap") == 1

    async def test_concurrent_callers_share_one_bootstrap(self, session, upstream):
        upstream.on("bootstrap", respond(200, json=[], headers={"set-cookie": "JSESSIONID=x"}, delay=0.02))

        await asyncio.gather(*(session.ensure_session() for _ in range(10)))

        assert upstream.count("bootstrap") == 1
        assert session.bootstrap_count == 1

    async def test_force_refresh_bootstraps_exactly_once_more(self, session, upstream):
        upstream.on("bootstrap", session_cookie("first"), session_cookie("second"))
        await session.ensure_session()

        await session.ensure_session(force_refresh=True)

        assert upstream.count("bootstrap") == 2
        assert session.get_auth_headers() == {"Cookie": "JSESSIONID=second"}

    async def test_concurrent_force_refreshes_collapse(self, session, upstream):
        upstream.on(
            "bootstrap",
            session_cookie("first"),
            respond(200, json=[], headers={"set-cookie": "JSESSIONID=second"}, delay=0.02),
        )
        await session.ensure_session()

        await asyncio.gather(*(session.ensure_session(force_refresh=True) for _ in range(5)))

        assert upstream.count("bootstrap") == 2

    async def test_refresh_state_is_reported(self, session, upstream):
        upstream.on("bootstrap", respond(200, json=[], headers={"set-cookie": "a=1"}, delay=0.02))

        pending = asyncio.ensure_future(session.ensure_session())
        await asyncio.sleep(0)
        assert session.state is SessionState.REFRESHING
        await pending
        assert session.state is SessionState.ACTIVE

    async def test_multiple_cookies_are_joined(self, session, upstream):
        upstream.on(
            "bootstrap",
            respond(
                200,
                json=[],
                headers=[("set-cookie", "JSESSIONID=abc; Path=/"), ("Set-Cookie", "lang=en")],
            ),
        )
        await session.ensure_session()
        assert session.get_auth_headers() == {"Cookie": "JSESSIONID=abc; lang=en"}


class TestBootstrapFailures:
    async def test_http_error_clears_cookies(self, session, upstream):
        upstream.on("bootstrap", session_cookie("first"), respond(503, text="down"))
        await session.ensure_session()

        with pytest.raises(NetworkError) as exc_info:
            await session.ensure_session(force_refresh=True)

        assert exc_info.value.status_code == 503
        assert session.get_auth_headers() == {}
        assert session.state is SessionState.NO_SESSION

    async def test_failure_is_shared_and_next_call_retries(self, session, upstream):
        upstream.on(
            "bootstrap",
            respond(500, text="boom", delay=0.01),
            session_cookie("ok"),
        )

        outcomes = await asyncio.gather(
            session.ensure_session(), session.ensure_session(), return_exceptions=True
        )
        assert all(isinstance(o, NetworkError) for o in outcomes)
        assert upstream.count("bootstrap") == 1

        await session.ensure_session()
        assert upstream.count("bootstrap") == 2
        assert session.has_session

    async def test_transport_error_becomes_network_error(self, session, upstream):
        upstream.on("bootstrap", fail(lambda req: httpx.ConnectError("refused", request=req)))

        with pytest.raises(NetworkError):
            await session.ensure_session()

    async def test_slow_bootstrap_times_out(self, http_client, upstream):
        upstream.on("bootstrap", respond(200, json=[], headers={"set-cookie": "a=1"}, delay=0.2))
        slow = CookieSessionManager(http_client, BASE_URL, timeout=0.05)

        with pytest.raises(RequestTimeoutError) as exc_info:
            await slow.ensure_session()

        assert exc_info.value.timeout == 0.05
        assert slow.state is SessionState.NO_SESSION

    async def test_bootstrap_without_cookies_leaves_no_session(self, session, upstream):
        upstream.on("bootstrap", respond(200, json=[]))

        await session.ensure_session()

        assert session.has_session is False
        assert session.get_auth_headers() == {}

    async def test_callers_joining_a_cookieless_bootstrap_do_not_start_another(self, session, upstream):
        upstream.on("bootstrap", respond(200, json=[], delay=0.02))

        await asyncio.gather(*(session.ensure_session() for _ in range(5)))

        assert upstream.count("bootstrap") == 1
        assert session.has_session is False

    async def test_rate_limited_bootstrap(self, session, upstream):
        upstream.on("bootstrap", respond(429, headers={"Retry-After": "12"}))

        with pytest.raises(RateLimitError) as exc_info:
            await session.ensure_session()

        assert exc_info.value.retry_after == 12
        assert session.state is SessionState.NO_SESSION


class TestResponseCookies:
    async def test_rotated_cookie_replaces_old_value(self, session):
        await session.ensure_session()

        response = httpx.Response(200, headers={"set-cookie": "JSESSIONID=rotated"})
        session.handle_response(response)

        assert session.get_auth_headers() == {"Cookie": "JSESSIONID=rotated"}

    async def test_clear_session(self, session):
        await session.ensure_session()
        session.clear_session()
        assert session.state is SessionState.NO_SESSION
