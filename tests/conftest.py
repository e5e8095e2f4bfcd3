"""Shared pytest fixtures for oorep tests."""

from __future__ import annotations

import asyncio
from typing import Any, Callable

import httpx
import pytest

from oorep.client import OOREPClient
from oorep.services import cache as cache_module
from oorep.services.executor import RequestExecutor, create_http_client
from oorep.services.session import BOOTSTRAP_ENDPOINT, CookieSessionManager
from oorep.settings import Settings

BASE_URL = "https://oorep.test"

Responder = Callable[[httpx.Request], Any]


def respond(
    status: int = 200,
    json: Any = None,
    text: str | None = None,
    headers: Any = None,
    delay: float = 0.0,
) -> Responder:
    """Build a fresh httpx.Response per request."""

    async def responder(request: httpx.Request) -> httpx.Response:
        if delay:
            await asyncio.sleep(delay)
        if json is not None:
            return httpx.Response(status, json=json, headers=headers)
        return httpx.Response(status, text=text or "", headers=headers)

    return responder


def fail(exc_factory: Callable[[httpx.Request], Exception]) -> Responder:
    def responder(request: httpx.Request) -> httpx.Response:
        raise exc_factory(request)

    return responder


def session_cookie(value: str = "abc123") -> Responder:
    return respond(
        200,
        json=[],
        headers={"set-cookie": f"JSESSIONID={value}; Path=/; HttpOnly"},
    )


class FakeUpstream:
    """
    Scripted OOREP server for httpx.MockTransport.

    Each route holds a queue of responders; the last one repeats. The
    bootstrap request (GET /api/available_remedies?limit=1) is routed as
    "bootstrap" so it can be told apart from a catalog listing.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, list[Responder]] = {"bootstrap": [session_cookie()]}

    def on(self, route: str, *responders: Responder) -> "FakeUpstream":
        self.routes[route] = list(responders)
        return self

    @staticmethod
    def route_of(request: httpx.Request) -> str:
        path = request.url.path
        if path == BOOTSTRAP_ENDPOINT and request.url.params.get("limit") == "1":
            return "bootstrap"
        return path

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get(self.route_of(request))
        if not queue:
            return httpx.Response(404, text="no such route")
        responder = queue.pop(0) if len(queue) > 1 else queue[0]
        result = responder(request)
        if asyncio.iscoroutine(result):
            result = await result
        return result

    def calls(self, route: str) -> list[httpx.Request]:
        return [r for r in self.requests if self.route_of(r) == route]

    def count(self, route: str) -> int:
        return len(self.calls(route))

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
async def http_client(upstream):
    client = create_http_client(timeout=5.0, transport=upstream.transport)
    yield client
    await client.aclose()


@pytest.fixture
def session(http_client) -> CookieSessionManager:
    return CookieSessionManager(http_client, BASE_URL, timeout=5.0)


@pytest.fixture
def executor(session, http_client) -> RequestExecutor:
    return RequestExecutor(BASE_URL, session, http_client, timeout=5.0, backoff_base=0)


@pytest.fixture
def settings() -> Settings:
    return Settings(base_url=BASE_URL, timeout_ms=5000, cache_ttl_ms=60000)


@pytest.fixture
async def client(settings, upstream):
    oorep_client = OOREPClient(settings, transport=upstream.transport, backoff_base=0)
    yield oorep_client
    await oorep_client.aclose()


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock(monkeypatch) -> FakeClock:
    fake = FakeClock()
    monkeypatch.setattr(cache_module, "_now", fake)
    return fake


REPERTORY_PAYLOAD = {
    "totalNumberOfResults": 3,
    "results": [
        {
            "rubric": "Head, pain, morning",
            "repertory": "publicum",
            "remedies": [
                {"name": "Belladonna", "abbreviation": "Bell.", "weight": 3},
                {"name": "Nux vomica", "abbreviation": "Nux-v.", "weight": 2},
            ],
        },
        {
            "rubric": "Head, pain, evening",
            "repertory": "publicum",
            "remedies": [
                {"name": "Belladonna", "abbreviation": "Bell.", "weight": 1},
                {"name": "Pulsatilla", "abbreviation": "Puls.", "weight": 3},
            ],
        },
        {
            "rubric": "Head, pain, night",
            "repertory": "publicum",
            "remedies": [
                {"name": "Aconitum", "abbreviation": "Acon.", "weight": 2},
            ],
        },
    ],
}

MATERIA_MEDICA_PAYLOAD = {
    "totalNumberOfResults": 2,
    "results": [
        {
            "remedy": "Belladonna",
            "remedyId": 12,
            "materiamedica": "boericke",
            "sections": [
                {"heading": "Head", "content": "Throbbing headache.", "depth": 1},
                {"content": "Worse from light.", "depth": 2},
            ],
        },
        {
            "remedy": "Glonoinum",
            "remedyId": 40,
            "materiamedica": "boericke",
            "sections": [{"heading": "Head", "content": "Bursting pain.", "depth": 1}],
        },
    ],
}

REMEDIES_PAYLOAD = [
    {"id": 1, "nameAbbrev": "Acon.", "nameLong": "Aconitum napellus", "namealt": ["Monkshood"]},
    {"id": 2, "nameAbbrev": "Bell.", "nameLong": "Belladonna", "namealt": []},
    {"id": 3, "nameAbbrev": "Nux-v.", "nameLong": "Nux vomica", "namealt": None},
    {"id": 4, "nameAbbrev": "Acon-f.", "nameLong": "Aconitum ferox"},
]

REPERTORIES_PAYLOAD = [
    {
        "info": {
            "abbrev": "kent",
            "title": "Repertory of the Homoeopathic Materia Medica",
            "authorFirstName": "James Tyler",
            "authorLastName": "Kent",
            "language": "en",
        }
    },
    {"info": {"abbrev": "bogboen", "title": "Boenninghausen", "language": "de"}},
    {"info": {"abbrev": "publicum", "title": "Repertorium Publicum", "authorLastName": "Vithoulkas", "language": "EN"}},
]

MATERIA_MEDICAS_PAYLOAD = [
    {
        "mminfo": {
            "id": 1,
            "abbrev": "boericke",
            "displaytitle": "Boericke",
            "fulltitle": "Pocket Manual of Homoeopathic Materia Medica",
            "authorfirstname": "William",
            "authorlastname": "Boericke",
            "lang": "en",
        }
    },
    {"mminfo": {"id": 2, "abbrev": "hering", "fulltitle": "Guiding Symptoms", "lang": "en"}},
    {"mminfo": {"id": 3, "abbrev": "hahnemann", "lang": "de"}},
]
