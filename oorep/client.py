"""
OOREPClient - Consumer-facing facade over the OOREP API.

Combines:
- TTLCache for result caching
- RequestDeduplicator for concurrent request collapsing
- OOREPDataSource / RequestExecutor / CookieSessionManager for the upstream calls

Every operation follows the same path: validate, build a cache key,
return a cached result when present, otherwise run the upstream work once
per key and cache its formatted result.
"""

import re
from typing import Any, Awaitable, Callable, TypeVar

import httpx
from loguru import logger
from pydantic import BaseModel

from oorep.datasource.oorep_api import OOREPDataSource
from oorep.formatter import (
    format_materia_medica_results,
    format_repertory_results,
    generate_cache_key,
)
from oorep.models import (
    AvailableRemedy,
    GetRemedyInfoArgs,
    ListCatalogArgs,
    MateriaMedicaMetadata,
    MateriaMedicaSearchResult,
    RemedyInfo,
    RepertoryMetadata,
    RepertorySearchResult,
    SearchMateriaMedicaArgs,
    SearchRepertoryArgs,
)
from oorep.services.cache import TTLCache
from oorep.services.deduplicator import DEFAULT_TIMEOUT, RequestDeduplicator
from oorep.services.executor import DEFAULT_HEADERS, RequestExecutor, create_http_client
from oorep.services.session import CookieSessionManager
from oorep.settings import Settings
from oorep.validation import (
    parse_args,
    validate_language,
    validate_remedy_name,
    validate_symptom,
    validate_wildcard,
)

T = TypeVar("T")

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")

MIN_PARTIAL_MATCH_LENGTH = 3


def _normalize(value: str) -> str:
    return _NON_ALNUM_RE.sub("", value.lower())


def _matches_exactly(remedy: AvailableRemedy, query: str) -> bool:
    names = [remedy.nameAbbrev, remedy.nameLong, *remedy.namealt]
    return any(name.lower() == query for name in names)


def _matches_partially(remedy: AvailableRemedy, normalized_query: str) -> bool:
    names = [_normalize(n) for n in (remedy.nameAbbrev, remedy.nameLong, *remedy.namealt)]
    return any(
        name and (normalized_query in name or name in normalized_query) for name in names
    )


def find_remedy(remedies: list[AvailableRemedy], query: str) -> AvailableRemedy | None:
    """
    Find a remedy by abbreviation, long name or alternative name.

    Exact case-insensitive matches win over partial ones; among several
    matches of the same kind the first in catalog order wins. Partial
    matching needs at least three alphanumeric characters.
    """
    query = query.strip().lower()
    for remedy in remedies:
        if _matches_exactly(remedy, query):
            return remedy

    normalized = _normalize(query)
    if len(normalized) < MIN_PARTIAL_MATCH_LENGTH:
        return None

    for remedy in remedies:
        if _matches_partially(remedy, normalized):
            return remedy
    return None


class OOREPClient:
    """
    OOREP client with caching, deduplication and session handling.

    Each instance owns its own session, cache and deduplicator, so several
    differently configured clients can run side by side.

    Usage:
        async with OOREPClient() as client:
            result = await client.search_repertory("headache", max_results=5)
            for rubric in result.rubrics:
                print(rubric.rubric)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        dedup_timeout: float = DEFAULT_TIMEOUT,
        debug: bool = False,
    ):
        self._settings = settings or Settings()
        self._dedup_timeout = dedup_timeout

        # Upstream stack
        self._http_client = create_http_client(self._settings.timeout, transport)
        self._session = CookieSessionManager(
            self._http_client,
            self._settings.base_url,
            timeout=self._settings.timeout,
            headers=DEFAULT_HEADERS,
        )
        self._executor = RequestExecutor(
            self._settings.base_url,
            self._session,
            self._http_client,
            timeout=self._settings.timeout,
            max_retries=max_retries,
            backoff_base=backoff_base,
        )
        self._data = OOREPDataSource(self._executor)

        # Resilience
        self._cache: TTLCache[Any] = TTLCache(ttl=self._settings.cache_ttl, debug=debug)
        self._deduplicator = RequestDeduplicator(debug=debug)

    @property
    def session(self) -> CookieSessionManager:
        return self._session

    @property
    def cache(self) -> TTLCache[Any]:
        return self._cache

    @property
    def deduplicator(self) -> RequestDeduplicator:
        return self._deduplicator

    async def _cached(self, key: str, work: Callable[[], Awaitable[T]]) -> T:
        """Cache check, then deduplicated work that stores its result."""
        cached = self._cache.get(key)
        if cached is not None:
            return _detached(cached)

        async def run() -> T:
            result = await work()
            if result is not None:
                self._cache.set(key, _detached(result))
            return result

        return await self._deduplicator.deduplicate(key, run, timeout=self._dedup_timeout)

    async def search_repertory(
        self,
        symptom: str,
        repertory: str | None = None,
        min_weight: int | None = None,
        max_results: int | None = None,
        include_remedy_stats: bool | None = None,
    ) -> RepertorySearchResult:
        """
        Search for symptoms in homeopathic repertories.

        Args:
            symptom: Search term, 3-200 characters; wildcards only at word edges
            repertory: Repertory abbreviation, defaults to the configured one
            min_weight: Minimum remedy weight (1-4)
            max_results: Maximum number of rubrics (1-100, default 20)
            include_remedy_stats: Aggregate remedies across rubrics (default True)

        Raises:
            ValidationError: If the arguments are invalid (no request is made)
        """
        args = parse_args(
            SearchRepertoryArgs,
            _drop_none(
                symptom=symptom,
                repertory=repertory,
                minWeight=min_weight,
                maxResults=max_results,
                includeRemedyStats=include_remedy_stats,
            ),
        )
        validate_symptom(args.symptom)
        validate_wildcard(args.symptom)

        repertory = args.repertory or self._settings.default_repertory
        limit = min(args.maxResults, self._settings.max_results)

        key = generate_cache_key(
            "repertory",
            {
                "symptom": args.symptom,
                "repertory": repertory,
                "minWeight": args.minWeight,
                "maxResults": limit,
                "includeRemedyStats": args.includeRemedyStats,
            },
        )

        async def work() -> RepertorySearchResult:
            raw = await self._data.lookup_repertory(
                symptom=args.symptom,
                repertory=repertory,
                min_weight=args.minWeight,
            )
            return format_repertory_results(
                raw,
                include_remedy_stats=args.includeRemedyStats,
                max_results=limit,
            )

        return await self._cached(key, work)

    async def search_materia_medica(
        self,
        symptom: str,
        materiamedica: str | None = None,
        remedy: str | None = None,
        max_results: int | None = None,
    ) -> MateriaMedicaSearchResult:
        """
        Search materia medica texts for remedy descriptions.

        Raises:
            ValidationError: If the arguments are invalid (no request is made)
        """
        args = parse_args(
            SearchMateriaMedicaArgs,
            _drop_none(
                symptom=symptom,
                materiamedica=materiamedica,
                remedy=remedy,
                maxResults=max_results,
            ),
        )
        validate_symptom(args.symptom)
        if args.remedy is not None:
            validate_remedy_name(args.remedy)

        materiamedica = args.materiamedica or self._settings.default_materia_medica
        limit = min(args.maxResults, self._settings.max_results)

        key = generate_cache_key(
            "mm",
            {
                "symptom": args.symptom,
                "materiamedica": materiamedica,
                "remedy": args.remedy,
                "maxResults": limit,
            },
        )

        async def work() -> MateriaMedicaSearchResult:
            raw = await self._data.lookup_materia_medica(
                symptom=args.symptom,
                materiamedica=materiamedica,
                remedy=args.remedy,
            )
            return format_materia_medica_results(raw, max_results=limit)

        return await self._cached(key, work)

    async def get_remedy_info(self, remedy: str) -> RemedyInfo | None:
        """
        Look up a remedy by name or abbreviation.

        Returns None when no remedy matches; misses are not cached.
        """
        args = parse_args(GetRemedyInfoArgs, {"remedy": remedy})
        validate_remedy_name(args.remedy)

        query = args.remedy.strip().lower()
        key = generate_cache_key("remedy", {"name": query})

        async def work() -> RemedyInfo | None:
            match = find_remedy(await self.list_remedies(), query)
            if match is None:
                logger.info(f"Remedy not found: {query}")
                return None
            return RemedyInfo(
                id=match.id,
                nameAbbrev=match.nameAbbrev,
                nameLong=match.nameLong,
                nameAlt=match.namealt or None,
            )

        return await self._cached(key, work)

    async def list_remedies(self) -> list[AvailableRemedy]:
        """All remedies in the OOREP catalog."""
        return await self._cached(
            generate_cache_key("remedies", {}), self._data.get_available_remedies
        )

    async def list_repertories(self, language: str | None = None) -> list[RepertoryMetadata]:
        """List available repertories, optionally filtered by language code."""
        args = parse_args(ListCatalogArgs, _drop_none(language=language))
        if args.language:
            validate_language(args.language)

        key = generate_cache_key("repertories", {"language": args.language})

        async def work() -> list[RepertoryMetadata]:
            repertories = await self._data.get_available_repertories()
            return _filter_language(repertories, args.language)

        return await self._cached(key, work)

    async def list_materia_medicas(
        self, language: str | None = None
    ) -> list[MateriaMedicaMetadata]:
        """List available materia medicas, optionally filtered by language code."""
        args = parse_args(ListCatalogArgs, _drop_none(language=language))
        if args.language:
            validate_language(args.language)

        key = generate_cache_key("materiamedicas", {"language": args.language})

        async def work() -> list[MateriaMedicaMetadata]:
            materia_medicas = await self._data.get_available_materia_medicas()
            return _filter_language(materia_medicas, args.language)

        return await self._cached(key, work)

    def clear_cache(self) -> None:
        self._cache.clear()

    def get_config(self) -> Settings:
        """Current configuration (immutable)."""
        return self._settings

    def get_health_status(self) -> dict[str, Any]:
        """Cache, deduplicator and session status."""
        return {
            "cache": self._cache.get_stats().to_dict(),
            "deduplicator": self._deduplicator.get_stats().to_dict(),
            "session": self._session.state.value,
        }

    async def aclose(self) -> None:
        """Stop the cache sweep, cancel in-flight work and close the HTTP client."""
        self._cache.destroy()
        await self._deduplicator.cancel_all()
        await self._executor.aclose()
        logger.debug("OOREPClient closed")

    async def __aenter__(self) -> "OOREPClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


def _detached(value: Any) -> Any:
    """Deep copy of a result so callers never share the cached instance."""
    if isinstance(value, BaseModel):
        return value.model_copy(deep=True)
    if isinstance(value, list):
        return [_detached(item) for item in value]
    return value


def _drop_none(**kwargs: Any) -> dict[str, Any]:
    return {k: v for k, v in kwargs.items() if v is not None}


def _filter_language(items: list[T], language: str | None) -> list[T]:
    if not language:
        return items
    lang = language.lower()
    return [item for item in items if (item.language or "").lower() == lang]


def create_client(settings: Settings | None = None, **kwargs: Any) -> OOREPClient:
    """
    Create a client, loading settings from the environment when none are given.

    Example:
        client = create_client()
        result = await client.search_repertory("headache")
    """
    return OOREPClient(settings or Settings.from_env(), **kwargs)
