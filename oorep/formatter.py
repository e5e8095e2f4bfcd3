"""
Reshape raw OOREP API payloads into result models.
"""

from typing import Any

from oorep.models import (
    MateriaMedicaResult,
    MateriaMedicaSearchResult,
    MateriaMedicaSection,
    Remedy,
    RemedyStats,
    RepertorySearchResult,
    Rubric,
)
from oorep.services.errors import RESPONSE_SHAPE_ERRORS, unexpected_shape


def compute_remedy_stats(rubrics: list[Rubric]) -> list[RemedyStats]:
    """
    Count and sum weights per remedy across rubrics.

    Sorted by cumulative weight, then count, both descending.
    """
    stats: dict[str, RemedyStats] = {}
    for rubric in rubrics:
        for remedy in rubric.remedies:
            entry = stats.get(remedy.name)
            if entry is None:
                entry = stats[remedy.name] = RemedyStats(
                    name=remedy.name, count=0, cumulativeWeight=0
                )
            entry.count += 1
            entry.cumulativeWeight += remedy.weight

    return sorted(
        stats.values(),
        key=lambda s: (s.cumulativeWeight, s.count),
        reverse=True,
    )


def format_repertory_results(
    raw: dict[str, Any] | None,
    include_remedy_stats: bool = True,
    max_results: int | None = None,
) -> RepertorySearchResult:
    """Format a /api/lookup_rep payload."""
    if not raw:
        return RepertorySearchResult(
            totalResults=0, rubrics=[], remedyStats=[] if include_remedy_stats else None
        )

    try:
        rows = raw.get("results") or []
        if max_results is not None:
            rows = rows[:max_results]

        rubrics = [
            Rubric(
                rubric=row["rubric"],
                repertory=row["repertory"],
                remedies=[
                    Remedy(
                        name=remedy["name"],
                        abbreviation=remedy["abbreviation"],
                        weight=remedy["weight"],
                    )
                    for remedy in row.get("remedies") or []
                ],
            )
            for row in rows
        ]

        return RepertorySearchResult(
            totalResults=raw.get("totalNumberOfResults", len(rubrics)),
            rubrics=rubrics,
            remedyStats=compute_remedy_stats(rubrics) if include_remedy_stats else None,
        )
    except RESPONSE_SHAPE_ERRORS as e:
        raise unexpected_shape("lookup_rep", e) from e


def format_materia_medica_results(
    raw: dict[str, Any] | None,
    max_results: int | None = None,
) -> MateriaMedicaSearchResult:
    """Format a /api/lookup_mm payload."""
    if not raw:
        return MateriaMedicaSearchResult(totalResults=0, results=[])

    try:
        rows = raw.get("results") or []
        if max_results is not None:
            rows = rows[:max_results]

        results = []
        for row in rows:
            sections = [
                MateriaMedicaSection(
                    heading=section.get("heading"),
                    content=section["content"],
                    depth=section.get("depth"),
                )
                for section in row.get("sections") or []
            ]
            results.append(
                MateriaMedicaResult(
                    remedy=row["remedy"],
                    remedyId=row.get("remedyId"),
                    materiamedica=row["materiamedica"],
                    sections=sections,
                    hitCount=len(sections),
                )
            )

        return MateriaMedicaSearchResult(
            totalResults=raw.get("totalNumberOfResults", len(results)),
            results=results,
        )
    except RESPONSE_SHAPE_ERRORS as e:
        raise unexpected_shape("lookup_mm", e) from e


def generate_cache_key(prefix: str, params: dict[str, Any]) -> str:
    """
    Deterministic key: prefix plus name=value pairs sorted by name.

    Equal parameter sets collide regardless of insertion order.
    """
    rendered = "&".join(f"{name}={params[name]}" for name in sorted(params))
    return f"{prefix}:{rendered}"


def truncate(text: str, max_length: int) -> str:
    """Truncate text to max_length, ending with an ellipsis when cut."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def format_list(items: list[str], max_items: int | None = None) -> str:
    """Numbered list, noting how many items were left out."""
    shown = items[:max_items] if max_items else items
    result = "\n".join(f"{i}. {item}" for i, item in enumerate(shown, start=1))

    if max_items and len(items) > max_items:
        result += f"\n... and {len(items) - max_items} more"
    return result
