"""Unit tests for payload formatting helpers."""

import pytest

from conftest import MATERIA_MEDICA_PAYLOAD, REPERTORY_PAYLOAD
from oorep.formatter import (
    compute_remedy_stats,
    format_list,
    format_materia_medica_results,
    format_repertory_results,
    generate_cache_key,
    truncate,
)
from oorep.models import Remedy, Rubric
from oorep.services.errors import ResponseParseError


def test_remedy_stats_sorted_by_weight_then_count():
    rubrics = [
        Rubric(
            rubric="a",
            repertory="kent",
            remedies=[
                Remedy(name="Sulph", abbreviation="Sulph.", weight=1),
                Remedy(name="Calc", abbreviation="Calc.", weight=3),
            ],
        ),
        Rubric(
            rubric="b",
            repertory="kent",
            remedies=[
                Remedy(name="Sulph", abbreviation="Sulph.", weight=2),
                Remedy(name="Lyc", abbreviation="Lyc.", weight=2),
            ],
        ),
        Rubric(rubric="c", repertory="kent", remedies=[Remedy(name="Lyc", abbreviation="Lyc.", weight=1)]),
    ]

    stats = compute_remedy_stats(rubrics)

    # Lyc and Sulph tie on weight 3, count 2; Calc has weight 3 with count 1.
    assert [(s.name, s.count, s.cumulativeWeight) for s in stats] == [
        ("Sulph", 2, 3),
        ("Lyc", 2, 3),
        ("Calc", 1, 3),
    ]


def test_remedy_stats_empty():
    assert compute_remedy_stats([]) == []


def test_format_repertory_none():
    result = format_repertory_results(None)
    assert result.totalResults == 0
    assert result.rubrics == []
    assert result.remedyStats == []

    assert format_repertory_results(None, include_remedy_stats=False).remedyStats is None


def test_format_repertory_keeps_upstream_total():
    result = format_repertory_results(REPERTORY_PAYLOAD, max_results=2)
    assert result.totalResults == 3
    assert len(result.rubrics) == 2
    assert result.rubrics[0].remedies[0].abbreviation == "Bell."


def test_format_materia_medica():
    result = format_materia_medica_results(MATERIA_MEDICA_PAYLOAD)
    assert [r.hitCount for r in result.results] == [2, 1]
    assert result.results[1].remedyId == 40


def test_format_materia_medica_none():
    result = format_materia_medica_results(None)
    assert result.totalResults == 0
    assert result.results == []


@pytest.mark.parametrize(
    "raw",
    [
        {"results": [{"remedy": "Bell."}]},
        {"results": [{"remedy": "Bell.", "materiamedica": "boericke", "sections": [{"heading": "Mind"}]}]},
        {"results": "none"},
    ],
)
def test_format_materia_medica_rejects_wrong_shape(raw):
    with pytest.raises(ResponseParseError, match="lookup_mm"):
        format_materia_medica_results(raw)


def test_format_repertory_rejects_non_numeric_weight():
    raw = {"results": [{"rubric": "a", "repertory": "kent", "remedies": [{"name": "Sulph", "abbreviation": "Sulph.", "weight": "heavy"}]}]}
    with pytest.raises(ResponseParseError, match="lookup_rep"):
        format_repertory_results(raw)


def test_cache_key_independent_of_parameter_order():
    a = generate_cache_key("repertory", {"symptom": "head", "repertory": "kent"})
    b = generate_cache_key("repertory", {"repertory": "kent", "symptom": "head"})
    assert a == b == "repertory:repertory=kent&symptom=head"


def test_cache_key_distinguishes_values():
    assert generate_cache_key("mm", {"remedy": None}) != generate_cache_key("mm", {"remedy": "bell"})


def test_truncate():
    assert truncate("short", 10) == "short"
    assert truncate("a" * 20, 10) == "aaaaaaa..."


def test_format_list():
    assert format_list(["a", "b"]) == "1. a\n2. b"
    assert format_list(["a", "b", "c"], max_items=2) == "1. a\n2. b\n... and 1 more"
