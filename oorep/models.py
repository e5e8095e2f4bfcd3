"""
Pydantic models for OOREP tool arguments and results.

Field names follow the upstream JSON so results serialize unchanged
for tool-calling adapters.
"""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

SYMPTOM_CHARS_RE = re.compile(r"^[a-zA-Z0-9\s\-*\"'.,;:()/&]+$")
MID_WORD_WILDCARD_RE = re.compile(r"\w\*\w")


# ====================
# Tool arguments
# ====================


class ArgsModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class SearchRepertoryArgs(ArgsModel):
    """Arguments for a repertory search."""

    symptom: str = Field(
        min_length=3,
        max_length=200,
        description=(
            "The symptom to search for. Supports wildcards (*) at the start or end "
            'of words and exclusions with quotes. Example: "head*" or "headache -migraine"'
        ),
    )
    repertory: str | None = Field(
        default=None,
        description='Repertory abbreviation (e.g., "kent"). Defaults to the configured repertory.',
    )
    minWeight: int | None = Field(
        default=None, ge=1, le=4, description="Minimum remedy weight (1-4)"
    )
    maxResults: int = Field(
        default=20, ge=1, le=100, description="Maximum number of rubrics to return"
    )
    includeRemedyStats: bool = Field(
        default=True,
        description="Include aggregated remedy statistics across all matching rubrics",
    )

    @field_validator("symptom")
    @classmethod
    def _check_symptom(cls, value: str) -> str:
        if not SYMPTOM_CHARS_RE.match(value):
            raise ValueError("Symptom contains invalid characters")
        if MID_WORD_WILDCARD_RE.search(value):
            raise ValueError("Wildcards (*) cannot appear in the middle of words")
        return value.strip()


class SearchMateriaMedicaArgs(ArgsModel):
    """Arguments for a materia medica search."""

    symptom: str = Field(
        min_length=3,
        max_length=200,
        description="The symptom or term to search for in materia medica texts",
    )
    materiamedica: str | None = Field(
        default=None,
        description='Materia medica abbreviation (e.g., "boericke"). Defaults to the configured one.',
    )
    remedy: str | None = Field(
        default=None, description="Filter results to a specific remedy name or abbreviation"
    )
    maxResults: int = Field(
        default=10, ge=1, le=50, description="Maximum number of results to return"
    )

    @field_validator("symptom")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()


class GetRemedyInfoArgs(ArgsModel):
    remedy: str = Field(
        min_length=1,
        description='Remedy name or abbreviation (case-insensitive), e.g. "acon", "Aconitum"',
    )


class ListCatalogArgs(ArgsModel):
    language: str | None = Field(
        default=None, description='Filter by language code (e.g., "en", "de")'
    )


# ====================
# Results
# ====================


class Remedy(BaseModel):
    name: str
    abbreviation: str
    weight: int


class Rubric(BaseModel):
    rubric: str
    repertory: str
    weight: int | None = None
    label: str | None = None
    remedies: list[Remedy] = Field(default_factory=list)


class RemedyStats(BaseModel):
    """Aggregate of one remedy across the matched rubrics."""

    name: str
    count: int
    cumulativeWeight: int


class RepertorySearchResult(BaseModel):
    totalResults: int
    totalPages: int | None = None
    currentPage: int | None = None
    rubrics: list[Rubric] = Field(default_factory=list)
    remedyStats: list[RemedyStats] | None = None


class MateriaMedicaSection(BaseModel):
    heading: str | None = None
    content: str
    depth: int | None = None


class MateriaMedicaResult(BaseModel):
    remedy: str
    remedyId: int | None = None
    materiamedica: str
    sections: list[MateriaMedicaSection] = Field(default_factory=list)
    hitCount: int | None = None


class MateriaMedicaSearchResult(BaseModel):
    totalResults: int
    results: list[MateriaMedicaResult] = Field(default_factory=list)


class RepertoryMetadata(BaseModel):
    abbreviation: str
    title: str
    author: str | None = None
    language: str | None = None


class MateriaMedicaMetadata(BaseModel):
    abbreviation: str
    title: str
    author: str | None = None
    language: str | None = None


class AvailableRemedy(BaseModel):
    """One row of the upstream remedy catalog."""

    model_config = ConfigDict(extra="ignore")

    id: int
    nameAbbrev: str
    nameLong: str
    namealt: list[str] = Field(default_factory=list)

    @field_validator("namealt", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return value or []


class RemedyInfo(BaseModel):
    id: int
    nameAbbrev: str
    nameLong: str
    nameAlt: list[str] | None = None
