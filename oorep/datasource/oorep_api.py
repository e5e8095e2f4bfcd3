"""
OOREP API data source.

API: https://www.oorep.com
Session: cookie issued by /api/available_remedies, no API key required.
"""

from typing import Any

from loguru import logger

from oorep.models import AvailableRemedy, MateriaMedicaMetadata, RepertoryMetadata
from oorep.services.errors import RESPONSE_SHAPE_ERRORS, ResponseParseError, unexpected_shape
from oorep.services.executor import RequestExecutor


def _author(first: str | None, last: str | None) -> str | None:
    if first and last:
        return f"{first} {last}"
    return last or first


def _rows(payload: Any, endpoint: str) -> list[Any]:
    """Catalog endpoints answer with a JSON array; an empty body means no rows."""
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise ResponseParseError(
            f"Unexpected OOREP response shape: {endpoint} did not return a list"
        )
    return payload


class OOREPDataSource:
    """
    Typed calls for each OOREP endpoint.

    Lookups return the raw payload (or None for an empty response);
    catalog listings are reshaped into metadata models here because the
    upstream nests them under "info" / "mminfo".
    """

    SERVICE_ID = "oorep"

    def __init__(self, executor: RequestExecutor):
        self.executor = executor

    @property
    def service_id(self) -> str:
        return self.SERVICE_ID

    async def lookup_repertory(
        self,
        symptom: str,
        repertory: str | None = None,
        min_weight: int | None = None,
        max_results: int | None = None,
    ) -> dict[str, Any] | None:
        """GET /api/lookup_rep"""
        logger.info(f"Looking up repertory: symptom={symptom!r} repertory={repertory}")
        return await self.executor.request(
            "/api/lookup_rep",
            {
                "symptom": symptom,
                "repertory": repertory,
                "minWeight": min_weight,
                "limit": max_results,
            },
        )

    async def lookup_materia_medica(
        self,
        symptom: str,
        materiamedica: str | None = None,
        remedy: str | None = None,
        max_results: int | None = None,
    ) -> dict[str, Any] | None:
        """GET /api/lookup_mm"""
        logger.info(f"Looking up materia medica: symptom={symptom!r} mm={materiamedica}")
        return await self.executor.request(
            "/api/lookup_mm",
            {
                "symptom": symptom,
                "mm": materiamedica,
                "remedy": remedy,
                "limit": max_results,
            },
        )

    async def get_available_remedies(self) -> list[AvailableRemedy]:
        """GET /api/available_remedies (a bare JSON array)."""
        logger.info("Fetching available remedies")
        rows = _rows(await self.executor.request("/api/available_remedies"), "available_remedies")
        try:
            return [AvailableRemedy.model_validate(row) for row in rows]
        except RESPONSE_SHAPE_ERRORS as e:
            raise unexpected_shape("available_remedies", e) from e

    async def get_available_repertories(self) -> list[RepertoryMetadata]:
        """GET /api/available_rems_and_reps"""
        logger.info("Fetching available repertories")
        rows = _rows(
            await self.executor.request("/api/available_rems_and_reps"), "available_rems_and_reps"
        )

        repertories = []
        try:
            for row in rows:
                info = row.get("info") or {}
                repertories.append(
                    RepertoryMetadata(
                        abbreviation=info["abbrev"],
                        title=info.get("title") or info["abbrev"],
                        author=_author(info.get("authorFirstName"), info.get("authorLastName")),
                        language=info.get("language"),
                    )
                )
        except RESPONSE_SHAPE_ERRORS as e:
            raise unexpected_shape("available_rems_and_reps", e) from e
        return repertories

    async def get_available_materia_medicas(self) -> list[MateriaMedicaMetadata]:
        """GET /api/available_rems_and_mms"""
        logger.info("Fetching available materia medicas")
        rows = _rows(
            await self.executor.request("/api/available_rems_and_mms"), "available_rems_and_mms"
        )

        materia_medicas = []
        try:
            for row in rows:
                info = row.get("mminfo") or {}
                materia_medicas.append(
                    MateriaMedicaMetadata(
                        abbreviation=info["abbrev"],
                        title=info.get("displaytitle") or info.get("fulltitle") or info["abbrev"],
                        author=_author(info.get("authorfirstname"), info.get("authorlastname")),
                        language=info.get("lang"),
                    )
                )
        except RESPONSE_SHAPE_ERRORS as e:
            raise unexpected_shape("available_rems_and_mms", e) from e
        return materia_medicas
