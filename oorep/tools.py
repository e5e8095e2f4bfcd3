"""
Tool definitions for exposing OOREPClient to LLM tool-calling formats.

Parameter schemas are generated from the pydantic argument models, so the
definitions and the validation can never drift apart. Adapters convert
TOOL_DEFINITIONS to their own format and route calls through execute_tool().
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel

from oorep.client import OOREPClient
from oorep.models import (
    GetRemedyInfoArgs,
    ListCatalogArgs,
    SearchMateriaMedicaArgs,
    SearchRepertoryArgs,
)
from oorep.services.errors import NotFoundError
from oorep.validation import parse_args


class ToolName(str, Enum):
    """Tool names as exposed to tool-calling clients."""

    SEARCH_REPERTORY = "search_repertory"
    SEARCH_MATERIA_MEDICA = "search_materia_medica"
    GET_REMEDY_INFO = "get_remedy_info"
    LIST_REPERTORIES = "list_available_repertories"
    LIST_MATERIA_MEDICAS = "list_available_materia_medicas"


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    args_model: type[BaseModel]

    @property
    def parameters(self) -> dict[str, Any]:
        """JSON schema of the tool's arguments."""
        schema = self.args_model.model_json_schema()
        return {
            "type": "object",
            "properties": schema.get("properties", {}),
            "required": schema.get("required", []),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


TOOL_DEFINITIONS: list[ToolDefinition] = [
    ToolDefinition(
        name=ToolName.SEARCH_REPERTORY.value,
        description=(
            "Search for symptoms in homeopathic repertories. Returns matching rubrics "
            "with remedies and their weights."
        ),
        args_model=SearchRepertoryArgs,
    ),
    ToolDefinition(
        name=ToolName.SEARCH_MATERIA_MEDICA.value,
        description=(
            "Search materia medica texts for remedy descriptions and symptoms. Returns "
            "sections from materia medica books that match the search term."
        ),
        args_model=SearchMateriaMedicaArgs,
    ),
    ToolDefinition(
        name=ToolName.GET_REMEDY_INFO.value,
        description=(
            "Get information about a specific homeopathic remedy including its full "
            "name, abbreviation, and alternative names."
        ),
        args_model=GetRemedyInfoArgs,
    ),
    ToolDefinition(
        name=ToolName.LIST_REPERTORIES.value,
        description="List all available homeopathic repertories with title, author, and language.",
        args_model=ListCatalogArgs,
    ),
    ToolDefinition(
        name=ToolName.LIST_MATERIA_MEDICAS.value,
        description="List all available materia medica texts with title, author, and language.",
        args_model=ListCatalogArgs,
    ),
]

_BY_NAME = {tool.name: tool for tool in TOOL_DEFINITIONS}


def get_tool_definition(name: str) -> ToolDefinition | None:
    return _BY_NAME.get(name)


def get_tool_names() -> list[str]:
    return [tool.name for tool in TOOL_DEFINITIONS]


def _dump(result: Any) -> Any:
    if result is None:
        return None
    if isinstance(result, list):
        return [item.model_dump(exclude_none=True) for item in result]
    return result.model_dump(exclude_none=True)


async def execute_tool(
    client: OOREPClient,
    name: str,
    arguments: dict[str, Any] | None = None,
) -> Any:
    """
    Run a tool by name and return JSON-ready data.

    Raises:
        NotFoundError: If no tool has this name
        ValidationError: If the arguments do not match the tool's schema
    """
    tool = get_tool_definition(name)
    if tool is None:
        raise NotFoundError("tool", name)

    args = parse_args(tool.args_model, arguments)

    if name == ToolName.SEARCH_REPERTORY.value:
        result = await client.search_repertory(
            symptom=args.symptom,
            repertory=args.repertory,
            min_weight=args.minWeight,
            max_results=args.maxResults,
            include_remedy_stats=args.includeRemedyStats,
        )
    elif name == ToolName.SEARCH_MATERIA_MEDICA.value:
        result = await client.search_materia_medica(
            symptom=args.symptom,
            materiamedica=args.materiamedica,
            remedy=args.remedy,
            max_results=args.maxResults,
        )
    elif name == ToolName.GET_REMEDY_INFO.value:
        result = await client.get_remedy_info(args.remedy)
    elif name == ToolName.LIST_REPERTORIES.value:
        result = await client.list_repertories(language=args.language)
    else:
        result = await client.list_materia_medicas(language=args.language)

    return _dump(result)
