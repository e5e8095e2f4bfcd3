import os
import sys
from datetime import timedelta
from typing import Any, Mapping

import pydantic
from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator

from oorep.services.errors import ValidationError

load_dotenv()


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    # Upstream
    base_url: str = Field(default="https://www.oorep.com", alias="OOREP_MCP_BASE_URL")
    timeout_ms: int = Field(default=30000, ge=1000, le=300000, alias="OOREP_MCP_TIMEOUT_MS")

    # Caching
    cache_ttl_ms: int = Field(default=300000, ge=0, le=3600000, alias="OOREP_MCP_CACHE_TTL_MS")

    # Results
    max_results: int = Field(default=100, ge=1, le=500, alias="OOREP_MCP_MAX_RESULTS")
    default_repertory: str = Field(default="publicum", alias="OOREP_MCP_DEFAULT_REPERTORY")
    default_materia_medica: str = Field(
        default="boericke", alias="OOREP_MCP_DEFAULT_MATERIA_MEDICA"
    )

    # Logging
    log_level: str = Field(default="info", alias="OOREP_MCP_LOG_LEVEL")

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value:
            raise ValueError("OOREP_MCP_BASE_URL is required")
        return value

    @property
    def timeout(self) -> float:
        """Per-request timeout in seconds."""
        return self.timeout_ms / 1000

    @property
    def cache_ttl(self) -> timedelta:
        return timedelta(milliseconds=self.cache_ttl_ms)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> "Settings":
        """
        Load settings from environment variables (and a .env file).

        Raises:
            ValidationError: If a value is missing or out of range
        """
        env = os.environ if environ is None else environ
        data: dict[str, Any] = {
            field.alias: env[field.alias]
            for field in cls.model_fields.values()
            if field.alias and field.alias in env
        }
        for name, value in overrides.items():
            field = cls.model_fields[name]
            data[field.alias or name] = value
        try:
            settings = cls.model_validate(data)
        except pydantic.ValidationError as e:
            first = e.errors()[0]
            name = ".".join(str(part) for part in first["loc"])
            raise ValidationError(f"Invalid configuration {name}: {first['msg']}", cause=e) from e

        logger.info(
            f"Configuration loaded: base_url={settings.base_url} "
            f"timeout_ms={settings.timeout_ms} cache_ttl_ms={settings.cache_ttl_ms} "
            f"max_results={settings.max_results}"
        )
        return settings


def configure_logging(level: str = "info") -> None:
    """Send loguru output to stderr at the given level."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper())
