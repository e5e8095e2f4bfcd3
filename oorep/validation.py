"""
Input validation helpers.

Character checks on symptoms are intentionally loose: the OOREP API
sanitizes server-side, and LLM callers produce accented letters and
punctuation freely.
"""

import re
from typing import Any, TypeVar

import pydantic

from oorep.models import MID_WORD_WILDCARD_RE
from oorep.services.errors import ValidationError, validation_error_from_pydantic

M = TypeVar("M", bound=pydantic.BaseModel)

REMEDY_INVALID_CHARS_RE = re.compile(r"[^a-zA-Z0-9\s\-.()]")
LANGUAGE_RE = re.compile(r"^[a-z]{2,3}$", re.IGNORECASE)


def validate_wildcard(symptom: str) -> None:
    """Wildcards are allowed at the start or end of a word only."""
    if MID_WORD_WILDCARD_RE.search(symptom):
        raise ValidationError(
            "Wildcard (*) is not allowed in the middle of a word. "
            "Use it at the beginning or end only."
        )
    if "**" in symptom:
        raise ValidationError("Multiple consecutive wildcards are not allowed")


def validate_symptom(symptom: str) -> None:
    trimmed = symptom.strip()

    if not trimmed:
        raise ValidationError("Symptom cannot be empty")
    if len(trimmed) < 3:
        raise ValidationError("Symptom must be at least 3 characters long")
    if len(trimmed) > 200:
        raise ValidationError("Symptom must not exceed 200 characters")


def validate_remedy_name(remedy: str) -> None:
    if not remedy or not remedy.strip():
        raise ValidationError("Remedy name cannot be empty")
    if len(remedy) > 100:
        raise ValidationError("Remedy name is too long")
    if REMEDY_INVALID_CHARS_RE.search(remedy):
        raise ValidationError(
            "Remedy name contains invalid characters. Only letters, numbers, "
            "spaces, hyphens, dots, and parentheses are allowed."
        )


def validate_language(language: str) -> None:
    if not LANGUAGE_RE.match(language):
        raise ValidationError('Language must be a 2-3 letter language code (e.g., "en", "de")')


def parse_args(model: type[M], data: dict[str, Any] | None) -> M:
    """Build an argument model, raising ValidationError instead of pydantic's error."""
    try:
        return model.model_validate(data or {})
    except pydantic.ValidationError as e:
        raise validation_error_from_pydantic(e) from e
