"""Structured output parsing.

Models asked for JSON do not always return bare JSON: some wrap it in a
markdown code block, others add a sentence before the object. Extraction
tries, in order:

1. A fenced ```json block containing valid JSON
2. The first balanced ``{...}`` object that parses
3. The whole response, stripped

The extracted payload is validated with the caller's pydantic model.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from model_gateway.core.exceptions import SchemaValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```")


def _is_json(text: str) -> bool:
    try:
        json.loads(text)
    except json.JSONDecodeError:
        return False
    return True


def _extract_fenced(text: str) -> str | None:
    for match in _FENCE_PATTERN.findall(text):
        candidate = match.strip()
        if _is_json(candidate):
            return candidate
    return None


def _extract_inline(text: str) -> str | None:
    depth = 0
    start = -1
    for i, char in enumerate(text):
        if char == "{":
            if depth == 0:
                start = i
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0 and start >= 0:
                candidate = text[start : i + 1]
                if _is_json(candidate):
                    return candidate
                start = -1
    return None


def extract_json(text: str) -> str:
    """Return the JSON payload contained in a model response."""
    stripped = text.strip()
    if _is_json(stripped):
        return stripped
    return _extract_fenced(text) or _extract_inline(text) or stripped


def json_schema_for(schema: type[BaseModel]) -> dict[str, Any]:
    """JSON schema sent to the provider, titled after the model class."""
    json_schema = schema.model_json_schema()
    json_schema.setdefault("title", schema.__name__)
    return json_schema


def parse_structured(text: str, schema: type[T]) -> T:
    """Validate a model response against ``schema``.

    Raises:
        SchemaValidationError: With the extracted payload and the pydantic
            errors when the response does not match
    """
    payload = extract_json(text)
    try:
        return schema.model_validate_json(payload)
    except ValidationError as e:
        errors = e.errors(include_url=False, include_context=False, include_input=False)
        logger.debug(
            f"Structured output did not match {schema.__name__}",
            extra={"schema": schema.__name__, "error_count": e.error_count()},
        )
        raise SchemaValidationError(
            f"Response does not match {schema.__name__}: {e.error_count()} error(s)",
            payload=payload,
            errors=errors,
        ) from e


__all__ = ["extract_json", "json_schema_for", "parse_structured"]
