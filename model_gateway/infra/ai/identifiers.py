"""Model identifier parsing.

A model identifier names a model and optionally its provider and inline
feature overrides:

    [provider:]modelName[?key=value[&key=value]...]

Examples:
    "gpt-4o-mini"                              -> model only
    "openai:gpt-4o?reasoningEffort=low"        -> provider, model, one feature
    "mistral:mistral-small?websearch=1&x=%20y" -> values are percent-decoded

The parser does not validate feature keys or values; that is the job of the
provider's feature schema (see model_gateway.infra.ai.features).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import quote, unquote

from model_gateway.core.exceptions import InvalidModelIdentifierError


@dataclass(frozen=True)
class ModelIdentifier:
    """Parsed model identifier."""

    model_name: str
    provider: str | None = None
    features: dict[str, str] = field(default_factory=dict)

    @property
    def qualified_id(self) -> str | None:
        """``provider:model`` when the provider is known, otherwise None."""
        if self.provider is None:
            return None
        return f"{self.provider}:{self.model_name}"

    def __str__(self) -> str:
        text = self.model_name if self.provider is None else f"{self.provider}:{self.model_name}"
        if self.features:
            query = "&".join(
                f"{quote(k, safe='')}={quote(v, safe='')}" for k, v in self.features.items()
            )
            text = f"{text}?{query}"
        return text


def parse_model_identifier(identifier: str) -> ModelIdentifier:
    """Parse ``[provider:]modelName[?k=v&...]`` into its parts.

    Args:
        identifier: The model reference string.

    Returns:
        ModelIdentifier with provider (or None), model name and features.

    Raises:
        InvalidModelIdentifierError: On an empty identifier, empty provider or
            model name, a query segment without ``=``, or an empty key.
    """
    if not identifier or not identifier.strip():
        raise InvalidModelIdentifierError("Model identifier is empty", identifier)

    base, sep, query = identifier.strip().partition("?")

    provider: str | None = None
    model_name = base
    if ":" in base:
        provider, _, model_name = base.partition(":")
        if not provider:
            raise InvalidModelIdentifierError(
                f"Empty provider in model identifier '{identifier}'", identifier
            )

    if not model_name:
        raise InvalidModelIdentifierError(
            f"Empty model name in model identifier '{identifier}'", identifier
        )

    features: dict[str, str] = {}
    if sep and query:
        for segment in query.split("&"):
            key, eq, value = segment.partition("=")
            if not eq:
                raise InvalidModelIdentifierError(
                    f"Feature '{segment}' in '{identifier}' is missing '='", identifier
                )
            key = unquote(key)
            if not key:
                raise InvalidModelIdentifierError(
                    f"Empty feature name in '{identifier}'", identifier
                )
            features[key] = unquote(value)

    return ModelIdentifier(model_name=model_name, provider=provider, features=features)
