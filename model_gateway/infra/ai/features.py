"""Feature options: per-provider behavioral toggles layered onto requests.

Two layers merge for every client, caller-set values winning:

1. Options parsed from the model identifier (``openai:o3?reasoningEffort=low``)
2. Options set on the client via ``set_features``

A provider may register a pydantic model describing the features it accepts.
Merged options are validated through it, so string values parsed from an
identifier are coerced (``"1"`` -> ``True``) and unknown keys are rejected.
"""

from __future__ import annotations

from collections.abc import Mapping
import logging
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ValidationError as PydanticValidationError

from model_gateway.core.exceptions import RequestValidationError

logger = logging.getLogger(__name__)

FeatureOptions = dict[str, Any]
FeatureSchema = type[BaseModel]


def merge_features(
    parsed: Mapping[str, Any] | None,
    caller: Mapping[str, Any] | None,
) -> FeatureOptions:
    """Merge identifier-parsed options with caller-set options (caller wins)."""
    return {**(parsed or {}), **(caller or {})}


def validate_features(
    options: Mapping[str, Any],
    schema: FeatureSchema | None,
    *,
    provider: str | None = None,
) -> FeatureOptions:
    """Validate options against a provider's feature schema.

    Returns the options keyed by the names the caller used (aliases are
    preserved when the schema declares them), with values coerced and unset
    fields omitted. Without a schema the options are returned unchanged.

    Raises:
        RequestValidationError: If the schema rejects the options.
    """
    if schema is None or not options:
        return dict(options)
    try:
        validated = schema.model_validate(dict(options))
    except PydanticValidationError as e:
        raise RequestValidationError(
            f"Invalid features for provider '{provider}': {e.error_count()} error(s)",
            type="invalid-features",
            extra={"provider": provider, "errors": e.errors(include_url=False)},
        ) from e
    return validated.model_dump(by_alias=True, exclude_unset=True)


def filter_features(options: Mapping[str, Any], schema: FeatureSchema | None) -> FeatureOptions:
    """Drop options a schema does not declare.

    Used when failing over to a different provider: options meant for the
    original provider are not errors for the fallback, they simply do not
    apply.
    """
    if schema is None:
        return dict(options)
    known: set[str] = set()
    for name, info in schema.model_fields.items():
        known.add(name)
        if info.alias:
            known.add(info.alias)
        if isinstance(info.validation_alias, str):
            known.add(info.validation_alias)
    kept = {k: v for k, v in options.items() if k in known}
    dropped = sorted(set(options) - set(kept))
    if dropped:
        logger.debug(
            "Dropping features not supported by fallback provider",
            extra={"dropped_features": dropped, "schema": schema.__name__},
        )
    return kept


class FeatureSet:
    """Identifier-parsed and caller-set feature layers for one client.

    Each layer is validated on its own and keyed by the schema's aliases, so
    a caller may override ``reasoningEffort`` by setting ``reasoning_effort``.
    Each request takes a read-only snapshot when it starts, so changing
    features while a stream is in flight only affects the next request.
    """

    def __init__(
        self,
        parsed: Mapping[str, Any] | None = None,
        schema: FeatureSchema | None = None,
        provider: str | None = None,
    ) -> None:
        self.schema = schema
        self.provider = provider
        self._parsed = validate_features(parsed or {}, schema, provider=provider)
        self._caller: FeatureOptions = {}
        self._effective = dict(self._parsed)

    def set(self, options: Mapping[str, Any]) -> None:
        """Merge caller options over the current ones.

        Validation happens before any state changes, so invalid options leave
        the client untouched.
        """
        canonical = validate_features(options, self.schema, provider=self.provider)
        caller = {**self._caller, **canonical}
        effective = validate_features(
            merge_features(self._parsed, caller), self.schema, provider=self.provider
        )
        self._caller = caller
        self._effective = effective

    def effective(self) -> FeatureOptions:
        return dict(self._effective)

    def snapshot(self) -> Mapping[str, Any]:
        return MappingProxyType(dict(self._effective))
