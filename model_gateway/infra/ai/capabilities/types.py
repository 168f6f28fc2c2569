"""Core types for model registration and selection.

This module defines the foundational types for the capability system:

- Modality: Category of AI capability (chat, embedding, image...)
- CostUnit: How single-field prices are measured (per image, per minute...)
- ModelSpec: Immutable, provider-authored descriptor of one model
- ModelRequirements: Hard constraints a caller places on model selection
- RegistryEntry: A registered spec, its client factory and live availability
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from enum import Enum
import time
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from model_gateway.core.exceptions import RequestValidationError

if TYPE_CHECKING:
    from collections.abc import Callable

    from model_gateway.infra.ai.clients.base import ExecutionClient


class Modality(str, Enum):
    """AI capability categories, each with its own request/response shape.

    One CapabilityRegistry exists per modality.
    """

    CHAT = "chat"
    EMBEDDING = "embedding"
    IMAGE = "image"
    SPEECH = "speech"
    TRANSCRIPTION = "transcription"
    RERANK = "rerank"


class CostUnit(str, Enum):
    """Units for single-field pricing.

    Chat and embedding models are priced per million tokens using the
    per-token-class fields on ModelSpec; the other modalities use
    ``ModelSpec.unit_cost`` measured in one of these units.
    """

    PER_1M_TOKENS = "per_1m_tokens"
    PER_IMAGE = "per_image"
    PER_1M_CHARACTERS = "per_1m_characters"
    PER_MINUTE = "per_minute"
    PER_1K_SEARCHES = "per_1k_searches"
    FREE = "free"


_COST_FIELDS = (
    "cost_per_million_input_tokens",
    "cost_per_million_output_tokens",
    "cost_per_million_cached_input_tokens",
    "cost_per_million_reasoning_tokens",
    "unit_cost",
)


def _to_decimal(name: str, value: Any) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation as e:
            raise RequestValidationError(
                f"{name} must be a number, got {value!r}",
                extra={"field": name},
            ) from e
    if result < 0:
        raise RequestValidationError(
            f"{name} must be non-negative, got {result}",
            extra={"field": name},
        )
    return result


@dataclass(frozen=True)
class ModelSpec:
    """Immutable descriptor of one model for one modality.

    Attributes:
        model_id: Provider's model name (opaque string)
        provider: Provider name (e.g., "openai", "mistral")
        modality: The capability this descriptor registers for
        context_length: Context window in tokens (chat/embedding only)
        cost_per_million_input_tokens: Price per 1M uncached input tokens
        cost_per_million_output_tokens: Price per 1M output tokens
        cost_per_million_cached_input_tokens: Price per 1M cached input tokens
        cost_per_million_reasoning_tokens: Price per 1M reasoning tokens
        unit_cost: Single-field price for non-token modalities (see cost_unit)
        cost_unit: Unit for unit_cost
        scores: Capability scores (speed, intelligence, tools...), ranking only
        max_completion_tokens: Optional cap applied to requested max_tokens
        display_name: Human-readable name

    Token classes are disjoint: providers that fold cached tokens into input
    or reasoning tokens into output have them split out before pricing. A
    class without a price is left out of the cost, so a model that reports
    cached or reasoning tokens needs those prices set to be billed in full.

    Example:
        gpt4o_mini = ModelSpec(
            model_id="gpt-4o-mini",
            provider="openai",
            modality=Modality.CHAT,
            context_length=128_000,
            cost_per_million_input_tokens=Decimal("0.15"),
            cost_per_million_output_tokens=Decimal("0.60"),
            scores={"intelligence": 3, "speed": 4, "tools": 1},
        )
    """

    model_id: str
    provider: str
    modality: Modality = Modality.CHAT
    context_length: int | None = None

    cost_per_million_input_tokens: Decimal | None = None
    cost_per_million_output_tokens: Decimal | None = None
    cost_per_million_cached_input_tokens: Decimal | None = None
    cost_per_million_reasoning_tokens: Decimal | None = None
    unit_cost: Decimal | None = None
    cost_unit: CostUnit = CostUnit.PER_1M_TOKENS

    scores: Mapping[str, int] = field(default_factory=dict)
    max_completion_tokens: int | None = None
    display_name: str | None = None

    def __post_init__(self) -> None:
        if not self.model_id or not self.provider:
            raise RequestValidationError(
                "ModelSpec requires both model_id and provider",
                extra={"model_id": self.model_id, "provider": self.provider},
            )
        if self.context_length is not None and self.context_length <= 0:
            raise RequestValidationError(
                f"context_length must be positive, got {self.context_length}",
                extra={"model_id": self.model_id},
            )
        if self.max_completion_tokens is not None and self.max_completion_tokens <= 0:
            raise RequestValidationError(
                f"max_completion_tokens must be positive, got {self.max_completion_tokens}",
                extra={"model_id": self.model_id},
            )
        object.__setattr__(self, "modality", Modality(self.modality))
        object.__setattr__(self, "cost_unit", CostUnit(self.cost_unit))
        for name in _COST_FIELDS:
            object.__setattr__(self, name, _to_decimal(name, getattr(self, name)))
        object.__setattr__(self, "scores", MappingProxyType(dict(self.scores)))

    @property
    def qualified_id(self) -> str:
        """Registry key: ``provider:model_id``."""
        return f"{self.provider}:{self.model_id}"

    def score(self, name: str) -> int:
        return int(self.scores.get(name, 0))

    def has_capability(self, name: str) -> bool:
        """A capability counts as present when its score exists and is non-zero."""
        return self.score(name) != 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary (Decimals rendered as strings)."""
        data: dict[str, Any] = {
            "model_id": self.model_id,
            "provider": self.provider,
            "modality": self.modality.value,
            "context_length": self.context_length,
            "cost_unit": self.cost_unit.value,
            "scores": dict(self.scores),
            "max_completion_tokens": self.max_completion_tokens,
            "display_name": self.display_name,
        }
        for name in _COST_FIELDS:
            value = getattr(self, name)
            data[name] = None if value is None else str(value)
        return data


@dataclass(frozen=True)
class ModelRequirements:
    """Hard constraints for model selection.

    Attributes:
        provider: Only consider models from this provider
        context_length: Minimum context window in tokens
        capabilities: Score names that must be present and non-zero
        exclude: Qualified ids (``provider:model``) to skip
    """

    provider: str | None = None
    context_length: int | None = None
    capabilities: frozenset[str] = frozenset()
    exclude: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "capabilities", frozenset(self.capabilities))
        object.__setattr__(self, "exclude", frozenset(self.exclude))

    def excluding(self, *qualified_ids: str) -> ModelRequirements:
        """Return a copy that additionally excludes the given entries."""
        return replace(self, exclude=self.exclude | set(qualified_ids))


@dataclass
class RegistryEntry:
    """A registered model: spec, client factory and live availability.

    ``online`` is the only mutable state shared between concurrent
    dispatches. It is only ever changed by single assignment, so racing
    writers that mark the same entry offline are harmless.
    """

    spec: ModelSpec
    factory: Callable[..., ExecutionClient]
    online: bool = True
    offline_since: float | None = None

    @property
    def qualified_id(self) -> str:
        return self.spec.qualified_id

    def mark_offline(self) -> None:
        if self.online:
            self.offline_since = time.monotonic()
        self.online = False

    def mark_online(self) -> None:
        self.online = True
        self.offline_since = None
