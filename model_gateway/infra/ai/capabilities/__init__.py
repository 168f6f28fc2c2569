"""Model capability system: specs, catalog, per-modality registries.

Usage:
    from model_gateway.infra.ai.capabilities import ModelRegistry, ModelRequirements

    registry = ModelRegistry(get_ai_settings())
    registry.register_provider(provider.registration())
    spec = registry.chat.select_cheapest(ModelRequirements(context_length=32_000))
"""

from __future__ import annotations

from model_gateway.infra.ai.capabilities.catalog import ModelCatalog
from model_gateway.infra.ai.capabilities.registry import (
    CapabilityRegistry,
    ModelRegistry,
    blended_cost,
    select_cheapest,
)
from model_gateway.infra.ai.capabilities.types import (
    CostUnit,
    Modality,
    ModelRequirements,
    ModelSpec,
    RegistryEntry,
)

__all__ = [
    "CapabilityRegistry",
    "CostUnit",
    "Modality",
    "ModelCatalog",
    "ModelRegistry",
    "ModelRequirements",
    "ModelSpec",
    "RegistryEntry",
    "blended_cost",
    "select_cheapest",
]
