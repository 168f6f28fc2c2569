"""Static model catalog.

ModelSpecs are plain data, so they live apart from the code that serves them.
The bundled catalog covers the hosted models the built-in OpenAI-compatible
provider module knows how to reach; deployments add or override entries with
a YAML file:

    providers:
      openai:
        chat:
          - model_id: gpt-4o-mini
            context_length: 128000
            cost_per_million_input_tokens: "0.15"
            cost_per_million_output_tokens: "0.60"
            scores: {intelligence: 3, speed: 4, tools: 1}

Prices are USD; token prices are per million tokens.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import fields
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from model_gateway.core.exceptions import RequestValidationError
from model_gateway.infra.ai.capabilities.types import Modality, ModelSpec

if TYPE_CHECKING:
    from model_gateway.core.settings.ai import AISettings

logger = logging.getLogger(__name__)

_SPEC_FIELDS = frozenset(f.name for f in fields(ModelSpec)) - {"provider", "modality"}

# provider -> modality -> model entries
BUILTIN_MODELS: dict[str, dict[str, list[dict[str, Any]]]] = {
    "openai": {
        "chat": [
            {
                "model_id": "gpt-4o",
                "context_length": 128_000,
                "cost_per_million_input_tokens": "2.50",
                "cost_per_million_cached_input_tokens": "1.25",
                "cost_per_million_output_tokens": "10.00",
                "scores": {"intelligence": 4, "speed": 3, "tools": 1, "vision": 1, "json": 1},
                "max_completion_tokens": 16_384,
            },
            {
                "model_id": "gpt-4o-mini",
                "context_length": 128_000,
                "cost_per_million_input_tokens": "0.15",
                "cost_per_million_cached_input_tokens": "0.075",
                "cost_per_million_output_tokens": "0.60",
                "scores": {"intelligence": 3, "speed": 4, "tools": 1, "vision": 1, "json": 1},
                "max_completion_tokens": 16_384,
            },
            {
                "model_id": "o3-mini",
                "context_length": 200_000,
                "cost_per_million_input_tokens": "1.10",
                "cost_per_million_cached_input_tokens": "0.55",
                "cost_per_million_output_tokens": "4.40",
                "cost_per_million_reasoning_tokens": "4.40",
                "scores": {"intelligence": 5, "speed": 2, "tools": 1, "reasoning": 1, "json": 1},
                "max_completion_tokens": 100_000,
            },
        ],
        "embedding": [
            {
                "model_id": "text-embedding-3-small",
                "context_length": 8_191,
                "cost_per_million_input_tokens": "0.02",
                "scores": {"dimensions": 1536},
            },
            {
                "model_id": "text-embedding-3-large",
                "context_length": 8_191,
                "cost_per_million_input_tokens": "0.13",
                "scores": {"dimensions": 3072},
            },
        ],
        "image": [
            {"model_id": "dall-e-3", "unit_cost": "0.040", "cost_unit": "per_image"},
        ],
        "speech": [
            {"model_id": "tts-1", "unit_cost": "15.00", "cost_unit": "per_1m_characters"},
            {"model_id": "tts-1-hd", "unit_cost": "30.00", "cost_unit": "per_1m_characters"},
        ],
        "transcription": [
            {"model_id": "whisper-1", "unit_cost": "0.006", "cost_unit": "per_minute"},
        ],
    },
    "groq": {
        "chat": [
            {
                "model_id": "llama-3.3-70b-versatile",
                "context_length": 128_000,
                "cost_per_million_input_tokens": "0.59",
                "cost_per_million_output_tokens": "0.79",
                "scores": {"intelligence": 3, "speed": 5, "tools": 1},
                "max_completion_tokens": 32_768,
            },
            {
                "model_id": "llama-3.1-8b-instant",
                "context_length": 128_000,
                "cost_per_million_input_tokens": "0.05",
                "cost_per_million_output_tokens": "0.08",
                "scores": {"intelligence": 1, "speed": 5},
                "max_completion_tokens": 8_192,
            },
        ],
    },
    "mistral": {
        "chat": [
            {
                "model_id": "mistral-large-latest",
                "context_length": 128_000,
                "cost_per_million_input_tokens": "2.00",
                "cost_per_million_output_tokens": "6.00",
                "scores": {"intelligence": 4, "speed": 3, "tools": 1, "json": 1},
            },
            {
                "model_id": "mistral-small-latest",
                "context_length": 32_000,
                "cost_per_million_input_tokens": "0.20",
                "cost_per_million_output_tokens": "0.60",
                "scores": {"intelligence": 2, "speed": 4, "tools": 1, "json": 1},
            },
        ],
    },
    "deepseek": {
        "chat": [
            {
                "model_id": "deepseek-chat",
                "context_length": 64_000,
                "cost_per_million_input_tokens": "0.27",
                "cost_per_million_cached_input_tokens": "0.07",
                "cost_per_million_output_tokens": "1.10",
                "scores": {"intelligence": 4, "speed": 2, "tools": 1, "json": 1},
                "max_completion_tokens": 8_192,
            },
        ],
    },
    "cohere": {
        "rerank": [
            {"model_id": "rerank-v3.5", "unit_cost": "2.00", "cost_unit": "per_1k_searches"},
        ],
    },
    "jina": {
        "rerank": [
            {
                "model_id": "jina-reranker-v2-base-multilingual",
                "unit_cost": "0.00",
                "cost_unit": "free",
                "context_length": 8_192,
            },
        ],
    },
}


def _build_spec(provider: str, modality: Modality, entry: Mapping[str, Any]) -> ModelSpec:
    model_id = entry.get("model_id", "?") if isinstance(entry, Mapping) else "?"
    label = f"{provider}/{modality.value}/{model_id}"
    if not isinstance(entry, Mapping):
        raise RequestValidationError(
            f"Catalog entry {label} must be a mapping",
            extra={"entry": label},
        )
    unknown = set(entry) - _SPEC_FIELDS
    if unknown:
        raise RequestValidationError(
            f"Catalog entry {label} has unknown fields: {sorted(unknown)}",
            extra={"entry": label, "fields": sorted(unknown)},
        )
    try:
        return ModelSpec(provider=provider, modality=modality, **entry)
    except (TypeError, ValueError) as e:
        raise RequestValidationError(
            f"Catalog entry {label} is invalid: {e}",
            extra={"entry": label},
        ) from e
    except RequestValidationError as e:
        raise RequestValidationError(
            f"Catalog entry {label} is invalid: {e.detail}",
            extra={"entry": label, **e.extra},
        ) from e


class ModelCatalog:
    """Static ModelSpecs keyed by ``(provider, modality)``.

    Example:
        catalog = ModelCatalog.builtin().merge(ModelCatalog.from_yaml("conf/models.yaml"))
        specs = catalog.specs_for("openai", Modality.CHAT)
    """

    def __init__(self, specs: Iterable[ModelSpec] = ()) -> None:
        self._specs: dict[tuple[str, Modality], dict[str, ModelSpec]] = {}
        for spec in specs:
            self.add(spec)

    def add(self, spec: ModelSpec) -> None:
        """Add or replace one spec."""
        self._specs.setdefault((spec.provider, spec.modality), {})[spec.model_id] = spec

    @classmethod
    def builtin(cls) -> ModelCatalog:
        return cls.from_mapping(BUILTIN_MODELS)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ModelCatalog:
        """Build a catalog from ``{provider: {modality: [entry, ...]}}``.

        A top-level ``providers`` key wrapping that structure is also accepted.

        Raises:
            RequestValidationError: If the structure or any entry is malformed
        """
        if "providers" in data and isinstance(data["providers"], Mapping):
            data = data["providers"]

        catalog = cls()
        for provider, modalities in data.items():
            if not isinstance(modalities, Mapping):
                raise RequestValidationError(
                    f"Catalog provider '{provider}' must map modalities to model lists",
                    extra={"entry": str(provider)},
                )
            for modality_name, entries in modalities.items():
                try:
                    modality = Modality(modality_name)
                except ValueError as e:
                    raise RequestValidationError(
                        f"Catalog provider '{provider}' has unknown modality '{modality_name}'",
                        extra={"entry": f"{provider}/{modality_name}"},
                    ) from e
                for entry in entries or ():
                    catalog.add(_build_spec(str(provider), modality, entry))
        return catalog

    @classmethod
    def from_settings(cls, settings: AISettings) -> ModelCatalog:
        """Bundled catalog, overlaid with ``settings.catalog_path`` when set."""
        catalog = cls.builtin()
        if settings.catalog_path is not None:
            catalog = catalog.merge(cls.from_yaml(settings.catalog_path))
        return catalog

    @classmethod
    def from_yaml(cls, path: str | Path) -> ModelCatalog:
        """Load a catalog from a YAML file."""
        path = Path(path)
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, Mapping):
            raise RequestValidationError(
                f"Model catalog {path} must contain a mapping",
                extra={"path": str(path)},
            )
        catalog = cls.from_mapping(data)
        logger.info(
            "Loaded model catalog",
            extra={"path": str(path), "models": len(catalog)},
        )
        return catalog

    def merge(self, other: ModelCatalog) -> ModelCatalog:
        """Return a new catalog with ``other``'s specs overlaid on this one."""
        merged = ModelCatalog(self)
        for spec in other:
            merged.add(spec)
        return merged

    def specs_for(self, provider: str, modality: Modality) -> list[ModelSpec]:
        return list(self._specs.get((provider, Modality(modality)), {}).values())

    def providers(self) -> list[str]:
        return sorted({provider for provider, _ in self._specs})

    def modalities_for(self, provider: str) -> list[Modality]:
        return [m for p, m in self._specs if p == provider and self._specs[(p, m)]]

    def __iter__(self):
        for group in self._specs.values():
            yield from group.values()

    def __len__(self) -> int:
        return sum(len(group) for group in self._specs.values())


__all__ = ["BUILTIN_MODELS", "ModelCatalog"]
