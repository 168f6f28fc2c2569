"""Capability Registry for model discovery, selection and client creation.

One CapabilityRegistry exists per modality; ModelRegistry groups them and is
the object callers pass around. There is no global instance: tests and
applications construct their own registry and register providers at startup.

Architecture:
    ModelRegistry
        ├── chat           CapabilityRegistry(Modality.CHAT)
        ├── embedding      CapabilityRegistry(Modality.EMBEDDING)
        ├── image / speech / transcription / rerank
        └── providers      provider name -> ProviderRegistration

Usage:
    registry = ModelRegistry(settings)
    registry.register_provider(openai.registration())

    spec = registry.chat.select_cheapest(ModelRequirements(capabilities={"tools"}))
    client = registry.chat.create_client(spec.qualified_id)
    result = await client.text_chat(ChatRequest(messages=[...]))

    # Or straight from an identifier string
    client = registry.create_client("openai:o3-mini?reasoningEffort=low")
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from functools import partial
import logging
import time
from typing import TYPE_CHECKING, Any

from model_gateway.core.exceptions import (
    InvalidModelIdentifierError,
    NoMatchingModelError,
    RequestValidationError,
)
from model_gateway.infra.ai.capabilities.types import (
    Modality,
    ModelRequirements,
    ModelSpec,
    RegistryEntry,
)
from model_gateway.infra.ai.identifiers import parse_model_identifier

if TYPE_CHECKING:
    from collections.abc import Callable

    from model_gateway.core.settings.ai import AISettings
    from model_gateway.infra.ai.availability import AvailabilityController, RetryPolicy
    from model_gateway.infra.ai.clients.base import ExecutionClient
    from model_gateway.infra.ai.providers.base import ProviderRegistration

logger = logging.getLogger(__name__)

_ZERO = Decimal(0)


def blended_cost(spec: ModelSpec) -> Decimal:
    """Single comparable price used to rank models of one modality.

    Chat sums the input and output per-million prices, embedding uses the
    input price and every other modality its unit cost. Missing prices count
    as zero.
    """
    if spec.modality == Modality.CHAT:
        return (spec.cost_per_million_input_tokens or _ZERO) + (
            spec.cost_per_million_output_tokens or _ZERO
        )
    if spec.modality == Modality.EMBEDDING:
        return spec.cost_per_million_input_tokens or _ZERO
    return spec.unit_cost or _ZERO


def _ranking_key(entry: RegistryEntry) -> tuple[Decimal, int, str, str]:
    spec = entry.spec
    return (blended_cost(spec), -spec.score("intelligence"), spec.model_id, spec.provider)


def select_cheapest(
    registry: CapabilityRegistry,
    requirements: ModelRequirements | None = None,
) -> ModelSpec:
    """Pure selection: cheapest online spec satisfying every requirement.

    Args:
        registry: Registry for the modality to select from
        requirements: Hard constraints; defaults to none

    Returns:
        The cheapest qualifying online ModelSpec

    Raises:
        NoMatchingModelError: Naming the first filter that emptied the
            candidate set, or ``online`` when candidates exist but all are
            offline
    """
    return registry.select_cheapest(requirements)


class CapabilityRegistry:
    """Registry of the models serving one modality.

    Entries are kept in registration order and never deleted; only their
    ``online`` flag changes at runtime.

    Args:
        modality: The modality every registered spec must declare
        policy: Retry policy for the default availability controller
        failover: Whether the default controller fails over on hard failures
        cooldown_seconds: Treat offline entries as online again after this
            many seconds; None means only ``mark_online`` restores them
    """

    def __init__(
        self,
        modality: Modality,
        *,
        policy: RetryPolicy | None = None,
        failover: bool = False,
        cooldown_seconds: float | None = None,
    ) -> None:
        self.modality = Modality(modality)
        self.policy = policy
        self.failover = failover
        self.cooldown_seconds = cooldown_seconds
        self._entries: dict[str, RegistryEntry] = {}
        self._controller: AvailabilityController | None = None

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register(
        self,
        model_id: str,
        spec: ModelSpec,
        factory: Callable[..., ExecutionClient],
    ) -> RegistryEntry:
        """Register a model with the factory that builds its clients.

        Re-registering a qualified id replaces the previous entry.

        Raises:
            RequestValidationError: If ``spec`` does not match the id or modality
        """
        if model_id != spec.model_id:
            raise RequestValidationError(
                f"Model id '{model_id}' does not match spec model id '{spec.model_id}'",
                extra={"model_id": model_id, "spec_model_id": spec.model_id},
            )
        if spec.modality != self.modality:
            raise RequestValidationError(
                f"Spec '{spec.qualified_id}' is a {spec.modality.value} model, "
                f"cannot register it for {self.modality.value}",
                extra={"model": spec.qualified_id, "modality": self.modality.value},
            )

        entry = RegistryEntry(spec=spec, factory=factory)
        key = entry.qualified_id
        if key in self._entries:
            logger.warning(
                f"Model '{key}' already registered, replacing entry",
                extra={"model": key, "modality": self.modality.value},
            )
        self._entries[key] = entry

        logger.debug(
            f"Registered model: {key}",
            extra={"model": key, "modality": self.modality.value},
        )
        return entry

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get_entry(self, model_id: str) -> RegistryEntry:
        """Resolve a qualified (``provider:model``) or bare model id.

        Raises:
            InvalidModelIdentifierError: If a bare id matches several providers
            NoMatchingModelError: If nothing is registered under the id
        """
        if model_id in self._entries:
            return self._entries[model_id]

        matches = [e for e in self._entries.values() if e.spec.model_id == model_id]
        if len(matches) > 1:
            providers = sorted(e.spec.provider for e in matches)
            raise InvalidModelIdentifierError(
                f"Model '{model_id}' is ambiguous, qualify it with one of: {providers}",
                identifier=model_id,
            )
        if not matches:
            raise NoMatchingModelError(
                f"No {self.modality.value} model registered as '{model_id}'",
                requirement="model",
                extra={"model": model_id, "modality": self.modality.value},
            )
        return matches[0]

    def entries(self) -> list[RegistryEntry]:
        return list(self._entries.values())

    def list_with_status(self) -> list[tuple[ModelSpec, bool]]:
        """All registered specs with their online flag, in registration order."""
        return [(e.spec, self._entry_online(e)) for e in self._entries.values()]

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # -------------------------------------------------------------------------
    # Availability
    # -------------------------------------------------------------------------

    def _entry_online(self, entry: RegistryEntry) -> bool:
        if entry.online:
            return True
        if self.cooldown_seconds is None or entry.offline_since is None:
            return False
        if time.monotonic() - entry.offline_since >= self.cooldown_seconds:
            entry.mark_online()
            logger.info(
                f"Model '{entry.qualified_id}' back online after cool-down",
                extra={"model": entry.qualified_id, "cooldown_seconds": self.cooldown_seconds},
            )
            return True
        return False

    def is_online(self, model_id: str) -> bool:
        return self._entry_online(self.get_entry(model_id))

    def mark_offline(self, model_id: str) -> None:
        entry = self.get_entry(model_id)
        was_online = entry.online
        entry.mark_offline()
        if was_online:
            logger.warning(
                f"Model '{entry.qualified_id}' marked offline",
                extra={"model": entry.qualified_id, "modality": self.modality.value},
            )

    def mark_online(self, model_id: str) -> None:
        entry = self.get_entry(model_id)
        was_offline = not entry.online
        entry.mark_online()
        if was_offline:
            logger.info(
                f"Model '{entry.qualified_id}' marked online",
                extra={"model": entry.qualified_id, "modality": self.modality.value},
            )

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    def _candidates(self, requirements: ModelRequirements) -> list[RegistryEntry]:
        candidates = list(self._entries.values())
        if not candidates:
            raise NoMatchingModelError(
                f"No {self.modality.value} models registered",
                requirement="modality",
                extra={"modality": self.modality.value},
            )

        filters: list[tuple[str, Callable[[ModelSpec], bool]]] = []
        if requirements.provider is not None:
            filters.append(("provider", lambda s: s.provider == requirements.provider))
        if requirements.context_length is not None:
            filters.append(
                (
                    "context_length",
                    lambda s: (s.context_length or 0) >= requirements.context_length,
                )
            )
        for name in sorted(requirements.capabilities):
            filters.append((f"capability:{name}", partial(ModelSpec.has_capability, name=name)))
        if requirements.exclude:
            filters.append(("exclude", lambda s: s.qualified_id not in requirements.exclude))

        for requirement, predicate in filters:
            candidates = [e for e in candidates if predicate(e.spec)]
            if not candidates:
                raise NoMatchingModelError(
                    f"No {self.modality.value} model satisfies requirement '{requirement}'",
                    requirement=requirement,
                    extra={"modality": self.modality.value},
                )
        return candidates

    def select_cheapest(self, requirements: ModelRequirements | None = None) -> ModelSpec:
        """Select the cheapest online spec satisfying ``requirements``.

        Ranking is ascending blended cost; ties prefer higher intelligence,
        then model id, then provider.
        """
        requirements = requirements or ModelRequirements()
        candidates = sorted(self._candidates(requirements), key=_ranking_key)
        for entry in candidates:
            if self._entry_online(entry):
                return entry.spec

        raise NoMatchingModelError(
            f"All matching {self.modality.value} models are offline",
            requirement="online",
            extra={
                "modality": self.modality.value,
                "offline": [e.qualified_id for e in candidates],
            },
        )

    # -------------------------------------------------------------------------
    # Client creation
    # -------------------------------------------------------------------------

    @property
    def controller(self) -> AvailabilityController:
        """Default availability controller for clients of this registry."""
        if self._controller is None:
            from model_gateway.infra.ai.availability import AvailabilityController, RetryPolicy

            self._controller = AvailabilityController(
                self,
                self.policy or RetryPolicy(),
                failover=self.failover,
            )
        return self._controller

    def create_client(
        self,
        model_id: str,
        *,
        features: Mapping[str, Any] | None = None,
        requirements: ModelRequirements | None = None,
        controller: AvailabilityController | None = None,
    ) -> ExecutionClient:
        """Create an execution client bound to one registered model.

        Args:
            model_id: Qualified or unambiguous bare model id
            features: Feature options seeded into the client (identifier layer)
            requirements: Constraints reused when failing over
            controller: Availability controller; defaults to the registry's

        Raises:
            InvalidModelIdentifierError: If a bare id is ambiguous
            NoMatchingModelError: If the id is not registered
            RequestValidationError: If ``features`` fail validation
        """
        entry = self.get_entry(model_id)
        return entry.factory(
            entry,
            registry=self,
            features=features,
            requirements=requirements,
            controller=controller or self.controller,
        )


class ModelRegistry:
    """All per-modality registries plus the installed providers.

    Example:
        registry = ModelRegistry(get_ai_settings())
        registry.register_provider(OpenAICompatibleProvider.from_settings(settings).registration())
        for spec, online in registry.list_with_status():
            print(spec.qualified_id, online)
    """

    def __init__(self, settings: AISettings | None = None) -> None:
        policy = settings.to_retry_policy() if settings is not None else None
        failover = settings.failover_enabled if settings is not None else False
        cooldown = settings.online_cooldown_seconds if settings is not None else None

        self._registries: dict[Modality, CapabilityRegistry] = {
            modality: CapabilityRegistry(
                modality,
                policy=policy,
                failover=failover,
                cooldown_seconds=cooldown,
            )
            for modality in Modality
        }
        self._providers: dict[str, ProviderRegistration] = {}

    def for_modality(self, modality: Modality | str) -> CapabilityRegistry:
        return self._registries[Modality(modality)]

    @property
    def chat(self) -> CapabilityRegistry:
        return self._registries[Modality.CHAT]

    @property
    def embedding(self) -> CapabilityRegistry:
        return self._registries[Modality.EMBEDDING]

    @property
    def image(self) -> CapabilityRegistry:
        return self._registries[Modality.IMAGE]

    @property
    def speech(self) -> CapabilityRegistry:
        return self._registries[Modality.SPEECH]

    @property
    def transcription(self) -> CapabilityRegistry:
        return self._registries[Modality.TRANSCRIPTION]

    @property
    def rerank(self) -> CapabilityRegistry:
        return self._registries[Modality.RERANK]

    def register_provider(self, registration: ProviderRegistration) -> None:
        """Register every spec a provider supplies, across its modalities.

        Raises:
            RequestValidationError: If a binding carries specs for another
                provider or modality
        """
        from model_gateway.infra.ai.clients import client_class_for

        name = registration.provider
        if name in self._providers:
            logger.warning(
                f"Provider '{name}' already registered, updating registration",
                extra={"provider": name},
            )

        for modality, binding in registration.bindings.items():
            modality = Modality(modality)
            factory = partial(
                client_class_for(modality),
                dispatch=binding.dispatch,
                mangle=binding.mangle,
                feature_schema=binding.features,
            )
            registry = self.for_modality(modality)
            for spec in binding.specs:
                if spec.provider != name:
                    raise RequestValidationError(
                        f"Provider '{name}' cannot register spec '{spec.qualified_id}'",
                        extra={"provider": name, "model": spec.qualified_id},
                    )
                registry.register(spec.model_id, spec, factory)

        self._providers[name] = registration
        logger.info(
            f"Registered provider: {name}",
            extra={
                "provider": name,
                "modalities": [Modality(m).value for m in registration.bindings],
                "models": sum(len(b.specs) for b in registration.bindings.values()),
            },
        )

    def providers(self) -> list[str]:
        return list(self._providers)

    def create_client(
        self,
        identifier: str,
        modality: Modality | str = Modality.CHAT,
        *,
        requirements: ModelRequirements | None = None,
        controller: AvailabilityController | None = None,
    ) -> ExecutionClient:
        """Create a client from a ``[provider:]model[?k=v&...]`` identifier.

        Options in the identifier's query become the client's initial features.
        """
        parsed = parse_model_identifier(identifier)
        return self.for_modality(modality).create_client(
            parsed.qualified_id or parsed.model_name,
            features=parsed.features,
            requirements=requirements,
            controller=controller,
        )

    def list_with_status(self) -> list[tuple[ModelSpec, bool]]:
        return [item for registry in self._registries.values() for item in registry.list_with_status()]


__all__ = [
    "CapabilityRegistry",
    "ModelRegistry",
    "blended_cost",
    "select_cheapest",
]
