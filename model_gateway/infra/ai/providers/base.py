"""Provider registration contract.

A provider module plugs into the gateway by supplying, for each modality it
supports, three things:

1. A list of ModelSpec descriptors
2. A mangle hook ``(request, features) -> None`` that adapts the
   provider-neutral request body into the provider's wire shape
3. A dispatch function that sends a ProviderRequest and returns the
   modality's response shape

The core never calls provider SDKs directly; it only calls through this
contract. Registration happens once at startup via
``ModelRegistry.register_provider(registration)``.

Example:
    registration = ProviderRegistration(
        provider="acme",
        bindings={
            Modality.CHAT: ModalityBinding(
                specs=[ModelSpec(model_id="acme-1", provider="acme", ...)],
                mangle=acme_mangle,
                dispatch=acme_chat,
                features=AcmeFeatures,
            ),
        },
    )
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from model_gateway.infra.ai.capabilities.types import Modality, ModelSpec

if TYPE_CHECKING:
    from pydantic import BaseModel

    from model_gateway.infra.ai.requests import AbortSignal
    from model_gateway.infra.ai.responses import ChatChunk, DispatchResponse


@dataclass
class ProviderRequest:
    """Concrete request handed to a provider dispatch function.

    ``body`` starts as the provider-neutral request fields assembled by the
    request builder; only the provider's mangle hook mutates it.
    ``files`` carries binary parts (e.g. audio for transcription).
    """

    model: str
    provider: str
    modality: Modality
    body: dict[str, Any]
    stream: bool = False
    features: Mapping[str, Any] = field(default_factory=dict)
    files: dict[str, tuple[str, bytes]] = field(default_factory=dict)
    abort: AbortSignal | None = None


class MangleHook(Protocol):
    """Pure, idempotent provider-specific request mutation."""

    def __call__(self, request: ProviderRequest, features: Mapping[str, Any]) -> None: ...


ChatDispatch = Callable[[ProviderRequest], AsyncIterator["ChatChunk"]]
Dispatch = Callable[[ProviderRequest], Awaitable["DispatchResponse"]]


def passthrough_mangle(request: ProviderRequest, features: Mapping[str, Any]) -> None:
    """Mangle hook for providers that accept the neutral body unchanged."""


@dataclass
class ModalityBinding:
    """Everything a provider supplies for one modality.

    Attributes:
        specs: Models the provider serves for this modality
        mangle: Request mutation hook (pure and idempotent)
        dispatch: Low-level send function; ChatDispatch for chat, Dispatch otherwise
        features: Optional pydantic model validating feature options
    """

    specs: list[ModelSpec]
    dispatch: ChatDispatch | Dispatch
    mangle: MangleHook = passthrough_mangle
    features: type[BaseModel] | None = None


@dataclass
class ProviderRegistration:
    """Complete registration of a provider module across modalities.

    Attributes:
        provider: Unique provider name (e.g., "openai", "mistral")
        bindings: Per-modality specs, hooks and dispatch functions
    """

    provider: str
    bindings: dict[Modality, ModalityBinding] = field(default_factory=dict)

    def supports(self, modality: Modality) -> bool:
        return modality in self.bindings

    def get_modalities(self) -> list[Modality]:
        return list(self.bindings)
