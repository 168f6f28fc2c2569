"""Provider modules and the registration contract they implement."""

from __future__ import annotations

from model_gateway.infra.ai.providers.base import (
    ChatDispatch,
    Dispatch,
    MangleHook,
    ModalityBinding,
    ProviderRegistration,
    ProviderRequest,
    passthrough_mangle,
)
from model_gateway.infra.ai.providers.openai_compat import OpenAICompatibleProvider, OpenAIFeatures

__all__ = [
    "ChatDispatch",
    "Dispatch",
    "MangleHook",
    "ModalityBinding",
    "OpenAICompatibleProvider",
    "OpenAIFeatures",
    "ProviderRegistration",
    "ProviderRequest",
    "passthrough_mangle",
]
