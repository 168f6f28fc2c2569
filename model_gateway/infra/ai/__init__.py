"""Multi-provider model gateway.

Callers pick models by capability and cost instead of hard-coding provider
SDKs, then talk to them through one request/response shape per modality.

Quick Start:
    from model_gateway.core.settings import get_ai_settings
    from model_gateway.infra.ai import (
        ChatMessage,
        ChatRequest,
        ModelRegistry,
        ModelRequirements,
        register_builtin_providers,
    )

    settings = get_ai_settings()
    registry = ModelRegistry(settings)
    providers = register_builtin_providers(registry, settings)

    spec = registry.chat.select_cheapest(ModelRequirements(capabilities={"tools"}))
    client = registry.chat.create_client(spec.qualified_id)
    result = await client.text_chat(
        ChatRequest(messages=[ChatMessage(role="user", content="Hello")])
    )
    print(result.text, result.cost.total, result.timing.tokens_per_sec)

Architecture:
    ModelRegistry
        ├── CapabilityRegistry per modality (selection, online flags)
        ├── ExecutionClient per model (features, cancellation, cost)
        │     ├── RequestBuilder (neutral request -> provider request)
        │     └── AvailabilityController (retry, offline marking, failover)
        └── Provider modules (specs + mangle hook + dispatch per modality)
"""

from __future__ import annotations

from model_gateway.infra.ai.availability import (
    AvailabilityController,
    FailureKind,
    RetryPolicy,
    classify_failure,
)
from model_gateway.infra.ai.builder import ConversationState, RequestBuilder, check_idempotent
from model_gateway.infra.ai.capabilities import (
    CapabilityRegistry,
    CostUnit,
    Modality,
    ModelCatalog,
    ModelRegistry,
    ModelRequirements,
    ModelSpec,
    RegistryEntry,
    select_cheapest,
)
from model_gateway.infra.ai.capabilities.builtin_providers import register_builtin_providers
from model_gateway.infra.ai.clients import (
    ChatClient,
    ChatStream,
    EmbeddingClient,
    ExecutionClient,
    ImageClient,
    ObjectStream,
    RerankClient,
    SpeechClient,
    TranscriptionClient,
)
from model_gateway.infra.ai.costs import calculate_cost, calculate_timing
from model_gateway.infra.ai.features import FeatureSet, merge_features, validate_features
from model_gateway.infra.ai.identifiers import ModelIdentifier, parse_model_identifier
from model_gateway.infra.ai.providers import (
    ModalityBinding,
    OpenAICompatibleProvider,
    ProviderRegistration,
    ProviderRequest,
)
from model_gateway.infra.ai.requests import (
    AbortSignal,
    ChatMessage,
    ChatRequest,
    EmbeddingRequest,
    ImageRequest,
    RerankRequest,
    SpeechRequest,
    ToolDefinition,
    TranscriptionRequest,
)
from model_gateway.infra.ai.responses import (
    AIResponseCost,
    AIResponseTiming,
    ChatChunk,
    ChatResult,
    DispatchResponse,
    EmbeddingResult,
    ImageResult,
    ObjectResult,
    RerankResult,
    SpeechResult,
    StreamDelta,
    TranscriptionResult,
    Usage,
)

__all__ = [
    "AIResponseCost",
    "AIResponseTiming",
    "AbortSignal",
    "AvailabilityController",
    "CapabilityRegistry",
    "ChatChunk",
    "ChatClient",
    "ChatMessage",
    "ChatRequest",
    "ChatResult",
    "ChatStream",
    "ConversationState",
    "CostUnit",
    "DispatchResponse",
    "EmbeddingClient",
    "EmbeddingRequest",
    "EmbeddingResult",
    "ExecutionClient",
    "FailureKind",
    "FeatureSet",
    "ImageClient",
    "ImageRequest",
    "ImageResult",
    "Modality",
    "ModalityBinding",
    "ModelCatalog",
    "ModelIdentifier",
    "ModelRegistry",
    "ModelRequirements",
    "ModelSpec",
    "ObjectResult",
    "ObjectStream",
    "OpenAICompatibleProvider",
    "ProviderRegistration",
    "ProviderRequest",
    "RegistryEntry",
    "RequestBuilder",
    "RerankClient",
    "RerankRequest",
    "RerankResult",
    "RetryPolicy",
    "SpeechClient",
    "SpeechRequest",
    "SpeechResult",
    "StreamDelta",
    "ToolDefinition",
    "TranscriptionClient",
    "TranscriptionRequest",
    "TranscriptionResult",
    "Usage",
    "calculate_cost",
    "calculate_timing",
    "check_idempotent",
    "classify_failure",
    "merge_features",
    "parse_model_identifier",
    "register_builtin_providers",
    "select_cheapest",
    "validate_features",
]
