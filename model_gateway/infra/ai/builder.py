"""Request builder: provider-neutral request -> concrete provider request.

Build steps:
    1. Start from the caller-supplied request fields
    2. Prepend the configured system prompt unless it is already the first message
    3. Add memories as a system message after the system prompt
    4. Append prior conversation history, then the caller's messages
    5. Attach tool definitions when tools are enabled for this request
    6. Clamp max_tokens to the model's completion cap
    7. Run the provider's mangle hook

Steps 1-6 do not know about any provider. Step 7 is the only provider-coupled
step; because the body is rebuilt from scratch on every call, retries can
safely call build() again for the same logical request.

The caller's message lists are never mutated: the builder always produces a
new list, so the conversation history stays reusable.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import copy
from dataclasses import dataclass, field
import logging
from types import MappingProxyType
from typing import Any

from model_gateway.core.exceptions import RequestValidationError
from model_gateway.infra.ai.capabilities.types import ModelSpec
from model_gateway.infra.ai.providers.base import (
    MangleHook,
    ProviderRequest,
    passthrough_mangle,
)
from model_gateway.infra.ai.requests import AIRequest, ChatMessage, ChatRequest, TranscriptionRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversationState:
    """Conversation context owned by the caller.

    Storage, truncation and compaction of history happen outside the gateway;
    the builder only reads this state.

    Attributes:
        system_prompt: Prompt prepended as the first system message
        history: Prior conversation turns, oldest first
        memories: Facts recalled for this turn, sent as one system message
        tools_enabled: Whether request tool definitions are forwarded
    """

    system_prompt: str | None = None
    history: Sequence[ChatMessage] = field(default_factory=tuple)
    memories: Sequence[str] = field(default_factory=tuple)
    tools_enabled: bool = True


def format_memories(memories: Sequence[str]) -> str:
    lines = "\n".join(f"- {m}" for m in memories)
    return f"Relevant memories:\n{lines}"


class RequestBuilder:
    """Assembles ProviderRequests from provider-neutral requests.

    Example:
        builder = RequestBuilder()
        provider_request = builder.build(
            ChatRequest(messages=[ChatMessage(role="user", content="Hi")]),
            ConversationState(system_prompt="Be brief."),
            features={"reasoningEffort": "low"},
            spec=spec,
            mangle=openai_mangle,
        )
    """

    def assemble(
        self,
        request: AIRequest,
        conversation: ConversationState | None,
        spec: ModelSpec,
    ) -> dict[str, Any]:
        """Run the provider-agnostic steps and return the neutral body."""
        body = request.to_body()
        if not isinstance(request, ChatRequest):
            return body

        conversation = conversation or ConversationState()
        messages = self._assemble_messages(request, conversation)
        if not messages:
            raise RequestValidationError(
                "Chat request has no messages",
                extra={"model": spec.qualified_id},
            )
        body["messages"] = [m.model_dump(exclude_none=True) for m in messages]

        if not (conversation.tools_enabled and request.tools):
            body.pop("tools", None)

        cap = spec.max_completion_tokens
        if cap is not None and body.get("max_tokens") is not None and body["max_tokens"] > cap:
            body["max_tokens"] = cap

        return body

    def build(
        self,
        request: AIRequest,
        conversation: ConversationState | None = None,
        features: Mapping[str, Any] | None = None,
        *,
        spec: ModelSpec,
        mangle: MangleHook = passthrough_mangle,
        stream: bool = False,
    ) -> ProviderRequest:
        """Build the concrete provider request.

        Args:
            request: Provider-neutral request
            conversation: Caller-owned conversation state (chat only)
            features: Feature options in effect for this request
            spec: The selected model
            mangle: The provider's request mutation hook
            stream: Whether the provider should stream the response

        Returns:
            ProviderRequest ready for the provider's dispatch function

        Raises:
            RequestValidationError: If the request cannot be assembled
        """
        snapshot = MappingProxyType(dict(features or {}))
        files: dict[str, tuple[str, bytes]] = {}
        if isinstance(request, TranscriptionRequest):
            files["file"] = (request.filename, request.audio)

        provider_request = ProviderRequest(
            model=spec.model_id,
            provider=spec.provider,
            modality=spec.modality,
            body=self.assemble(request, conversation, spec),
            stream=stream,
            features=snapshot,
            files=files,
            abort=request.abort,
        )
        mangle(provider_request, snapshot)

        logger.debug(
            "Built provider request",
            extra={
                "model": spec.qualified_id,
                "modality": spec.modality.value,
                "stream": stream,
                "features": sorted(snapshot),
            },
        )
        return provider_request

    @staticmethod
    def _assemble_messages(
        request: ChatRequest,
        conversation: ConversationState,
    ) -> list[ChatMessage]:
        prior = [*conversation.history, *request.messages]
        messages: list[ChatMessage] = []

        prompt = conversation.system_prompt
        already_first = (
            bool(prior) and prior[0].role == "system" and prior[0].content == prompt
        )
        if prompt and not already_first:
            messages.append(ChatMessage(role="system", content=prompt))
        elif prompt and already_first:
            messages.append(prior.pop(0))

        if conversation.memories:
            messages.append(ChatMessage(role="system", content=format_memories(conversation.memories)))

        messages.extend(m.model_copy() for m in prior)
        return messages


def check_idempotent(
    mangle: MangleHook,
    request: ProviderRequest,
    features: Mapping[str, Any] | None = None,
) -> bool:
    """Check that applying a mangle hook twice equals applying it once."""
    snapshot = MappingProxyType(dict(features or request.features))
    once = copy.deepcopy(request.body)
    once_request = ProviderRequest(**{**request.__dict__, "body": once})
    mangle(once_request, snapshot)

    twice = copy.deepcopy(request.body)
    twice_request = ProviderRequest(**{**request.__dict__, "body": twice})
    mangle(twice_request, snapshot)
    mangle(twice_request, snapshot)

    return once_request.body == twice_request.body and once_request.stream == twice_request.stream
