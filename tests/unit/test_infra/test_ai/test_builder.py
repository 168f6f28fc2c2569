"""Unit tests for the request builder."""

from __future__ import annotations

import pytest

from model_gateway.core.exceptions import RequestValidationError
from model_gateway.infra.ai.builder import ConversationState, RequestBuilder, check_idempotent
from model_gateway.infra.ai.capabilities.types import CostUnit, Modality
from model_gateway.infra.ai.providers.base import ProviderRequest
from model_gateway.infra.ai.requests import (
    ChatMessage,
    ChatRequest,
    EmbeddingRequest,
    ToolDefinition,
    TranscriptionRequest,
)

from tests.fixtures import acme_mangle, chat_spec, unit_spec

# ──────────────────────────────────────────────────────────────
# Fixtures
# ──────────────────────────────────────────────────────────────


@pytest.fixture
def builder():
    return RequestBuilder()


@pytest.fixture
def spec():
    """Chat model with a completion cap of 1000 tokens."""
    return chat_spec("acme-capped", max_completion_tokens=1000)


@pytest.fixture
def history():
    return [
        ChatMessage(role="user", content="What is 2+2?"),
        ChatMessage(role="assistant", content="4"),
    ]


def _contents(provider_request):
    return [(m["role"], m["content"]) for m in provider_request.body["messages"]]


@pytest.mark.unit
class TestAssembleMessages:
    """Tests for message assembly."""

    def test_system_prompt_prepended(self, builder, spec):
        request = ChatRequest(messages=[ChatMessage(role="user", content="Hi")])

        built = builder.build(request, ConversationState(system_prompt="Be brief."), spec=spec)

        assert _contents(built) == [("system", "Be brief."), ("user", "Hi")]

    def test_system_prompt_not_duplicated(self, builder, spec):
        """A prompt already present as the first message is not added again."""
        request = ChatRequest(
            messages=[
                ChatMessage(role="system", content="Be brief."),
                ChatMessage(role="user", content="Hi"),
            ]
        )

        built = builder.build(request, ConversationState(system_prompt="Be brief."), spec=spec)

        assert _contents(built) == [("system", "Be brief."), ("user", "Hi")]

    def test_order_prompt_memories_history_request(self, builder, spec, history):
        conversation = ConversationState(
            system_prompt="Be brief.",
            history=history,
            memories=["Likes math", "Lives in Oslo"],
        )
        request = ChatRequest(messages=[ChatMessage(role="user", content="And 3+3?")])

        built = builder.build(request, conversation, spec=spec)

        assert _contents(built) == [
            ("system", "Be brief."),
            ("system", "Relevant memories:\n- Likes math\n- Lives in Oslo"),
            ("user", "What is 2+2?"),
            ("assistant", "4"),
            ("user", "And 3+3?"),
        ]

    def test_caller_lists_not_mutated(self, builder, spec, history):
        """Building never changes the caller's request or history."""
        request = ChatRequest(messages=[ChatMessage(role="user", content="And 3+3?")])
        conversation = ConversationState(system_prompt="Be brief.", history=history)

        builder.build(request, conversation, spec=spec, mangle=acme_mangle)
        builder.build(request, conversation, spec=spec, mangle=acme_mangle)

        assert len(history) == 2
        assert len(request.messages) == 1
        assert request.max_tokens is None

    def test_history_only_request(self, builder, spec, history):
        """Messages may come entirely from the conversation history."""
        built = builder.build(ChatRequest(), ConversationState(history=history), spec=spec)

        assert len(built.body["messages"]) == 2

    def test_no_messages_rejected(self, builder, spec):
        with pytest.raises(RequestValidationError, match="no messages"):
            builder.build(ChatRequest(), spec=spec)


@pytest.mark.unit
class TestRequestOptions:
    """Tests for tools, caps, features and non-chat bodies."""

    def test_tools_attached_when_enabled(self, builder, spec):
        request = ChatRequest(
            messages=[ChatMessage(role="user", content="Weather?")],
            tools=[ToolDefinition(name="get_weather")],
        )

        built = builder.build(request, spec=spec)

        assert built.body["tools"][0]["name"] == "get_weather"

    def test_tools_dropped_when_disabled(self, builder, spec):
        request = ChatRequest(
            messages=[ChatMessage(role="user", content="Weather?")],
            tools=[ToolDefinition(name="get_weather")],
        )

        built = builder.build(request, ConversationState(tools_enabled=False), spec=spec)

        assert "tools" not in built.body

    def test_max_tokens_capped(self, builder, spec):
        request = ChatRequest(messages=[ChatMessage(role="user", content="Hi")], max_tokens=5000)

        built = builder.build(request, spec=spec)

        assert built.body["max_tokens"] == 1000

    def test_max_tokens_below_cap_unchanged(self, builder, spec):
        request = ChatRequest(messages=[ChatMessage(role="user", content="Hi")], max_tokens=200)

        assert builder.build(request, spec=spec).body["max_tokens"] == 200

    def test_mangle_hook_applied(self, builder, spec):
        request = ChatRequest(messages=[ChatMessage(role="user", content="Hi")], max_tokens=200)

        built = builder.build(request, features={"verbose": True}, spec=spec, mangle=acme_mangle)

        assert built.body["model"] == "acme-capped"
        assert built.body["max_output"] == 200
        assert built.body["verbosity"] == "high"
        assert "max_tokens" not in built.body

    def test_features_snapshot_is_read_only(self, builder, spec):
        features = {"verbose": True}
        request = ChatRequest(messages=[ChatMessage(role="user", content="Hi")])

        built = builder.build(request, features=features, spec=spec)
        features["verbose"] = False

        assert built.features["verbose"] is True
        with pytest.raises(TypeError):
            built.features["verbose"] = False

    def test_abort_signal_not_in_body(self, builder, spec):
        request = ChatRequest(messages=[ChatMessage(role="user", content="Hi")])

        built = builder.build(request, spec=spec)

        assert "abort" not in built.body
        assert built.abort is request.abort

    def test_embedding_body(self, builder):
        spec = unit_spec("embed", Modality.EMBEDDING, "0.02", CostUnit.PER_1M_TOKENS)

        built = builder.build(EmbeddingRequest(inputs="hello"), spec=spec)

        assert built.body == {"inputs": ["hello"]}
        assert built.modality is Modality.EMBEDDING

    def test_transcription_audio_travels_as_file(self, builder):
        spec = unit_spec("whisper", Modality.TRANSCRIPTION, "0.006", CostUnit.PER_MINUTE)
        request = TranscriptionRequest(audio=b"RIFF", filename="clip.wav", language="en")

        built = builder.build(request, spec=spec)

        assert built.files == {"file": ("clip.wav", b"RIFF")}
        assert "audio" not in built.body
        assert built.body["language"] == "en"


@pytest.mark.unit
class TestCheckIdempotent:
    """Tests for the mangle idempotence check."""

    def test_idempotent_hook(self, builder, spec):
        request = ChatRequest(messages=[ChatMessage(role="user", content="Hi")], max_tokens=10)
        built = builder.build(request, spec=spec)

        assert check_idempotent(acme_mangle, built, {"verbose": True}) is True

    def test_non_idempotent_hook_detected(self, builder, spec):
        def appending_mangle(request: ProviderRequest, features) -> None:
            request.body.setdefault("stop", []).append("END")

        built = builder.build(ChatRequest(messages=[ChatMessage(role="user", content="Hi")]), spec=spec)

        assert check_idempotent(appending_mangle, built) is False

    def test_check_does_not_mutate_request(self, builder, spec):
        built = builder.build(ChatRequest(messages=[ChatMessage(role="user", content="Hi")]), spec=spec)
        before = dict(built.body)

        check_idempotent(acme_mangle, built)

        assert built.body == before
