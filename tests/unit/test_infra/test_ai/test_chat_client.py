"""Unit tests for the chat execution client.

Tests cover:
- text_chat results with usage, cost and timing
- Streaming deltas and the terminal result
- Cancellation before dispatch and mid-stream
- Feature precedence and failover through the client
- Structured output with generate_object / stream_object
"""

from __future__ import annotations

import asyncio
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
import pytest

from model_gateway.core.exceptions import (
    ProviderAuthenticationError,
    ProviderError,
    ProviderRateLimitError,
    ProviderUnavailableError,
    RequestValidationError,
    SchemaValidationError,
)
from model_gateway.infra.ai.availability import AvailabilityController, RetryPolicy
from model_gateway.infra.ai.builder import ConversationState
from model_gateway.infra.ai.capabilities.registry import ModelRegistry
from model_gateway.infra.ai.requests import AbortSignal, ChatMessage, ChatRequest
from model_gateway.infra.ai.responses import ChatChunk, ToolCall, Usage

from tests.fixtures import ScriptedChatProvider, chat_spec, text_chunk


class MovieReview(BaseModel):
    title: str
    rating: int


class OtherFeatures(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    temperature_boost: float | None = Field(default=None, alias="temperatureBoost")


def _request(text: str = "Hello", **kwargs) -> ChatRequest:
    return ChatRequest(messages=[ChatMessage(role="user", content=text)], **kwargs)


# ──────────────────────────────────────────────────────────────
# Fixtures
# ──────────────────────────────────────────────────────────────


@pytest.fixture
def client(acme_registry, controller):
    """Client for the cheapest acme model with a recording controller."""
    return acme_registry.chat.create_client("acme:acme-mini", controller=controller)


@pytest.mark.unit
class TestTextChat:
    """Tests for text_chat."""

    @pytest.mark.asyncio
    async def test_returns_text_usage_and_cost(self, client, acme):
        acme.script = [
            [
                ChatChunk(
                    text="Hi there",
                    usage=Usage(input_tokens=1_000_000, output_tokens=500_000),
                    finish_reason="stop",
                )
            ]
        ]

        result = await client.text_chat(_request())

        assert result.text == "Hi there"
        assert result.model == "acme-mini"
        assert result.provider == "acme"
        assert result.finish_reason == "stop"
        assert result.cancelled is False
        assert result.cost.input == Decimal("1.00")
        assert result.cost.output == Decimal("1.00")
        assert result.cost.total == Decimal("2.00")
        assert result.timing.total_tokens == 1_500_000
        assert result.timing.elapsed_ms >= 0
        assert set(result.billing) == {"cost", "timing"}

    @pytest.mark.asyncio
    async def test_non_streaming_request(self, client, acme):
        await client.text_chat(_request())

        provider_request = acme.calls[0]
        assert provider_request.stream is False
        assert provider_request.body["model"] == "acme-mini"
        assert provider_request.body["messages"] == [{"role": "user", "content": "Hello"}]

    @pytest.mark.asyncio
    async def test_accepts_dict_request(self, client):
        result = await client.text_chat({"messages": [{"role": "user", "content": "Hello"}]})

        assert result.text == "ok"

    @pytest.mark.asyncio
    async def test_invalid_dict_request(self, client, acme):
        with pytest.raises(RequestValidationError):
            await client.text_chat({"messages": [{"role": "robot", "content": "Hello"}]})

        assert acme.calls == []

    @pytest.mark.asyncio
    async def test_conversation_state(self, client, acme):
        conversation = ConversationState(system_prompt="Be brief.", memories=["Likes cats"])

        await client.text_chat(_request(), conversation)

        roles = [m["role"] for m in acme.calls[0].body["messages"]]
        assert roles == ["system", "system", "user"]

    @pytest.mark.asyncio
    async def test_tool_calls_collected(self, client, acme):
        acme.script = [
            [
                ChatChunk(
                    tool_calls=[ToolCall(id="call_1", name="get_weather", arguments='{"city":"Oslo"}')],
                    finish_reason="tool_calls",
                )
            ]
        ]

        result = await client.text_chat(_request())

        assert result.text == ""
        assert result.tool_calls[0].name == "get_weather"
        assert result.finish_reason == "tool_calls"

    @pytest.mark.asyncio
    async def test_retries_are_rebuilt(self, client, acme, sleeper):
        """Each retry dispatches a freshly built request."""
        acme.script = [ProviderRateLimitError("429"), ProviderRateLimitError("429"), "third time"]

        result = await client.text_chat(_request(max_tokens=50))

        assert result.text == "third time"
        assert len(acme.calls) == 3
        assert all(call.body["max_output"] == 50 for call in acme.calls)
        assert acme.calls[0] is not acme.calls[1]
        assert len(sleeper.delays) == 2

    @pytest.mark.asyncio
    async def test_retry_budget_exhausted(self, client, acme):
        acme.script = [ProviderRateLimitError("429") for _ in range(4)]

        with pytest.raises(ProviderError) as exc_info:
            await client.text_chat(_request())

        assert exc_info.value.attempts == 3
        assert len(acme.calls) == 3

    @pytest.mark.asyncio
    async def test_hard_failure_without_failover(self, client, acme, acme_registry):
        acme.script = [ProviderAuthenticationError("revoked", status_code=401)]

        with pytest.raises(ProviderUnavailableError):
            await client.text_chat(_request())

        assert acme_registry.chat.is_online("acme:acme-mini") is False


@pytest.mark.unit
class TestStreamChat:
    """Tests for stream_chat."""

    @pytest.mark.asyncio
    async def test_deltas_concatenate_to_result(self, client, acme):
        acme.script = [
            [
                text_chunk("Hel"),
                text_chunk("lo "),
                text_chunk(""),
                text_chunk("world", usage=Usage(input_tokens=4, output_tokens=3), finish_reason="stop"),
            ]
        ]

        stream = client.stream_chat(_request())
        deltas = [delta async for delta in stream]

        assert [d.text for d in deltas] == ["Hel", "lo ", "world"]
        assert [d.index for d in deltas] == [0, 1, 2]
        assert stream.result.text == "Hello world"
        assert stream.result.usage.output_tokens == 3
        assert acme.calls[0].stream is True

    @pytest.mark.asyncio
    async def test_nothing_sent_until_iterated(self, client, acme):
        client.stream_chat(_request())
        await asyncio.sleep(0)

        assert acme.calls == []

    @pytest.mark.asyncio
    async def test_single_pass(self, client):
        stream = client.stream_chat(_request())
        [delta async for delta in stream]

        with pytest.raises(RuntimeError, match="once"):
            aiter(stream)

    @pytest.mark.asyncio
    async def test_collect(self, client, acme):
        acme.script = [[text_chunk("a"), text_chunk("b")]]

        result = await client.stream_chat(_request()).collect()

        assert result.text == "ab"

    @pytest.mark.asyncio
    async def test_collect_after_partial_iteration(self, client, acme):
        acme.script = [[text_chunk("a"), text_chunk("b"), text_chunk("c")]]
        stream = client.stream_chat(_request())

        iterator = aiter(stream)
        first = await anext(iterator)
        result = await stream.collect()

        assert first.text == "a"
        assert result.text == "abc"

    @pytest.mark.asyncio
    async def test_failure_after_first_chunk_not_retried(self, client, acme):
        acme.script = [[text_chunk("partial"), ConnectionResetError("reset by peer")]]

        stream = client.stream_chat(_request())
        with pytest.raises(ProviderError):
            async for _ in stream:
                pass

        assert len(acme.calls) == 1
        assert acme.closed == 1


@pytest.mark.unit
class TestCancellation:
    """Tests for the abort handle."""

    @pytest.mark.asyncio
    async def test_abort_before_dispatch(self, client, acme):
        """An already-aborted request is never sent."""
        signal = AbortSignal()
        signal.abort("user")

        result = await client.text_chat(_request(abort=signal))

        assert result.cancelled is True
        assert result.text == ""
        assert result.cost.total == Decimal(0)
        assert acme.calls == []

    @pytest.mark.asyncio
    async def test_abort_mid_stream(self, client, acme):
        """Aborting mid-stream keeps the delivered prefix and marks the result cancelled."""
        acme.script = [[text_chunk("one "), text_chunk("two "), text_chunk("three")]]
        signal = AbortSignal()

        stream = client.stream_chat(_request(abort=signal))
        received = []
        async for delta in stream:
            received.append(delta.text)
            if len(received) == 2:
                signal.abort("user")

        assert received == ["one ", "two "]
        assert stream.result.cancelled is True
        assert stream.result.text == "one two "
        assert acme.closed == 1

    @pytest.mark.asyncio
    async def test_abort_while_waiting_for_first_chunk(self, acme_registry, controller):
        started = asyncio.Event()

        async def slow_dispatch(request):
            started.set()
            await asyncio.sleep(10)
            yield ChatChunk(text="too late")

        client = acme_registry.chat.create_client("acme:acme-mini", controller=controller)
        client.dispatch = slow_dispatch
        signal = AbortSignal()

        task = asyncio.create_task(client.text_chat(_request(abort=signal)))
        await started.wait()
        signal.abort("timeout")
        result = await asyncio.wait_for(task, timeout=1)

        assert result.cancelled is True
        assert result.text == ""

    @pytest.mark.asyncio
    async def test_timeout_signal(self):
        signal = AbortSignal.timeout(0.01)

        assert await asyncio.wait_for(signal.wait(), timeout=1) == "timeout"
        assert signal.aborted is True


@pytest.mark.unit
class TestFeatures:
    """Tests for feature options on the client."""

    @pytest.mark.asyncio
    async def test_caller_features_override_identifier(self, acme_registry, acme):
        client = acme_registry.create_client("acme:acme-mini?verbose=0&temperatureBoost=0.5")
        client.set_features({"verbose": True})

        await client.text_chat(_request())

        assert client.get_features() == {"verbose": True, "temperatureBoost": 0.5}
        assert acme.calls[0].features["verbose"] is True
        assert acme.calls[0].body["verbosity"] == "high"

    def test_field_name_overrides_identifier_alias(self, acme_registry):
        """A caller may use the field name for an option the identifier set by alias."""
        client = acme_registry.create_client("acme:acme-mini?temperatureBoost=0.2")

        client.set_features({"temperature_boost": 0.9})

        assert client.get_features() == {"temperatureBoost": 0.9}

    def test_alias_overrides_earlier_field_name(self, acme_registry):
        client = acme_registry.create_client("acme:acme-mini")
        client.set_features({"temperature_boost": 0.1, "verbose": True})

        client.set_features({"temperatureBoost": 0.7})

        assert client.get_features() == {"temperatureBoost": 0.7, "verbose": True}

    def test_invalid_features_leave_client_unchanged(self, acme_registry):
        client = acme_registry.create_client("acme:acme-mini?verbose=1")

        with pytest.raises(RequestValidationError):
            client.set_features({"unknown": 1})

        assert client.get_features() == {"verbose": True}

    @pytest.mark.asyncio
    async def test_failover_drops_foreign_features(self, settings):
        """Options the fallback provider does not declare are filtered out."""
        registry = ModelRegistry(settings)
        primary = ScriptedChatProvider("acme", [ProviderAuthenticationError("revoked")])
        fallback = ScriptedChatProvider("other", ["from fallback"])
        registry.register_provider(primary.registration([chat_spec("cheap", input_price="0.1")]))
        registry.register_provider(
            fallback.registration([chat_spec("pricier", provider="other")], features=OtherFeatures)
        )
        controller = AvailabilityController(
            registry.chat, RetryPolicy(max_attempts=1, base_delay=0, jitter=False), failover=True
        )

        client = registry.chat.create_client(
            "acme:cheap",
            features={"verbose": "1", "temperatureBoost": "0.5"},
            controller=controller,
        )
        result = await client.text_chat(_request())

        assert result.text == "from fallback"
        assert result.provider == "other"
        assert result.model == "pricier"
        assert fallback.calls[0].features == {"temperatureBoost": 0.5}
        assert primary.calls[0].features == {"verbose": True, "temperatureBoost": 0.5}


@pytest.mark.unit
class TestStructuredOutput:
    """Tests for generate_object and stream_object."""

    @pytest.mark.asyncio
    async def test_generate_object(self, client, acme):
        acme.script = ['{"title": "Alien", "rating": 5}']

        result = await client.generate_object(_request("Review Alien"), MovieReview)

        assert result.value == MovieReview(title="Alien", rating=5)
        assert acme.calls[0].body["response_schema"]["title"] == "MovieReview"

    @pytest.mark.asyncio
    async def test_generate_object_fenced(self, client, acme):
        acme.script = ['Sure:\n```json\n{"title": "Alien", "rating": 5}\n```']

        result = await client.generate_object(_request("Review Alien"), MovieReview)

        assert result.value.rating == 5

    @pytest.mark.asyncio
    async def test_schema_mismatch(self, client, acme):
        acme.script = ['{"title": "Alien", "rating": "great"}']

        with pytest.raises(SchemaValidationError) as exc_info:
            await client.generate_object(_request("Review Alien"), MovieReview)

        assert exc_info.value.payload == '{"title": "Alien", "rating": "great"}'
        assert exc_info.value.errors[0]["loc"] == ("rating",)
        assert len(acme.calls) == 1

    @pytest.mark.asyncio
    async def test_stream_object(self, client, acme):
        acme.script = [[text_chunk('{"title": '), text_chunk('"Alien", "rating": 4}')]]

        stream = client.stream_object(_request("Review Alien"), MovieReview)
        deltas = [delta.text async for delta in stream]

        assert "".join(deltas) == '{"title": "Alien", "rating": 4}'
        assert stream.result.value == MovieReview(title="Alien", rating=4)

    @pytest.mark.asyncio
    async def test_cancelled_object_has_no_value(self, client):
        signal = AbortSignal()
        signal.abort()

        result = await client.generate_object(_request(abort=signal), MovieReview)

        assert result.cancelled is True
        assert result.value is None
