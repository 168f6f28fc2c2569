"""Chat execution client: text, streamed text and structured output.

Every chat dispatch function yields ChatChunks; a non-streaming dispatch
yields exactly one. Both ``text_chat`` and ``stream_chat`` consume the same
iterator shape, so the terminal text of a stream is always the concatenation
of its deltas.

Example:
    client = registry.chat.create_client("openai:gpt-4o-mini")

    result = await client.text_chat(ChatRequest(messages=[...]))

    stream = client.stream_chat(ChatRequest(messages=[...]))
    async for delta in stream:
        print(delta.text, end="")
    print(stream.result.cost.total)

    review = await client.generate_object(ChatRequest(messages=[...]), MovieReview)
"""

from __future__ import annotations

from collections.abc import AsyncIterator
import logging
import time
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel

from model_gateway.core.exceptions import AIError, ProviderError, RequestCancelledError
from model_gateway.infra.ai.capabilities.types import Modality
from model_gateway.infra.ai.clients.base import ExecutionClient, race_abort
from model_gateway.infra.ai.requests import ChatRequest, coerce_request
from model_gateway.infra.ai.responses import (
    ChatChunk,
    ChatResult,
    ObjectResult,
    StreamDelta,
    ToolCall,
    Usage,
)
from model_gateway.infra.ai.structured import json_schema_for, parse_structured

if TYPE_CHECKING:
    from model_gateway.infra.ai.builder import ConversationState
    from model_gateway.infra.ai.providers.base import ProviderRequest

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


async def _aclose(iterator: AsyncIterator[ChatChunk]) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is not None:
        await aclose()


async def _next_chunk(iterator: AsyncIterator[ChatChunk], request: ProviderRequest) -> ChatChunk | None:
    try:
        return await race_abort(anext(iterator), request.abort)
    except StopAsyncIteration:
        return None


class ChatStream:
    """Single-pass async iterator of StreamDelta with a terminal ChatResult.

    The request is only dispatched when iteration starts. Retries and
    failover apply until the first chunk arrives; after that a transport
    failure surfaces as ProviderError.

    When the request's abort signal fires mid-stream, iteration stops
    without error and ``result`` holds the partial text with
    ``cancelled=True``.
    """

    def __init__(
        self,
        client: ChatClient,
        request: ChatRequest,
        conversation: ConversationState | None = None,
        *,
        stream: bool = True,
    ) -> None:
        self._client = client
        self._request = request
        self._conversation = conversation
        self._stream = stream
        self._consumed = False
        self._iterator: AsyncIterator[StreamDelta] | None = None
        self.result: ChatResult | None = None

    def __aiter__(self) -> AsyncIterator[StreamDelta]:
        if self._consumed:
            msg = "ChatStream can only be iterated once"
            raise RuntimeError(msg)
        self._consumed = True
        self._iterator = self._iterate()
        return self._iterator

    async def collect(self) -> ChatResult:
        """Drain the remaining deltas and return the terminal result."""
        iterator = self._iterator if self._consumed else aiter(self)
        if iterator is not None:
            async for _ in iterator:
                pass
        if self.result is None:
            msg = "ChatStream was closed before completion"
            raise RuntimeError(msg)
        return self.result

    async def _iterate(self) -> AsyncIterator[StreamDelta]:
        client = self._client
        started = time.perf_counter()
        abort = self._request.abort

        try:
            target, provider_request, iterator, chunk = await client._open(
                self._request, self._conversation, stream=self._stream
            )
        except RequestCancelledError as e:
            logger.info(
                "Chat request cancelled before first chunk",
                extra={"model": client.entry.qualified_id, "reason": str(e.reason)},
            )
            self.result = client._cancelled(ChatResult, started)
            return

        parts: list[str] = []
        usage = Usage()
        finish_reason: str | None = None
        tool_calls: list[ToolCall] = []
        cancelled = False
        index = 0

        try:
            while chunk is not None:
                usage = usage.merge(chunk.usage)
                finish_reason = chunk.finish_reason or finish_reason
                tool_calls.extend(chunk.tool_calls)
                if chunk.text:
                    parts.append(chunk.text)
                    yield StreamDelta(text=chunk.text, index=index)
                    index += 1
                if abort.aborted:
                    cancelled = True
                    break
                try:
                    chunk = await _next_chunk(iterator, provider_request)
                except RequestCancelledError:
                    cancelled = True
                    break
                except AIError:
                    raise
                except Exception as e:
                    raise ProviderError(
                        f"Stream from {target.entry.qualified_id} failed: {e}",
                        provider=target.provider,
                        model=target.model,
                        original_error=e,
                    ) from e
        finally:
            await _aclose(iterator)

        if cancelled:
            logger.info(
                "Chat stream cancelled",
                extra={"model": target.entry.qualified_id, "deltas": index},
            )
        self.result = client._result(
            ChatResult,
            target.spec,
            usage,
            started,
            text="".join(parts),
            finish_reason=finish_reason,
            tool_calls=tool_calls,
            cancelled=cancelled,
        )


class ObjectStream(Generic[T]):
    """Streams raw JSON deltas, then validates the completed object.

    Iterating raises SchemaValidationError after the last delta when the
    completed text does not match the schema.
    """

    def __init__(self, chat_stream: ChatStream, schema: type[T]) -> None:
        self._chat_stream = chat_stream
        self._schema = schema
        self._consumed = False
        self._iterator: AsyncIterator[StreamDelta] | None = None
        self.result: ObjectResult | None = None

    def __aiter__(self) -> AsyncIterator[StreamDelta]:
        if self._consumed:
            msg = "ObjectStream can only be iterated once"
            raise RuntimeError(msg)
        self._consumed = True
        self._iterator = self._iterate()
        return self._iterator

    async def collect(self) -> ObjectResult:
        iterator = self._iterator if self._consumed else aiter(self)
        if iterator is not None:
            async for _ in iterator:
                pass
        if self.result is None:
            msg = "ObjectStream was closed before completion"
            raise RuntimeError(msg)
        return self.result

    async def _iterate(self) -> AsyncIterator[StreamDelta]:
        async for delta in self._chat_stream:
            yield delta
        chat_result = self._chat_stream.result
        if chat_result is not None:
            self.result = _to_object_result(chat_result, self._schema)


def _to_object_result(chat_result: ChatResult, schema: type[BaseModel]) -> ObjectResult:
    fields = {
        name: getattr(chat_result, name)
        for name in ("model", "provider", "usage", "cost", "timing", "cancelled")
    }
    if chat_result.cancelled:
        return ObjectResult(**fields, value=None, text=chat_result.text)
    value = parse_structured(chat_result.text, schema)
    return ObjectResult(**fields, value=value, text=chat_result.text)


class ChatClient(ExecutionClient):
    """Execution client for chat models."""

    modality: ClassVar[Modality] = Modality.CHAT

    async def _open(
        self,
        request: ChatRequest,
        conversation: ConversationState | None,
        *,
        stream: bool,
    ) -> tuple[ExecutionClient, ProviderRequest, AsyncIterator[ChatChunk], ChatChunk | None]:
        """Dispatch and wait for the first chunk, under the retry policy."""

        async def send(target: ExecutionClient, provider_request: ProviderRequest) -> Any:
            iterator = target.dispatch(provider_request)
            try:
                first = await _next_chunk(iterator, provider_request)
            except BaseException:
                await _aclose(iterator)
                raise
            return target, provider_request, iterator, first

        return await self._execute(request, send, conversation, stream=stream)

    async def text_chat(
        self,
        request: ChatRequest | dict[str, Any],
        conversation: ConversationState | None = None,
    ) -> ChatResult:
        """Send a chat request and return the complete response.

        Args:
            request: Chat request (or a dict validated into one)
            conversation: Caller-owned conversation state

        Returns:
            ChatResult with usage, cost and timing; ``cancelled=True`` and
            empty text when the abort signal fired before any output

        Raises:
            RequestValidationError: If the request is malformed
            ProviderError: If a transient failure outlasted the retry budget
            ProviderUnavailableError: If the model failed hard
        """
        request = coerce_request(request, ChatRequest)
        return await ChatStream(self, request, conversation, stream=False).collect()

    def stream_chat(
        self,
        request: ChatRequest | dict[str, Any],
        conversation: ConversationState | None = None,
    ) -> ChatStream:
        """Stream a chat response as ordered text deltas.

        Nothing is sent until the returned stream is iterated.
        """
        request = coerce_request(request, ChatRequest)
        return ChatStream(self, request, conversation)

    @staticmethod
    def _with_schema(request: ChatRequest, schema: type[BaseModel]) -> ChatRequest:
        return request.model_copy(update={"response_schema": json_schema_for(schema)})

    async def generate_object(
        self,
        request: ChatRequest | dict[str, Any],
        schema: type[T],
        conversation: ConversationState | None = None,
    ) -> ObjectResult:
        """Ask for structured output and validate it against ``schema``.

        Raises:
            SchemaValidationError: If the response does not match the schema
        """
        request = self._with_schema(coerce_request(request, ChatRequest), schema)
        chat_result = await ChatStream(self, request, conversation, stream=False).collect()
        return _to_object_result(chat_result, schema)

    def stream_object(
        self,
        request: ChatRequest | dict[str, Any],
        schema: type[T],
        conversation: ConversationState | None = None,
    ) -> ObjectStream[T]:
        request = self._with_schema(coerce_request(request, ChatRequest), schema)
        return ObjectStream(ChatStream(self, request, conversation), schema)


__all__ = ["ChatClient", "ChatStream", "ObjectStream"]
