"""Provider-neutral request shapes and the abort handle.

Requests are pydantic models so malformed input is rejected before any
provider is involved. Constructing a model directly raises pydantic's
ValidationError; passing a dict to a client goes through ``coerce_request``
and raises RequestValidationError instead. Every request carries an
AbortSignal that the caller owns; it is never serialized into a provider
request body.
"""

from __future__ import annotations

import asyncio
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from model_gateway.core.exceptions import RequestValidationError


class AbortSignal:
    """Caller-owned cancellation handle.

    Aborting is idempotent; the first reason wins.

    Example:
        signal = AbortSignal()
        stream = client.stream_chat(ChatRequest(messages=[...], abort=signal))
        async for delta in stream:
            if user_pressed_escape():
                signal.abort("user")
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Any = None
        self._timer: asyncio.TimerHandle | None = None

    @classmethod
    def timeout(cls, seconds: float) -> AbortSignal:
        """Create a signal that aborts itself after ``seconds`` on the running loop."""
        signal = cls()
        loop = asyncio.get_running_loop()
        signal._timer = loop.call_later(seconds, signal.abort, "timeout")
        return signal

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Any:
        return self._reason

    def abort(self, reason: Any = None) -> None:
        if self._event.is_set():
            return
        self._reason = reason if reason is not None else "aborted"
        self._event.set()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def wait(self) -> Any:
        """Wait until the signal is aborted and return the reason."""
        await self._event.wait()
        return self._reason

    def __repr__(self) -> str:
        return f"AbortSignal(aborted={self.aborted}, reason={self._reason!r})"


T = TypeVar("T", bound="AIRequest")


class AIRequest(BaseModel):
    """Base class for all provider-neutral requests."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    abort: AbortSignal = Field(default_factory=AbortSignal, exclude=True)

    def to_body(self) -> dict[str, Any]:
        """Serialize request fields (without the abort handle) into a plain dict."""
        return self.model_dump(exclude_none=True, mode="json")


class ChatMessage(BaseModel):
    """Message in a chat conversation."""

    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant", "tool"]
    content: str
    name: str | None = None
    tool_call_id: str | None = None


class ToolDefinition(BaseModel):
    """Function tool the model may call."""

    name: str = Field(min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_-]+$")
    description: str = ""
    parameters: dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})


class ChatRequest(AIRequest):
    """Chat completion request.

    ``messages`` may be empty when the conversation history supplied to the
    request builder provides the messages.
    """

    messages: list[ChatMessage] = Field(default_factory=list)
    tools: list[ToolDefinition] | None = None
    response_schema: dict[str, Any] | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    top_p: float | None = Field(default=None, gt=0.0, le=1.0)
    stop: list[str] | None = None
    max_tokens: int | None = Field(default=None, gt=0)

    @field_validator("stop", mode="before")
    @classmethod
    def _coerce_stop(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [v]
        return v


class EmbeddingRequest(AIRequest):
    """Text embedding request."""

    inputs: list[str] = Field(min_length=1)
    dimensions: int | None = Field(default=None, gt=0)

    @field_validator("inputs", mode="before")
    @classmethod
    def _coerce_inputs(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [v]
        return v


class ImageRequest(AIRequest):
    """Image generation request."""

    prompt: str = Field(min_length=1)
    size: str = Field(default="1024x1024", pattern=r"^\d+x\d+$")
    n: int = Field(default=1, ge=1, le=10)
    quality: str | None = None


class SpeechRequest(AIRequest):
    """Text-to-speech request."""

    text: str = Field(min_length=1)
    voice: str = "alloy"
    response_format: Literal["mp3", "opus", "aac", "flac", "wav", "pcm"] = "mp3"
    speed: float | None = Field(default=None, ge=0.25, le=4.0)


class TranscriptionRequest(AIRequest):
    """Speech-to-text request.

    ``duration_seconds`` is used for per-minute pricing when the provider does
    not report the audio duration itself.
    """

    audio: bytes = Field(min_length=1)
    filename: str = "audio.mp3"
    language: str | None = None
    prompt: str | None = None
    duration_seconds: float | None = Field(default=None, ge=0.0)

    def to_body(self) -> dict[str, Any]:
        # Audio bytes travel as a file part, not inside the JSON-ish body
        return self.model_dump(exclude_none=True, exclude={"audio"})


class RerankRequest(AIRequest):
    """Document reranking request."""

    query: str = Field(min_length=1)
    documents: list[str] = Field(min_length=1)
    top_n: int | None = Field(default=None, gt=0)


def coerce_request(request: T | dict[str, Any], model: type[T]) -> T:
    """Accept a request model or a plain dict, raising RequestValidationError on bad input.

    Model instances are returned as they are; they were validated when built.
    """
    if isinstance(request, model):
        return request
    if isinstance(request, AIRequest):
        raise RequestValidationError(
            f"Expected {model.__name__}, got {type(request).__name__}",
            extra={"expected": model.__name__},
        )
    try:
        return model.model_validate(request)
    except PydanticValidationError as e:
        raise RequestValidationError(
            f"Invalid {model.__name__}: {e.error_count()} error(s)",
            extra={"errors": e.errors(include_url=False, include_context=False)},
        ) from e


__all__ = [
    "AIRequest",
    "AbortSignal",
    "ChatMessage",
    "ChatRequest",
    "EmbeddingRequest",
    "ImageRequest",
    "RerankRequest",
    "SpeechRequest",
    "ToolDefinition",
    "TranscriptionRequest",
    "coerce_request",
]
