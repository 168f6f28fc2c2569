"""Normalized response shapes.

Every terminal result carries ``usage``, ``cost`` and ``timing`` so billing
and analytics collaborators can consume one stable shape regardless of the
provider or modality that produced it.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Usage, Cost and Timing
# =============================================================================

TOKEN_CLASSES = ("input_tokens", "cached_input_tokens", "output_tokens", "reasoning_tokens")


class Usage(BaseModel):
    """Raw usage counters in the four canonical token classes.

    Token classes are disjoint: ``input_tokens`` counts uncached prompt
    tokens only. ``units`` carries the usage of unit-priced modalities
    (images generated, characters synthesized, audio seconds, searches).
    ``None`` means the provider did not report the counter.
    """

    model_config = ConfigDict(frozen=True)

    input_tokens: int | None = Field(default=None, ge=0)
    cached_input_tokens: int | None = Field(default=None, ge=0)
    output_tokens: int | None = Field(default=None, ge=0)
    reasoning_tokens: int | None = Field(default=None, ge=0)
    units: float | None = Field(default=None, ge=0)

    @property
    def total_tokens(self) -> int | None:
        """Sum of reported token classes, or None when none were reported."""
        counts = [getattr(self, name) for name in TOKEN_CLASSES]
        present = [c for c in counts if c is not None]
        return sum(present) if present else None

    def merge(self, other: Usage | None) -> Usage:
        """Combine with a later usage report; later reported counters win.

        Providers report cumulative usage while streaming, so a later
        non-None counter replaces the earlier one rather than adding to it.
        """
        if other is None:
            return self
        updates = {
            name: getattr(other, name)
            for name in (*TOKEN_CLASSES, "units")
            if getattr(other, name) is not None
        }
        return self.model_copy(update=updates)


class AIResponseCost(BaseModel):
    """Monetary cost of one response.

    Absent fields mean "not applicable to this model or modality", not zero.
    ``total`` is always the sum of the present fields.
    """

    model_config = ConfigDict(frozen=True)

    input: Decimal | None = None
    cached_input: Decimal | None = None
    output: Decimal | None = None
    reasoning: Decimal | None = None
    unit: Decimal | None = None
    total: Decimal = Decimal("0")


class AIResponseTiming(BaseModel):
    """Wall-clock timing and throughput of one response."""

    model_config = ConfigDict(frozen=True)

    elapsed_ms: float = Field(ge=0)
    tokens_per_sec: float | None = None
    total_tokens: int | None = None


# =============================================================================
# Provider-side payloads (returned by dispatch functions)
# =============================================================================


class ToolCall(BaseModel):
    """Function call requested by the model."""

    id: str | None = None
    name: str
    arguments: str = ""


class ChatChunk(BaseModel):
    """One unit of chat output as emitted by a provider dispatch function.

    Non-streaming dispatches yield a single chunk with the whole text.
    """

    text: str = ""
    usage: Usage | None = None
    finish_reason: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)


class DispatchResponse(BaseModel):
    """Payload returned by non-chat dispatch functions."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    data: Any
    usage: Usage = Field(default_factory=Usage)
    metadata: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Caller-facing results
# =============================================================================


class StreamDelta(BaseModel):
    """One incremental text fragment of a streamed chat response."""

    model_config = ConfigDict(frozen=True)

    text: str
    index: int


class AIResult(BaseModel):
    """Fields shared by every terminal result."""

    model: str
    provider: str
    usage: Usage = Field(default_factory=Usage)
    cost: AIResponseCost = Field(default_factory=AIResponseCost)
    timing: AIResponseTiming = Field(default_factory=lambda: AIResponseTiming(elapsed_ms=0))
    cancelled: bool = False

    @property
    def billing(self) -> dict[str, Any]:
        """The ``{cost, timing}`` record consumed by billing/analytics."""
        return {
            "cost": self.cost.model_dump(exclude_none=True),
            "timing": self.timing.model_dump(exclude_none=True),
        }


class ChatResult(AIResult):
    text: str = ""
    finish_reason: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)


class ObjectResult(AIResult):
    """Structured output validated against a pydantic schema.

    ``value`` is None only when the request was cancelled.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    value: Any = None
    text: str = ""


class EmbeddingResult(AIResult):
    embeddings: list[list[float]] = Field(default_factory=list)

    @property
    def dimension(self) -> int | None:
        return len(self.embeddings[0]) if self.embeddings else None


class GeneratedImage(BaseModel):
    url: str | None = None
    b64_json: str | None = None
    revised_prompt: str | None = None


class ImageResult(AIResult):
    images: list[GeneratedImage] = Field(default_factory=list)


class SpeechResult(AIResult):
    audio: bytes = b""
    media_type: str = "audio/mpeg"


class TranscriptionResult(AIResult):
    text: str = ""
    language: str | None = None
    duration_seconds: float | None = None


class RerankedDocument(BaseModel):
    index: int
    score: float
    document: str


class RerankResult(AIResult):
    results: list[RerankedDocument] = Field(default_factory=list)


__all__ = [
    "AIResponseCost",
    "AIResponseTiming",
    "AIResult",
    "ChatChunk",
    "ChatResult",
    "DispatchResponse",
    "EmbeddingResult",
    "GeneratedImage",
    "ImageResult",
    "ObjectResult",
    "RerankResult",
    "RerankedDocument",
    "SpeechResult",
    "StreamDelta",
    "ToolCall",
    "TranscriptionResult",
    "Usage",
]
