"""Execution clients for unit-priced media modalities.

These models are priced per image, per million characters or per minute of
audio rather than per token. When a provider does not report ``usage.units``
the client derives it from the request: images requested, characters of
input text, or the caller-supplied audio duration.
"""

from __future__ import annotations

import time
from typing import Any, ClassVar

from model_gateway.infra.ai.capabilities.types import Modality
from model_gateway.infra.ai.clients.base import ExecutionClient
from model_gateway.infra.ai.requests import (
    ImageRequest,
    SpeechRequest,
    TranscriptionRequest,
    coerce_request,
)
from model_gateway.infra.ai.responses import (
    GeneratedImage,
    ImageResult,
    SpeechResult,
    TranscriptionResult,
    Usage,
)

_SPEECH_MEDIA_TYPES = {
    "mp3": "audio/mpeg",
    "opus": "audio/opus",
    "aac": "audio/aac",
    "flac": "audio/flac",
    "wav": "audio/wav",
    "pcm": "audio/pcm",
}


def _with_units(usage: Usage, units: float | None) -> Usage:
    if usage.units is not None or units is None:
        return usage
    return usage.model_copy(update={"units": units})


class ImageClient(ExecutionClient):
    """Execution client for image generation models."""

    modality: ClassVar[Modality] = Modality.IMAGE

    async def generate_image(self, request: ImageRequest | dict[str, Any]) -> ImageResult:
        request = coerce_request(request, ImageRequest)
        started = time.perf_counter()

        outcome = await self._dispatch(request)
        if outcome is None:
            return self._cancelled(ImageResult, started)

        target, response = outcome
        images = [
            item if isinstance(item, GeneratedImage) else GeneratedImage.model_validate(item)
            for item in response.data
        ]
        usage = _with_units(response.usage, len(images))
        return self._result(ImageResult, target.spec, usage, started, images=images)


class SpeechClient(ExecutionClient):
    """Execution client for text-to-speech models."""

    modality: ClassVar[Modality] = Modality.SPEECH

    async def synthesize(self, request: SpeechRequest | dict[str, Any]) -> SpeechResult:
        request = coerce_request(request, SpeechRequest)
        started = time.perf_counter()

        outcome = await self._dispatch(request)
        if outcome is None:
            return self._cancelled(SpeechResult, started)

        target, response = outcome
        media_type = response.metadata.get(
            "media_type", _SPEECH_MEDIA_TYPES.get(request.response_format, "application/octet-stream")
        )
        usage = _with_units(response.usage, len(request.text))
        return self._result(
            SpeechResult,
            target.spec,
            usage,
            started,
            audio=bytes(response.data),
            media_type=media_type,
        )


class TranscriptionClient(ExecutionClient):
    """Execution client for speech-to-text models.

    Per-minute pricing needs the audio duration in seconds. Providers that
    report it (verbose transcription formats) win over
    ``TranscriptionRequest.duration_seconds``.
    """

    modality: ClassVar[Modality] = Modality.TRANSCRIPTION

    async def transcribe(self, request: TranscriptionRequest | dict[str, Any]) -> TranscriptionResult:
        request = coerce_request(request, TranscriptionRequest)
        started = time.perf_counter()

        outcome = await self._dispatch(request)
        if outcome is None:
            return self._cancelled(TranscriptionResult, started)

        target, response = outcome
        data = response.data
        if isinstance(data, str):
            text, language, duration = data, None, None
        else:
            text = data.get("text", "")
            language = data.get("language")
            duration = data.get("duration")
        duration = duration if duration is not None else request.duration_seconds

        usage = _with_units(response.usage, duration)
        return self._result(
            TranscriptionResult,
            target.spec,
            usage,
            started,
            text=text,
            language=language or request.language,
            duration_seconds=duration,
        )


__all__ = ["ImageClient", "SpeechClient", "TranscriptionClient"]
