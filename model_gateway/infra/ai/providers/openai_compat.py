"""OpenAI-compatible provider module.

Serves every provider exposing the OpenAI REST surface (OpenAI itself, Groq,
Mistral, DeepSeek, and rerank endpoints following the Cohere/Jina shape)
through one ``openai.AsyncOpenAI`` client per provider, pointed at the
provider's ``base_url``.

Endpoints:
    chat            chat.completions.create       (SSE when streaming)
    embedding       embeddings.create
    image           images.generate
    speech          audio.speech.create
    transcription   audio.transcriptions.create   (multipart)
    rerank          POST /rerank                  (raw request, not modelled by the SDK)

SDK retries are disabled; the availability controller owns retrying. SDK
failures are mapped onto the gateway's error taxonomy so the controller can
classify them:

    401, 403        ProviderAuthenticationError   (hard)
    404, 410        ModelDecommissionedError      (hard)
    400, 422        RequestValidationError        (permanent)
    429             ProviderRateLimitError        (transient, honors Retry-After)
    5xx             ProviderServerError           (transient, hard if persistent)
    timeout         ProviderTimeoutError          (transient)
    connection      ProviderConnectionError       (transient)
    malformed body  ProviderError                 (transient)

Example:
    provider = OpenAICompatibleProvider.from_settings(get_ai_settings())
    registry.register_provider(provider.registration())

    groq = OpenAICompatibleProvider("groq", "https://api.groq.com/openai/v1", api_key=key)
    registry.register_provider(groq.registration())
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator, Mapping
from contextlib import contextmanager
import logging
import re
from typing import TYPE_CHECKING, Any, Literal

import httpx
import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, ConfigDict, Field

from model_gateway.core.exceptions import (
    AIError,
    ModelDecommissionedError,
    ProviderAuthenticationError,
    ProviderConnectionError,
    ProviderError,
    ProviderRateLimitError,
    ProviderServerError,
    ProviderTimeoutError,
    RequestValidationError,
)
from model_gateway.infra.ai.capabilities.catalog import ModelCatalog
from model_gateway.infra.ai.capabilities.types import Modality
from model_gateway.infra.ai.providers.base import (
    ModalityBinding,
    ProviderRegistration,
    ProviderRequest,
)
from model_gateway.infra.ai.responses import ChatChunk, DispatchResponse, ToolCall, Usage

if TYPE_CHECKING:
    from model_gateway.core.settings.ai import AISettings

logger = logging.getLogger(__name__)

_REASONING_MODEL = re.compile(r"^o\d")
_SCHEMA_NAME = re.compile(r"[^A-Za-z0-9_-]")
# AsyncOpenAI refuses to start without a key; unauthenticated local servers ignore it
_NO_API_KEY = "unauthenticated"


class OpenAIFeatures(BaseModel):
    """Feature options accepted by OpenAI-compatible chat models.

    Example identifier: ``openai:o3-mini?reasoningEffort=low&websearch=true``
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    reasoning_effort: Literal["low", "medium", "high"] | None = Field(
        default=None,
        alias="reasoningEffort",
    )
    websearch: bool | None = None


# =============================================================================
# Mangle hooks (pure and idempotent)
# =============================================================================


def is_reasoning_model(model: str) -> bool:
    return bool(_REASONING_MODEL.match(model))


def mangle_chat(request: ProviderRequest, features: Mapping[str, Any]) -> None:
    """Adapt a neutral chat body to the Chat Completions API."""
    body = request.body
    body["model"] = request.model

    effort = features.get("reasoningEffort", features.get("reasoning_effort"))
    if effort is not None:
        body["reasoning_effort"] = effort
    if features.get("websearch"):
        body.setdefault("web_search_options", {})

    if is_reasoning_model(request.model) and "max_tokens" in body:
        body["max_completion_tokens"] = body.pop("max_tokens")

    schema = body.pop("response_schema", None)
    if schema is not None:
        name = _SCHEMA_NAME.sub("_", str(schema.get("title", "response")))[:64]
        body["response_format"] = {
            "type": "json_schema",
            "json_schema": {"name": name, "schema": schema},
        }

    if body.get("tools"):
        body["tools"] = [
            tool if "type" in tool else {"type": "function", "function": tool}
            for tool in body["tools"]
        ]

    if request.stream:
        body["stream"] = True
        body["stream_options"] = {"include_usage": True}
    else:
        body.pop("stream", None)
        body.pop("stream_options", None)


def mangle_embedding(request: ProviderRequest, features: Mapping[str, Any]) -> None:
    body = request.body
    body["model"] = request.model
    if "inputs" in body:
        body["input"] = body.pop("inputs")
    body.setdefault("encoding_format", "float")


def mangle_image(request: ProviderRequest, features: Mapping[str, Any]) -> None:
    request.body["model"] = request.model


def mangle_speech(request: ProviderRequest, features: Mapping[str, Any]) -> None:
    body = request.body
    body["model"] = request.model
    if "text" in body:
        body["input"] = body.pop("text")


def mangle_transcription(request: ProviderRequest, features: Mapping[str, Any]) -> None:
    body = request.body
    body["model"] = request.model
    body.pop("filename", None)
    body.pop("duration_seconds", None)
    # verbose_json reports the audio duration needed for per-minute pricing
    body.setdefault("response_format", "verbose_json")


def mangle_rerank(request: ProviderRequest, features: Mapping[str, Any]) -> None:
    request.body["model"] = request.model


_MANGLE_HOOKS = {
    Modality.CHAT: mangle_chat,
    Modality.EMBEDDING: mangle_embedding,
    Modality.IMAGE: mangle_image,
    Modality.SPEECH: mangle_speech,
    Modality.TRANSCRIPTION: mangle_transcription,
    Modality.RERANK: mangle_rerank,
}


# =============================================================================
# Response parsing
# =============================================================================


def parse_usage(data: Mapping[str, Any] | None) -> Usage | None:
    """Convert an OpenAI usage object into disjoint canonical token classes.

    OpenAI reports cached tokens as part of ``prompt_tokens`` and reasoning
    tokens as part of ``completion_tokens``; both are split out, so a model
    spec without cached or reasoning prices leaves those tokens unbilled.
    """
    if not data:
        return None
    prompt = data.get("prompt_tokens", data.get("input_tokens"))
    completion = data.get("completion_tokens", data.get("output_tokens"))
    cached = (data.get("prompt_tokens_details") or {}).get("cached_tokens")
    reasoning = (data.get("completion_tokens_details") or {}).get("reasoning_tokens")

    if prompt is not None and cached:
        prompt -= cached
    if completion is not None and reasoning:
        completion -= reasoning

    return Usage(
        input_tokens=prompt,
        cached_input_tokens=cached,
        output_tokens=completion,
        reasoning_tokens=reasoning,
    )


def _tool_calls(message: Mapping[str, Any]) -> list[ToolCall]:
    return [
        ToolCall(
            id=call.get("id"),
            name=call["function"]["name"],
            arguments=call["function"].get("arguments") or "",
        )
        for call in message.get("tool_calls") or ()
    ]


def _error_message(error: openai.APIStatusError) -> str:
    body = error.body
    if isinstance(body, Mapping) and body.get("message"):
        return str(body["message"])
    if isinstance(body, str) and body:
        return body[:500]
    return error.message


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class OpenAICompatibleProvider:
    """Provider module for OpenAI-compatible REST APIs.

    Args:
        name: Provider name used in qualified model ids
        base_url: API root, e.g. ``https://api.openai.com/v1``
        api_key: Bearer token; omitted for unauthenticated local servers
        catalog: Model specs to register; defaults to the bundled catalog
        timeout: Request timeout in seconds
        http_client: httpx.AsyncClient handed to the SDK (tests pass one with a MockTransport)
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        api_key: str | None = None,
        catalog: ModelCatalog | None = None,
        timeout: float = 120.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.catalog = catalog or ModelCatalog.builtin()
        self.timeout = timeout
        self.client = AsyncOpenAI(
            api_key=api_key or _NO_API_KEY,
            base_url=self.base_url,
            timeout=timeout,
            max_retries=0,
            http_client=http_client,
        )

    @classmethod
    def from_settings(
        cls,
        settings: AISettings,
        catalog: ModelCatalog | None = None,
    ) -> OpenAICompatibleProvider:
        """OpenAI provider configured from AISettings."""
        catalog = catalog or ModelCatalog.from_settings(settings)
        api_key = settings.openai_api_key.get_secret_value() if settings.openai_api_key else None
        return cls(
            "openai",
            settings.openai_base_url,
            api_key=api_key,
            catalog=catalog,
            timeout=settings.request_timeout,
        )

    async def aclose(self) -> None:
        await self.client.close()

    async def __aenter__(self) -> OpenAICompatibleProvider:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def registration(self) -> ProviderRegistration:
        """Bindings for every modality the catalog lists models for."""
        dispatchers = {
            Modality.CHAT: self.chat,
            Modality.EMBEDDING: self.embed,
            Modality.IMAGE: self.generate_image,
            Modality.SPEECH: self.synthesize,
            Modality.TRANSCRIPTION: self.transcribe,
            Modality.RERANK: self.rerank,
        }
        bindings: dict[Modality, ModalityBinding] = {}
        for modality, dispatch in dispatchers.items():
            specs = self.catalog.specs_for(self.name, modality)
            if not specs:
                continue
            bindings[modality] = ModalityBinding(
                specs=specs,
                dispatch=dispatch,
                mangle=_MANGLE_HOOKS[modality],
                features=OpenAIFeatures if modality == Modality.CHAT else None,
            )
        return ProviderRegistration(provider=self.name, bindings=bindings)

    # -------------------------------------------------------------------------
    # Error mapping
    # -------------------------------------------------------------------------

    @contextmanager
    def _translate_errors(self, request: ProviderRequest) -> Iterator[None]:
        try:
            yield
        except openai.APITimeoutError as e:
            raise ProviderTimeoutError(
                f"{self.name} request timed out",
                provider=self.name,
                model=request.model,
                original_error=e,
            ) from e
        except openai.APIConnectionError as e:
            raise ProviderConnectionError(
                f"{self.name} connection error: {e}",
                provider=self.name,
                model=request.model,
                original_error=e,
            ) from e
        except openai.APIStatusError as e:
            raise self._status_error(e, request) from e
        except ValueError as e:
            # Undecodable JSON body or SSE event
            raise ProviderError(
                f"{self.name} returned a malformed response: {e}",
                provider=self.name,
                model=request.model,
                original_error=e,
            ) from e

    def _status_error(self, error: openai.APIStatusError, request: ProviderRequest) -> AIError:
        status = error.status_code
        message = f"{self.name} HTTP {status}: {_error_message(error)}"
        logger.debug(
            f"{self.name} request failed",
            extra={"provider": self.name, "model": request.model, "status_code": status},
        )

        if status in (401, 403):
            return ProviderAuthenticationError(message, provider=self.name, model=request.model, status_code=status)
        if status in (404, 410):
            return ModelDecommissionedError(message, provider=self.name, model=request.model, status_code=status)
        if status in (400, 422):
            return RequestValidationError(
                message,
                extra={"provider": self.name, "model": request.model, "status_code": status},
            )
        if status == 429:
            return ProviderRateLimitError(
                message,
                provider=self.name,
                model=request.model,
                retry_after=_retry_after(error.response),
            )
        if status >= 500:
            return ProviderServerError(message, provider=self.name, model=request.model, status_code=status)
        return ProviderError(message, provider=self.name, model=request.model, status_code=status)

    # -------------------------------------------------------------------------
    # Dispatch functions
    # -------------------------------------------------------------------------

    async def chat(self, request: ProviderRequest) -> AsyncIterator[ChatChunk]:
        if request.stream:
            async for chunk in self._stream_chat(request):
                yield chunk
            return

        with self._translate_errors(request):
            completion = await self.client.chat.completions.create(**request.body)
        data = completion.to_dict()
        choice = (data.get("choices") or [{}])[0]
        message = choice.get("message") or {}
        yield ChatChunk(
            text=message.get("content") or "",
            usage=parse_usage(data.get("usage")),
            finish_reason=choice.get("finish_reason"),
            tool_calls=_tool_calls(message),
        )

    async def _stream_chat(self, request: ProviderRequest) -> AsyncIterator[ChatChunk]:
        # Tool call fragments arrive spread over many events, keyed by index
        pending_calls: dict[int, dict[str, str]] = {}

        with self._translate_errors(request):
            stream = await self.client.chat.completions.create(**request.body)
            try:
                async for event in stream:
                    data = event.to_dict()
                    usage = parse_usage(data.get("usage"))
                    choices = data.get("choices") or []
                    choice = choices[0] if choices else {}
                    delta = choice.get("delta") or {}
                    finish_reason = choice.get("finish_reason")

                    for fragment in delta.get("tool_calls") or ():
                        call = pending_calls.setdefault(
                            fragment.get("index", 0), {"id": "", "name": "", "arguments": ""}
                        )
                        function = fragment.get("function") or {}
                        call["id"] = fragment.get("id") or call["id"]
                        call["name"] += function.get("name") or ""
                        call["arguments"] += function.get("arguments") or ""

                    tool_calls: list[ToolCall] = []
                    if finish_reason and pending_calls:
                        tool_calls = [
                            ToolCall(id=c["id"] or None, name=c["name"], arguments=c["arguments"])
                            for _, c in sorted(pending_calls.items())
                        ]
                        pending_calls.clear()

                    text = delta.get("content") or ""
                    if text or usage or finish_reason or tool_calls:
                        yield ChatChunk(
                            text=text,
                            usage=usage,
                            finish_reason=finish_reason,
                            tool_calls=tool_calls,
                        )
            finally:
                await stream.close()

    async def embed(self, request: ProviderRequest) -> DispatchResponse:
        with self._translate_errors(request):
            response = await self.client.embeddings.create(**request.body)
        data = response.to_dict()
        items = sorted(data.get("data") or [], key=lambda item: item.get("index", 0))
        return DispatchResponse(
            data=[item["embedding"] for item in items],
            usage=parse_usage(data.get("usage")) or Usage(),
        )

    async def generate_image(self, request: ProviderRequest) -> DispatchResponse:
        with self._translate_errors(request):
            response = await self.client.images.generate(**request.body)
        images = response.to_dict().get("data") or []
        return DispatchResponse(data=images, usage=Usage(units=len(images)))

    async def synthesize(self, request: ProviderRequest) -> DispatchResponse:
        with self._translate_errors(request):
            response = await self.client.audio.speech.create(**request.body)
        return DispatchResponse(
            data=response.content,
            usage=Usage(units=len(request.body.get("input", ""))),
            metadata={"media_type": response.response.headers.get("content-type", "audio/mpeg")},
        )

    async def transcribe(self, request: ProviderRequest) -> DispatchResponse:
        with self._translate_errors(request):
            result = await self.client.audio.transcriptions.create(
                file=request.files["file"],
                **request.body,
            )
        data = {"text": result} if isinstance(result, str) else result.to_dict()
        duration = data.get("duration")
        return DispatchResponse(
            data=data,
            usage=Usage(units=float(duration)) if duration is not None else Usage(),
        )

    async def rerank(self, request: ProviderRequest) -> DispatchResponse:
        with self._translate_errors(request):
            response = await self.client.post("/rerank", cast_to=httpx.Response, body=request.body)
            data = response.json()
        billed = (data.get("meta") or {}).get("billed_units") or {}
        searches = billed.get("search_units")
        usage = parse_usage(data.get("usage")) or Usage()
        if searches is not None:
            usage = usage.model_copy(update={"units": float(searches)})
        return DispatchResponse(data=data.get("results") or [], usage=usage)


__all__ = [
    "OpenAICompatibleProvider",
    "OpenAIFeatures",
    "is_reasoning_model",
    "mangle_chat",
    "mangle_embedding",
    "mangle_image",
    "mangle_rerank",
    "mangle_speech",
    "mangle_transcription",
    "parse_usage",
]
