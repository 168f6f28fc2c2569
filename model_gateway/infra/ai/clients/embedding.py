"""Embedding execution client."""

from __future__ import annotations

import time
from typing import Any, ClassVar

from model_gateway.core.exceptions import ProviderError
from model_gateway.infra.ai.capabilities.types import Modality
from model_gateway.infra.ai.clients.base import ExecutionClient
from model_gateway.infra.ai.requests import EmbeddingRequest, coerce_request
from model_gateway.infra.ai.responses import EmbeddingResult


class EmbeddingClient(ExecutionClient):
    """Execution client for embedding models.

    Dispatch functions return ``DispatchResponse(data=[[float, ...], ...])``
    with one vector per input, in input order.
    """

    modality: ClassVar[Modality] = Modality.EMBEDDING

    async def embed(self, request: EmbeddingRequest | dict[str, Any]) -> EmbeddingResult:
        """Embed one or more texts.

        Raises:
            ProviderError: If the provider returned a different number of vectors
        """
        request = coerce_request(request, EmbeddingRequest)
        started = time.perf_counter()

        outcome = await self._dispatch(request)
        if outcome is None:
            return self._cancelled(EmbeddingResult, started)

        target, response = outcome
        embeddings = [list(vector) for vector in response.data]
        if len(embeddings) != len(request.inputs):
            raise ProviderError(
                f"Expected {len(request.inputs)} embeddings, got {len(embeddings)}",
                provider=target.provider,
                model=target.model,
            )
        return self._result(EmbeddingResult, target.spec, response.usage, started, embeddings=embeddings)


__all__ = ["EmbeddingClient"]
