"""Rerank execution client."""

from __future__ import annotations

import time
from typing import Any, ClassVar

from model_gateway.core.exceptions import ProviderError
from model_gateway.infra.ai.capabilities.types import Modality
from model_gateway.infra.ai.clients.base import ExecutionClient
from model_gateway.infra.ai.requests import RerankRequest, coerce_request
from model_gateway.infra.ai.responses import RerankedDocument, RerankResult


class RerankClient(ExecutionClient):
    """Execution client for reranking models.

    Dispatch functions return ``data=[{"index": int, "relevance_score": float}, ...]``
    referencing positions in ``RerankRequest.documents``. Each call counts as
    one search for per-search pricing when the provider reports no units.
    """

    modality: ClassVar[Modality] = Modality.RERANK

    async def rerank(self, request: RerankRequest | dict[str, Any]) -> RerankResult:
        """Order documents by relevance to the query, most relevant first.

        Raises:
            ProviderError: If a result references a document that was not sent
        """
        request = coerce_request(request, RerankRequest)
        started = time.perf_counter()

        outcome = await self._dispatch(request)
        if outcome is None:
            return self._cancelled(RerankResult, started)

        target, response = outcome
        results: list[RerankedDocument] = []
        for item in response.data:
            index = item.get("index") if isinstance(item, dict) else None
            if not isinstance(index, int) or not 0 <= index < len(request.documents):
                raise ProviderError(
                    f"Rerank result references document {index!r}, "
                    f"expected an index below {len(request.documents)}",
                    provider=target.provider,
                    model=target.model,
                )
            results.append(
                RerankedDocument(
                    index=index,
                    score=item.get("relevance_score", item.get("score", 0.0)),
                    document=request.documents[index],
                )
            )
        results.sort(key=lambda r: r.score, reverse=True)
        if request.top_n is not None:
            results = results[: request.top_n]

        usage = response.usage
        if usage.units is None:
            usage = usage.model_copy(update={"units": 1})
        return self._result(RerankResult, target.spec, usage, started, results=results)


__all__ = ["RerankClient"]
