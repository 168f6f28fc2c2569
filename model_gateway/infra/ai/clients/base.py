"""Execution client base class.

An execution client is bound to one registered model and turns
provider-neutral requests into normalized results. The base class owns the
parts every modality shares:

- Feature options (identifier-parsed layer + caller layer)
- The abort check before dispatch and the abort race while waiting
- Building the provider request through the RequestBuilder on every attempt
- Running attempts under the AvailabilityController
- Cost and timing of the terminal result

Subclasses only describe how a modality's response becomes its result.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
import logging
import time
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar

from model_gateway.core.exceptions import RequestCancelledError
from model_gateway.infra.ai.builder import ConversationState, RequestBuilder
from model_gateway.infra.ai.capabilities.types import Modality, ModelRequirements, RegistryEntry
from model_gateway.infra.ai.costs import calculate_cost, calculate_timing
from model_gateway.infra.ai.features import FeatureSet, filter_features, validate_features
from model_gateway.infra.ai.providers.base import passthrough_mangle
from model_gateway.infra.ai.responses import AIResponseCost, AIResult, DispatchResponse, Usage

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from pydantic import BaseModel

    from model_gateway.infra.ai.availability import AvailabilityController
    from model_gateway.infra.ai.capabilities.registry import CapabilityRegistry
    from model_gateway.infra.ai.capabilities.types import ModelSpec
    from model_gateway.infra.ai.providers.base import MangleHook, ProviderRequest
    from model_gateway.infra.ai.requests import AbortSignal, AIRequest

logger = logging.getLogger(__name__)

R = TypeVar("R")
ResultT = TypeVar("ResultT", bound=AIResult)


async def race_abort(awaitable: Awaitable[R], abort: AbortSignal | None) -> R:
    """Await ``awaitable`` unless the abort signal fires first.

    The pending awaitable is cancelled when the signal wins.

    Raises:
        RequestCancelledError: If the signal fired first
    """
    if abort is None:
        return await awaitable
    if abort.aborted:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise RequestCancelledError(reason=abort.reason)

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(abort.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
            # Let the cancellation land so the awaited generator is not left running
            await asyncio.wait({task})

    if task.done() and not task.cancelled():
        return task.result()
    raise RequestCancelledError(reason=abort.reason)


class ExecutionClient:
    """Client bound to one model of one modality.

    Instances are created by ``CapabilityRegistry.create_client`` through the
    factory registered with the model; the provider's dispatch function,
    mangle hook and feature schema are bound into that factory.

    Args:
        entry: Registry entry of the model this client talks to
        registry: Registry the entry belongs to
        dispatch: Provider dispatch function for this modality
        mangle: Provider mangle hook
        feature_schema: Pydantic model validating feature options
        features: Identifier-parsed feature options
        requirements: Constraints any failover target must satisfy
        controller: Availability controller; defaults to the registry's
        builder: Request builder; defaults to a new RequestBuilder

    Request methods accept a request model or a plain dict. A dict that fails
    validation raises RequestValidationError; a request model validates when
    it is constructed, so building one from bad values raises pydantic's
    ValidationError in the caller before the client is involved.
    """

    modality: ClassVar[Modality]

    def __init__(
        self,
        entry: RegistryEntry,
        *,
        registry: CapabilityRegistry,
        dispatch: Callable[[ProviderRequest], Any],
        mangle: MangleHook = passthrough_mangle,
        feature_schema: type[BaseModel] | None = None,
        features: Mapping[str, Any] | None = None,
        requirements: ModelRequirements | None = None,
        controller: AvailabilityController | None = None,
        builder: RequestBuilder | None = None,
    ) -> None:
        self.entry = entry
        self.registry = registry
        self.dispatch = dispatch
        self.mangle = mangle
        self.feature_schema = feature_schema
        self.requirements = requirements or ModelRequirements()
        self.controller = controller or registry.controller
        self.builder = builder or RequestBuilder()
        self._features = FeatureSet(features, feature_schema, provider=entry.spec.provider)

    @property
    def spec(self) -> ModelSpec:
        return self.entry.spec

    @property
    def model(self) -> str:
        return self.entry.spec.model_id

    @property
    def provider(self) -> str:
        return self.entry.spec.provider

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.entry.qualified_id!r})"

    # -------------------------------------------------------------------------
    # Features
    # -------------------------------------------------------------------------

    def set_features(self, options: Mapping[str, Any]) -> None:
        """Merge feature options over the current ones.

        Caller-set options take precedence over options parsed from the model
        identifier. Takes effect from the next request.

        Raises:
            RequestValidationError: If the provider's feature schema rejects them
        """
        self._features.set(options)

    def get_features(self) -> dict[str, Any]:
        """Return the feature options the next request will use."""
        return self._features.effective()

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _client_for(self, entry: RegistryEntry) -> ExecutionClient:
        """Client used for an attempt against ``entry`` (self, or a failover target)."""
        if entry is self.entry:
            return self
        return entry.factory(
            entry,
            registry=self.registry,
            requirements=self.requirements,
            controller=self.controller,
            builder=self.builder,
        )

    def _features_for(self, target: ExecutionClient, snapshot: Mapping[str, Any]) -> Mapping[str, Any]:
        if target is self:
            return snapshot
        options = filter_features(snapshot, target.feature_schema)
        return validate_features(options, target.feature_schema, provider=target.provider)

    async def _execute(
        self,
        request: AIRequest,
        send: Callable[[ExecutionClient, ProviderRequest], Awaitable[R]],
        conversation: ConversationState | None = None,
        *,
        stream: bool = False,
    ) -> R:
        """Run ``send`` for a freshly built provider request on every attempt.

        Raises:
            RequestCancelledError: If the request's abort signal fires
        """
        snapshot = self._features.snapshot()
        abort = request.abort

        async def operation(entry: RegistryEntry, attempt: int) -> R:
            if abort.aborted:
                raise RequestCancelledError(reason=abort.reason)
            target = self._client_for(entry)
            provider_request = target.builder.build(
                request,
                conversation,
                self._features_for(target, snapshot),
                spec=target.spec,
                mangle=target.mangle,
                stream=stream,
            )
            logger.debug(
                f"Dispatching {target.modality.value} request to {entry.qualified_id}",
                extra={"model": entry.qualified_id, "attempt": attempt + 1},
            )
            return await send(target, provider_request)

        return await self.controller.run(self.entry, operation, self.requirements)

    async def _dispatch(
        self,
        request: AIRequest,
    ) -> tuple[ExecutionClient, DispatchResponse] | None:
        """Dispatch a non-chat request; None when it was cancelled."""

        async def send(
            target: ExecutionClient, provider_request: ProviderRequest
        ) -> tuple[ExecutionClient, DispatchResponse]:
            response = await race_abort(target.dispatch(provider_request), provider_request.abort)
            return target, response

        try:
            return await self._execute(request, send)
        except RequestCancelledError as e:
            logger.info(
                "Request cancelled",
                extra={"model": self.entry.qualified_id, "reason": str(e.reason)},
            )
            return None

    # -------------------------------------------------------------------------
    # Results
    # -------------------------------------------------------------------------

    @staticmethod
    def _result(
        result_cls: type[ResultT],
        spec: ModelSpec,
        usage: Usage,
        started: float,
        **payload: Any,
    ) -> ResultT:
        elapsed_ms = (time.perf_counter() - started) * 1000
        return result_cls(
            model=spec.model_id,
            provider=spec.provider,
            usage=usage,
            cost=calculate_cost(usage, spec),
            timing=calculate_timing(elapsed_ms, usage),
            **payload,
        )

    def _cancelled(self, result_cls: type[ResultT], started: float, **payload: Any) -> ResultT:
        elapsed_ms = (time.perf_counter() - started) * 1000
        return result_cls(
            model=self.model,
            provider=self.provider,
            usage=Usage(),
            cost=AIResponseCost(),
            timing=calculate_timing(elapsed_ms, None),
            cancelled=True,
            **payload,
        )


__all__ = ["ExecutionClient", "race_abort"]
