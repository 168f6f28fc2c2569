"""Retry / availability controller.

Wraps every dispatch with the gateway's failure policy:

- Transient failures (rate limits, timeouts, transport resets, 5xx) are
  retried against the same model with exponential backoff. Each attempt
  re-runs the whole operation, so the request is rebuilt and re-mangled.
- Hard failures (revoked key, decommissioned model, 5xx that outlasts the
  retry budget) mark the model offline. With failover enabled the next
  cheapest online model satisfying the same requirements is tried;
  otherwise ProviderUnavailableError is raised.
- Permanent failures (validation errors, schema mismatches) and
  cancellation propagate untouched.

Example:
    controller = AvailabilityController(registry.chat, RetryPolicy(max_attempts=3))

    async def attempt(entry: RegistryEntry, attempt: int) -> ChatResult:
        ...

    result = await controller.run(entry, attempt, requirements)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
import logging
import time
from typing import TYPE_CHECKING, TypeVar

import httpx

from model_gateway.core.exceptions import (
    AIError,
    NoMatchingModelError,
    ProviderError,
    ProviderFatalError,
    ProviderRateLimitError,
    ProviderServerError,
    ProviderUnavailableError,
    RequestCancelledError,
)
from model_gateway.infra.ai.capabilities.types import ModelRequirements, RegistryEntry
from model_gateway.utils.retry import RetryStatistics, RetryStrategy

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from model_gateway.infra.ai.capabilities.registry import CapabilityRegistry

logger = logging.getLogger(__name__)

R = TypeVar("R")

RETRYABLE_PATTERNS = (
    "timeout",
    "rate limit",
    "too many requests",
    "service unavailable",
    "connection",
    "temporary",
    "429",
    "503",
    "504",
)


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters for transient failures.

    Attributes:
        max_attempts: Total attempts per model, including the first
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for any single delay, in seconds
        jitter: Randomize delays to spread out synchronized retries
    """

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 30.0
    jitter: bool = True

    def to_strategy(self) -> RetryStrategy:
        return RetryStrategy(
            max_attempts=self.max_attempts,
            initial_delay=self.base_delay,
            max_delay=self.max_delay,
            jitter=self.jitter,
        )


class FailureKind(str, Enum):
    TRANSIENT = "transient"
    HARD = "hard"
    PERMANENT = "permanent"
    CANCELLED = "cancelled"


def classify_failure(error: BaseException) -> FailureKind:
    """Classify an exception raised by a dispatch attempt."""
    if isinstance(error, RequestCancelledError):
        return FailureKind.CANCELLED
    if isinstance(error, ProviderFatalError):
        return FailureKind.HARD
    if isinstance(error, ProviderError):
        return FailureKind.TRANSIENT
    if isinstance(error, AIError):
        return FailureKind.PERMANENT
    if isinstance(error, (httpx.TimeoutException, httpx.TransportError, TimeoutError, ConnectionError)):
        return FailureKind.TRANSIENT

    message = str(error).lower()
    if any(pattern in message for pattern in RETRYABLE_PATTERNS):
        return FailureKind.TRANSIENT
    return FailureKind.PERMANENT


def _as_provider_error(error: Exception, entry: RegistryEntry) -> ProviderError:
    if isinstance(error, ProviderError):
        return error
    return ProviderError(
        str(error) or type(error).__name__,
        provider=entry.spec.provider,
        model=entry.spec.model_id,
        original_error=error,
    )


class AvailabilityController:
    """Runs dispatch operations under the retry and availability policy.

    Args:
        registry: Registry owning the entries (for marking offline and failover)
        policy: Backoff parameters for transient failures
        failover: Try the next cheapest online model after a hard failure
        sleep: Awaitable sleep function, replaceable in tests
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        policy: RetryPolicy | None = None,
        *,
        failover: bool = False,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.registry = registry
        self.policy = policy or RetryPolicy()
        self.failover = failover
        self._sleep = sleep
        self._strategy = self.policy.to_strategy()

    async def run(
        self,
        entry: RegistryEntry,
        operation: Callable[[RegistryEntry, int], Awaitable[R]],
        requirements: ModelRequirements | None = None,
    ) -> R:
        """Execute ``operation(entry, attempt)`` under the availability policy.

        Args:
            entry: The model to try first
            operation: One dispatch attempt against the given entry
            requirements: Constraints the fallback model must also satisfy

        Returns:
            The operation's result from the model that served the request

        Raises:
            ProviderError: Transient failure persisted past the retry budget
            ProviderUnavailableError: Hard failure with no failover target
        """
        requirements = requirements or ModelRequirements()
        tried: list[str] = []
        current = entry

        while True:
            tried.append(current.qualified_id)
            try:
                return await self._run_with_retries(current, operation)
            except Exception as e:
                if not self._is_hard_failure(e):
                    raise
                cause = e

            self.registry.mark_offline(current.qualified_id)

            if not self.failover:
                raise ProviderUnavailableError(
                    f"Model '{current.qualified_id}' is unavailable: {cause}",
                    model=current.qualified_id,
                    tried=tried,
                ) from cause

            try:
                fallback = self.registry.select_cheapest(requirements.excluding(*tried))
            except NoMatchingModelError as e:
                raise ProviderUnavailableError(
                    f"No fallback model available after '{current.qualified_id}' failed "
                    f"(unmet requirement: {e.requirement})",
                    model=current.qualified_id,
                    tried=tried,
                ) from cause

            logger.warning(
                f"Failing over from {current.qualified_id} to {fallback.qualified_id}",
                extra={
                    "model": current.qualified_id,
                    "fallback_model": fallback.qualified_id,
                    "error": str(cause),
                    "tried": list(tried),
                },
            )
            current = self.registry.get_entry(fallback.qualified_id)

    def _is_hard_failure(self, error: Exception) -> bool:
        if classify_failure(error) is FailureKind.HARD:
            return True
        # 5xx that outlasted the retry budget
        return isinstance(error, ProviderServerError) and error.attempts >= self.policy.max_attempts

    async def _run_with_retries(
        self,
        entry: RegistryEntry,
        operation: Callable[[RegistryEntry, int], Awaitable[R]],
    ) -> R:
        statistics = RetryStatistics(start_time=time.monotonic())
        attempt = 0

        while True:
            try:
                result = await operation(entry, attempt)
            except Exception as e:
                if classify_failure(e) is not FailureKind.TRANSIENT:
                    raise

                statistics.exceptions.append(type(e).__name__)
                if not self._strategy.has_attempts_left(attempt + 1):
                    statistics.attempts = attempt + 1
                    statistics.end_time = time.monotonic()
                    error = _as_provider_error(e, entry)
                    error.attempts = attempt + 1
                    logger.error(
                        f"All retry attempts exhausted for {entry.qualified_id}",
                        extra={
                            "model": entry.qualified_id,
                            "last_exception": str(e),
                            **statistics.to_log_extra(),
                        },
                    )
                    if error is e:
                        raise
                    raise error from e

                retry_after = e.retry_after if isinstance(e, ProviderRateLimitError) else None
                delay = self._strategy.calculate_delay(attempt, retry_after=retry_after)
                statistics.total_delay += delay
                logger.warning(
                    f"Retrying {entry.qualified_id} after {delay:.2f}s "
                    f"(attempt {attempt + 1}/{self.policy.max_attempts})",
                    extra={
                        "model": entry.qualified_id,
                        "attempt": attempt + 1,
                        "max_attempts": self.policy.max_attempts,
                        "delay": delay,
                        "exception": str(e),
                    },
                )
                await self._sleep(delay)
                attempt += 1
                continue

            if attempt > 0:
                statistics.attempts = attempt + 1
                statistics.end_time = time.monotonic()
                logger.info(
                    f"{entry.qualified_id} succeeded after {attempt + 1} attempts",
                    extra={"model": entry.qualified_id, **statistics.to_log_extra()},
                )
            return result


__all__ = [
    "AvailabilityController",
    "FailureKind",
    "RETRYABLE_PATTERNS",
    "RetryPolicy",
    "classify_failure",
]
