"""Unit tests for the retry / availability controller."""

from __future__ import annotations

import httpx
import pytest

from model_gateway.core.exceptions import (
    ModelDecommissionedError,
    ProviderAuthenticationError,
    ProviderError,
    ProviderRateLimitError,
    ProviderServerError,
    ProviderUnavailableError,
    RequestCancelledError,
    RequestValidationError,
    SchemaValidationError,
)
from model_gateway.infra.ai.availability import (
    AvailabilityController,
    FailureKind,
    RetryPolicy,
    classify_failure,
)
from model_gateway.infra.ai.capabilities.types import ModelRequirements

# ──────────────────────────────────────────────────────────────
# Fixtures
# ──────────────────────────────────────────────────────────────


@pytest.fixture
def entry(acme_registry):
    return acme_registry.chat.get_entry("acme:acme-mini")


@pytest.fixture
def failover_controller(acme_registry, sleeper):
    """Controller that fails over to the next cheapest model."""
    return AvailabilityController(
        acme_registry.chat,
        RetryPolicy(max_attempts=3, base_delay=0.5, jitter=False),
        failover=True,
        sleep=sleeper,
    )


def scripted(*outcomes):
    """Operation returning/raising outcomes in order and recording its calls."""
    calls = []
    remaining = list(outcomes)

    async def operation(entry, attempt):
        calls.append((entry.qualified_id, attempt))
        outcome = remaining.pop(0) if remaining else "ok"
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    return operation, calls


@pytest.mark.unit
class TestClassifyFailure:
    """Tests for classify_failure."""

    @pytest.mark.parametrize(
        ("error", "kind"),
        [
            (ProviderRateLimitError("slow down"), FailureKind.TRANSIENT),
            (ProviderServerError("boom", status_code=502), FailureKind.TRANSIENT),
            (ProviderAuthenticationError("bad key"), FailureKind.HARD),
            (ModelDecommissionedError("gone"), FailureKind.HARD),
            (RequestValidationError("bad"), FailureKind.PERMANENT),
            (SchemaValidationError("bad", payload="{}"), FailureKind.PERMANENT),
            (RequestCancelledError(), FailureKind.CANCELLED),
            (httpx.ReadTimeout("read timed out"), FailureKind.TRANSIENT),
            (httpx.ConnectError("refused"), FailureKind.TRANSIENT),
            (TimeoutError(), FailureKind.TRANSIENT),
            (RuntimeError("upstream returned 503"), FailureKind.TRANSIENT),
            (ValueError("unexpected token"), FailureKind.PERMANENT),
        ],
    )
    def test_classification(self, error, kind):
        assert classify_failure(error) is kind


@pytest.mark.unit
class TestRetries:
    """Tests for transient-failure retries against one model."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self, controller, entry):
        operation, calls = scripted("done")

        assert await controller.run(entry, operation) == "done"
        assert calls == [("acme:acme-mini", 0)]

    @pytest.mark.asyncio
    async def test_two_failures_then_success(self, controller, entry, sleeper):
        """Two transient failures then success make exactly three attempts."""
        operation, calls = scripted(
            ProviderRateLimitError("429"),
            ProviderRateLimitError("429"),
            "done",
        )

        result = await controller.run(entry, operation)

        assert result == "done"
        assert [attempt for _, attempt in calls] == [0, 1, 2]
        assert sleeper.delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_exhaustion_raises_provider_error(self, controller, entry):
        """Persistent transient failures surface after max_attempts."""
        operation, calls = scripted(*[ProviderRateLimitError("429") for _ in range(4)])

        with pytest.raises(ProviderError) as exc_info:
            await controller.run(entry, operation)

        assert len(calls) == 3
        assert exc_info.value.attempts == 3
        assert entry.online is True

    @pytest.mark.asyncio
    async def test_generic_transient_wrapped(self, controller, entry):
        operation, calls = scripted(*[ConnectionError("connection reset") for _ in range(3)])

        with pytest.raises(ProviderError) as exc_info:
            await controller.run(entry, operation)

        assert len(calls) == 3
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.original_error, ConnectionError)

    @pytest.mark.asyncio
    async def test_retry_after_honored(self, controller, entry, sleeper):
        operation, _ = scripted(ProviderRateLimitError("429", retry_after=7.0), "done")

        await controller.run(entry, operation)

        assert sleeper.delays == [7.0]

    @pytest.mark.asyncio
    async def test_permanent_not_retried(self, controller, entry):
        operation, calls = scripted(RequestValidationError("bad request"))

        with pytest.raises(RequestValidationError):
            await controller.run(entry, operation)

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_cancellation_not_retried(self, controller, entry):
        operation, calls = scripted(RequestCancelledError(reason="user"))

        with pytest.raises(RequestCancelledError):
            await controller.run(entry, operation)

        assert len(calls) == 1


@pytest.mark.unit
class TestHardFailures:
    """Tests for offline marking and failover."""

    @pytest.mark.asyncio
    async def test_hard_failure_marks_offline(self, controller, entry, acme_registry):
        operation, calls = scripted(ProviderAuthenticationError("revoked", status_code=401))

        with pytest.raises(ProviderUnavailableError) as exc_info:
            await controller.run(entry, operation)

        assert len(calls) == 1
        assert exc_info.value.tried == ["acme:acme-mini"]
        assert isinstance(exc_info.value.__cause__, ProviderAuthenticationError)
        assert acme_registry.chat.is_online("acme:acme-mini") is False
        assert acme_registry.chat.select_cheapest().model_id == "acme-mid"

    @pytest.mark.asyncio
    async def test_persistent_server_error_escalates(self, controller, entry):
        """A 5xx that outlasts the retry budget counts as a hard failure."""
        operation, calls = scripted(*[ProviderServerError("502", status_code=502) for _ in range(3)])

        with pytest.raises(ProviderUnavailableError):
            await controller.run(entry, operation)

        assert len(calls) == 3
        assert entry.online is False

    @pytest.mark.asyncio
    async def test_failover_to_next_cheapest(self, failover_controller, entry, acme_registry):
        operation, calls = scripted(ModelDecommissionedError("gone", status_code=404), "from mid")

        result = await failover_controller.run(entry, operation)

        assert result == "from mid"
        assert calls == [("acme:acme-mini", 0), ("acme:acme-mid", 0)]
        assert acme_registry.chat.is_online("acme:acme-mini") is False

    @pytest.mark.asyncio
    async def test_failover_respects_requirements(self, failover_controller, entry):
        operation, calls = scripted(ProviderAuthenticationError("revoked"), "from max")

        await failover_controller.run(entry, operation, ModelRequirements(context_length=100_000))

        assert calls[-1] == ("acme:acme-max", 0)

    @pytest.mark.asyncio
    async def test_failover_exhausted(self, failover_controller, entry):
        operation, calls = scripted(*[ProviderAuthenticationError("revoked") for _ in range(3)])

        with pytest.raises(ProviderUnavailableError) as exc_info:
            await failover_controller.run(entry, operation)

        assert [model for model, _ in calls] == ["acme:acme-mini", "acme:acme-mid", "acme:acme-max"]
        assert exc_info.value.tried == ["acme:acme-mini", "acme:acme-mid", "acme:acme-max"]
