"""Tests for core exceptions."""

from model_gateway.core import exceptions as exc


def test_ai_error_defaults_type() -> None:
    error = exc.AIError(detail="bad")
    assert error.type == "ai-error"
    assert error.extra == {}
    assert error.retryable is False
    assert str(error) == "bad"


def test_to_dict_merges_extra() -> None:
    error = exc.NoMatchingModelError("No chat model with tools", requirement="capability:tools")
    assert error.to_dict() == {
        "type": "no-matching-model",
        "detail": "No chat model with tools",
        "retryable": False,
        "requirement": "capability:tools",
    }


def test_provider_error_is_retryable() -> None:
    error = exc.ProviderServerError("boom", provider="openai", model="gpt-4o", status_code=502)
    assert error.retryable is True
    assert error.attempts == 0
    assert error.extra == {"provider": "openai", "model": "gpt-4o", "status_code": 502}


def test_rate_limit_carries_retry_after() -> None:
    error = exc.ProviderRateLimitError("slow down", retry_after=30.0)
    assert error.status_code == 429
    assert error.retry_after == 30.0
    assert isinstance(error, exc.ProviderError)


def test_fatal_errors_are_not_provider_errors() -> None:
    error = exc.ProviderAuthenticationError("revoked", provider="openai", status_code=401)
    assert isinstance(error, exc.ProviderFatalError)
    assert not isinstance(error, exc.ProviderError)
    assert error.type == "provider-authentication-error"


def test_schema_validation_keeps_payload() -> None:
    error = exc.SchemaValidationError("invalid", payload='{"x": 1}', errors=[{"loc": ["y"]}])
    assert error.payload == '{"x": 1}'
    assert error.extra["errors"] == [{"loc": ["y"]}]


def test_unavailable_lists_tried_models() -> None:
    error = exc.ProviderUnavailableError("all down", model="acme:a", tried=["acme:a", "acme:b"])
    assert error.extra["tried"] == ["acme:a", "acme:b"]


def test_cancelled_reason_stringified() -> None:
    error = exc.RequestCancelledError(reason=TimeoutError("deadline"))
    assert error.extra["reason"] == "deadline"
    assert exc.RequestCancelledError().extra["reason"] is None
