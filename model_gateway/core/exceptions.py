"""Exception taxonomy for the model gateway.

All errors raised by the registry, the request builder and the execution
clients inherit from AIError. Each error carries a machine-readable ``type``
identifier and an ``extra`` dict with context, following the same shape as
RFC 7807 problem details so callers can surface them over an API unchanged.

Hierarchy:
    AIError
    ├── InvalidModelIdentifierError   malformed ``provider:model?k=v`` string
    ├── NoMatchingModelError          selection found no qualifying model
    ├── RequestValidationError        malformed request or feature options
    ├── SchemaValidationError         structured output did not match schema
    ├── ProviderError                 transient transport/rate-limit failure
    │   ├── ProviderRateLimitError
    │   ├── ProviderTimeoutError
    │   ├── ProviderConnectionError
    │   └── ProviderServerError
    ├── ProviderFatalError            hard failure reported by a provider
    │   ├── ProviderAuthenticationError
    │   └── ModelDecommissionedError
    ├── ProviderUnavailableError      hard failure surfaced to the caller
    └── RequestCancelledError         abort handle fired
"""

from __future__ import annotations

from typing import Any


class AIError(Exception):
    """Base exception for the model gateway.

    Attributes:
        detail: Human-readable error message.
        type: Error type identifier.
        extra: Additional context-specific information about the error.
        retryable: Whether a higher layer may reasonably retry the call.

    Example:
            raise AIError(
            detail="Model registry is empty",
            type="registry-empty",
            extra={"modality": "chat"},
        )
    """

    default_type = "ai-error"
    retryable = False

    def __init__(
        self,
        detail: str,
        type: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            detail: Human-readable error message.
            type: Error type identifier (defaults to the class default).
            extra: Additional context about the error.
        """
        self.detail = detail
        self.type = type or self.default_type
        self.extra = extra or {}
        super().__init__(detail)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a problem-details style dictionary."""
        return {
            "type": self.type,
            "detail": self.detail,
            "retryable": self.retryable,
            **self.extra,
        }


class InvalidModelIdentifierError(AIError):
    """Raised when a model identifier string cannot be parsed or resolved."""

    default_type = "invalid-model-identifier"

    def __init__(self, detail: str, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(detail, extra={"identifier": identifier})


class NoMatchingModelError(AIError):
    """Raised when no registered model satisfies the requirements.

    Attributes:
        requirement: Name of the requirement that could not be met
            (``provider``, ``context_length``, ``capability:tools``, ``online``...).
    """

    default_type = "no-matching-model"

    def __init__(
        self,
        detail: str,
        requirement: str,
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.requirement = requirement
        super().__init__(detail, extra={"requirement": requirement, **(extra or {})})


class RequestValidationError(AIError):
    """Raised for malformed requests, specs or feature options. Never retried."""

    default_type = "validation-error"


class SchemaValidationError(AIError):
    """Raised when a structured response does not match the requested schema.

    The offending payload is attached so the caller can repair it, e.g. by
    re-prompting the model with the validation errors.
    """

    default_type = "schema-validation-error"

    def __init__(
        self,
        detail: str,
        payload: str,
        errors: list[dict[str, Any]] | None = None,
    ) -> None:
        self.payload = payload
        self.errors = errors or []
        super().__init__(detail, extra={"errors": self.errors})


class ProviderError(AIError):
    """Transient provider failure (rate limit, timeout, transport reset).

    Retried by the availability controller and only surfaced to the caller
    once the retry budget is exhausted, at which point ``attempts`` holds the
    number of dispatch attempts made.
    """

    default_type = "provider-error"
    retryable = True

    def __init__(
        self,
        detail: str,
        provider: str | None = None,
        model: str | None = None,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        self.provider = provider
        self.model = model
        self.status_code = status_code
        self.original_error = original_error
        self.attempts = 0
        super().__init__(
            detail,
            extra={"provider": provider, "model": model, "status_code": status_code},
        )


class ProviderRateLimitError(ProviderError):
    """Rate limit exceeded."""

    default_type = "provider-rate-limited"

    def __init__(
        self,
        detail: str,
        provider: str | None = None,
        model: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(detail, provider=provider, model=model, status_code=429)
        self.retry_after = retry_after


class ProviderTimeoutError(ProviderError):
    """Request timed out."""

    default_type = "provider-timeout"


class ProviderConnectionError(ProviderError):
    """Connection could not be established or was reset."""

    default_type = "provider-connection-error"


class ProviderServerError(ProviderError):
    """Provider answered with a 5xx status.

    Transient while retries remain; escalated to a hard failure when it
    persists past the retry budget.
    """

    default_type = "provider-server-error"


class ProviderFatalError(AIError):
    """Hard failure reported by a provider dispatch function.

    Marks the model offline. Not retried against the same model.
    """

    default_type = "provider-fatal-error"

    def __init__(
        self,
        detail: str,
        provider: str | None = None,
        model: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.provider = provider
        self.model = model
        self.status_code = status_code
        super().__init__(
            detail,
            extra={"provider": provider, "model": model, "status_code": status_code},
        )


class ProviderAuthenticationError(ProviderFatalError):
    """Authentication failed (invalid or revoked API key)."""

    default_type = "provider-authentication-error"


class ModelDecommissionedError(ProviderFatalError):
    """The provider no longer serves the requested model."""

    default_type = "model-decommissioned"


class ProviderUnavailableError(AIError):
    """Hard failure surfaced to the caller.

    Raised when a model failed hard and failover is disabled, or when every
    qualifying model has been tried. The caller may switch model or provider.
    """

    default_type = "provider-unavailable"
    retryable = True

    def __init__(
        self,
        detail: str,
        model: str | None = None,
        tried: list[str] | None = None,
    ) -> None:
        self.model = model
        self.tried = tried or []
        super().__init__(detail, extra={"model": model, "tried": self.tried})


class RequestCancelledError(AIError):
    """The request's abort handle fired.

    Used internally to unwind a dispatch. Clients convert it into a result
    with ``cancelled=True`` rather than propagating it.
    """

    default_type = "cancelled"

    def __init__(self, detail: str = "Request cancelled", reason: Any = None) -> None:
        self.reason = reason
        super().__init__(detail, extra={"reason": None if reason is None else str(reason)})


__all__ = [
    "AIError",
    "InvalidModelIdentifierError",
    "ModelDecommissionedError",
    "NoMatchingModelError",
    "ProviderAuthenticationError",
    "ProviderConnectionError",
    "ProviderError",
    "ProviderFatalError",
    "ProviderRateLimitError",
    "ProviderServerError",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "RequestCancelledError",
    "RequestValidationError",
    "SchemaValidationError",
]
