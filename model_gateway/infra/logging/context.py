"""Context management for structured logging.

Provides automatic context injection into log records using contextvars, so
identifiers such as the model being dispatched or a caller's request id are
included in every log message without explicit passing. Each asyncio task
gets its own copy of the context.
"""

from __future__ import annotations

from contextvars import ContextVar
import logging
from typing import Any

_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})


def set_log_context(**kwargs: Any) -> None:
    """Set logging context for the current async task/thread.

    Example:
        ```python
        set_log_context(request_id="abc-123", model="openai:gpt-4o-mini")
        logger.info("Dispatching request")  # Includes request_id and model
        ```
    """
    current = _log_context.get().copy()
    current.update(kwargs)
    _log_context.set(current)


def get_log_context() -> dict[str, Any]:
    """Get a copy of the current logging context."""
    return _log_context.get().copy()


def clear_log_context() -> None:
    """Clear all logging context for the current async task/thread."""
    _log_context.set({})


def remove_from_log_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    current = _log_context.get().copy()
    for key in keys:
        current.pop(key, None)
    _log_context.set(current)


class ContextInjectingFilter(logging.Filter):
    """Logging filter that injects the contextvars log context into records.

    Existing record attributes (including ``extra=`` fields) win over
    context values.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _log_context.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True
