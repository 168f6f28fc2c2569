"""Logging infrastructure.

Structured logging with JSONL output, contextvars-based context injection and
OpenTelemetry trace correlation.

Basic usage:
    from model_gateway.infra.logging import set_log_context, setup_logging
    import logging

    setup_logging()
    logger = logging.getLogger(__name__)

    set_log_context(request_id="abc-123")
    logger.info("Selecting model")  # Includes request_id
"""

from model_gateway.infra.logging.config import configure_logging, setup_logging, shutdown
from model_gateway.infra.logging.context import (
    ContextInjectingFilter,
    clear_log_context,
    get_log_context,
    remove_from_log_context,
    set_log_context,
)
from model_gateway.infra.logging.formatters import JSONFormatter

__all__ = [
    "ContextInjectingFilter",
    "JSONFormatter",
    "clear_log_context",
    "configure_logging",
    "get_log_context",
    "remove_from_log_context",
    "set_log_context",
    "setup_logging",
    "shutdown",
]
