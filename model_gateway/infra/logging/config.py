"""Logging configuration setup.

Provides logging configuration using:
- dictConfig for formatters, filters and handlers
- QueueHandler + QueueListener for non-blocking I/O from the event loop
- ContextInjectingFilter for automatic context propagation
- JSONL format for machine parsing
"""

from __future__ import annotations

import atexit
import logging
import logging.config
from logging.handlers import QueueHandler, QueueListener
from pathlib import Path
from queue import Queue
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from model_gateway.core.settings.logs import LoggingSettings

_log_queue: Queue[logging.LogRecord] | None = None
_listener: QueueListener | None = None
_LOGGING_INITIALIZED = False

logger = logging.getLogger(__name__)


def shutdown() -> None:
    """Stop the QueueListener and flush pending records."""
    global _log_queue, _listener

    if _listener is not None:
        _listener.stop()
        _listener = None
    _log_queue = None


def setup_logging(
    log_settings: LoggingSettings | None = None,
    *,
    force: bool = False,
    **configure_kwargs: Any,
) -> None:
    """Ensure logging is configured once across entrypoints.

    Args:
        log_settings: Optional logging settings instance. If omitted, settings
            are loaded via get_logging_settings().
        force: Reconfigure logging even if it was already initialized.
        **configure_kwargs: Explicit overrides for configure_logging().
    """
    global _LOGGING_INITIALIZED

    if _LOGGING_INITIALIZED and not force:
        return

    settings_obj = log_settings
    if settings_obj is None:
        from model_gateway.core.settings import get_logging_settings

        settings_obj = get_logging_settings()

    log_config = {**settings_obj.to_logging_kwargs(), **configure_kwargs}
    configure_logging(**log_config)
    _LOGGING_INITIALIZED = True


def configure_logging(
    log_level: str = "INFO",
    console_level: str | None = None,
    file_path: str | Path | None = None,
    json_logs: bool = True,
    console_enabled: bool = True,
    include_context: bool = True,
    service_name: str = "model-gateway",
    file_max_bytes: int = 10 * 1024 * 1024,
    file_backup_count: int = 5,
    **kwargs: Any,
) -> None:
    """Configure logging with dictConfig and the QueueHandler pattern.

    All output handlers are attached to a QueueListener; the root logger gets
    a single QueueHandler so logging calls made from coroutines never block
    on I/O.

    Args:
        log_level: Root logger level.
        console_level: Console handler level. If None, uses log_level.
        file_path: Path to log file. None disables file logging.
        json_logs: Enable JSONL structured logging.
        console_enabled: Enable console/stderr logging.
        include_context: Attach ContextInjectingFilter.
        service_name: Static ``service`` field in JSON output.
        file_max_bytes: Maximum log file size before rotation.
        file_backup_count: Number of rotated log files to keep.
        **kwargs: Ignored extra settings.

    Example:
        from model_gateway.core.settings import get_logging_settings
        configure_logging(**get_logging_settings().to_logging_kwargs())
    """
    global _log_queue, _listener

    if kwargs:
        logger.debug("Unused logging kwargs supplied: %s", ", ".join(sorted(kwargs)))

    shutdown()

    path = Path(file_path) if file_path else None
    if path:
        path.parent.mkdir(parents=True, exist_ok=True)

    formatter_name = "json" if json_logs else "text"
    handlers: dict[str, Any] = {}
    if console_enabled:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "level": (console_level or log_level).upper(),
            "formatter": formatter_name,
            "stream": "ext://sys.stderr",
        }
    if path:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level.upper(),
            "formatter": "json",
            "filename": str(path),
            "maxBytes": file_max_bytes,
            "backupCount": file_backup_count,
            "encoding": "utf-8",
        }

    logging_config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "model_gateway.infra.logging.formatters.JSONFormatter",
                "static": {"service": service_name},
            },
            "text": {
                "format": "%(asctime)s - %(levelname)s - %(name)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "filters": {
            "context": {"()": "model_gateway.infra.logging.context.ContextInjectingFilter"},
        },
        "handlers": handlers,
        "root": {"level": log_level.upper(), "handlers": []},
    }
    logging.config.dictConfig(logging_config)

    # dictConfig instantiated the handlers; move them behind a queue
    root = logging.getLogger()
    output_handlers = [logging.getHandlerByName(name) for name in handlers]

    _log_queue = Queue(-1)
    queue_handler = QueueHandler(_log_queue)
    if include_context:
        from model_gateway.infra.logging.context import ContextInjectingFilter

        # Filters on handlers run for propagated records; logger filters do not
        queue_handler.addFilter(ContextInjectingFilter())
    root.addHandler(queue_handler)

    _listener = QueueListener(
        _log_queue,
        *[h for h in output_handlers if h is not None],
        respect_handler_level=True,
    )
    _listener.start()


atexit.register(shutdown)
