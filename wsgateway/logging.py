"""
Structured logging configuration.

This module provides console and JSON-formatted logging with support for:
- Connection ID tracking through a context variable
- Contextual fields (connection_id, path, client, etc.)
- Optional JSON error file handler
"""

import json
import logging
import sys
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

from wsgateway.constants import MAX_LOG_SIZE_BYTES

if TYPE_CHECKING:
    from wsgateway.settings import GatewaySettings

# Context variable for storing connection-specific logging context
log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})

# Attributes every LogRecord carries; anything else came in through `extra`
_RESERVED_RECORD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "exc_info",
        "exc_text",
        "stack_info",
        "taskName",
        "connection_id",
    }
)

logger = logging.getLogger("wsgateway")


def set_log_context(**kwargs: Any) -> None:
    """
    Set contextual fields for structured logging.

    Fields are attached to every log message emitted within the current
    context, e.g. for the lifetime of one connection's receive loop.

    Example:
        >>> set_log_context(connection_id="3f2a...", path="/ws")
        >>> logger.info("Message received")  # Includes connection_id and path
    """
    log_context.set({**log_context.get(), **kwargs})


def get_log_context() -> dict[str, Any]:
    """Get current log context."""
    return log_context.get()


def clear_log_context() -> None:
    """Clear the log context (useful when a connection ends)."""
    log_context.set({})


class StructuredJSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs standard fields (timestamp, level, logger, message), the
    contextual fields from `log_context`, extra record fields and exception
    information when present.
    """

    def __init__(self, environment: str = "development", **kwargs: Any):
        super().__init__(**kwargs)
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "environment": self.environment,
        }

        context = get_log_context()
        if context:
            log_data.update(context)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_ATTRS:
                log_data[key] = value

        json_str = json.dumps(log_data, default=str)
        if len(json_str) > MAX_LOG_SIZE_BYTES:
            log_data["message"] = (
                log_data["message"][: MAX_LOG_SIZE_BYTES - 1000]
                + "... [TRUNCATED]"
            )
            json_str = json.dumps(log_data, default=str)

        return json_str


class HumanReadableFormatter(logging.Formatter):
    """
    Human-readable formatter for console output (non-JSON).

    Uses different format strings based on log level for better readability
    during development.
    """

    INFO_FMT = "%(asctime)s - [%(connection_id)s] %(levelname)s: %(message)s"
    ERROR_FMT = "%(asctime)s - [%(connection_id)s] %(levelname)s: %(module)s.%(funcName)s:%(lineno)d - %(message)s"

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._formatters = {
            logging.INFO: logging.Formatter(
                self.INFO_FMT, datefmt="%Y-%m-%d %H:%M:%S"
            ),
            logging.WARNING: logging.Formatter(
                self.ERROR_FMT, datefmt="%Y-%m-%d %H:%M:%S"
            ),
            logging.ERROR: logging.Formatter(
                self.ERROR_FMT, datefmt="%Y-%m-%d %H:%M:%S"
            ),
            logging.DEBUG: logging.Formatter(
                self.ERROR_FMT, datefmt="%Y-%m-%d %H:%M:%S"
            ),
        }

    def format(self, record: logging.LogRecord) -> str:
        # Short connection id keeps console lines readable
        connection_id = get_log_context().get("connection_id", "")
        record.connection_id = connection_id[:8] if connection_id else "-"

        formatter = self._formatters.get(
            record.levelno, self._formatters[logging.INFO]
        )
        return formatter.format(record)


def setup_logging(settings: "GatewaySettings") -> logging.Logger:
    """
    Configure the gateway logger.

    Sets up:
    - Console handler, human-readable or JSON depending on `LOG_FORMAT`
    - File handler for errors (JSON format) when `LOG_FILE_PATH` is set

    Returns:
        Configured logger instance.
    """
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    logger.propagate = False

    # Clear existing handlers to avoid duplicates
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    if settings.LOG_FORMAT == "json":
        console_handler.setFormatter(
            StructuredJSONFormatter(environment=settings.ENVIRONMENT)
        )
    else:
        console_handler.setFormatter(HumanReadableFormatter())
    logger.addHandler(console_handler)

    if settings.LOG_FILE_PATH:
        try:
            file_handler = logging.FileHandler(settings.LOG_FILE_PATH)
            file_handler.setLevel(logging.ERROR)
            file_handler.setFormatter(
                StructuredJSONFormatter(environment=settings.ENVIRONMENT)
            )
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(f"Could not create file handler: {e}")

    return logger


class ExcludeMetricsFilter(logging.Filter):
    """
    Logging filter to exclude monitoring endpoint requests from access logs.

    Requests to paths like /metrics and /health will not appear in
    uvicorn's access logs.
    """

    def __init__(self, excluded_paths: list[str] | None = None):
        super().__init__()
        self.excluded_paths = excluded_paths or ["/metrics", "/health"]

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        return not any(path in message for path in self.excluded_paths)
