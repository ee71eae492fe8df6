"""Structured logging with JSON output.

Every log line is a single JSON object so the output can be shipped to a log
aggregator as-is. Records carry a request_id field when logged while a
request is being handled, which correlates the request/response log pair
with everything the handlers log in between.
"""

import json
import logging
import sys
import traceback
from contextvars import ContextVar
from typing import Any, cast

from flask import g, has_request_context

# Context variable to store request ID per request
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

# LogRecord attributes that are part of the logging machinery, not extra fields
_RESERVED_ATTRS = frozenset(
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
    }
)


def get_request_id() -> str | None:
    """Get the current request ID from context."""
    if has_request_context() and hasattr(g, "request_id"):
        return cast(str | None, g.request_id)
    # Outside a request (scripts, stream threads) fall back to the context variable
    return request_id_var.get()


def set_request_id(request_id: str) -> None:
    """Set the request ID in context."""
    request_id_var.set(request_id)
    if has_request_context():
        g.request_id = request_id


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = get_request_id()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info),
            }

        # Fields passed via extra={...} end up as plain record attributes
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        return json.dumps(log_data, default=str)


def setup_logging() -> None:
    """Configure structured logging for the application."""
    from cybercards.config import Config

    log_level = getattr(logging, Config.LOG_LEVEL, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    # stderr, so stdout stays free for scripts that print results
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(JSONFormatter())
    root_logger.addHandler(console_handler)

    # Werkzeug logs every request line; we already log request/response pairs
    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    logging.getLogger("yoyo").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name."""
    return logging.getLogger(name)


def log_payload_snippet(
    logger: logging.Logger, payload: dict[str, Any], max_length: int = 500
) -> None:
    """Log a truncated JSON snippet of a request payload at debug level."""
    try:
        payload_str = json.dumps(payload, default=str)
    except (TypeError, ValueError):
        logger.debug("Failed to serialize payload for logging")
        return
    if len(payload_str) > max_length:
        payload_str = payload_str[:max_length] + "..."
    logger.debug("Payload snippet", extra={"payload_snippet": payload_str})
