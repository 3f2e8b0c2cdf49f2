"""Structured logging configuration.

Provides JSON-formatted logging with correlation IDs for request tracing
and structured extra fields for alert lifecycle events. Alert ids, statuses
and severities passed as fields are rendered as plain strings, so log
lines can be filtered on them directly.
"""

import enum
import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Context variable for correlation ID - available throughout request lifecycle
correlation_id_ctx: ContextVar[str | None] = ContextVar("correlation_id", default=None)

DEFAULT_SERVICE_NAME = "fleet-alerts"

# Chatty at INFO; their warnings still come through
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "apscheduler")


def _field_value(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _record_fields(record: logging.LogRecord) -> dict[str, Any]:
    extra_fields = getattr(record, "extra_fields", None) or {}
    return {key: _field_value(value) for key, value in extra_fields.items()}


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=UTC)


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Keys: timestamp (when the record was created), level, service, message,
    logger, correlation_id when a request is in flight, the record's extra
    fields, and exception/location for errors.
    """

    def __init__(self, service_name: str = DEFAULT_SERVICE_NAME):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": _record_time(record).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "message": record.getMessage(),
            "logger": record.name,
        }

        correlation_id = correlation_id_ctx.get()
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        log_data.update(_record_fields(record))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if record.levelno >= logging.ERROR:
            log_data["location"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter for development.

    Format: timestamp - service - level - [correlation_id] - message key=value...
    """

    def __init__(self, service_name: str = DEFAULT_SERVICE_NAME):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        timestamp = _record_time(record).strftime("%Y-%m-%d %H:%M:%S")
        correlation_id = correlation_id_ctx.get() or "-"

        line = (
            f"{timestamp} - {self.service_name} - {record.levelname} - "
            f"[{correlation_id}] - {record.getMessage()}"
        )

        fields = _record_fields(record)
        if fields:
            line += " " + " ".join(f"{key}={value}" for key, value in fields.items())

        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"

        return line


def setup_logging(
    log_format: str = "json",
    log_level: str = "INFO",
    service_name: str = DEFAULT_SERVICE_NAME,
) -> None:
    """Configure structured logging for the application.

    Args:
        log_format: 'json' for structured logging, 'text' for human-readable
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        service_name: Service name to include in logs
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if log_format.lower() == "json":
        handler.setFormatter(JsonFormatter(service_name=service_name))
    else:
        handler.setFormatter(TextFormatter(service_name=service_name))
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class StructuredLogger:
    """Logger wrapper that supports structured extra fields.

    ``bind()`` returns a logger that adds the given fields to every call,
    e.g. one bound to an alert id for the duration of an evaluation.
    """

    def __init__(self, name: str, context: dict[str, Any] | None = None):
        self._logger = logging.getLogger(name)
        self._context = dict(context or {})

    def bind(self, **fields: Any) -> "StructuredLogger":
        return StructuredLogger(self._logger.name, {**self._context, **fields})

    def _log(
        self,
        level: int,
        msg: str,
        extra_fields: dict[str, Any],
        exc_info: bool = False,
    ) -> None:
        fields = {**self._context, **extra_fields}
        record_extra = {"extra_fields": fields} if fields else {}
        # stacklevel 3 attributes the record to the caller of debug() and friends
        self._logger.log(
            level, msg, extra=record_extra, exc_info=exc_info, stacklevel=3
        )

    def debug(self, msg: str, **extra_fields: Any) -> None:
        self._log(logging.DEBUG, msg, extra_fields)

    def info(self, msg: str, **extra_fields: Any) -> None:
        self._log(logging.INFO, msg, extra_fields)

    def warning(self, msg: str, **extra_fields: Any) -> None:
        self._log(logging.WARNING, msg, extra_fields)

    def error(self, msg: str, **extra_fields: Any) -> None:
        self._log(logging.ERROR, msg, extra_fields)

    def exception(self, msg: str, **extra_fields: Any) -> None:
        """Log at ERROR with the active exception's traceback."""
        self._log(logging.ERROR, msg, extra_fields, exc_info=True)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(name)
