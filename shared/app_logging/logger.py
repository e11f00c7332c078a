"""
Logging setup shared by the NewsDesk API, scheduler and CLI.

One handler is installed on the ``newsdesk`` logger; component loggers
(``newsdesk.crud``, ``newsdesk.generator.loop``...) propagate to it. Every
record carries the service name and the correlation id of the current
generation run or HTTP request.
"""

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from shared.config.settings import get_settings

NO_CORRELATION_ID = "-"

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Attributes every LogRecord has; anything else came in through ``extra=``.
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "taskName",
    "correlation_id",
    "service_name",
}


class ContextFilter(logging.Filter):
    """Stamps ``service_name`` and ``correlation_id`` onto each record."""

    def __init__(self, service_name: str, with_correlation_id: bool = True):
        super().__init__()
        self.service_name = service_name
        self.with_correlation_id = with_correlation_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = self.service_name
        if self.with_correlation_id:
            record.correlation_id = correlation_id_var.get() or NO_CORRELATION_ID
        else:
            record.correlation_id = NO_CORRELATION_ID
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service_name", None),
            "correlation_id": getattr(record, "correlation_id", NO_CORRELATION_ID),
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update({k: v for k, v in vars(record).items() if k not in _STANDARD_ATTRS})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class StructuredFormatter(logging.Formatter):
    """``[time] [LEVEL] [service] [correlation] logger: message``"""

    def __init__(self):
        super().__init__(
            fmt="[%(asctime)s.%(msecs)03d] [%(levelname)s] [%(service_name)s] "
            "[%(correlation_id)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        record.__dict__.setdefault("service_name", "newsdesk")
        record.__dict__.setdefault("correlation_id", NO_CORRELATION_ID)
        return super().format(record)


def setup_logging(
    service_name: str,
    log_level: Optional[str] = None,
    json_logs: Optional[bool] = None,
    include_correlation_id: Optional[bool] = None,
) -> logging.Logger:
    """
    Configure the service logger and return it.

    Calling this again replaces the previous handler, so the CLI and the API
    can both call it in one process.

    Args:
        service_name: Logger name and the ``service`` field of each record
        log_level: Overrides ``LOG_LEVEL``
        json_logs: Overrides ``JSON_LOGS``
        include_correlation_id: Overrides ``LOG_INCLUDE_CORRELATION_ID``
    """
    config = get_settings().logging
    level = logging.getLevelName((log_level or config.level).upper())
    if json_logs is None:
        json_logs = config.json_logs
    if include_correlation_id is None:
        include_correlation_id = config.include_correlation_id

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if json_logs else StructuredFormatter())
    handler.addFilter(ContextFilter(service_name, include_correlation_id))

    logger = logging.getLogger(service_name)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_correlation_id(correlation_id: Optional[str]) -> None:
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()


def generate_correlation_id() -> str:
    return uuid.uuid4().hex[:12]


def log_error_with_context(logger: logging.Logger, error: Exception, context: Dict[str, Any]) -> None:
    """Log ``error`` with its traceback and the given context fields."""
    logger.error(
        f"{type(error).__name__}: {error}",
        extra={"error_type": type(error).__name__, "context": context},
        exc_info=error,
    )


class CorrelationContext:
    """Run a block under a correlation id (a fresh one unless given)."""

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id or generate_correlation_id()
        self._token = None

    def __enter__(self) -> str:
        self._token = correlation_id_var.set(self.correlation_id)
        return self.correlation_id

    def __exit__(self, exc_type, exc_val, exc_tb):
        correlation_id_var.reset(self._token)
        return False
