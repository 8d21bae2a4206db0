"""
Logging setup for the Floraa services.

``setup_logging`` installs one console handler and, when enabled, a rotating
file handler on the root logger. Every record passes through
``RequestContextFilter`` so formatters can print the id of the HTTP request
(set by the web middleware) and of the conversation (set by the chat
service) that produced it.
"""

import contextvars
import json
import logging
import logging.handlers
import sys
import uuid
from datetime import datetime, timezone
from typing import Optional

request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)
correlation_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("correlation_id", default=None)

CONSOLE_FORMAT = "%(asctime)s [%(short_request_id)s] %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("openai", "anthropic", "httpx", "httpcore", "chromadb", "urllib3")

# LogRecord attributes that are not user-supplied ``extra`` fields
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message", "asctime", "request_id", "correlation_id", "short_request_id",
}

_initialized = False


class RequestContextFilter(logging.Filter):
    """Copy the current request and correlation ids onto the record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        record.correlation_id = correlation_id_var.get()
        record.short_request_id = (record.request_id or "-")[:8]
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        for key in ("request_id", "correlation_id"):
            value = getattr(record, key, None)
            if value:
                entry[key] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        entry.update({
            key: value for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and key not in entry
        })
        return json.dumps(entry, default=str)


def _handler(handler: logging.Handler, level: str, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(getattr(logging, level.upper()))
    handler.setFormatter(formatter)
    handler.addFilter(RequestContextFilter())
    return handler


def setup_logging(level: Optional[int] = None, force_reinit: bool = False, settings=None) -> logging.Logger:
    """
    Configure the root logger from the ``logging`` settings section.

    Args:
        level: Root level, overriding ``logging.log_level``
        force_reinit: Replace handlers even if logging is already configured
        settings: Settings to read from (default: the global settings)
    """
    global _initialized

    root = logging.getLogger()
    if _initialized and not force_reinit:
        return root

    if settings is None:
        # Deferred: settings imports this module
        from floraa.core.settings import get_settings
        settings = get_settings()
    options = settings.logging
    structured = options.log_format in ("structured", "json")

    root.handlers.clear()
    root.setLevel(level if level is not None else getattr(logging, options.log_level.upper()))

    root.addHandler(_handler(
        logging.StreamHandler(sys.stdout),
        options.console_log_level,
        StructuredFormatter() if structured else logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"),
    ))

    if options.log_to_file:
        options.log_dir.mkdir(parents=True, exist_ok=True)
        root.addHandler(_handler(
            logging.handlers.RotatingFileHandler(
                options.log_dir / options.log_file_name,
                maxBytes=options.max_log_size_mb * 1024 * 1024,
                backupCount=options.backup_count,
            ),
            options.file_log_level,
            StructuredFormatter() if structured else logging.Formatter(FILE_FORMAT),
        ))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _initialized = True
    return root


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind a request id (a new uuid4 when none is given) to the current context."""
    request_id = request_id or str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    correlation_id = correlation_id or str(uuid.uuid4())
    correlation_id_var.set(correlation_id)
    return correlation_id


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()
