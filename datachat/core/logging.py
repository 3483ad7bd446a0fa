"""
Structured logging configuration.

Text output for development, JSON lines for production (LOG_FORMAT=json).
Both formats carry the request correlation id stamped by the middleware.
"""
import os
import sys
import json
import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Set per request by CorrelationIDMiddleware; copied into threadpool workers
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="system")

# LogRecord attributes that are not user supplied "extra" fields
_RESERVED_ATTRS = frozenset({
    'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
    'levelno', 'lineno', 'module', 'msecs', 'pathname', 'process',
    'processName', 'relativeCreated', 'stack_info', 'thread', 'threadName',
    'exc_info', 'exc_text', 'message', 'correlation_id', 'taskName',
})


class CorrelationIdFilter(logging.Filter):
    """Stamp records with the correlation id of the request being served."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = correlation_id_var.get()
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per log line, extras included."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
            "correlation_id": getattr(record, 'correlation_id', 'system'),
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith('_'):
                continue
            log_data[key] = value

        # Extras may hold numpy scalars or other non-JSON values
        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Readable single-line formatter for local development."""

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s %(levelname)-7s [%(correlation_id)s] %(name)s: %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, 'correlation_id'):
            record.correlation_id = 'system'
        return super().format(record)


def configure_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """
    Install a single stdout handler on the root logger.

    Args:
        level: Logging level name; defaults to LOG_LEVEL or INFO
        log_format: 'json' or 'text'; defaults to LOG_FORMAT or text
    """
    log_format = (log_format or os.getenv('LOG_FORMAT', 'text')).lower()
    level = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level, logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if log_format == 'json' else TextFormatter())
    handler.addFilter(CorrelationIdFilter())
    root_logger.addHandler(handler)

    # The groq SDK logs every HTTP round-trip through httpx
    for noisy in ('uvicorn.access', 'httpx', 'httpcore', 'groq'):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    root_logger.debug("Logging configured", extra={"log_format": log_format, "log_level": level})
