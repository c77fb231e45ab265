"""Structured Logging: JSON formatter, logging setup and the logging diagnostic sink.

Invariants:
    - All logs include timestamp, level, logger name, and message
    - Extra fields (error_code, path, profile_key, category) surfaced when present
    - Diagnostic severity maps one-to-one onto a logging level

Design Decisions:
    - JSONFormatter on stdlib logging: no extra dependency, full control
    - setup_logging is opt-in: a library never configures the root logger on import
"""

import json
import logging
from datetime import datetime, timezone

from structmap.config import get_settings
from structmap.core.diagnostics import Diagnostic
from structmap.core.errors import ErrorSeverity

_EXTRA_KEYS = ("error_code", "path", "profile_key", "category")

_SEVERITY_LEVEL = {
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
}


class JSONFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _EXTRA_KEYS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False)


def setup_logging(level: str | None = None, fmt: str | None = None) -> logging.Handler:
    """Attach one stream handler to the structmap logger and return it.

    `level` and `fmt` default to Settings.log_level / Settings.log_format.
    """
    settings = get_settings()
    level = settings.log_level if level is None else level
    fmt = settings.log_format if fmt is None else fmt
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
        ))
    root = logging.getLogger("structmap")
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    return handler


class LoggingSink:
    """DiagnosticSink that writes each diagnostic to a stdlib logger."""

    def __init__(self, logger: logging.Logger | None = None):
        self._logger = logger or logging.getLogger("structmap.diagnostics")

    def emit(self, diagnostic: Diagnostic) -> None:
        self._logger.log(
            _SEVERITY_LEVEL[diagnostic.severity],
            "%s at '%s': %s",
            diagnostic.code.value, diagnostic.path, diagnostic.message,
            extra={
                "error_code": diagnostic.code.value,
                "path": diagnostic.path,
                "profile_key": diagnostic.profile_key,
                "category": diagnostic.category.value,
            },
        )
