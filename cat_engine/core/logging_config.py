"""
Logging setup for the CAT engine.

Engine modules log through ``logging.getLogger(__name__)`` under the
``cat_engine`` namespace. ``setup_logging`` routes them to stdout, as JSON
lines in production and as plain text elsewhere.
"""
import json
import logging
import logging.config
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from cat_engine.core.config import settings

# Id of the session the current engine operation works on; set by CATEngine
session_id_context: ContextVar[Optional[str]] = ContextVar("session_id", default=None)

# LogRecord attributes passed via ``extra=`` that are copied into JSON entries
STRUCTURED_FIELDS = ("assessment_id", "item_id", "event_type")

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
PLAIN_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers capped at WARNING
QUIET_LOGGERS = ("opentelemetry",)


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        session_id = session_id_context.get()
        if session_id:
            entry["session_id"] = session_id

        for name in STRUCTURED_FIELDS:
            if hasattr(record, name):
                entry[name] = getattr(record, name)

        if record.levelno >= logging.ERROR:
            entry["source"] = f"{record.pathname}:{record.lineno}"
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def _logger_entry(level: int) -> Dict[str, Any]:
    return {"level": level, "handlers": ["console"], "propagate": False}


def setup_logging() -> None:
    """
    Apply the engine logging configuration.

    Level comes from ``settings.LOG_LEVEL``. Production (``ENV=production``)
    gets JSON output with the session id of the active engine operation;
    other environments get plain text.
    """
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    formatter = "json" if settings.ENV == "production" else "plain"

    loggers = {"cat_engine": _logger_entry(level)}
    for name in QUIET_LOGGERS:
        loggers[name] = _logger_entry(logging.WARNING)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "plain": {"format": PLAIN_FORMAT, "datefmt": PLAIN_DATEFMT},
                "json": {"()": JSONFormatter},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "level": level,
                    "formatter": formatter,
                    "stream": sys.stdout,
                },
            },
            "root": {"level": level, "handlers": ["console"]},
            "loggers": loggers,
        }
    )
