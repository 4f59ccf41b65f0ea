"""
Logging setup for TeamFlow.

Every record emitted while a request is being served is stamped with the
request id and the calling user (``RequestContextFilter``), so a service log
line such as "Approval 42 approved" can be joined to its HTTP request.

Formats:
    json      one object per line, for log shipping (default in production)
    readable  coloured single line, for a terminal (default elsewhere)
"""

import json
import logging
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Keys services and middleware pass via ``extra={...}`` that belong in JSON output.
CONTEXT_FIELDS = (
    "request_id",
    "actor_id",
    "team_id",
    "entity_type",
    "entity_id",
    "method",
    "path",
    "status",
    "duration_ms",
)


class RequestContextFilter(logging.Filter):
    """Fill request_id / actor_id from ``flask.g`` unless the caller set them."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            for key in ("request_id", "actor_id"):
                if getattr(record, key, None) is None:
                    setattr(record, key, getattr(g, key, None))
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update(
            (key, getattr(record, key))
            for key in CONTEXT_FIELDS
            if getattr(record, key, None) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tags = " ".join(
            f"{key}={getattr(record, key)}"
            for key in ("request_id", "actor_id", "team_id")
            if getattr(record, key, None)
        )
        line = f"{color}{ts} {record.levelname:<7}{self.RESET} {record.name}: {record.getMessage()}"
        if tags:
            line += f"  [{tags}]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install one stderr handler on the root logger, shaped by app config."""
    is_prod = not app.debug and not app.testing

    level_name = (app.config.get("LOG_LEVEL") or ("DEBUG" if app.debug else "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    fmt = app.config.get("LOG_FORMAT") or ("json" if is_prod else "readable")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else ReadableFormatter())
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    root.handlers.clear()  # create_app runs once per test session and per worker
    root.addHandler(handler)
    root.setLevel(level)
    for name in ("werkzeug", "sqlalchemy.engine"):
        logging.getLogger(name).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not app.testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, fmt)
