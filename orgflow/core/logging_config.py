"""Structured logging configuration.

In production (ENVIRONMENT != "development"), logs are emitted as JSON lines
carrying the organization and process the current request works on.

In development, logs use a human-readable format.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone

_organization_id: ContextVar[str | None] = ContextVar("organization_id", default=None)
_process_id: ContextVar[str | None] = ContextVar("process_id", default=None)

CONTEXT_FIELDS = ("organization_id", "process_id")


def bind_request_context(*, organization_id=None, process_id=None) -> None:
    """Attach the organization and process being handled to later log records."""
    if organization_id is not None:
        _organization_id.set(str(organization_id))
    if process_id is not None:
        _process_id.set(str(process_id))


class RequestContextFilter(logging.Filter):
    """Copies the bound request context onto each record; explicit extras win."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "organization_id", None) is None:
            record.organization_id = _organization_id.get()
        if getattr(record, "process_id", None) is None:
            record.process_id = _process_id.get()
        return True


class JSONFormatter(logging.Formatter):
    """Emit each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value
        return json.dumps(log_entry, default=str)


_DEV_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(environment: str = "development", level: str = "INFO") -> None:
    """Configure root logger based on environment.

    Call once at application startup, before any log messages are emitted.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove any existing handlers (uvicorn may have added some)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter())

    if environment == "development":
        handler.setFormatter(logging.Formatter(_DEV_FORMAT, datefmt="%H:%M:%S"))
    else:
        handler.setFormatter(JSONFormatter())

    root.addHandler(handler)

    # Quiet noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("alembic").setLevel(logging.INFO)
