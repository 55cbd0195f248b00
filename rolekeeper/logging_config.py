"""
Logging for the authorization engine.

Two context vars travel with each request: the correlation id (set by
RequestIdMiddleware) and the acting principal (set once the bearer token is
resolved). Both are stamped onto every log record; the request id is also
stored in the context of each audit record.

Audit writes that fail go to their own logger, AUDIT_FAILURE_LOGGER, which
stays at WARNING or louder whatever the configured level.

Usage:
    from rolekeeper.logging_config import get_logger
    logger = get_logger(__name__)
    logger.info("Role granted", extra={"principal_id": str(pid), "role_tag": tag})
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
actor_id_var: ContextVar[Optional[str]] = ContextVar("actor_id", default=None)

AUDIT_FAILURE_LOGGER = "rolekeeper.audit.failures"

# LogRecord attributes that are not user-supplied extra= fields
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "request_id",
    "actor_id",
}


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def get_actor_id() -> Optional[str]:
    return actor_id_var.get()


def bind_actor(actor_id: Optional[uuid.UUID]) -> None:
    """Attribute log lines for the rest of this request to actor_id."""
    actor_id_var.set(str(actor_id) if actor_id else None)


class ContextFilter(logging.Filter):
    """Copy the request id and acting principal onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"  # type: ignore[attr-defined]
        record.actor_id = get_actor_id() or "-"  # type: ignore[attr-defined]
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line, extra= fields included."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in ("request_id", "actor_id"):
            value = getattr(record, key, None)
            if value and value != "-":
                entry[key] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or value is None:
                continue
            try:
                json.dumps(value)
                entry[key] = value
            except (TypeError, ValueError):
                entry[key] = str(value)

        return json.dumps(entry)


def _dev_formatter() -> logging.Formatter:
    return logging.Formatter(
        "%(asctime)s %(levelname)-5s [%(name)s] req=%(request_id)s actor=%(actor_id)s %(message)s",
        datefmt="%H:%M:%S",
    )


def configure_logging(
    *,
    log_level: str = "INFO",
    environment: str = "development",
    debug: bool = False,
) -> None:
    """
    Install the root handler.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR
        environment: 'production' switches to JSON lines
        debug: Force DEBUG regardless of log_level
    """
    level = logging.DEBUG if debug else getattr(logging, log_level.upper(), logging.INFO)

    # Levels are decided per logger; the handler passes everything it is given
    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(ContextFilter())
    handler.setFormatter(JsonFormatter() if environment == "production" else _dev_formatter())

    root = logging.getLogger()
    root.setLevel(level)
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)

    failures = logging.getLogger(AUDIT_FAILURE_LOGGER)
    failures.setLevel(min(level, logging.WARNING))

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
