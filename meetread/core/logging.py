from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

from meetread.core.config import settings

# Set by the request middleware and the auth dependency
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
current_user_id_ctx: ContextVar[Optional[int]] = ContextVar("current_user_id", default=None)

PLAIN_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] [req=%(request_id)s user=%(user_id)s] %(message)s"

QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "passlib": logging.ERROR,
}


def request_context() -> dict:
    """The request id and acting user of the current request, when known."""
    context = {}
    req_id = request_id_ctx.get()
    if req_id:
        context["request_id"] = req_id
    user_id = current_user_id_ctx.get()
    if user_id is not None:
        context["user_id"] = user_id
    return context


class RequestContextFilter(logging.Filter):
    """Stamps every record with the request id and user id, '-' outside a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = request_context()
        record.request_id = context.get("request_id", "-")
        record.user_id = context.get("user_id", "-")
        return True


class JSONFormatter(logging.Formatter):
    """One JSON line per record.

    Lifecycle events pass structured fields with
    ``logger.info(..., extra={"extra_data": {...}})``; they are merged at the top level.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": settings.APP_NAME,
            "logger": record.name,
            "message": record.getMessage(),
            **request_context(),
        }

        extra_data = getattr(record, "extra_data", None)
        if isinstance(extra_data, dict):
            entry.update(extra_data)

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(json_output: bool = True) -> None:
    """Send every log record to stdout, as JSON lines or as plain text for local runs."""
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter())
    handler.setFormatter(JSONFormatter() if json_output else logging.Formatter(PLAIN_FORMAT))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
