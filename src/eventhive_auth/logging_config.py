"""JSON logging with per-request correlation ids."""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any, Final
from uuid import uuid4

from flask import Flask, Response, g, has_request_context, request

REQUEST_ID_HEADER: Final[str] = "X-Request-ID"
_INCOMING_HEADERS: Final[tuple[str, ...]] = ("X-Request-ID", "X-Correlation-ID")
_PASSTHROUGH_FIELDS: Final[tuple[str, ...]] = ("principal_id", "user_type", "failure")


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": datetime.now(UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        for key in _PASSTHROUGH_FIELDS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class RequestIdFilter(logging.Filter):
    """Stamp ``request_id`` on every record (None outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id() if has_request_context() else None
        return True


def request_id() -> str:
    """Return the id of the current request, adopting an incoming header if sent."""
    if not has_request_context():
        return str(uuid4())
    existing = g.get("request_id")
    if existing:
        return existing
    for header in _INCOMING_HEADERS:
        value = request.headers.get(header)
        if value:
            g.request_id = value
            return value
    g.request_id = str(uuid4())
    return g.request_id


def configure_logging(level: str | int = "INFO") -> None:
    """Send every record through one JSON handler on stdout."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    handler.addFilter(RequestIdFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper() if isinstance(level, str) else level)


def init_app(app: Flask) -> None:
    """Seed a request id before each request and echo it on the response."""
    app.logger.addFilter(RequestIdFilter())

    @app.before_request
    def _seed_request_id() -> None:
        request_id()

    @app.after_request
    def _echo_request_id(response: Response) -> Response:
        response.headers.setdefault(REQUEST_ID_HEADER, request_id())
        return response
