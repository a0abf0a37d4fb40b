"""JSON logging with request and pipeline-unit context."""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, Optional
from uuid import uuid4

from flask import g, has_request_context, request

# Attributes every LogRecord carries; anything else arrived through `extra=`.
_RESERVED_ATTRS = set(vars(logging.makeLogRecord({}))) | {
    "message",
    "asctime",
    "request_id",
    "path",
    "method",
    "pipeline",
}

# pdfminer logs every parsed object at DEBUG.
_NOISY_LOGGERS = ("pdfminer", "PIL", "urllib3")

_pipeline_unit: ContextVar[Optional[Dict[str, Any]]] = ContextVar("medq_pipeline_unit", default=None)


@contextmanager
def bind_pipeline_unit(**fields: Any) -> Iterator[None]:
    """Attach file/section identifiers to every record logged inside the block."""

    current = dict(_pipeline_unit.get() or {})
    current.update({key: value for key, value in fields.items() if value is not None})
    token = _pipeline_unit.set(current)
    try:
        yield
    finally:
        _pipeline_unit.reset(token)


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            record.request_id = getattr(g, "request_id", "n/a")
            record.path = request.path
            record.method = request.method
        else:
            record.request_id = "-"
            record.path = "-"
            record.method = "-"
        record.pipeline = _pipeline_unit.get()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "request_id": getattr(record, "request_id", "-"),
        }
        if getattr(record, "path", "-") != "-":
            payload["path"] = record.path
            payload["method"] = record.method
        unit = getattr(record, "pipeline", None)
        if unit:
            payload.update(unit)
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(app) -> None:
    level = app.config.get("LOG_LEVEL", "INFO").upper()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    handler.addFilter(ContextFilter())
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, root.level))


def assign_request_id() -> str:
    req_id = request.headers.get("X-Request-ID") if has_request_context() else None
    g.request_id = req_id or uuid4().hex
    return g.request_id
