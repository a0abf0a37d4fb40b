"""In-memory log buffer plus event broadcast for AI gateway calls."""

from __future__ import annotations

import json
import logging
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List

from flask import current_app, has_app_context

from .pipeline_events import pipeline_event_broker

LOG_MAX_ENTRIES = 500
_buffer: deque[Dict[str, Any]] = deque(maxlen=LOG_MAX_ENTRIES)
_file_lock = Lock()
logger = logging.getLogger(__name__)


def _append_to_file(entry: Dict[str, Any]) -> None:
    """Persist the entry to a per-purpose JSONL file when AI_CALL_LOG_DIR is set."""
    if not has_app_context():
        return
    base = current_app.config.get("AI_CALL_LOG_DIR")
    if not base:
        return
    base_dir = Path(base)
    purpose = str(entry.get("purpose") or "general").split()[0]
    try:
        base_dir.mkdir(parents=True, exist_ok=True)
        with _file_lock, (base_dir / f"{purpose}.jsonl").open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry, default=str) + "\n")
    except OSError:
        logger.warning("AI call log file unavailable at %s", base_dir, exc_info=True)


def log_event(kind: str, payload: Dict[str, Any]) -> None:
    """Store a log entry in memory, optionally on disk, and broadcast it."""
    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "kind": kind,
        **payload,
    }
    _buffer.appendleft(entry)
    _append_to_file(entry)
    pipeline_event_broker.publish({"type": "ai_call", "payload": entry})


def get_logs(limit: int = 100) -> List[Dict[str, Any]]:
    """Return a copy of the most recent log entries (in-memory)."""
    limit = max(1, min(limit, LOG_MAX_ENTRIES))
    return list(_buffer)[:limit]


def clear_logs() -> None:
    _buffer.clear()
