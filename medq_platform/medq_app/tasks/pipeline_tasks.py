"""Dispatch for upload-completion and section-created events.

Events run inline under TESTING / PIPELINE_JOBS_SYNC and on a bounded
background pool otherwise. Section messages carry `(section_id, attempt)` so a
redelivered or stale message is a no-op for the consumer.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from threading import Lock

from flask import Flask, current_app

from ..extensions import db
from ..logging_config import bind_pipeline_unit
from ..settings import get_settings

logger = logging.getLogger(__name__)

_EXECUTOR_LOCK = Lock()


def _run_inline(app: Flask) -> bool:
    return bool(app.config.get("TESTING") or app.config.get("PIPELINE_JOBS_SYNC"))


def _executor(app: Flask) -> ThreadPoolExecutor:
    with _EXECUTOR_LOCK:
        executor = app.extensions.get("pipeline_executor")
        if executor is None:
            executor = ThreadPoolExecutor(
                max_workers=get_settings().section_workers,
                thread_name_prefix="medq-pipeline",
            )
            app.extensions["pipeline_executor"] = executor
    return executor


def _run_async(app: Flask, target, *args, **kwargs) -> None:
    """Background helper that gives each task its own app context and session."""

    def _task():
        with app.app_context():
            try:
                target(*args, **kwargs)
            except Exception:
                logger.exception("Pipeline task %s failed", getattr(target, "__name__", target))
            finally:
                db.session.remove()

    _executor(app).submit(_task)


def _run_file_event(event: dict) -> None:
    from ..services import extraction_service

    with bind_pipeline_unit(blobName=event.get("name"), eventId=event.get("eventId")):
        extraction_service.handle_upload_event(event)


def _run_section(section_id: str, attempt: int, kind: str) -> None:
    from ..services import section_pipeline

    file_id = section_id.rsplit("_s", 1)[0]
    with bind_pipeline_unit(fileId=file_id, sectionId=section_id, attempt=attempt, kind=kind):
        section_pipeline.process_section(section_id, attempt=attempt)


def dispatch_file_uploaded(event: dict) -> None:
    app = current_app._get_current_object()
    if _run_inline(app):
        _run_file_event(event)
        return
    _run_async(app, _run_file_event, event)


def dispatch_section(section_id: str, *, attempt: int = 0, kind: str = "initial") -> None:
    app = current_app._get_current_object()
    logger.info(
        "Section queued",
        extra={"sectionId": section_id, "attempt": attempt, "kind": kind},
    )
    if _run_inline(app):
        _run_section(section_id, attempt, kind)
        return
    _run_async(app, _run_section, section_id, attempt, kind)
