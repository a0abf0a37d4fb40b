"""Upload-completion handling: claim the file, extract sections, fan out blobs."""

from __future__ import annotations

import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, List

from ..errors import MSG_FILE_FAILED, MSG_NO_READABLE_TEXT, MSG_ONLY_NON_INSTRUCTIONAL
from ..extensions import db
from ..metrics import record_file_outcome
from ..models import Section, StudyFile
from ..models.study import (
    AI_PENDING,
    AI_TERMINAL,
    FILE_FAILED,
    FILE_PENDING,
    FILE_PROCESSING,
    FILE_READY,
    PHASE_ANALYZING,
    PHASE_EXTRACTING,
    PHASE_PROGRESS,
    Q_PENDING,
    section_id_for,
    utcnow,
)
from ..settings import PipelineSettings, get_settings
from ..utils.file_parser import DOCX_MIME, EXTRACTORS, PDF_MIME, PPTX_MIME, is_supported
from .blob_store import BlobStore, get_blob_store, section_blob_path
from .fan_out import run_bounded
from .pipeline_events import publish_file
from .section_filter import filter_analyzable_sections
from .store import PartialWriteError, batch_insert, compare_and_set

logger = logging.getLogger(__name__)

UPLOAD_MARKERS = ("users", "uploads")
DROPPED_LOG_LIMIT = 8
BLOB_UPLOAD_CONCURRENCY = 8

# Extractor keyword -> PipelineSettings attribute of the same name.
SECTION_LIMITS = {
    PDF_MIME: "pages_per_section",
    DOCX_MIME: "words_per_section",
    PPTX_MIME: "slides_per_section",
}


class FileProcessingError(Exception):
    """Pipeline-fatal problem with the file's own metadata."""


def parse_upload_path(name: str | None) -> tuple[str, str] | None:
    """Return (owner_id, file_id) for `users/<uid>/uploads/<fileId>.<ext>`."""
    parts = (name or "").split("/")
    if len(parts) != 4 or parts[0] != UPLOAD_MARKERS[0] or parts[2] != UPLOAD_MARKERS[1]:
        return None
    owner_id, file_name = parts[1], parts[3]
    file_id = file_name.rsplit(".", 1)[0] if "." in file_name else ""
    if not owner_id or not file_id:
        return None
    return owner_id, file_id


def extract_sections(path: str | Path, content_type: str, settings: PipelineSettings) -> List[dict] | None:
    """Run the extractor for `content_type`; None when the type is unsupported."""
    extractor = EXTRACTORS.get(content_type)
    if extractor is None:
        return None
    limit_name = SECTION_LIMITS[content_type]
    return extractor(
        path,
        min_chars=settings.min_chars_per_section,
        **{limit_name: getattr(settings, limit_name)},
    )


def content_ref_for(section: dict, blob_path: str) -> Dict[str, Any]:
    if section.get("startPage") is not None:
        kind, start, end = "page", section.get("startPage"), section.get("endPage")
    elif section.get("startSlide") is not None:
        kind, start, end = "slide", section.get("startSlide"), section.get("endSlide")
    else:
        kind, start, end = "word", section.get("startWord"), section.get("endWord")
    return {"type": kind, "start": start, "end": end, "blobPath": blob_path}


def handle_upload_event(event: Dict[str, Any]) -> str:
    """Entry point for the storage upload-completion event."""
    name = (event or {}).get("name")
    parsed = parse_upload_path(name)
    if parsed is None:
        logger.info("Upload event ignored: unexpected path", extra={"blobName": name})
        return "ignored"
    content_type = (event or {}).get("contentType")
    if not is_supported(content_type):
        logger.info("Upload event ignored: unsupported type", extra={"blobName": name, "contentType": content_type})
        return "ignored"
    owner_id, file_id = parsed
    return process_file(owner_id, file_id, name, content_type, event_id=event.get("eventId"))


def _reconcile_existing_sections(study_file: StudyFile) -> str:
    """A replayed event found sections from an earlier run; converge instead of duplicating."""
    statuses = [row[0] for row in db.session.query(Section.ai_status).filter(Section.file_id == study_file.id).all()]
    if all(status in AI_TERMINAL for status in statuses):
        values = {"status": FILE_READY, "processing_phase": None, "progress": 100, "step_label": "Ready", "processed_at": utcnow()}
        outcome = "ready"
    else:
        progress, label = PHASE_PROGRESS[PHASE_ANALYZING]
        values = {"processing_phase": PHASE_ANALYZING, "progress": progress, "step_label": label}
        outcome = "reconciled"
    values["section_count"] = len(statuses)
    compare_and_set(StudyFile, study_file.id, expected={"status": (FILE_PROCESSING,)}, values=values)
    logger.info("Replay reconciled existing sections", extra={"fileId": study_file.id, "sectionCount": len(statuses)})
    return outcome


def _upload_section_blobs(blobs: BlobStore, owner_id: str, file_id: str, sections: List[dict]) -> List[str]:
    def _upload(index: int, section: dict) -> str:
        return blobs.save_text(section_blob_path(owner_id, file_id, index), section["text"])

    results = run_bounded(sections, _upload, concurrency=BLOB_UPLOAD_CONCURRENCY)
    failed = [result for result in results if not result.success]
    if failed:
        raise RuntimeError(f"Section blob upload failed for {len(failed)} section(s): {failed[0].error}")
    return [result.data for result in results]


def _build_section_rows(study_file: StudyFile, sections: List[dict], blob_paths: List[str]) -> List[Section]:
    rows = []
    for index, (section, blob_path) in enumerate(zip(sections, blob_paths)):
        title = section.get("title") or f"Section {index + 1}"
        rows.append(
            Section(
                id=section_id_for(study_file.id, index),
                owner_id=study_file.owner_id,
                file_id=study_file.id,
                course_id=study_file.course_id,
                title=f"{study_file.source_label}: {title}"[:255],
                content_ref=content_ref_for(section, blob_path),
                text_blob_path=blob_path,
                est_minutes=int(section.get("estMinutes") or 15),
                difficulty=3,
                topic_tags=[],
                ai_status=AI_PENDING,
                questions_status=Q_PENDING,
                questions_count=0,
                order_index=index,
                attempt=0,
            )
        )
    return rows


def _mark_failed(file_id: str, message: str) -> None:
    compare_and_set(
        StudyFile,
        file_id,
        expected={"status": (FILE_PROCESSING,)},
        values={
            "status": FILE_FAILED,
            "processing_phase": None,
            "step_label": "Failed",
            "error_message": message,
        },
    )
    record_file_outcome("failed")
    study_file = db.session.get(StudyFile, file_id)
    if study_file is not None:
        publish_file(study_file)


def process_file(
    owner_id: str,
    file_id: str,
    blob_name: str,
    content_type: str,
    *,
    event_id: str | None = None,
    settings: PipelineSettings | None = None,
) -> str:
    # Lazy import inside function to avoid circular dependencies.
    from ..tasks.pipeline_tasks import dispatch_section

    settings = settings or get_settings()
    study_file = db.session.get(StudyFile, file_id)
    if study_file is None or study_file.owner_id != owner_id:
        logger.warning("Upload event for unknown file", extra={"fileId": file_id, "uid": owner_id})
        return "missing"
    if event_id and study_file.last_event_id == event_id:
        logger.info("Duplicate upload event skipped", extra={"fileId": file_id, "eventId": event_id})
        return "duplicate"
    if study_file.status in (FILE_READY, FILE_PROCESSING):
        logger.info("File already handled", extra={"fileId": file_id, "status": study_file.status})
        return "skipped"

    progress, label = PHASE_PROGRESS[PHASE_EXTRACTING]
    claimed = compare_and_set(
        StudyFile,
        file_id,
        expected={"status": (FILE_PENDING, FILE_FAILED)},
        values={
            "status": FILE_PROCESSING,
            "processing_phase": PHASE_EXTRACTING,
            "progress": progress,
            "step_label": label,
            "error_message": None,
            "content_type": content_type,
            "storage_path": blob_name,
            "last_event_id": event_id,
            "processing_started_at": utcnow(),
        },
    )
    if not claimed:
        logger.info("File claim lost", extra={"fileId": file_id})
        return "skipped"

    study_file = db.session.get(StudyFile, file_id)
    if study_file.sections.count():
        return _reconcile_existing_sections(study_file)

    started = time.perf_counter()
    fd, temp_path = tempfile.mkstemp(suffix=Path(blob_name).suffix)
    os.close(fd)
    try:
        if not study_file.course_id:
            raise FileProcessingError("File is missing courseId")
        blobs = get_blob_store()
        blobs.download_to(blob_name, temp_path)

        raw_sections = extract_sections(temp_path, content_type, settings) or []
        sections, dropped = filter_analyzable_sections(raw_sections)
        if dropped:
            logger.info(
                "Dropped non-instructional sections",
                extra={"fileId": file_id, "droppedCount": len(dropped), "dropped": dropped[:DROPPED_LOG_LIMIT]},
            )
        if not sections:
            message = MSG_ONLY_NON_INSTRUCTIONAL if raw_sections else MSG_NO_READABLE_TEXT
            _mark_failed(file_id, message)
            logger.warning(
                "No analyzable sections",
                extra={"fileId": file_id, "extractedCount": len(raw_sections)},
            )
            return "failed"

        blob_paths = _upload_section_blobs(blobs, study_file.owner_id, file_id, sections)
        rows = _build_section_rows(study_file, sections, blob_paths)
        section_ids = [row.id for row in rows]
        try:
            written = batch_insert(rows, settings.store_batch_limit)
        except PartialWriteError as exc:
            written = exc.written
            logger.error(
                "Section metadata partially written",
                extra={"fileId": file_id, "written": exc.written, "total": exc.total},
            )
        section_ids = section_ids[:written]

        progress, label = PHASE_PROGRESS[PHASE_ANALYZING]
        compare_and_set(
            StudyFile,
            file_id,
            expected={"status": (FILE_PROCESSING,), "processing_phase": (PHASE_EXTRACTING,)},
            values={"processing_phase": PHASE_ANALYZING, "progress": progress, "step_label": label, "section_count": written},
        )
        publish_file(db.session.get(StudyFile, file_id))
        logger.info(
            "Sections created",
            extra={
                "fileId": file_id,
                "sectionCount": written,
                "durationMs": int((time.perf_counter() - started) * 1000),
            },
        )
    except Exception:
        db.session.rollback()
        logger.exception("File processing failed", extra={"fileId": file_id})
        _mark_failed(file_id, MSG_FILE_FAILED)
        return "failed"
    finally:
        Path(temp_path).unlink(missing_ok=True)

    for section_id in section_ids:
        dispatch_section(section_id, attempt=0, kind="initial")
    return "processing"
