"""Re-queue failed sections and reclaim sections stuck mid-pipeline."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Dict

from sqlalchemy import or_

from ..errors import MSG_SECTION_TIMED_OUT, NotFound
from ..extensions import db
from ..models import Question, Section, StudyFile
from ..models.study import (
    AI_ANALYZED,
    AI_FAILED,
    AI_PENDING,
    AI_PROCESSING,
    FILE_PROCESSING,
    FILE_READY,
    PHASE_ANALYZING,
    PHASE_PROGRESS,
    Q_FAILED,
    Q_PENDING,
    utcnow,
)
from .store import commit_with_retry, compare_and_set

logger = logging.getLogger(__name__)

RETRY_FULL = "full"
RETRY_QUESTIONS = "questions"


def _reset_section(section: Section) -> tuple[Section, str]:
    """Drop the section's questions and put it back to PENDING in one transaction.

    A full retry also discards the blueprint; a questions-only retry keeps it.
    """
    questions_only = section.ai_status == AI_ANALYZED

    Question.query.filter_by(section_id=section.id).delete(synchronize_session=False)
    if not questions_only:
        section.topic_tags = []
        section.blueprint = None
    section.ai_status = AI_PENDING
    section.questions_status = Q_PENDING
    section.questions_count = 0
    section.error_message = None
    section.questions_error_message = None
    section.processing_started_at = None
    section.analyzed_at = None
    section.attempt = (section.attempt or 0) + 1
    section.retry_kind = RETRY_QUESTIONS if questions_only else RETRY_FULL
    section.created_at = utcnow()
    commit_with_retry()
    return section, "retry_questions" if questions_only else "retry_full"


def retry_failed_sections(owner_id: str, file_id: str) -> Dict[str, object]:
    """Re-queue every failed section of a file; returns `{retriedCount, message}`."""
    # Lazy import inside function to avoid circular dependencies.
    from ..tasks.pipeline_tasks import dispatch_section

    study_file = db.session.get(StudyFile, file_id)
    if study_file is None or study_file.owner_id != owner_id:
        raise NotFound("File not found.")

    failed = (
        Section.query.filter(Section.file_id == file_id)
        .filter(or_(Section.ai_status == AI_FAILED, Section.questions_status == Q_FAILED))
        .order_by(Section.order_index.asc())
        .all()
    )
    if not failed:
        return {"retriedCount": 0, "message": "No failed sections found."}

    queued = []
    for section in failed:
        section_id = section.id
        try:
            fresh, kind = _reset_section(section)
        except Exception:
            db.session.rollback()
            logger.exception("Section retry failed", extra={"sectionId": section_id, "fileId": file_id})
            continue
        queued.append((fresh.id, fresh.attempt, kind))

    if queued:
        progress, label = PHASE_PROGRESS[PHASE_ANALYZING]
        compare_and_set(
            StudyFile,
            file_id,
            expected={"status": (FILE_READY, FILE_PROCESSING)},
            values={
                "status": FILE_PROCESSING,
                "processing_phase": PHASE_ANALYZING,
                "progress": progress,
                "step_label": label,
                "processed_at": None,
            },
        )
    logger.info("Sections re-queued", extra={"fileId": file_id, "retriedCount": len(queued)})

    for section_id, attempt, kind in queued:
        dispatch_section(section_id, attempt=attempt, kind=kind)
    return {
        "retriedCount": len(queued),
        "message": f"Retrying {len(queued)} section(s). Processing will begin shortly.",
    }


def reclaim_stuck_sections(older_than_minutes: int = 10) -> Dict[str, int]:
    """Fail sections left PENDING/PROCESSING past the window, then converge their files."""
    from .section_pipeline import maybe_mark_file_ready

    cutoff = utcnow() - timedelta(minutes=older_than_minutes)
    stuck = (
        Section.query.filter(Section.ai_status.in_((AI_PENDING, AI_PROCESSING)))
        .filter(Section.updated_at < cutoff)
        .all()
    )
    reclaimed = 0
    file_ids = set()
    for section in stuck:
        won = compare_and_set(
            Section,
            section.id,
            expected={"ai_status": (AI_PENDING, AI_PROCESSING)},
            values={
                "ai_status": AI_FAILED,
                "questions_status": Q_FAILED,
                "error_message": MSG_SECTION_TIMED_OUT,
                "last_error_at": utcnow(),
            },
        )
        if won:
            reclaimed += 1
            file_ids.add(section.file_id)
    ready = sum(1 for file_id in sorted(file_ids) if maybe_mark_file_ready(file_id))
    logger.info("Stuck sections reclaimed", extra={"reclaimed": reclaimed, "filesReady": ready})
    return {"reclaimed": reclaimed, "filesReady": ready}
