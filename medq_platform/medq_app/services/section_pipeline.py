"""Section state machine: claim, blueprint analysis, question generation.

A section leaves PENDING only through `claim_section`, a conditional update
that exactly one caller can win. Every terminal outcome ends with the sibling
completion check, which is what eventually flips the parent file to READY.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from uuid import uuid4

from ..extensions import db
from ..metrics import record_file_outcome, record_section_outcome
from ..errors import MSG_QUESTIONS_FAILED
from ..models import Question, Section, StudyFile
from ..models.study import (
    AI_ANALYZED,
    AI_FAILED,
    AI_PENDING,
    AI_PROCESSING,
    AI_TERMINAL,
    FILE_PROCESSING,
    FILE_READY,
    PHASE_ANALYZING,
    PHASE_EXTRACTING,
    PHASE_GENERATING_QUESTIONS,
    PHASE_PROGRESS,
    Q_COMPLETED,
    Q_FAILED,
    Q_GENERATING,
    Q_PENDING,
    utcnow,
)
from ..settings import PipelineSettings, get_settings
from ..utils.sanitize import truncate
from . import ai_client as ai_client_module
from .blob_store import BlobStore, get_blob_store
from .difficulty_service import compute_difficulty_counts
from .normalizer import normalize_blueprint, normalize_question
from .pipeline_events import publish_file, publish_section
from .store import PartialWriteError, batch_insert, commit_with_retry, compare_and_set

logger = logging.getLogger(__name__)

ERROR_MESSAGE_LIMIT = 500


def claim_section(section_id: str) -> bool:
    """Move PENDING -> PROCESSING; True only for the single winning caller."""
    return compare_and_set(
        Section,
        section_id,
        expected={"ai_status": (AI_PENDING,)},
        values={"ai_status": AI_PROCESSING, "processing_started_at": utcnow(), "error_message": None},
    )


def maybe_mark_file_ready(file_id: str) -> bool:
    """Flip the file to READY once every sibling section is ANALYZED or FAILED."""
    statuses = [row[0] for row in db.session.query(Section.ai_status).filter(Section.file_id == file_id).all()]
    if not statuses or any(status not in AI_TERMINAL for status in statuses):
        return False
    won = compare_and_set(
        StudyFile,
        file_id,
        expected={"status": (FILE_PROCESSING,)},
        values={
            "status": FILE_READY,
            "processing_phase": None,
            "progress": 100,
            "step_label": "Ready",
            "processed_at": utcnow(),
        },
    )
    if won:
        record_file_outcome("ready")
        study_file = db.session.get(StudyFile, file_id)
        if study_file is not None:
            publish_file(study_file)
        logger.info("File ready", extra={"fileId": file_id, "sectionCount": len(statuses)})
    return won


def _advance_file_phase(file_id: str) -> None:
    progress, label = PHASE_PROGRESS[PHASE_GENERATING_QUESTIONS]
    compare_and_set(
        StudyFile,
        file_id,
        expected={"status": (FILE_PROCESSING,), "processing_phase": (PHASE_EXTRACTING, PHASE_ANALYZING)},
        values={"processing_phase": PHASE_GENERATING_QUESTIONS, "progress": progress, "step_label": label},
    )


def _load_inputs(section: Section, blobs: BlobStore) -> tuple[str, StudyFile | None]:
    """Fetch section text and parent file metadata concurrently."""
    with ThreadPoolExecutor(max_workers=1) as pool:
        text_future = pool.submit(blobs.read_text, section.text_blob_path)
        study_file = db.session.get(StudyFile, section.file_id)
        text = text_future.result()
    return text, study_file


def _fail_analysis(section: Section, error: str) -> None:
    section.ai_status = AI_FAILED
    section.questions_status = Q_FAILED
    section.error_message = truncate(error, ERROR_MESSAGE_LIMIT)
    section.questions_error_message = "Blueprint generation failed"
    section.last_error_at = utcnow()
    commit_with_retry()
    record_section_outcome("failed")


def _apply_blueprint(section: Section, normalized: dict) -> None:
    section.title = normalized["title"]
    section.difficulty = normalized["difficulty"]
    section.est_minutes = normalized["estMinutes"]
    section.topic_tags = normalized["topicTags"]
    section.blueprint = normalized["blueprint"]
    section.ai_status = AI_ANALYZED
    section.questions_status = Q_PENDING
    section.analyzed_at = utcnow()
    commit_with_retry()
    record_section_outcome("analyzed")


def _generate_questions(section: Section, study_file: StudyFile | None, client, settings: PipelineSettings) -> None:
    section.questions_status = Q_GENERATING
    section.questions_error_message = None
    commit_with_retry()
    _advance_file_phase(section.file_id)

    counts = compute_difficulty_counts(settings.default_question_count, section.difficulty)
    file_name = (study_file.original_name if study_file else None) or "Unknown File"
    result = client.generate_questions(
        blueprint=section.blueprint or {},
        count=counts.total,
        easy_count=counts.easy,
        medium_count=counts.medium,
        hard_count=counts.hard,
        section_title=section.title,
        source_file_name=file_name,
    )

    raw_items = []
    if result.success:
        data = result.data
        raw_items = data.get("questions") if isinstance(data, dict) else data
        raw_items = raw_items if isinstance(raw_items, list) else []

    defaults = {
        "sectionId": section.id,
        "fileId": section.file_id,
        "courseId": section.course_id,
        "fileName": file_name,
        "sectionTitle": section.title,
        "topicTags": section.topic_tags or [],
    }
    normalized = [item for item in (normalize_question(raw, defaults) for raw in raw_items) if item]
    if not normalized:
        section.questions_status = Q_FAILED
        reason = result.error if not result.success else "AI returned no usable questions"
        section.questions_error_message = truncate(reason or MSG_QUESTIONS_FAILED, ERROR_MESSAGE_LIMIT)
        section.last_error_at = utcnow()
        commit_with_retry()
        record_section_outcome("questions_failed")
        logger.warning(
            "Question generation failed",
            extra={"sectionId": section.id, "error": result.error, "rawCount": len(raw_items)},
        )
        return

    rows = [Question.from_normalized(uuid4().hex, section.owner_id, payload) for payload in normalized]
    try:
        written = batch_insert(rows, settings.store_batch_limit)
    except PartialWriteError as exc:
        written = exc.written
    section = db.session.get(Section, section.id)
    section.questions_status = Q_COMPLETED
    section.questions_count = written
    commit_with_retry()
    record_section_outcome("questions_completed")
    logger.info(
        "Questions generated",
        extra={"sectionId": section.id, "questionsCount": written, "discarded": len(raw_items) - len(normalized)},
    )


def process_section(section_id: str, *, attempt: int | None = None, client=None, settings: PipelineSettings | None = None) -> str:
    """Consume a section-created message. Returns a short outcome label."""
    section = db.session.get(Section, section_id)
    if section is None:
        logger.info("Section missing; message dropped", extra={"sectionId": section_id})
        return "missing"
    if attempt is not None and section.attempt != attempt:
        logger.info("Stale section message ignored", extra={"sectionId": section_id, "attempt": attempt})
        return "stale"
    if section.ai_status != AI_PENDING:
        return "skipped"
    if not claim_section(section_id):
        logger.info("Section already claimed", extra={"sectionId": section_id})
        return "skipped"

    client = client or ai_client_module.get_ai_client()
    settings = settings or get_settings()
    section = db.session.get(Section, section_id)
    file_id = section.file_id
    outcome = "analyzed"
    try:
        text, study_file = _load_inputs(section, get_blob_store())
        reuse_blueprint = section.retry_kind == "questions" and bool(section.blueprint)
        if reuse_blueprint:
            section.ai_status = AI_ANALYZED
            section.questions_status = Q_PENDING
            section.analyzed_at = utcnow()
            commit_with_retry()
        else:
            result = client.generate_blueprint(
                file_name=(study_file.original_name if study_file else None) or "Unknown",
                section_label=section.title,
                content_type=(study_file.content_type if study_file else None) or "pdf",
                section_text=text,
            )
            if not result.success:
                _fail_analysis(section, result.error or "Blueprint generation failed")
                logger.warning("Blueprint generation failed", extra={"sectionId": section_id, "error": result.error})
                outcome = "failed"
            else:
                _apply_blueprint(section, normalize_blueprint(result.data, fallback_title=section.title))
        if outcome != "failed":
            _generate_questions(section, study_file, client, settings)
    except Exception as exc:
        db.session.rollback()
        logger.exception("Section processing failed", extra={"sectionId": section_id})
        section = db.session.get(Section, section_id)
        if section is not None:
            section.ai_status = AI_FAILED
            section.error_message = truncate(str(exc) or exc.__class__.__name__, ERROR_MESSAGE_LIMIT)
            section.last_error_at = utcnow()
            commit_with_retry()
            record_section_outcome("failed")
        outcome = "failed"

    section = db.session.get(Section, section_id)
    if section is not None:
        publish_section(section)
    maybe_mark_file_ready(file_id)
    return outcome
