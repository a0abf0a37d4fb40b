"""Models for uploaded study files, their sections, and generated questions."""

from __future__ import annotations

from datetime import datetime, timezone

from ..extensions import db

FILE_PENDING = "PENDING"
FILE_PROCESSING = "PROCESSING"
FILE_READY = "READY"
FILE_FAILED = "FAILED"

PHASE_EXTRACTING = "EXTRACTING"
PHASE_ANALYZING = "ANALYZING"
PHASE_GENERATING_QUESTIONS = "GENERATING_QUESTIONS"

AI_PENDING = "PENDING"
AI_PROCESSING = "PROCESSING"
AI_ANALYZED = "ANALYZED"
AI_FAILED = "FAILED"
AI_TERMINAL = (AI_ANALYZED, AI_FAILED)

Q_PENDING = "PENDING"
Q_GENERATING = "GENERATING"
Q_COMPLETED = "COMPLETED"
Q_FAILED = "FAILED"

PHASE_PROGRESS = {
    PHASE_EXTRACTING: (10, "Extracting text"),
    PHASE_ANALYZING: (40, "Analyzing sections"),
    PHASE_GENERATING_QUESTIONS: (70, "Generating questions"),
}


def utcnow():
    return datetime.now(timezone.utc)


def _isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    dt = value
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def section_id_for(file_id: str, index: int) -> str:
    return f"{file_id}_s{index}"


class StudyFile(db.Model):
    __tablename__ = "study_files"

    id = db.Column(db.String(64), primary_key=True)
    owner_id = db.Column(db.String(128), nullable=False, index=True)
    course_id = db.Column(db.String(64), nullable=True, index=True)
    original_name = db.Column(db.String(255), nullable=True)
    content_type = db.Column(db.String(128), nullable=True)
    storage_path = db.Column(db.String(512), nullable=True)
    size_bytes = db.Column(db.Integer, default=0, nullable=False)
    status = db.Column(db.String(32), default=FILE_PENDING, nullable=False, index=True)
    processing_phase = db.Column(db.String(32), nullable=True)
    progress = db.Column(db.Integer, default=0, nullable=False)
    step_label = db.Column(db.String(64), nullable=True)
    section_count = db.Column(db.Integer, default=0, nullable=False)
    error_message = db.Column(db.Text, nullable=True)
    last_event_id = db.Column(db.String(128), nullable=True)
    processing_started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def source_label(self) -> str:
        name = self.original_name or self.id
        return name.rsplit(".", 1)[0] if "." in name else name

    def serialize(self) -> dict:
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "courseId": self.course_id,
            "originalName": self.original_name,
            "contentType": self.content_type,
            "storagePath": self.storage_path,
            "sizeBytes": self.size_bytes,
            "status": self.status,
            "processingPhase": self.processing_phase,
            "progress": self.progress,
            "stepLabel": self.step_label,
            "sectionCount": self.section_count,
            "errorMessage": self.error_message,
            "processingStartedAt": _isoformat(self.processing_started_at),
            "processedAt": _isoformat(self.processed_at),
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
        }


class Section(db.Model):
    __tablename__ = "sections"

    id = db.Column(db.String(96), primary_key=True)
    owner_id = db.Column(db.String(128), nullable=False, index=True)
    file_id = db.Column(db.String(64), db.ForeignKey("study_files.id"), nullable=False, index=True)
    course_id = db.Column(db.String(64), nullable=True, index=True)
    title = db.Column(db.String(255), nullable=False)
    content_ref = db.Column(db.JSON, nullable=False, default=dict)
    text_blob_path = db.Column(db.String(512), nullable=False)
    est_minutes = db.Column(db.Integer, default=15, nullable=False)
    difficulty = db.Column(db.Integer, default=3, nullable=False)
    topic_tags = db.Column(db.JSON, nullable=False, default=list)
    ai_status = db.Column(db.String(32), default=AI_PENDING, nullable=False, index=True)
    questions_status = db.Column(db.String(32), default=Q_PENDING, nullable=False)
    questions_count = db.Column(db.Integer, default=0, nullable=False)
    questions_error_message = db.Column(db.Text, nullable=True)
    error_message = db.Column(db.Text, nullable=True)
    blueprint = db.Column(db.JSON, nullable=True)
    order_index = db.Column(db.Integer, default=0, nullable=False)
    attempt = db.Column(db.Integer, default=0, nullable=False)
    retry_kind = db.Column(db.String(16), nullable=True)
    processing_started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    analyzed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_error_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    study_file = db.relationship("StudyFile", backref=db.backref("sections", lazy="dynamic"))

    def serialize(self) -> dict:
        return {
            "id": self.id,
            "fileId": self.file_id,
            "courseId": self.course_id,
            "title": self.title,
            "contentRef": self.content_ref,
            "textBlobPath": self.text_blob_path,
            "estMinutes": self.est_minutes,
            "difficulty": self.difficulty,
            "topicTags": self.topic_tags or [],
            "aiStatus": self.ai_status,
            "questionsStatus": self.questions_status,
            "questionsCount": self.questions_count,
            "questionsErrorMessage": self.questions_error_message,
            "errorMessage": self.error_message,
            "blueprint": self.blueprint,
            "orderIndex": self.order_index,
            "attempt": self.attempt,
            "processingStartedAt": _isoformat(self.processing_started_at),
            "analyzedAt": _isoformat(self.analyzed_at),
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
        }


class Question(db.Model):
    __tablename__ = "questions"

    id = db.Column(db.String(64), primary_key=True)
    owner_id = db.Column(db.String(128), nullable=False, index=True)
    section_id = db.Column(db.String(96), db.ForeignKey("sections.id"), nullable=False, index=True)
    file_id = db.Column(db.String(64), nullable=True, index=True)
    course_id = db.Column(db.String(64), nullable=True, index=True)
    type = db.Column(db.String(16), default="SBA", nullable=False)
    stem = db.Column(db.Text, nullable=False)
    options = db.Column(db.JSON, nullable=False, default=list)
    correct_index = db.Column(db.Integer, nullable=False, default=0)
    explanation = db.Column(db.JSON, nullable=False, default=dict)
    citations = db.Column(db.JSON, nullable=False, default=list)
    citation_meta = db.Column(db.JSON, nullable=True)
    topic_tags = db.Column(db.JSON, nullable=False, default=list)
    difficulty = db.Column(db.Integer, default=3, nullable=False)
    source_ref = db.Column(db.JSON, nullable=True)
    stats = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    @classmethod
    def from_normalized(cls, question_id: str, owner_id: str, payload: dict) -> "Question":
        return cls(
            id=question_id,
            owner_id=owner_id,
            section_id=payload["sectionId"],
            file_id=payload.get("fileId"),
            course_id=payload.get("courseId"),
            type=payload.get("type", "SBA"),
            stem=payload["stem"],
            options=payload["options"],
            correct_index=payload["correctIndex"],
            explanation=payload["explanation"],
            citations=payload["citations"],
            citation_meta=payload.get("citationMeta"),
            topic_tags=payload.get("topicTags", []),
            difficulty=payload.get("difficulty", 3),
            source_ref=payload.get("sourceRef"),
            stats=payload.get("stats") or {},
        )

    def serialize(self) -> dict:
        return {
            "id": self.id,
            "sectionId": self.section_id,
            "fileId": self.file_id,
            "courseId": self.course_id,
            "type": self.type,
            "stem": self.stem,
            "options": self.options,
            "correctIndex": self.correct_index,
            "explanation": self.explanation,
            "citations": self.citations,
            "citationMeta": self.citation_meta,
            "topicTags": self.topic_tags or [],
            "difficulty": self.difficulty,
            "sourceRef": self.source_ref,
            "stats": self.stats,
            "createdAt": _isoformat(self.created_at),
        }
