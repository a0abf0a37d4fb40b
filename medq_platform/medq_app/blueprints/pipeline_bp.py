"""Document pipeline endpoints: uploads, file status, vision batches, retry, tutor."""

from __future__ import annotations

import mimetypes
from http import HTTPStatus
from pathlib import Path
from uuid import uuid4

from flask import Blueprint, Response, current_app, jsonify, request, stream_with_context
from flask_jwt_extended import get_jwt_identity, jwt_required
from marshmallow import ValidationError

from ..errors import InvalidArgument, NotFound, PipelineError, fail, ok
from ..extensions import db, limiter
from ..models import Question, Section, StudyFile
from ..models.study import FILE_PENDING
from ..schemas import FileUploadSchema, RetrySchema, TutorRequestSchema, UploadEventSchema
from ..services import ai_client, retry_service, tutor_service, vision_batch_service
from ..services.blob_store import get_blob_store, upload_path
from ..services.extraction_service import parse_upload_path
from ..services.pipeline_events import pipeline_event_broker
from ..services.store import commit_with_retry
from ..settings import get_settings
from ..tasks.pipeline_tasks import dispatch_file_uploaded
from ..utils.file_parser import is_supported

pipeline_bp = Blueprint("pipeline_bp", __name__)

upload_schema = FileUploadSchema()
upload_event_schema = UploadEventSchema()
retry_schema = RetrySchema()
tutor_schema = TutorRequestSchema()


@pipeline_bp.errorhandler(ValidationError)
def handle_validation_error(err: ValidationError):
    current_app.logger.info("Request validation failed", extra={"errors": err.messages})
    return jsonify(fail("INVALID_ARGUMENT")), HTTPStatus.BAD_REQUEST


@pipeline_bp.errorhandler(PipelineError)
def handle_pipeline_error(err: PipelineError):
    return jsonify(fail(err.code, err.message)), err.status


def _owner_id() -> str:
    return str(get_jwt_identity())


def _owned_file(file_id: str) -> StudyFile:
    study_file = db.session.get(StudyFile, file_id)
    if study_file is None or study_file.owner_id != _owner_id():
        raise NotFound("File not found.")
    return study_file


def _vision_limit() -> str:
    return current_app.config.get("VISION_BATCH_RATE_LIMIT", "20 per minute")


@pipeline_bp.get("/ping")
def ping():
    return jsonify({"module": "pipeline", "status": "ok"})


@pipeline_bp.post("/files")
@jwt_required()
def upload_file():
    payload = upload_schema.load(request.form.to_dict())
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        raise InvalidArgument("A file is required.")
    extension = Path(upload.filename).suffix.lower().lstrip(".")
    content_type = upload.mimetype
    if not is_supported(content_type):
        content_type = mimetypes.guess_type(upload.filename)[0]
    if not extension or not is_supported(content_type):
        raise InvalidArgument("Only PDF, DOCX and PPTX files are supported.")

    owner_id = _owner_id()
    file_id = uuid4().hex
    blob_name = upload_path(owner_id, file_id, extension)
    size = get_blob_store().save_stream(blob_name, upload.stream)
    study_file = StudyFile(
        id=file_id,
        owner_id=owner_id,
        course_id=payload["course_id"],
        original_name=upload.filename[:255],
        content_type=content_type,
        storage_path=blob_name,
        size_bytes=size,
        status=FILE_PENDING,
    )
    db.session.add(study_file)
    commit_with_retry()
    current_app.logger.info(
        "File uploaded",
        extra={"uid": owner_id, "fileId": file_id, "sizeBytes": size, "contentType": content_type},
    )

    dispatch_file_uploaded(
        {"bucket": "local", "name": blob_name, "contentType": content_type, "eventId": uuid4().hex}
    )
    study_file = db.session.get(StudyFile, file_id)
    return jsonify(ok({"file": study_file.serialize()})), HTTPStatus.ACCEPTED


@pipeline_bp.get("/files/<file_id>")
@jwt_required()
def get_file(file_id: str):
    study_file = _owned_file(file_id)
    sections = (
        Section.query.filter_by(file_id=file_id).order_by(Section.order_index.asc()).all()
    )
    return jsonify(ok({"file": study_file.serialize(), "sections": [s.serialize() for s in sections]}))


@pipeline_bp.get("/files/<file_id>/questions")
@jwt_required()
def list_file_questions(file_id: str):
    _owned_file(file_id)
    questions = (
        Question.query.filter_by(file_id=file_id)
        .order_by(Question.section_id.asc(), Question.created_at.asc())
        .all()
    )
    return jsonify(ok({"questions": [question.serialize() for question in questions]}))


@pipeline_bp.post("/events/upload")
@jwt_required()
def upload_event():
    payload = upload_event_schema.load(request.get_json(silent=True) or {})
    parsed = parse_upload_path(payload["name"])
    if parsed is not None and parsed[0] != _owner_id():
        raise NotFound("File not found.")
    dispatch_file_uploaded(
        {
            "bucket": payload.get("bucket"),
            "name": payload["name"],
            "contentType": payload.get("content_type"),
            "eventId": payload.get("event_id"),
        }
    )
    return jsonify(ok({"accepted": True})), HTTPStatus.ACCEPTED


@pipeline_bp.post("/vision/batch")
@jwt_required()
@limiter.limit(_vision_limit)
def vision_batch():
    result = vision_batch_service.process_document_batch(
        request.get_json(silent=True),
        client=ai_client.get_ai_client(),
        settings=get_settings(),
    )
    return jsonify(ok(result))


@pipeline_bp.post("/retry")
@jwt_required()
def retry_file():
    payload = retry_schema.load(request.get_json(silent=True) or {})
    result = retry_service.retry_failed_sections(_owner_id(), payload["file_id"])
    return jsonify(ok(result))


@pipeline_bp.post("/tutor")
@jwt_required()
def tutor():
    payload = tutor_schema.load(request.get_json(silent=True) or {})
    result = tutor_service.get_tutor_help(_owner_id(), payload["question_id"], payload["answered_index"])
    return jsonify(ok(result))


@pipeline_bp.get("/events/stream")
@jwt_required()
def event_stream():
    owner_id = _owner_id()

    def stream():
        for message in pipeline_event_broker.listen(owner_id):
            yield f"data: {message}\n\n"

    return Response(stream_with_context(stream()), mimetype="text/event-stream")
