"""Schemas for pipeline endpoints and AI page results."""

from __future__ import annotations

from marshmallow import EXCLUDE, Schema, fields, validate


class VisionBatchSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    images = fields.List(
        fields.String(),
        required=True,
        validate=validate.Length(min=1, error="images must be a non-empty array."),
    )
    concurrency = fields.Integer(load_default=None, allow_none=True)


class LabRecordSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    date = fields.String(load_default=None, allow_none=True)
    test = fields.String(required=True)
    value = fields.String(required=True)
    unit = fields.String(load_default=None, allow_none=True)
    flag = fields.String(load_default=None, allow_none=True)


class PageResultSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    page = fields.Integer(required=True, strict=True)
    records = fields.List(fields.Nested(LabRecordSchema), required=True)


class UploadEventSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    bucket = fields.String(load_default=None, allow_none=True)
    name = fields.String(required=True, validate=validate.Length(min=1))
    content_type = fields.String(data_key="contentType", load_default=None, allow_none=True)
    event_id = fields.String(data_key="eventId", load_default=None, allow_none=True)


class FileUploadSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    course_id = fields.String(required=True, validate=validate.Length(min=1, max=64))


class RetrySchema(Schema):
    class Meta:
        unknown = EXCLUDE

    file_id = fields.String(data_key="fileId", required=True, validate=validate.Length(min=1))


class TutorRequestSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    question_id = fields.String(data_key="questionId", required=True, validate=validate.Length(min=1))
    answered_index = fields.Integer(data_key="answeredIndex", required=True, validate=validate.Range(min=0, max=7))
