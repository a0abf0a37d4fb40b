"""Serialization / validation schemas (Marshmallow)."""

from .pipeline_schema import (
    FileUploadSchema,
    LabRecordSchema,
    PageResultSchema,
    RetrySchema,
    TutorRequestSchema,
    UploadEventSchema,
    VisionBatchSchema,
)

__all__ = [
    "FileUploadSchema",
    "LabRecordSchema",
    "PageResultSchema",
    "RetrySchema",
    "TutorRequestSchema",
    "UploadEventSchema",
    "VisionBatchSchema",
]
