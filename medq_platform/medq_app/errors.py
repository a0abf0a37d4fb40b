"""Error codes and response envelopes shared by the pipeline endpoints."""

from __future__ import annotations

from http import HTTPStatus
from typing import Any

ERROR_MESSAGES = {
    "UNAUTHENTICATED": "Authentication required.",
    "PERMISSION_DENIED": "You do not have permission to perform this action.",
    "INVALID_ARGUMENT": "One or more arguments are invalid.",
    "NOT_FOUND": "The requested resource was not found.",
    "AI_FAILED": "AI processing failed. Please try again.",
    "RATE_LIMITED": "Too many requests. Please wait and try again.",
    "INTERNAL": "An internal error occurred. Please try again.",
}

ERROR_STATUS = {
    "UNAUTHENTICATED": HTTPStatus.UNAUTHORIZED,
    "PERMISSION_DENIED": HTTPStatus.FORBIDDEN,
    "INVALID_ARGUMENT": HTTPStatus.BAD_REQUEST,
    "NOT_FOUND": HTTPStatus.NOT_FOUND,
    "AI_FAILED": HTTPStatus.BAD_GATEWAY,
    "RATE_LIMITED": HTTPStatus.TOO_MANY_REQUESTS,
    "INTERNAL": HTTPStatus.INTERNAL_SERVER_ERROR,
}

# User-facing File/Section messages; details stay in the logs.
MSG_FILE_FAILED = "Document processing failed. Please re-upload the file."
MSG_ONLY_NON_INSTRUCTIONAL = (
    "Only editorial or non-instructional pages were detected. "
    "Upload core medical content pages."
)
MSG_NO_READABLE_TEXT = (
    "No readable text was found in this document. "
    "If this is a scanned file, run OCR first and upload again."
)
MSG_SECTION_TIMED_OUT = "Processing timed out. Please re-upload the file."
MSG_QUESTIONS_FAILED = "Question generation failed"


class PipelineError(Exception):
    def __init__(self, code: str, message: str | None = None):
        super().__init__(message or ERROR_MESSAGES.get(code, code))
        self.code = code
        self.message = message or ERROR_MESSAGES.get(code, code)

    @property
    def status(self) -> HTTPStatus:
        return ERROR_STATUS.get(self.code, HTTPStatus.INTERNAL_SERVER_ERROR)


class InvalidArgument(PipelineError):
    def __init__(self, message: str | None = None):
        super().__init__("INVALID_ARGUMENT", message)


class NotFound(PipelineError):
    def __init__(self, message: str | None = None):
        super().__init__("NOT_FOUND", message)


def fail(code: str, message: str | None = None) -> dict[str, Any]:
    return {
        "success": False,
        "error": {"code": code, "message": message or ERROR_MESSAGES.get(code, code)},
    }


def ok(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data}
