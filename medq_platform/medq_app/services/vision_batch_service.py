"""Batch page-vision extraction over scanned document images."""

from __future__ import annotations

import base64
import binascii
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List

from marshmallow import ValidationError

from ..errors import InvalidArgument
from ..metrics import record_vision_pages
from ..schemas import PageResultSchema, VisionBatchSchema
from ..settings import PipelineSettings
from .ai_client import AIClient
from .fan_out import UnitFailure, clamp_concurrency, run_bounded

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[\w=-]+)*;base64,", re.IGNORECASE)
MIN_IMAGE_LENGTH = 20

batch_schema = VisionBatchSchema()
page_result_schema = PageResultSchema()


@dataclass
class PageImage:
    index: int
    data: str
    mime_type: str


def strip_data_url(value: str) -> tuple[str, str]:
    """Return (base64 payload, mime type) for a raw or data-URL encoded image."""
    match = _DATA_URL_RE.match(value)
    if not match:
        return value.strip(), "image/jpeg"
    return value[match.end():].strip(), match.group("mime") or "image/jpeg"


def validate_batch_request(payload: Any, settings: PipelineSettings) -> tuple[List[PageImage], int]:
    """Validate a batch request; malformed input raises InvalidArgument."""
    if not isinstance(payload, dict):
        raise InvalidArgument("Request body must be an object.")
    try:
        data = batch_schema.load(payload)
    except ValidationError as err:
        messages = err.messages if isinstance(err.messages, dict) else {"_schema": err.messages}
        if "images" in messages:
            raise InvalidArgument("images must be a non-empty array of strings.") from err
        raise InvalidArgument("concurrency must be an integer.") from err

    images = data["images"]
    if len(images) > settings.max_batch_pages:
        raise InvalidArgument(f"Too many pages: maximum is {settings.max_batch_pages} per batch.")

    pages: List[PageImage] = []
    for index, raw in enumerate(images):
        if not isinstance(raw, str) or len(raw) < MIN_IMAGE_LENGTH:
            raise InvalidArgument(f"Image {index} is missing or too short.")
        cleaned, mime_type = strip_data_url(raw)
        if len(cleaned) > settings.max_base64_length:
            raise InvalidArgument(
                f"Image {index} exceeds the maximum size of {settings.max_base64_length} base64 characters."
            )
        try:
            base64.b64decode(cleaned, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise InvalidArgument(f"Image {index} is not valid base64.") from exc
        pages.append(PageImage(index=index, data=cleaned, mime_type=mime_type))

    concurrency = clamp_concurrency(
        data.get("concurrency"),
        settings.default_vision_concurrency,
        settings.max_vision_concurrency,
    )
    return pages, concurrency


def _analyze_page(client: AIClient, page: PageImage) -> Dict[str, Any]:
    result = client.analyze_page_image(page.data, page.index, mime_type=page.mime_type)
    if not result.success:
        raise UnitFailure(result.error or "AI call failed")
    try:
        validated = page_result_schema.load(result.data if isinstance(result.data, dict) else {})
    except ValidationError as err:
        raise UnitFailure(f"Validation failed: {err.messages}") from err
    return {"page": page.index, "records": validated["records"], "ms": result.ms}


def process_document_batch(payload: Any, *, client: AIClient, settings: PipelineSettings) -> Dict[str, Any]:
    """Run vision extraction for every page and aggregate ordered results."""
    pages, concurrency = validate_batch_request(payload, settings)
    started = time.perf_counter()
    outcomes = run_bounded(
        pages,
        lambda _index, page: _analyze_page(client, page),
        concurrency=concurrency,
    )

    succeeded: List[Dict[str, Any]] = []
    failures: List[Dict[str, Any]] = []
    for outcome in outcomes:
        if outcome.success:
            succeeded.append(outcome.data)
        else:
            failures.append({"page": outcome.index, "error": outcome.error, "ms": outcome.ms})
    succeeded.sort(key=lambda entry: entry["page"])

    results = [record for entry in succeeded for record in entry["records"]]
    total_ms = int((time.perf_counter() - started) * 1000)
    record_vision_pages(len(succeeded), len(failures))
    logger.info(
        "Vision batch finished",
        extra={
            "pagesTotal": len(pages),
            "pagesSucceeded": len(succeeded),
            "pagesFailed": len(failures),
            "concurrency": concurrency,
            "durationMs": total_ms,
        },
    )
    return {
        "results": results,
        "pages": succeeded,
        "failures": failures,
        "meta": {
            "model": client.vision_model,
            "totalMs": total_ms,
            "pagesTotal": len(pages),
            "pagesSucceeded": len(succeeded),
            "pagesFailed": len(failures),
            "concurrency": concurrency,
        },
    }
