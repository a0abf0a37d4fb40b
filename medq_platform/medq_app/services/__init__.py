"""Pipeline services (AI gateway, extraction, section state machine, retry)."""

from . import (
    ai_client,
    extraction_service,
    retry_service,
    section_pipeline,
    tutor_service,
    vision_batch_service,
)

__all__ = [
    "ai_client",
    "extraction_service",
    "retry_service",
    "section_pipeline",
    "tutor_service",
    "vision_batch_service",
]
