"""Immutable pipeline limits handed to each component."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from flask import current_app


@dataclass(frozen=True)
class PipelineSettings:
    max_batch_pages: int = 25
    max_base64_length: int = 450_000
    default_vision_concurrency: int = 8
    max_vision_concurrency: int = 12
    default_question_count: int = 8
    store_batch_limit: int = 500
    pages_per_section: int = 15
    slides_per_section: int = 30
    words_per_section: int = 1800
    min_chars_per_section: int = 100
    section_workers: int = 4
    stuck_section_minutes: int = 10
    light_model: str = "gpt-4.1-mini"
    vision_model: str = "gpt-4.1-mini"
    heavy_model: str = "gpt-4.1"

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "PipelineSettings":
        defaults = cls()
        return cls(
            max_batch_pages=int(config.get("MAX_BATCH_PAGES", defaults.max_batch_pages)),
            max_base64_length=int(config.get("MAX_BASE64_LENGTH", defaults.max_base64_length)),
            default_vision_concurrency=int(
                config.get("DEFAULT_VISION_CONCURRENCY", defaults.default_vision_concurrency)
            ),
            max_vision_concurrency=int(
                config.get("MAX_VISION_CONCURRENCY", defaults.max_vision_concurrency)
            ),
            default_question_count=int(
                config.get("DEFAULT_QUESTION_COUNT", defaults.default_question_count)
            ),
            store_batch_limit=max(1, int(config.get("STORE_BATCH_LIMIT", defaults.store_batch_limit))),
            pages_per_section=int(config.get("PAGES_PER_SECTION", defaults.pages_per_section)),
            slides_per_section=int(config.get("SLIDES_PER_SECTION", defaults.slides_per_section)),
            words_per_section=int(config.get("WORDS_PER_SECTION", defaults.words_per_section)),
            min_chars_per_section=int(
                config.get("MIN_CHARS_PER_SECTION", defaults.min_chars_per_section)
            ),
            section_workers=max(1, int(config.get("SECTION_WORKERS", defaults.section_workers))),
            stuck_section_minutes=int(
                config.get("STUCK_SECTION_MINUTES", defaults.stuck_section_minutes)
            ),
            light_model=config.get("AI_LIGHT_MODEL") or defaults.light_model,
            vision_model=config.get("AI_VISION_MODEL") or defaults.vision_model,
            heavy_model=config.get("AI_HEAVY_MODEL") or defaults.heavy_model,
        )


def get_settings() -> PipelineSettings:
    """Return the settings object built once per app."""
    app = current_app
    settings = app.extensions.get("pipeline_settings")
    if settings is None:
        settings = PipelineSettings.from_config(app.config)
        app.extensions["pipeline_settings"] = settings
    return settings
