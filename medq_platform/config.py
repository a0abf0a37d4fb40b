"""Application configuration objects."""

from __future__ import annotations

import os
from datetime import timedelta
from functools import lru_cache
from typing import Any, Type

from sqlalchemy.pool import NullPool, StaticPool


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class BaseConfig:
    """Shared defaults across all environments."""

    APP_NAME = "MedQ"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite+pysqlite:///medq_dev.db",
    )
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change_me")
    JWT_TOKEN_LOCATION = ("headers", "query_string")
    JWT_QUERY_STRING_NAME = "token"
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(
        seconds=int(os.getenv("JWT_ACCESS_TOKEN_EXPIRES_SEC", "43200"))
    )

    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY") or os.getenv("AI_API_KEY", "")
    AI_API_KEY = OPENAI_API_KEY  # backwards-compatible alias
    AI_API_BASE = os.getenv("AI_API_BASE", "https://api.openai.com/v1")
    AI_API_MAX_RETRIES = int(os.getenv("AI_API_MAX_RETRIES", "3"))
    AI_API_RETRY_BACKOFF = float(os.getenv("AI_API_RETRY_BACKOFF", "2.0"))
    AI_TIMEOUT_SECONDS = int(os.getenv("AI_TIMEOUT_SECONDS", "120"))
    AI_CONNECT_TIMEOUT_SEC = int(os.getenv("AI_CONNECT_TIMEOUT_SEC", "15"))
    AI_READ_TIMEOUT_SEC = int(
        os.getenv("AI_READ_TIMEOUT_SEC", str(AI_TIMEOUT_SECONDS))
    )
    # Model tiers: light for structural work, vision for page OCR, heavy for tutoring.
    AI_LIGHT_MODEL = os.getenv("AI_LIGHT_MODEL", "gpt-4.1-mini")
    AI_VISION_MODEL = os.getenv("AI_VISION_MODEL") or AI_LIGHT_MODEL
    AI_HEAVY_MODEL = os.getenv("AI_HEAVY_MODEL", "gpt-4.1")
    AI_MAX_TOKENS_BLUEPRINT = int(os.getenv("AI_MAX_TOKENS_BLUEPRINT", "2048"))
    AI_MAX_TOKENS_QUESTIONS = int(os.getenv("AI_MAX_TOKENS_QUESTIONS", "4096"))
    AI_MAX_TOKENS_TUTOR = int(os.getenv("AI_MAX_TOKENS_TUTOR", "1024"))
    AI_MAX_TOKENS_DOCUMENT = int(os.getenv("AI_MAX_TOKENS_DOCUMENT", "1200"))
    AI_CALL_LOG_DIR = os.getenv("AI_CALL_LOG_DIR")

    MAX_BATCH_PAGES = int(os.getenv("MAX_BATCH_PAGES", "25"))
    MAX_BASE64_LENGTH = int(os.getenv("MAX_BASE64_LENGTH", "450000"))
    DEFAULT_VISION_CONCURRENCY = int(os.getenv("DEFAULT_VISION_CONCURRENCY", "8"))
    MAX_VISION_CONCURRENCY = int(os.getenv("MAX_VISION_CONCURRENCY", "12"))
    DEFAULT_QUESTION_COUNT = int(os.getenv("DEFAULT_QUESTION_COUNT", "8"))
    STORE_BATCH_LIMIT = int(os.getenv("STORE_BATCH_LIMIT", "500"))
    PAGES_PER_SECTION = int(os.getenv("PAGES_PER_SECTION", "15"))
    SLIDES_PER_SECTION = int(os.getenv("SLIDES_PER_SECTION", "30"))
    WORDS_PER_SECTION = int(os.getenv("WORDS_PER_SECTION", "1800"))
    MIN_CHARS_PER_SECTION = int(os.getenv("MIN_CHARS_PER_SECTION", "100"))
    SECTION_WORKERS = int(os.getenv("SECTION_WORKERS", "4"))
    STUCK_SECTION_MINUTES = int(os.getenv("STUCK_SECTION_MINUTES", "10"))
    BLOB_ROOT = os.getenv("BLOB_ROOT")
    PIPELINE_JOBS_SYNC = _env_flag("PIPELINE_JOBS_SYNC")
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_UPLOAD_MB", "50")) * 1024 * 1024

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    RATE_LIMIT_DEFAULTS = [limit.strip() for limit in os.getenv("RATE_LIMIT_DEFAULTS", "200 per minute;1000 per day").split(";") if limit.strip()]
    VISION_BATCH_RATE_LIMIT = os.getenv("VISION_BATCH_RATE_LIMIT", "20 per minute")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    JSON_SORT_KEYS = False
    SQLITE_TIMEOUT_SEC = int(os.getenv("SQLITE_TIMEOUT_SEC", "15"))
    SQLITE_BUSY_TIMEOUT_MS = int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "15000"))
    if SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
        SQLALCHEMY_ENGINE_OPTIONS = {
            "poolclass": NullPool,
            "connect_args": {"timeout": SQLITE_TIMEOUT_SEC, "check_same_thread": False},
        }
    else:
        SQLALCHEMY_ENGINE_OPTIONS = {
            "pool_pre_ping": True,
            "pool_size": int(os.getenv("DB_POOL_SIZE", "5")),
            "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "10")),
            "pool_timeout": int(os.getenv("DB_POOL_TIMEOUT", "30")),
        }


class DevConfig(BaseConfig):
    DEBUG = True


class ProdConfig(BaseConfig):
    DEBUG = False


class TestConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite+pysqlite:///:memory:"
    # A single shared connection keeps the in-memory schema alive across sessions.
    SQLALCHEMY_ENGINE_OPTIONS = {
        "poolclass": StaticPool,
        "connect_args": {"check_same_thread": False},
    }
    JWT_SECRET_KEY = "test-secret"
    OPENAI_API_KEY = ""
    AI_API_KEY = ""
    AI_API_MAX_RETRIES = 1
    AI_API_RETRY_BACKOFF = 0.0
    RATELIMIT_ENABLED = False


CONFIG_ALIASES: dict[str, Type[BaseConfig]] = {
    "dev": DevConfig,
    "development": DevConfig,
    "prod": ProdConfig,
    "production": ProdConfig,
    "test": TestConfig,
    "testing": TestConfig,
}


@lru_cache
def resolve_config(name_or_class: Any) -> Any:
    """Resolve config argument to the object expected by `app.config.from_object`."""

    if name_or_class is None:
        return DevConfig
    if isinstance(name_or_class, str):
        return CONFIG_ALIASES.get(name_or_class, name_or_class)
    return name_or_class
