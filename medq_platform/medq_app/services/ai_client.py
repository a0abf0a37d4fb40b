"""AI gateway client for OpenAI-compatible chat and vision endpoints.

Calls never raise for transport or parse problems; they return an `AIResult`
so per-unit failures can be captured by the caller without aborting a batch.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List

import requests
from flask import current_app

from ..metrics import record_ai_call
from ..utils.sanitize import extract_json
from . import prompts
from .ai_call_log import log_event

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {408, 409, 425, 429, 500, 502, 503, 504}


@dataclass
class AIResult:
    success: bool
    data: Any = None
    error: str | None = None
    model: str | None = None
    ms: int = 0
    tokens: Dict[str, int] = field(default_factory=dict)


class AIRequestError(Exception):
    def __init__(self, message: str, retryable: bool, retry_after: float | None = None):
        super().__init__(message)
        self.retryable = retryable
        self.retry_after = retry_after


def _retry_after_seconds(response: requests.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


@dataclass
class AIClient:
    api_key: str
    api_base: str
    light_model: str
    vision_model: str
    heavy_model: str
    connect_timeout: float = 15
    read_timeout: float = 120
    max_retries: int = 3
    backoff: float = 2.0
    max_tokens: Dict[str, int] = field(default_factory=dict)

    def _post(self, endpoint: str, payload: dict, *, purpose: str) -> dict:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        attempts = max(1, int(self.max_retries))
        attempt = 0
        while True:
            attempt += 1
            started = time.perf_counter()
            try:
                response = requests.post(
                    f"{self.api_base.rstrip('/')}/{endpoint}",
                    headers=headers,
                    data=json.dumps(payload),
                    timeout=(self.connect_timeout, self.read_timeout),
                )
                if response.status_code >= 400:
                    raise AIRequestError(
                        f"AI provider returned HTTP {response.status_code}",
                        retryable=response.status_code in RETRYABLE_STATUS,
                        retry_after=_retry_after_seconds(response),
                    )
                data = response.json()
                log_event(
                    "ai_success",
                    {
                        "purpose": purpose,
                        "attempt": attempt,
                        "max_attempts": attempts,
                        "duration_ms": int((time.perf_counter() - started) * 1000),
                        "model": payload.get("model"),
                    },
                )
                return data
            except (requests.RequestException, AIRequestError, ValueError) as exc:
                retryable = exc.retryable if isinstance(exc, AIRequestError) else not isinstance(exc, ValueError)
                if attempt >= attempts or not retryable:
                    log_event(
                        "ai_failure",
                        {
                            "purpose": purpose,
                            "attempt": attempt,
                            "max_attempts": attempts,
                            "duration_ms": int((time.perf_counter() - started) * 1000),
                            "model": payload.get("model"),
                            "error": str(exc),
                        },
                    )
                    raise
                delay = self.backoff * attempt
                if isinstance(exc, AIRequestError) and exc.retry_after is not None:
                    delay = max(delay, exc.retry_after)
                logger.warning(
                    "AI call %s failed (attempt %s/%s): %s. Retrying in %.1fs",
                    purpose,
                    attempt,
                    attempts,
                    exc,
                    delay,
                )
                time.sleep(delay)

    def _finish(self, purpose: str, model: str, started: float, fn) -> AIResult:
        if not self.api_key:
            return AIResult(success=False, error="OPENAI_API_KEY / AI_API_KEY is not configured", model=model)
        try:
            data, tokens = fn()
        except Exception as exc:
            ms = int((time.perf_counter() - started) * 1000)
            record_ai_call(purpose, False, ms / 1000)
            logger.warning("AI call %s failed: %s", purpose, exc, extra={"purpose": purpose, "durationMs": ms})
            return AIResult(success=False, error=str(exc), model=model, ms=ms)
        ms = int((time.perf_counter() - started) * 1000)
        record_ai_call(purpose, True, ms / 1000)
        return AIResult(success=True, data=data, model=model, ms=ms, tokens=tokens)

    def chat_json(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        model: str | None = None,
        max_tokens: int | None = None,
        purpose: str = "chat",
        temperature: float = 0.2,
    ) -> AIResult:
        model_name = model or self.light_model
        payload: Dict[str, Any] = {
            "model": model_name,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "response_format": {"type": "json_object"},
        }
        if max_tokens:
            payload["max_tokens"] = max_tokens

        def _call():
            data = self._post("chat/completions", payload, purpose=purpose)
            choices = data.get("choices") or []
            if not choices:
                raise ValueError("AI response contained no choices")
            content = (choices[0].get("message") or {}).get("content") or ""
            usage = data.get("usage") or {}
            return extract_json(content), {
                "input": int(usage.get("prompt_tokens") or 0),
                "output": int(usage.get("completion_tokens") or 0),
            }

        return self._finish(purpose, model_name, time.perf_counter(), _call)

    def vision_json(
        self,
        system_prompt: str,
        user_prompt: str,
        image_b64: str,
        *,
        model: str | None = None,
        max_tokens: int | None = None,
        purpose: str = "vision",
        mime_type: str = "image/jpeg",
    ) -> AIResult:
        model_name = model or self.vision_model
        user_content: List[Dict[str, Any]] = [
            {"type": "input_text", "text": user_prompt},
            {"type": "input_image", "image_url": f"data:{mime_type};base64,{image_b64}"},
        ]
        payload: Dict[str, Any] = {
            "model": model_name,
            "input": [
                {"role": "system", "content": [{"type": "input_text", "text": system_prompt}]},
                {"role": "user", "content": user_content},
            ],
            "text": {"format": {"type": "json_object"}},
            "temperature": 0.1,
        }
        if max_tokens:
            payload["max_output_tokens"] = max_tokens

        def _call():
            data = self._post("responses", payload, purpose=purpose)
            texts: List[str] = []
            for chunk in data.get("output", []) or []:
                for content in chunk.get("content", []) or []:
                    if content.get("type") in {"output_text", "text"}:
                        texts.append(content.get("text", ""))
            if not texts and data.get("output_text"):
                texts.append(data["output_text"])
            usage = data.get("usage") or {}
            return extract_json("".join(texts).strip()), {
                "input": int(usage.get("input_tokens") or 0),
                "output": int(usage.get("output_tokens") or 0),
            }

        return self._finish(purpose, model_name, time.perf_counter(), _call)

    def generate_blueprint(self, *, file_name: str, section_label: str, content_type: str, section_text: str) -> AIResult:
        return self.chat_json(
            prompts.BLUEPRINT_SYSTEM,
            prompts.blueprint_user_prompt(
                file_name=file_name,
                section_label=section_label,
                content_type=content_type,
                section_text=section_text,
            ),
            model=self.light_model,
            max_tokens=self.max_tokens.get("blueprint"),
            purpose="blueprint",
        )

    def generate_questions(self, **prompt_fields) -> AIResult:
        return self.chat_json(
            prompts.QUESTIONS_SYSTEM,
            prompts.questions_user_prompt(**prompt_fields),
            model=self.light_model,
            max_tokens=self.max_tokens.get("questions"),
            purpose="questions",
            temperature=0.4,
        )

    def tutor_response(self, *, question: dict, student_answer_index: int, correct_index: int) -> AIResult:
        return self.chat_json(
            prompts.TUTOR_SYSTEM,
            prompts.tutor_user_prompt(
                question=question,
                student_answer_index=student_answer_index,
                correct_index=correct_index,
            ),
            model=self.heavy_model,
            max_tokens=self.max_tokens.get("tutor"),
            purpose="tutor",
        )

    def analyze_page_image(self, image_b64: str, page_index: int, mime_type: str = "image/jpeg") -> AIResult:
        return self.vision_json(
            prompts.DOCUMENT_EXTRACT_SYSTEM,
            prompts.document_extract_user_prompt(page_index=page_index),
            image_b64,
            mime_type=mime_type,
            max_tokens=self.max_tokens.get("document"),
            purpose="page_extraction",
        )


def build_ai_client(config) -> AIClient:
    return AIClient(
        api_key=config.get("OPENAI_API_KEY", ""),
        api_base=config.get("AI_API_BASE", "https://api.openai.com/v1"),
        light_model=config.get("AI_LIGHT_MODEL", "gpt-4.1-mini"),
        vision_model=config.get("AI_VISION_MODEL") or config.get("AI_LIGHT_MODEL", "gpt-4.1-mini"),
        heavy_model=config.get("AI_HEAVY_MODEL", "gpt-4.1"),
        connect_timeout=config.get("AI_CONNECT_TIMEOUT_SEC", 15),
        read_timeout=config.get("AI_READ_TIMEOUT_SEC", 120),
        max_retries=int(config.get("AI_API_MAX_RETRIES", 3)),
        backoff=float(config.get("AI_API_RETRY_BACKOFF", 2.0)),
        max_tokens={
            "blueprint": int(config.get("AI_MAX_TOKENS_BLUEPRINT", 2048)),
            "questions": int(config.get("AI_MAX_TOKENS_QUESTIONS", 4096)),
            "tutor": int(config.get("AI_MAX_TOKENS_TUTOR", 1024)),
            "document": int(config.get("AI_MAX_TOKENS_DOCUMENT", 1200)),
        },
    )


def get_ai_client() -> AIClient:
    app = current_app
    client = app.extensions.get("ai_client")
    if client is None:
        client = build_ai_client(app.config)
        app.extensions["ai_client"] = client
    return client
