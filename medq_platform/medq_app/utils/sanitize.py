"""Text sanitisation and JSON recovery helpers for AI output."""

from __future__ import annotations

import json
import re
from typing import Any, Iterable, List

_SCRIPT_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_STYLE_RE = re.compile(r"<style\b[^<]*(?:(?!</style>)<[^<]*)*</style>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]*>")
_JS_URL_RE = re.compile(r"javascript:", re.IGNORECASE)
_DATA_HTML_RE = re.compile(r"data:text/html", re.IGNORECASE)
_EVENT_HANDLER_RE = re.compile(r"on\w+\s*=", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")
_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def sanitize_text(value: Any) -> str:
    """Strip markup, script payloads, and event handlers; collapse whitespace."""
    if not isinstance(value, str) or not value:
        return ""
    text = _SCRIPT_RE.sub("", value)
    text = _STYLE_RE.sub("", text)
    text = _TAG_RE.sub("", text)
    text = _JS_URL_RE.sub("", text)
    text = _DATA_HTML_RE.sub("", text)
    text = _EVENT_HANDLER_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def truncate(value: str, limit: int) -> str:
    if not value:
        return ""
    return value[:limit]


def clean(value: Any, limit: int) -> str:
    """Sanitize first, then cut to `limit` characters."""
    return truncate(sanitize_text(value), limit)


def sanitize_list(values: Any, limit: int = 500, max_items: int | None = None) -> List[str]:
    if not isinstance(values, (list, tuple)):
        return []
    items = values[:max_items] if max_items is not None else values
    cleaned = (clean(item, limit) for item in items)
    return [item for item in cleaned if item]


def first_present(raw: dict, *keys: str) -> Any:
    """Return the first key present with a non-None value (snake or camel variants)."""
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _balanced_slice(text: str, start: int) -> str | None:
    opener = text[start]
    closer = "}" if opener == "{" else "]"
    end = text.rfind(closer)
    if end <= start:
        return None
    return text[start : end + 1]


def extract_json(text: str | None) -> Any:
    """Parse JSON from model output that may carry fences or surrounding prose."""
    if not text:
        raise ValueError("Empty AI response")
    stripped = text.strip()
    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        pass
    unfenced = _FENCE_RE.sub("", stripped).strip()
    try:
        return json.loads(unfenced)
    except json.JSONDecodeError:
        pass
    starts: Iterable[int] = sorted(
        idx for idx in (unfenced.find("{"), unfenced.find("[")) if idx >= 0
    )
    for start in starts:
        candidate = _balanced_slice(unfenced, start)
        if candidate is None:
            continue
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    raise ValueError("AI response did not contain valid JSON")
