"""Utility helpers (document extraction, text sanitisation)."""

from .sanitize import clean, extract_json, sanitize_list, sanitize_text, truncate

__all__ = ["clean", "extract_json", "sanitize_list", "sanitize_text", "truncate"]
