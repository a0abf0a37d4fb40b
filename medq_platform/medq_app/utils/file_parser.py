"""Split uploaded PDF / DOCX / PPTX documents into bounded study sections.

Every extractor returns a list of dicts shaped like::

    {"text": ..., "title": ..., "startPage"|"startSlide"|"startWord": n,
     "endPage"|"endSlide"|"endWord": m, "estMinutes": k}
"""

from __future__ import annotations

import math
import re
from pathlib import Path
from typing import Callable, Dict, List

import docx
import pdfplumber
from pptx import Presentation

PDF_MIME = "application/pdf"
PPTX_MIME = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

_CONTINUATION_RE = re.compile(r"[,;:]$")
_LETTER_RE = re.compile(r"[a-zA-Z]")
_HEADING_START_RE = re.compile(r"^[A-Z]|^\d+[.\-)]\s*[A-Z]")
_BARE_NUMBER_RE = re.compile(r"^\d+$")
_PAGE_MARKER_RE = re.compile(r"^page\s+\d+$", re.IGNORECASE)
_CAPTION_RE = re.compile(r"^(?:figure|table)\s+\d", re.IGNORECASE)


def detect_headings(full_text: str) -> List[dict]:
    """Return heading-like lines with their character offsets."""
    headings: List[dict] = []
    lines = full_text.split("\n")
    offset = 0
    for index, raw_line in enumerate(lines):
        line = raw_line.strip()
        prev_line = lines[index - 1].strip() if index > 0 else ""
        if (
            (index == 0 or prev_line == "")
            and 3 <= len(line) <= 120
            and not _CONTINUATION_RE.search(line)
            and _LETTER_RE.search(line)
            and _HEADING_START_RE.search(line)
            and not _BARE_NUMBER_RE.match(line)
            and not _PAGE_MARKER_RE.match(line)
            and not _CAPTION_RE.match(line)
        ):
            headings.append({"text": line, "offset": offset})
        offset += len(raw_line) + 1
    return headings


def snap_to_break(text: str, pos: int, max_scan: int = 500) -> int:
    """Move a cut position to the nearest paragraph break, else a sentence end."""
    if pos <= 0:
        return 0
    if pos >= len(text):
        return len(text)
    for i in range(pos, min(pos + max_scan, len(text) - 1)):
        if text[i] == "\n" and text[i + 1] == "\n":
            return i + 2
    for i in range(pos, max(pos - max_scan, 1), -1):
        if text[i] == "\n" and text[i - 1] == "\n":
            return i + 1
    for i in range(pos, min(pos + max_scan, len(text) - 1)):
        if text[i] == "." and text[i + 1] in (" ", "\n"):
            return i + 2
    return pos


def _read_pdf(path: Path) -> tuple[str, int]:
    with pdfplumber.open(path) as pdf:
        pages = [page.extract_text() or "" for page in pdf.pages]
    return "\n\n".join(pages), len(pages)


def extract_pdf_sections(path: str | Path, *, pages_per_section: int = 15, min_chars: int = 100) -> List[dict]:
    full_text, total_pages = _read_pdf(Path(path))
    chars_per_page = len(full_text) / max(total_pages, 1)
    headings = detect_headings(full_text)

    sections: List[dict] = []
    start_page = 1
    prev_end = 0
    while start_page <= total_pages:
        end_page = min(start_page + pages_per_section - 1, total_pages)
        start_char = prev_end
        if end_page == total_pages:
            end_char = len(full_text)
        else:
            end_char = snap_to_break(full_text, int(end_page * chars_per_page))
        text = full_text[start_char:end_char].strip()
        if len(text) >= min_chars:
            heading = next(
                (h for h in headings if start_char <= h["offset"] < end_char),
                None,
            )
            sections.append(
                {
                    "text": text,
                    "title": heading["text"] if heading else f"Pages {start_page}–{end_page}",
                    "startPage": start_page,
                    "endPage": end_page,
                    "estMinutes": (end_page - start_page + 1) * 3,
                }
            )
        prev_end = end_char
        start_page = end_page + 1

    if not sections:
        trimmed = full_text.strip()
        if trimmed:
            last_page = max(total_pages, 1)
            sections.append(
                {
                    "text": trimmed,
                    "title": headings[0]["text"] if headings else f"Pages 1–{last_page}",
                    "startPage": 1,
                    "endPage": last_page,
                    "estMinutes": max(1, math.ceil(len(trimmed.split()) / 180)),
                }
            )
    return sections


def extract_docx_sections(path: str | Path, *, words_per_section: int = 1800, min_chars: int = 100) -> List[dict]:
    document = docx.Document(str(path))
    full_text = "\n".join(paragraph.text for paragraph in document.paragraphs)
    words = full_text.split()
    total = len(words)

    sections: List[dict] = []
    start = 0
    while start < total:
        end = min(start + words_per_section, total)
        text = " ".join(words[start:end]).strip()
        if len(text) >= min_chars:
            sections.append(
                {
                    "text": text,
                    "title": f"Section {len(sections) + 1} (words {start + 1}–{end})",
                    "startWord": start + 1,
                    "endWord": end,
                    "estMinutes": math.ceil((end - start) / 150),
                }
            )
        start = end
    return sections


def _slide_text(slide) -> str:
    parts = []
    for shape in slide.shapes:
        if getattr(shape, "has_text_frame", False) and shape.text_frame.text.strip():
            parts.append(shape.text_frame.text.strip())
    return " ".join(parts)


def extract_pptx_sections(path: str | Path, *, slides_per_section: int = 30, min_chars: int = 100) -> List[dict]:
    presentation = Presentation(str(path))
    slide_texts = [_slide_text(slide) for slide in presentation.slides]
    total = len(slide_texts)

    sections: List[dict] = []
    start = 1
    while start <= total:
        end = min(start + slides_per_section - 1, total)
        text = "\n\n".join(slide_texts[start - 1 : end]).strip()
        if len(text) >= min_chars:
            sections.append(
                {
                    "text": text,
                    "title": f"Slides {start}–{end}",
                    "startSlide": start,
                    "endSlide": end,
                    "estMinutes": (end - start + 1) * 2,
                }
            )
        start = end + 1

    if not sections:
        merged = "\n\n".join(slide_texts).strip()
        if merged:
            last = max(total, 1)
            sections.append(
                {
                    "text": merged,
                    "title": f"Slides 1–{last}",
                    "startSlide": 1,
                    "endSlide": last,
                    "estMinutes": max(1, last * 2),
                }
            )
    return sections


EXTRACTORS: Dict[str, Callable[..., List[dict]]] = {
    PDF_MIME: extract_pdf_sections,
    DOCX_MIME: extract_docx_sections,
    PPTX_MIME: extract_pptx_sections,
}

SUPPORTED_MIME_TYPES = frozenset(EXTRACTORS)


def is_supported(content_type: str | None) -> bool:
    return bool(content_type) and content_type in SUPPORTED_MIME_TYPES
