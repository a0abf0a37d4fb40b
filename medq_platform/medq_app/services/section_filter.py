"""Heuristic gate that drops non-instructional sections before AI analysis."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Tuple

MIN_TEXT_LENGTH = 120
OPENING_WINDOW = 1500
HINT_WINDOW = 2500
SCORE_THRESHOLD = 4

OPENING_MARKERS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\btable of contents\b",
        r"^\s*contents\b",
        r"^\s*editorial\b",
        r"\bletter to the editor\b",
        r"^\s*correspondence\b",
        r"\babout this issue\b",
        r"\bin this issue\b",
        r"\bnews (?:and|&) views\b",
        r"\bmasthead\b",
        r"\badvertisement\b",
        r"\bsponsored content\b",
    )
]
METADATA_MARKERS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\bcopyright\b",
        r"\ball rights reserved\b",
        r"\bpermissions?\b",
        r"\bsubscription\b",
        r"\bissn\b",
    )
]
MEDICAL_HINTS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\bdiagnos(?:is|tic)\b",
        r"\btreat(?:ment|ing)\b",
        r"\bmanagement\b",
        r"\bclinical\b",
        r"\bpathophysiolog(?:y|ic)\b",
        r"\bsymptoms?\b",
        r"\bprognos(?:is|tic)\b",
        r"\bguidelines?\b",
        r"\bdifferential\b",
        r"\bmedications?\b",
    )
]
TITLE_MARKER = re.compile(r"\b(?:editorial|letter|correspondence|contents|masthead)\b", re.IGNORECASE)


@dataclass
class FilterDecision:
    include: bool
    score: int
    reason: str


def _count_hits(patterns: Iterable[re.Pattern], text: str) -> int:
    return sum(1 for pattern in patterns if pattern.search(text))


def evaluate_section(title: str | None, text: str | None) -> FilterDecision:
    body = (text or "").strip()
    if len(body) < MIN_TEXT_LENGTH:
        return FilterDecision(False, 99, "Section text too short")

    opening = body[:OPENING_WINDOW]
    opening_hits = _count_hits(OPENING_MARKERS, opening)
    metadata_hits = _count_hits(METADATA_MARKERS, opening)
    medical_hits = _count_hits(MEDICAL_HINTS, body[:HINT_WINDOW])
    title_hit = 1 if TITLE_MARKER.search(title or "") else 0
    score = opening_hits * 3 + metadata_hits + title_hit * 2 - min(3, medical_hits)

    if opening_hits >= 2:
        return FilterDecision(False, score, "Editorial/front-matter markers detected")
    if metadata_hits >= 2 and metadata_hits > medical_hits and medical_hits < 2:
        return FilterDecision(False, score, "Copyright/publication metadata dominates")
    if score >= SCORE_THRESHOLD:
        return FilterDecision(False, score, "Low instructional signal")
    return FilterDecision(True, score, "Instructional section")


def filter_analyzable_sections(sections: List[dict]) -> Tuple[List[dict], List[dict]]:
    """Split extractor output into kept sections and audit entries for dropped ones."""
    kept: List[dict] = []
    dropped: List[dict] = []
    for index, section in enumerate(sections):
        decision = evaluate_section(section.get("title"), section.get("text"))
        if decision.include:
            kept.append(section)
            continue
        dropped.append(
            {
                "index": index,
                "title": section.get("title") or f"Section {index + 1}",
                "score": decision.score,
                "reason": decision.reason,
            }
        )
    return kept, dropped
