"""Map loosely-typed AI JSON onto the canonical blueprint / question / tutor shapes.

All functions are pure: no network, no storage. Free text is sanitised before
it is truncated. Every field accepts its snake_case or camelCase spelling.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional
from urllib.parse import quote_plus

from ..utils.sanitize import clean, first_present, sanitize_list, sanitize_text

TRUSTED_SOURCES = ("PubMed", "UpToDate", "Medscape")
SEARCH_URLS = {
    "PubMed": "https://pubmed.ncbi.nlm.nih.gov/?term=",
    "UpToDate": "https://www.uptodate.com/contents/search?search=",
    "Medscape": "https://www.medscape.com/search?queryText=",
}
MAX_RAW_CITATIONS = 8
MAX_CITATIONS = 3
MAX_OPTIONS = 8
MAX_TOPIC_TAGS = 10
WRONG_OPTION_FILLER = "This option is incorrect."
DEFAULT_TOPIC = "medical topic"

GENERIC_TITLE_RE = re.compile(
    r"\b(?:Pages?|Slides?|Section|Chapter|Part)\s*\d+(?:\s*(?:-|–|—|to)\s*\d+)?\b"
    r"|(?:^|\b)(?:Untitled|Unknown\s+Section)(?:\b|$)",
    re.IGNORECASE,
)

BLUEPRINT_LISTS = (
    ("learningObjectives", "learning_objectives"),
    ("keyConcepts", "key_concepts"),
    ("highYieldPoints", "high_yield_points"),
    ("commonTraps", "common_traps"),
    ("termsToDefine", "terms_to_define"),
)
# Candidate order when the model's title is missing or generic.
TITLE_SOURCES = ("topicTags", "keyConcepts", "termsToDefine", "learningObjectives", "highYieldPoints")
TITLE_MAX = 200
TITLE_CANDIDATE_MAX = 80


def _as_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(round(float(value)))
    except (TypeError, ValueError):
        return default


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def is_generic_title(title: str | None) -> bool:
    text = (title or "").strip()
    return not text or bool(GENERIC_TITLE_RE.search(text))


def derive_title(blueprint: Dict[str, List[str]], topic_tags: List[str]) -> str | None:
    """Pick the first non-generic candidate, optionally joined with a second."""
    pools = {"topicTags": topic_tags, **blueprint}
    picked: List[str] = []
    for source in TITLE_SOURCES:
        for candidate in pools.get(source) or []:
            text = candidate.strip().rstrip(".")
            if not text or is_generic_title(text) or len(text) > TITLE_CANDIDATE_MAX:
                continue
            if any(text.lower() == existing.lower() for existing in picked):
                continue
            picked.append(text)
            if len(picked) == 2:
                break
        if len(picked) == 2:
            break
    if not picked:
        return None
    return " - ".join(picked)[:TITLE_MAX]


def normalize_blueprint(raw: Any, *, fallback_title: str | None = None) -> Dict[str, Any]:
    raw = raw if isinstance(raw, dict) else {}
    blueprint = {
        camel: sanitize_list(first_present(raw, camel, snake), limit=500)
        for camel, snake in BLUEPRINT_LISTS
    }
    topic_tags = sanitize_list(first_present(raw, "topicTags", "topic_tags"), limit=80, max_items=MAX_TOPIC_TAGS)

    title = clean(raw.get("title"), TITLE_MAX)
    if is_generic_title(title):
        title = derive_title(blueprint, topic_tags) or title or (fallback_title or "Untitled Section")[:TITLE_MAX]

    return {
        "title": title,
        "difficulty": _clamp(_as_int(raw.get("difficulty"), 3), 1, 5),
        "estMinutes": max(1, _as_int(first_present(raw, "estMinutes", "estimatedMinutes", "estimated_minutes"), 15)),
        "topicTags": topic_tags,
        "blueprint": blueprint,
    }


def normalize_citation_source(raw_source: Any) -> str:
    value = str(raw_source or "").strip().lower()
    if "uptodate" in value or "up to date" in value:
        return "UpToDate"
    if "medscape" in value:
        return "Medscape"
    return "PubMed"


def build_search_url(source: str, topic: str) -> str:
    query = quote_plus((topic or DEFAULT_TOPIC)[:120])
    return f"{SEARCH_URLS.get(source, SEARCH_URLS['PubMed'])}{query}"


def build_citation_fallbacks(stem: str | None = None, topic_tags: List[str] | None = None) -> List[Dict[str, str]]:
    seed = (topic_tags or [None])[0] or stem or DEFAULT_TOPIC
    topic = sanitize_text(seed)[:90] or DEFAULT_TOPIC
    return [
        {"source": source, "title": f"{source}: {topic}", "url": build_search_url(source, topic)}
        for source in TRUSTED_SOURCES
    ]


def _collect_citations(raw_citations: Any) -> List[Dict[str, str]]:
    if not isinstance(raw_citations, list):
        return []
    seen: set[str] = set()
    citations: List[Dict[str, str]] = []
    for item in raw_citations[:MAX_RAW_CITATIONS]:
        if isinstance(item, str):
            item = {"title": item}
        if not isinstance(item, dict):
            continue
        title = clean(first_present(item, "title", "label", "name"), 250)
        if not title:
            continue
        source = normalize_citation_source(item.get("source"))
        key = f"{source}:{' '.join(title.lower().split())}"
        if key in seen:
            continue
        seen.add(key)
        citations.append({"source": source, "title": title, "url": build_search_url(source, title)})
        if len(citations) >= MAX_CITATIONS:
            break
    return citations


def normalize_citations(raw_citations: Any, *, stem: str | None = None, topic_tags: List[str] | None = None) -> List[Dict[str, str]]:
    """Return 1-3 deduplicated citations, or exactly 3 fallback search links."""
    return _collect_citations(raw_citations) or build_citation_fallbacks(stem, topic_tags)


def evidence_quality(citations: List[Dict[str, str]], *, fallback_used: bool = False) -> Dict[str, Any]:
    sources = {citation["source"] for citation in citations}
    if fallback_used:
        quality = "LOW"
    elif len(citations) >= 3 and len(sources) >= 2:
        quality = "HIGH"
    elif len(citations) >= 2:
        quality = "MODERATE"
    else:
        quality = "LOW"
    return {
        "count": len(citations),
        "sourceCount": len(sources),
        "fallbackUsed": fallback_used,
        "evidenceQuality": quality,
    }


def _option_text(value: Any) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    return clean(value, 500)


def normalize_question(raw: Any, defaults: Dict[str, Any] | None = None) -> Optional[Dict[str, Any]]:
    """Return a canonical question, or None when the item is structurally invalid."""
    if not isinstance(raw, dict):
        return None
    defaults = defaults or {}
    raw_correct = first_present(raw, "correctIndex", "correct_index")
    stem = clean(raw.get("stem"), 2000)
    raw_options = raw.get("options")
    if raw_correct is None or not stem or not isinstance(raw_options, (list, tuple)):
        return None
    # Options keep their positions; correctIndex and whyOthersWrong index into them.
    options = [_option_text(option) for option in raw_options[:MAX_OPTIONS]]
    if len(options) < 2 or not all(options):
        return None
    correct_index = _as_int(raw_correct, -1)
    if correct_index < 0 and not isinstance(raw_correct, (int, float)):
        return None
    correct_index = _clamp(correct_index, 0, len(options) - 1)

    explanation = raw.get("explanation") if isinstance(raw.get("explanation"), dict) else {}
    raw_wrong = first_present(explanation, "whyOthersWrong", "why_others_wrong")
    wrong = [clean(entry, 400) for entry in raw_wrong[: len(options)]] if isinstance(raw_wrong, list) else []
    wrong = [entry or WRONG_OPTION_FILLER for entry in wrong]
    wrong.extend([WRONG_OPTION_FILLER] * (len(options) - len(wrong)))

    topic_tags = sanitize_list(first_present(raw, "tags", "topicTags", "topic_tags"), limit=80, max_items=MAX_TOPIC_TAGS)
    if not topic_tags:
        topic_tags = list(defaults.get("topicTags") or [])[:MAX_TOPIC_TAGS]

    raw_citations = first_present(raw, "citations") or explanation.get("citations") or raw.get("references")
    collected = _collect_citations(raw_citations)
    citations = collected or build_citation_fallbacks(stem, topic_tags)

    source_ref = first_present(raw, "sourceRef", "source_ref")
    source_ref = source_ref if isinstance(source_ref, dict) else {}
    label = first_present(source_ref, "sectionLabel", "section_label", "label") or defaults.get("sectionTitle") or ""

    return {
        "type": "SBA",
        "stem": stem,
        "options": options,
        "correctIndex": correct_index,
        "difficulty": _clamp(_as_int(raw.get("difficulty"), 3), 1, 5),
        "topicTags": topic_tags,
        "explanation": {
            "correctWhy": clean(first_present(explanation, "correctWhy", "correct_why"), 1000),
            "whyOthersWrong": wrong,
            "keyTakeaway": clean(first_present(explanation, "keyTakeaway", "key_takeaway"), 500),
        },
        "citations": citations,
        "citationMeta": evidence_quality(citations, fallback_used=not collected),
        "sourceRef": {
            "fileId": defaults.get("fileId"),
            "fileName": clean(defaults.get("fileName") or source_ref.get("fileName"), 200),
            "sectionId": defaults.get("sectionId"),
            "label": clean(label, 200),
        },
        "sectionId": defaults.get("sectionId"),
        "fileId": defaults.get("fileId"),
        "courseId": defaults.get("courseId"),
        "stats": {"timesAnswered": 0, "timesCorrect": 0, "avgTimeSec": 0},
    }


def normalize_tutor_response(raw: Any) -> Optional[Dict[str, Any]]:
    """Return the tutoring payload, or None when the model omitted the essentials."""
    if not isinstance(raw, dict):
        return None
    tutor = raw.get("tutor") if isinstance(raw.get("tutor"), dict) else raw
    correct_answer = clean(first_present(tutor, "correct_answer", "correctAnswer"), 1000)
    why_correct = clean(first_present(tutor, "why_correct", "whyCorrect"), 2000)
    if not correct_answer or not why_correct:
        return None
    follow_ups = []
    raw_follow_ups = first_present(tutor, "follow_ups", "followUps")
    for item in raw_follow_ups if isinstance(raw_follow_ups, list) else []:
        if not isinstance(item, dict):
            continue
        question = clean(first_present(item, "q", "question"), 500)
        answer = clean(first_present(item, "a", "answer"), 1000)
        if question and answer:
            follow_ups.append({"q": question, "a": answer})
    return {
        "correctAnswer": correct_answer,
        "whyCorrect": why_correct,
        "whyStudentWrong": clean(first_present(tutor, "why_student_wrong", "whyStudentWrong"), 2000),
        "keyTakeaway": clean(first_present(tutor, "key_takeaway", "keyTakeaway"), 500),
        "followUps": follow_ups[:3],
    }
