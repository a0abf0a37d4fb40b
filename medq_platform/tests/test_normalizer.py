"""Tests for AI response normalization."""

from __future__ import annotations

from urllib.parse import urlparse

import pytest

from medq_app.services import normalizer


def test_minimal_question_pads_why_others_wrong():
    raw = {"stem": "Which drug?", "options": ["A", "B", "C", "D"], "correct_index": 0}
    result = normalizer.normalize_question(raw)
    assert result is not None
    assert len(result["explanation"]["whyOthersWrong"]) == 4
    assert set(result["explanation"]["whyOthersWrong"]) == {normalizer.WRONG_OPTION_FILLER}


def test_why_others_wrong_truncated_to_option_count():
    raw = {
        "stem": "Pick one",
        "options": ["A", "B"],
        "correctIndex": 1,
        "explanation": {"why_others_wrong": ["w1", "w2", "w3", "w4"]},
    }
    result = normalizer.normalize_question(raw)
    assert result["explanation"]["whyOthersWrong"] == ["w1", "w2"]


@pytest.mark.parametrize(
    "raw",
    [
        {"options": ["A", "B"], "correct_index": 0},
        {"stem": "Stem", "correct_index": 0},
        {"stem": "Stem", "options": ["A", "B"]},
        {"stem": "<script>alert(1)</script>", "options": ["A", "B"], "correct_index": 0},
        "not a dict",
    ],
)
def test_invalid_questions_are_rejected(raw):
    assert normalizer.normalize_question(raw) is None


def test_correct_index_clamped_and_options_capped():
    raw = {"stem": "Stem", "options": [f"opt {i}" for i in range(12)], "correct_index": 40}
    result = normalizer.normalize_question(raw)
    assert len(result["options"]) == normalizer.MAX_OPTIONS
    assert result["correctIndex"] == normalizer.MAX_OPTIONS - 1


def test_question_text_sanitized_before_truncation():
    raw = {
        "stem": "<b>Bold</b> stem <img src=x onerror=alert(1)>",
        "options": ["<i>one</i>", "two"],
        "correct_index": 0,
    }
    result = normalizer.normalize_question(raw)
    assert "<" not in result["stem"]
    assert result["options"][0] == "one"


def test_empty_citations_fall_back_to_three_trusted_sources():
    citations = normalizer.normalize_citations([], stem="Acute asthma management")
    assert len(citations) == 3
    assert [c["source"] for c in citations] == list(normalizer.TRUSTED_SOURCES)
    for citation in citations:
        parsed = urlparse(citation["url"])
        assert parsed.scheme == "https"
        assert parsed.netloc
        assert "Acute+asthma" in citation["url"]


def test_citations_deduplicated_and_capped():
    raw = [
        {"source": "pubmed", "title": "Asthma guideline"},
        {"source": "PubMed", "title": "asthma   guideline"},
        {"source": "UpToDate", "title": "Asthma in adults"},
        {"source": "medscape", "title": "Asthma overview"},
        {"source": "medscape", "title": "Extra one"},
    ]
    citations = normalizer.normalize_citations(raw)
    assert len(citations) == 3
    meta = normalizer.evidence_quality(citations)
    assert meta["evidenceQuality"] == "HIGH"


def test_fallback_citations_rate_low_evidence():
    raw = {"stem": "Stem", "options": ["A", "B"], "correct_index": 0, "tags": ["Asthma"]}
    result = normalizer.normalize_question(raw)
    assert len(result["citations"]) == 3
    assert result["citationMeta"]["fallbackUsed"] is True
    assert result["citationMeta"]["evidenceQuality"] == "LOW"


def test_generic_blueprint_title_is_derived():
    raw = {
        "title": "Pages 11–20",
        "topic_tags": ["Heart failure", "Diuretics"],
        "key_concepts": ["Preload reduction"],
    }
    result = normalizer.normalize_blueprint(raw, fallback_title="cardio: Pages 11–20")
    assert result["title"] == "Heart failure - Diuretics"
    assert result["difficulty"] == 3
    assert result["blueprint"]["keyConcepts"] == ["Preload reduction"]


def test_blueprint_title_kept_when_specific():
    result = normalizer.normalize_blueprint({"title": "Renal tubular acidosis", "difficulty": 9})
    assert result["title"] == "Renal tubular acidosis"
    assert result["difficulty"] == 5


def test_blueprint_fallback_title_when_nothing_to_derive():
    result = normalizer.normalize_blueprint({"title": "Untitled"}, fallback_title="notes: Section 2")
    assert result["title"] == "Untitled"
    assert normalizer.normalize_blueprint({}, fallback_title="notes")["title"] == "notes"


def test_tutor_response_requires_core_fields():
    assert normalizer.normalize_tutor_response({"tutor": {"correct_answer": "B"}}) is None
    assert normalizer.normalize_tutor_response({"why_correct": "because"}) is None
    result = normalizer.normalize_tutor_response(
        {"correctAnswer": "B", "whyCorrect": "because", "follow_ups": [{"q": "Why?", "a": "So."}]}
    )
    assert result["correctAnswer"] == "B"
    assert result["followUps"] == [{"q": "Why?", "a": "So."}]


def test_blank_option_rejects_question_instead_of_shifting_answer():
    raw = {"stem": "Which drug?", "options": ["Aspirin", "", "Heparin", "Warfarin"], "correct_index": 2}
    assert normalizer.normalize_question(raw) is None

    markup_only = {"stem": "Which drug?", "options": ["Aspirin", "<b></b>", "Heparin"], "correct_index": 2}
    assert normalizer.normalize_question(markup_only) is None


def test_options_keep_positions_for_correct_index():
    raw = {
        "stem": "Which drug?",
        "options": ["Aspirin", "<em>Heparin</em>", "Warfarin"],
        "correct_index": 1,
        "explanation": {"why_others_wrong": ["Antiplatelet", "", "Slow onset"]},
    }
    result = normalizer.normalize_question(raw)
    assert result["options"][result["correctIndex"]] == "Heparin"
    assert result["explanation"]["whyOthersWrong"][2] == "Slow onset"


def test_numeric_options_are_kept():
    raw = {"stem": "Normal arterial pH lower bound?", "options": [7.35, 7.45, 7.25], "correct_index": 0}
    result = normalizer.normalize_question(raw)
    assert result["options"] == ["7.35", "7.45", "7.25"]
    assert result["correctIndex"] == 0
