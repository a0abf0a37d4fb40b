"""Tests for the tutor endpoint."""

from __future__ import annotations

from medq_app.models import Question
from medq_app.services import section_pipeline
from medq_app.services.ai_client import AIResult


def _first_question_id():
    return Question.query.order_by(Question.stem.asc()).first().id


def test_tutor_returns_normalized_help(client, auth_headers, make_file, fake_ai):
    make_file(1)
    section_pipeline.process_section("file-1_s0")
    question_id = _first_question_id()

    resp = client.post(
        "/api/pipeline/tutor", json={"questionId": question_id, "answeredIndex": 0}, headers=auth_headers
    )
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["tutorResponse"]["correctAnswer"] == "Admit to hospital"
    assert data["tutorResponse"]["followUps"] == [{"q": "What does U stand for?", "a": "Urea"}]
    _, kwargs = next(call for call in fake_ai.calls if call[0] == "tutor")
    assert kwargs["student_answer_index"] == 0


def test_tutor_null_when_fields_missing(client, auth_headers, make_file, fake_ai):
    make_file(1)
    section_pipeline.process_section("file-1_s0")
    fake_ai.tutor_result = AIResult(success=True, data={"tutor": {"key_takeaway": "?"}}, model="fake-heavy")
    resp = client.post(
        "/api/pipeline/tutor", json={"questionId": _first_question_id(), "answeredIndex": 1}, headers=auth_headers
    )
    assert resp.status_code == 200
    assert resp.get_json()["data"]["tutorResponse"] is None


def test_tutor_ai_failure_maps_to_ai_failed(client, auth_headers, make_file, fake_ai):
    make_file(1)
    section_pipeline.process_section("file-1_s0")
    fake_ai.tutor_result = AIResult(success=False, error="secret upstream detail", model="fake-heavy")
    resp = client.post(
        "/api/pipeline/tutor", json={"questionId": _first_question_id(), "answeredIndex": 1}, headers=auth_headers
    )
    assert resp.status_code == 502
    body = resp.get_json()
    assert body["error"]["code"] == "AI_FAILED"
    assert "secret" not in body["error"]["message"]


def test_tutor_unknown_question(client, auth_headers):
    resp = client.post("/api/pipeline/tutor", json={"questionId": "nope", "answeredIndex": 0}, headers=auth_headers)
    assert resp.status_code == 404
