"""Tests for the retry controller and stuck-section reclaim."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import update

from medq_app.errors import NotFound
from medq_app.extensions import db
from medq_app.models import Question, Section, StudyFile
from medq_app.models.study import utcnow
from medq_app.services import retry_service, section_pipeline
from medq_app.services.ai_client import AIResult


def _section(section_id):
    db.session.expire_all()
    return db.session.get(Section, section_id)


@pytest.fixture()
def captured_dispatch(monkeypatch):
    calls = []

    def fake_dispatch(section_id, *, attempt=0, kind="initial"):
        calls.append((section_id, attempt, kind))

    monkeypatch.setattr("medq_app.tasks.pipeline_tasks.dispatch_section", fake_dispatch)
    return calls


def test_failed_section_is_recreated_pending(make_file, fake_ai, captured_dispatch):
    make_file(1)
    fake_ai.blueprint_result = AIResult(success=False, error="HTTP 500", model="fake-light")
    section_pipeline.process_section("file-1_s0")
    before = _section("file-1_s0")
    old_title, old_created = before.title, before.created_at

    result = retry_service.retry_failed_sections("user-1", "file-1")
    assert result == {"retriedCount": 1, "message": "Retrying 1 section(s). Processing will begin shortly."}

    fresh = _section("file-1_s0")
    assert fresh.ai_status == "PENDING"
    assert fresh.questions_status == "PENDING"
    assert fresh.questions_count == 0
    assert fresh.file_id == "file-1"
    assert fresh.course_id == "course-1"
    assert fresh.title == old_title
    assert fresh.topic_tags == []
    assert fresh.attempt == 1
    assert fresh.retry_kind == "full"
    assert fresh.created_at >= old_created
    assert Question.query.filter_by(section_id="file-1_s0").count() == 0
    assert captured_dispatch == [("file-1_s0", 1, "retry_full")]

    db.session.expire_all()
    study_file = db.session.get(StudyFile, "file-1")
    assert study_file.status == "PROCESSING"
    assert study_file.processing_phase == "ANALYZING"


def test_questions_only_retry_keeps_blueprint(make_file, fake_ai, captured_dispatch):
    make_file(1)
    fake_ai.questions_result = AIResult(success=False, error="timeout", model="fake-light")
    section_pipeline.process_section("file-1_s0")
    assert _section("file-1_s0").questions_status == "FAILED"

    retry_service.retry_failed_sections("user-1", "file-1")
    fresh = _section("file-1_s0")
    assert fresh.retry_kind == "questions"
    assert fresh.topic_tags == ["Pneumonia", "CURB-65"]
    assert fresh.blueprint["keyConcepts"] == ["CURB-65 score"]
    assert captured_dispatch == [("file-1_s0", 1, "retry_questions")]


def test_retry_removes_old_questions_and_reprocesses(make_file, fake_ai):
    make_file(1)
    section_pipeline.process_section("file-1_s0")
    # Force a questions-only failure on a section that already has questions.
    db.session.execute(update(Section).where(Section.id == "file-1_s0").values(questions_status="FAILED"))
    db.session.commit()
    assert Question.query.filter_by(section_id="file-1_s0").count() == 2

    blueprint_calls = fake_ai.count("blueprint")
    result = retry_service.retry_failed_sections("user-1", "file-1")
    assert result["retriedCount"] == 1

    # Inline dispatch re-ran questions without a second blueprint call.
    assert fake_ai.count("blueprint") == blueprint_calls
    section = _section("file-1_s0")
    assert section.ai_status == "ANALYZED"
    assert section.questions_status == "COMPLETED"
    assert Question.query.filter_by(section_id="file-1_s0").count() == 2
    db.session.expire_all()
    assert db.session.get(StudyFile, "file-1").status == "READY"


def test_no_failed_sections(make_file, captured_dispatch):
    make_file(2)
    section_pipeline.process_section("file-1_s0")
    assert retry_service.retry_failed_sections("user-1", "file-1") == {
        "retriedCount": 0,
        "message": "No failed sections found.",
    }
    assert captured_dispatch == []


def test_retry_rejects_foreign_file(make_file):
    make_file(1)
    with pytest.raises(NotFound):
        retry_service.retry_failed_sections("intruder", "file-1")


def test_one_bad_section_does_not_stop_the_batch(make_file, fake_ai, captured_dispatch, monkeypatch):
    make_file(2)
    fake_ai.blueprint_result = AIResult(success=False, error="boom", model="fake-light")
    section_pipeline.process_section("file-1_s0")
    section_pipeline.process_section("file-1_s1")

    original = retry_service._reset_section

    def flaky(section):
        if section.id == "file-1_s0":
            raise RuntimeError("store unavailable")
        return original(section)

    monkeypatch.setattr(retry_service, "_reset_section", flaky)
    result = retry_service.retry_failed_sections("user-1", "file-1")
    assert result["retriedCount"] == 1
    assert captured_dispatch == [("file-1_s1", 1, "retry_full")]


def test_retry_endpoint(client, auth_headers, make_file, fake_ai, captured_dispatch):
    make_file(1)
    fake_ai.blueprint_result = AIResult(success=False, error="HTTP 500", model="fake-light")
    section_pipeline.process_section("file-1_s0")
    resp = client.post("/api/pipeline/retry", json={"fileId": "file-1"}, headers=auth_headers)
    assert resp.status_code == 200
    assert resp.get_json() == {
        "success": True,
        "data": {"retriedCount": 1, "message": "Retrying 1 section(s). Processing will begin shortly."},
    }
    missing = client.post("/api/pipeline/retry", json={}, headers=auth_headers)
    assert missing.status_code == 400


def test_reclaim_stuck_sections(make_file):
    make_file(2)
    section_pipeline.process_section("file-1_s0")
    section_pipeline.claim_section("file-1_s1")
    stale = utcnow() - timedelta(minutes=30)
    db.session.execute(update(Section).where(Section.id == "file-1_s1").values(updated_at=stale))
    db.session.commit()

    result = retry_service.reclaim_stuck_sections(10)
    assert result == {"reclaimed": 1, "filesReady": 1}
    section = _section("file-1_s1")
    assert section.ai_status == "FAILED"
    assert section.error_message.startswith("Processing timed out")
    db.session.expire_all()
    assert db.session.get(StudyFile, "file-1").status == "READY"


def test_reclaim_leaves_recent_sections(make_file):
    make_file(1)
    section_pipeline.claim_section("file-1_s0")
    assert retry_service.reclaim_stuck_sections(10) == {"reclaimed": 0, "filesReady": 0}
    assert _section("file-1_s0").ai_status == "PROCESSING"


def test_failed_reset_leaves_section_and_questions_in_place(make_file, fake_ai, captured_dispatch, monkeypatch):
    make_file(1)
    fake_ai.questions_result = AIResult(success=False, error="timeout", model="fake-light")
    section_pipeline.process_section("file-1_s0")
    db.session.add(
        Question(id="q-old", owner_id="user-1", section_id="file-1_s0", file_id="file-1", stem="Old", options=["A", "B"])
    )
    db.session.commit()

    def failing_commit(*args, **kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(retry_service, "commit_with_retry", failing_commit)
    result = retry_service.retry_failed_sections("user-1", "file-1")
    assert result["retriedCount"] == 0
    assert captured_dispatch == []

    section = _section("file-1_s0")
    assert section is not None
    assert section.questions_status == "FAILED"
    assert section.attempt == 0
    assert Question.query.filter_by(section_id="file-1_s0").count() == 1
