"""Tests for the section state machine and sibling completion."""

from __future__ import annotations

import threading

from config import TestConfig
from medq_app import create_app
from medq_app.extensions import db
from medq_app.models import Question, Section, StudyFile
from medq_app.services import section_pipeline
from medq_app.services.ai_client import AIResult


def _section(section_id):
    db.session.expire_all()
    return db.session.get(Section, section_id)


def _file(file_id="file-1"):
    db.session.expire_all()
    return db.session.get(StudyFile, file_id)


def test_claim_is_won_exactly_once(make_file):
    make_file(1)
    assert section_pipeline.claim_section("file-1_s0") is True
    assert section_pipeline.claim_section("file-1_s0") is False
    section = _section("file-1_s0")
    assert section.ai_status == "PROCESSING"
    assert section.processing_started_at is not None


def test_process_section_runs_blueprint_then_questions(make_file, fake_ai):
    make_file(1)
    outcome = section_pipeline.process_section("file-1_s0", attempt=0)
    assert outcome == "analyzed"

    section = _section("file-1_s0")
    assert section.ai_status == "ANALYZED"
    assert section.questions_status == "COMPLETED"
    assert section.title == "Pneumonia - CURB-65"
    assert section.difficulty == 4
    assert section.topic_tags == ["Pneumonia", "CURB-65"]
    assert section.blueprint["keyConcepts"] == ["CURB-65 score"]
    assert section.blueprint["learningObjectives"] == ["Assess pneumonia severity"]
    assert section.blueprint["highYieldPoints"] == ["Amoxicillin first line"]
    # Third raw item has an empty stem and is discarded.
    assert section.questions_count == 2
    assert Question.query.filter_by(section_id="file-1_s0").count() == 2

    _, question_kwargs = next(call for call in fake_ai.calls if call[0] == "questions")
    assert question_kwargs["count"] == 8
    assert question_kwargs["easy_count"] + question_kwargs["medium_count"] + question_kwargs["hard_count"] == 8
    assert question_kwargs["source_file_name"] == "pneumonia.pdf"

    study_file = _file()
    assert study_file.status == "READY"
    assert study_file.processing_phase is None
    assert study_file.processed_at is not None
    assert study_file.progress == 100


def test_second_delivery_is_a_noop(make_file, fake_ai):
    make_file(1)
    section_pipeline.process_section("file-1_s0")
    calls_before = len(fake_ai.calls)
    assert section_pipeline.process_section("file-1_s0") == "skipped"
    assert len(fake_ai.calls) == calls_before


def test_stale_attempt_is_ignored(make_file, fake_ai):
    make_file(1)
    assert section_pipeline.process_section("file-1_s0", attempt=3) == "stale"
    assert _section("file-1_s0").ai_status == "PENDING"
    assert fake_ai.calls == []


def test_blueprint_failure_fails_both_statuses(make_file, fake_ai):
    make_file(1)
    fake_ai.blueprint_result = AIResult(success=False, error="HTTP 503", model="fake-light")
    assert section_pipeline.process_section("file-1_s0") == "failed"
    section = _section("file-1_s0")
    assert section.ai_status == "FAILED"
    assert section.questions_status == "FAILED"
    assert section.error_message == "HTTP 503"
    assert fake_ai.count("questions") == 0
    assert _file().status == "READY"


def test_question_failure_keeps_blueprint(make_file, fake_ai):
    make_file(1)
    fake_ai.questions_result = AIResult(success=True, data={"questions": [{"stem": "x"}]}, model="fake-light")
    section_pipeline.process_section("file-1_s0")
    section = _section("file-1_s0")
    assert section.ai_status == "ANALYZED"
    assert section.questions_status == "FAILED"
    assert section.questions_error_message
    assert section.blueprint["keyConcepts"] == ["CURB-65 score"]
    assert Question.query.count() == 0


def test_unexpected_error_is_truncated_and_still_converges(make_file, fake_ai, monkeypatch):
    make_file(1)

    def boom(**_kwargs):
        raise RuntimeError("x" * 2000)

    monkeypatch.setattr(fake_ai, "generate_blueprint", boom)
    assert section_pipeline.process_section("file-1_s0") == "failed"
    section = _section("file-1_s0")
    assert section.ai_status == "FAILED"
    assert len(section.error_message) == 500
    assert _file().status == "READY"


def test_file_not_ready_until_every_sibling_is_terminal(make_file):
    make_file(3)
    section_pipeline.process_section("file-1_s0")
    assert _file().status == "PROCESSING"
    section_pipeline.process_section("file-1_s1")
    # Two done, one PENDING.
    assert _file().status == "PROCESSING"
    assert _section("file-1_s2").ai_status == "PENDING"
    assert section_pipeline.maybe_mark_file_ready("file-1") is False

    section_pipeline.process_section("file-1_s2")
    study_file = _file()
    assert study_file.status == "READY"
    assert study_file.processing_phase is None


def test_mixed_outcomes_still_reach_ready(make_file, fake_ai):
    make_file(3)
    section_pipeline.process_section("file-1_s2")
    fake_ai.blueprint_result = AIResult(success=False, error="bad json", model="fake-light")
    section_pipeline.process_section("file-1_s0")
    section_pipeline.process_section("file-1_s1")
    statuses = sorted(s.ai_status for s in Section.query.filter_by(file_id="file-1"))
    assert statuses == ["ANALYZED", "FAILED", "FAILED"]
    assert _file().status == "READY"


def test_file_phase_moves_to_generating_questions(make_file, fake_ai):
    make_file(2)
    seen = []

    original = fake_ai.generate_questions

    def spy(**kwargs):
        seen.append(_file().processing_phase)
        return original(**kwargs)

    fake_ai.generate_questions = spy
    section_pipeline.process_section("file-1_s0")
    assert seen == ["GENERATING_QUESTIONS"]
    assert _file().processing_phase == "GENERATING_QUESTIONS"


class FileDbConfig(TestConfig):
    SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"check_same_thread": False, "timeout": 15}}


def test_concurrent_claims_have_single_winner(tmp_path):
    FileDbConfig.SQLALCHEMY_DATABASE_URI = f"sqlite+pysqlite:///{tmp_path / 'claims.db'}"
    app = create_app(FileDbConfig)
    with app.app_context():
        db.create_all()
        db.session.add(
            StudyFile(id="f", owner_id="u", course_id="c", status="PROCESSING", processing_phase="ANALYZING")
        )
        db.session.add(
            Section(id="f_s0", owner_id="u", file_id="f", title="t", content_ref={}, text_blob_path="x.txt")
        )
        db.session.commit()

    barrier = threading.Barrier(8)
    results = []
    lock = threading.Lock()

    def contender():
        with app.app_context():
            barrier.wait()
            won = section_pipeline.claim_section("f_s0")
            with lock:
                results.append(won)
            db.session.remove()

    threads = [threading.Thread(target=contender) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count(True) == 1
    assert results.count(False) == 7
    with app.app_context():
        assert db.session.get(Section, "f_s0").ai_status == "PROCESSING"
        db.drop_all()
