"""Tests for `flask pipeline` maintenance commands."""

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import update

from medq_app.extensions import db
from medq_app.models import Section, StudyFile
from medq_app.models.study import utcnow
from medq_app.services import section_pipeline
from medq_app.services.ai_client import AIResult


def test_reclaim_stuck_command(app_with_db, make_file):
    runner = app_with_db.test_cli_runner()
    make_file(1)
    db.session.execute(
        update(Section).where(Section.id == "file-1_s0").values(updated_at=utcnow() - timedelta(hours=1))
    )
    db.session.commit()

    result = runner.invoke(args=["pipeline", "reclaim-stuck", "--older-than", "5"])
    assert result.exit_code == 0, result.output
    assert "Reclaimed 1 section(s); 1 file(s) now ready." in result.output
    db.session.expire_all()
    assert db.session.get(StudyFile, "file-1").status == "READY"


def test_retry_command(app_with_db, make_file, fake_ai):
    runner = app_with_db.test_cli_runner()
    make_file(1)
    fake_ai.blueprint_result = AIResult(success=False, error="HTTP 500", model="fake-light")
    section_pipeline.process_section("file-1_s0")

    result = runner.invoke(args=["pipeline", "retry", "--file-id", "file-1"])
    assert result.exit_code == 0, result.output
    assert "Retrying 1 section(s)" in result.output


def test_retry_command_unknown_file(app_with_db):
    runner = app_with_db.test_cli_runner()
    result = runner.invoke(args=["pipeline", "retry", "--file-id", "missing"])
    assert result.exit_code != 0
    assert "not found" in result.output
