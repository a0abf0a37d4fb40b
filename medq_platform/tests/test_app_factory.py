"""Smoke tests for the Flask application factory."""

from __future__ import annotations

import pytest

from medq_app import create_app


@pytest.fixture(scope="module")
def app():
    app = create_app("test")
    yield app


def test_app_creation(app):
    assert app is not None
    assert app.config["TESTING"] is True


def test_ping_endpoint(app):
    client = app.test_client()
    response = client.get("/api/pipeline/ping")
    assert response.status_code == 200
    assert response.get_json() == {"module": "pipeline", "status": "ok"}


def test_pipeline_cli_group_registered(app):
    commands = app.cli.list_commands(None)
    assert "pipeline" in commands
