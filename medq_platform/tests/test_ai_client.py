"""Tests for the AI gateway client (HTTP layer mocked)."""

from __future__ import annotations

import json

import pytest
import requests

from medq_app.services import ai_call_log
from medq_app.services.ai_client import AIClient, build_ai_client


class FakeResponse:
    def __init__(self, status_code=200, payload=None, headers=None):
        self.status_code = status_code
        self._payload = payload or {}
        self.headers = headers or {}

    def json(self):
        return self._payload


def _chat_payload(content):
    return {
        "choices": [{"message": {"content": content}}],
        "usage": {"prompt_tokens": 11, "completion_tokens": 7},
    }


@pytest.fixture()
def client():
    ai_call_log.clear_logs()
    return AIClient(
        api_key="sk-test",
        api_base="https://ai.example.test/v1/",
        light_model="light",
        vision_model="vision",
        heavy_model="heavy",
        max_retries=3,
        backoff=0,
    )


def test_chat_json_parses_fenced_content(client, monkeypatch):
    sent = {}

    def fake_post(url, headers=None, data=None, timeout=None):
        sent["url"] = url
        sent["body"] = json.loads(data)
        return FakeResponse(payload=_chat_payload('```json\n{"title": "Asthma"}\n```'))

    monkeypatch.setattr(requests, "post", fake_post)
    result = client.generate_blueprint(
        file_name="resp.pdf", section_label="Pages 1–15", content_type="pdf", section_text="Asthma text"
    )
    assert result.success is True
    assert result.data == {"title": "Asthma"}
    assert result.tokens == {"input": 11, "output": 7}
    assert sent["url"] == "https://ai.example.test/v1/chat/completions"
    assert sent["body"]["model"] == "light"
    assert ai_call_log.get_logs(1)[0]["kind"] == "ai_success"


def test_retryable_status_is_retried(client, monkeypatch):
    responses = iter(
        [
            FakeResponse(status_code=503),
            FakeResponse(status_code=429, headers={"Retry-After": "0"}),
            FakeResponse(payload=_chat_payload('{"ok": true}')),
        ]
    )
    monkeypatch.setattr(requests, "post", lambda *args, **kwargs: next(responses))
    result = client.tutor_response(question={"stem": "s"}, student_answer_index=0, correct_index=1)
    assert result.success is True
    assert result.model == "heavy"


def test_non_retryable_status_fails_without_raising(client, monkeypatch):
    calls = []

    def fake_post(*args, **kwargs):
        calls.append(1)
        return FakeResponse(status_code=400)

    monkeypatch.setattr(requests, "post", fake_post)
    result = client.generate_questions(
        blueprint={}, count=8, easy_count=3, medium_count=3, hard_count=2,
        section_title="t", source_file_name="f.pdf",
    )
    assert result.success is False
    assert "HTTP 400" in result.error
    assert len(calls) == 1
    assert ai_call_log.get_logs(1)[0]["kind"] == "ai_failure"


def test_transport_errors_exhaust_retries(client, monkeypatch):
    calls = []

    def fake_post(*args, **kwargs):
        calls.append(1)
        raise requests.ConnectionError("connection reset")

    monkeypatch.setattr(requests, "post", fake_post)
    result = client.analyze_page_image("aGVsbG8=", 3)
    assert result.success is False
    assert len(calls) == 3


def test_vision_call_sends_data_url(client, monkeypatch):
    sent = {}

    def fake_post(url, headers=None, data=None, timeout=None):
        sent["body"] = json.loads(data)
        sent["url"] = url
        return FakeResponse(
            payload={"output": [{"content": [{"type": "output_text", "text": '{"page": 3, "records": []}'}]}]}
        )

    monkeypatch.setattr(requests, "post", fake_post)
    result = client.analyze_page_image("aGVsbG8=", 3, mime_type="image/png")
    assert result.success is True
    assert result.data == {"page": 3, "records": []}
    assert sent["url"].endswith("/responses")
    image_part = sent["body"]["input"][1]["content"][1]
    assert image_part["image_url"] == "data:image/png;base64,aGVsbG8="


def test_unparseable_output_is_a_failure(client, monkeypatch):
    monkeypatch.setattr(requests, "post", lambda *a, **k: FakeResponse(payload=_chat_payload("I cannot help")))
    result = client.chat_json("sys", "user")
    assert result.success is False


def test_missing_api_key_fails_cleanly(monkeypatch):
    def explode(*args, **kwargs):
        raise AssertionError("network must not be touched")

    monkeypatch.setattr(requests, "post", explode)
    client = build_ai_client({"OPENAI_API_KEY": ""})
    result = client.generate_blueprint(file_name="f", section_label="s", content_type="pdf", section_text="t")
    assert result.success is False
    assert "not configured" in result.error
