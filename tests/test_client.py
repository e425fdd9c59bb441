"""Tests for the chat-completion transport client."""

import pytest
import requests

from memoryos.llm.client import (
    CompletionClient,
    CompletionError,
    CompletionRequest,
    QuotaExceededError,
    build_client,
)


class FakeResponse:
    def __init__(self, status_code=200, body=None, raw=None):
        self.status_code = status_code
        self.body = body
        self.raw = raw

    def json(self):
        if self.raw is not None:
            raise ValueError("not json")
        return self.body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


def success(content):
    return FakeResponse(body={"choices": [{"message": {"content": content}}]})


def make_client(session, **kwargs):
    return CompletionClient(
        url="https://llm.test/v1/chat/completions",
        model="test-model",
        api_key="secret",
        timeout=5,
        session=session,
        **kwargs,
    )


REQUEST = CompletionRequest(
    system_instruction="be brief",
    recent_turns=[{"role": "user", "content": "hi"}],
    max_output_tokens=300,
    temperature=0.7,
)


class TestComplete:

    def test_success_payload_and_headers(self):
        session = FakeSession(success("  Hello!  "))
        client = make_client(session, headers={"X-Title": "MemoryOS"})

        assert client.complete(REQUEST) == "Hello!"

        call = session.calls[0]
        assert call["url"] == "https://llm.test/v1/chat/completions"
        assert call["timeout"] == 5
        assert call["headers"]["Authorization"] == "Bearer secret"
        assert call["headers"]["X-Title"] == "MemoryOS"
        assert call["json"] == {
            "model": "test-model",
            "messages": [
                {"role": "system", "content": "be brief"},
                {"role": "user", "content": "hi"},
            ],
            "max_tokens": 300,
            "temperature": 0.7,
        }

    def test_json_output_requests_object(self):
        payload = CompletionRequest(system_instruction="tags", json_output=True).to_payload("m")
        assert payload["response_format"] == {"type": "json_object"}

    def test_no_auth_header_without_key(self):
        session = FakeSession(success("ok"))
        CompletionClient(url="http://local", api_key=None, session=session).complete(REQUEST)
        assert "Authorization" not in session.calls[0]["headers"]

    def test_status_402_is_quota(self):
        session = FakeSession(FakeResponse(status_code=402, body={}))
        with pytest.raises(QuotaExceededError):
            make_client(session).complete(REQUEST)

    def test_error_body_code_402_is_quota(self):
        session = FakeSession(FakeResponse(status_code=400, body={"error": {"code": 402}}))
        with pytest.raises(QuotaExceededError):
            make_client(session).complete(REQUEST)

    def test_server_error(self):
        session = FakeSession(FakeResponse(status_code=500, body={"error": {"message": "down"}}))
        with pytest.raises(CompletionError) as info:
            make_client(session).complete(REQUEST)

        assert not isinstance(info.value, QuotaExceededError)
        assert info.value.status_code == 500

    def test_connection_error(self):
        session = FakeSession(error=requests.exceptions.ConnectionError("refused"))
        with pytest.raises(CompletionError):
            make_client(session).complete(REQUEST)

    def test_malformed_body(self):
        session = FakeSession(FakeResponse(body={"choices": []}))
        with pytest.raises(CompletionError):
            make_client(session).complete(REQUEST)

    def test_non_json_body(self):
        session = FakeSession(FakeResponse(raw="<html>"))
        with pytest.raises(CompletionError):
            make_client(session).complete(REQUEST)

    def test_null_content_is_empty(self):
        session = FakeSession(success(None))
        assert make_client(session).complete(REQUEST) == ""


class TestBuildClient:

    def test_unknown_provider(self):
        assert build_client("nope") is None

    def test_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        client = build_client("openai")

        assert client is not None
        assert client.api_key == "sk-test"
        assert client.url == "https://api.openai.com/v1/chat/completions"

    def test_missing_key(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("GROQ_API_KEY", raising=False)
        assert build_client("groq") is None

    def test_key_from_file(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("TOGETHER_API_KEY", raising=False)
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "together.key").write_text("tg-key\n")

        assert build_client("together").api_key == "tg-key"

    def test_local_needs_no_key(self):
        client = build_client("local")
        assert client is not None
        assert client.api_key is None
