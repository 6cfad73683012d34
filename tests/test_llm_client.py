"""Vertex REST client request building and response parsing."""
import pytest
import requests

from umar.infrastructure.llm import VertexRestClient


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = text

    def json(self):
        return self._payload


class FakeCredentials:
    def __init__(self):
        self.valid = False
        self.token = None
        self.refreshes = 0

    def refresh(self, request):
        self.refreshes += 1
        self.valid = True
        self.token = f"token-{self.refreshes}"


def make_client():
    client = VertexRestClient(project="demo-project", location="us-central1", model="gemini-2.5-flash-lite")
    client._credentials = FakeCredentials()
    return client


def reply(text):
    return FakeResponse(payload={"candidates": [{"content": {"parts": [{"text": text}]}}]})


def test_parse_joins_text_parts():
    payload = {"candidates": [{"content": {"parts": [{"text": "جی "}, {"text": "ہاں"}, {"inline": 1}]}}]}
    assert VertexRestClient._parse_response_text(payload) == "جی ہاں"


def test_parse_top_level_text():
    assert VertexRestClient._parse_response_text({"text": "ok"}) == "ok"


def test_parse_blocked_response_raises():
    with pytest.raises(RuntimeError, match="SAFETY"):
        VertexRestClient._parse_response_text({"candidates": [{"finishReason": "SAFETY"}]})
    with pytest.raises(RuntimeError, match="OTHER"):
        VertexRestClient._parse_response_text({"promptFeedback": {"blockReason": "OTHER"}})


def test_generate_content_request(monkeypatch):
    captured = {}

    def fake_post(url, headers=None, json=None, timeout=None):
        captured.update(url=url, headers=headers, body=json, timeout=timeout)
        return reply("reply")

    monkeypatch.setattr(requests, "post", fake_post)
    client = make_client()
    text = client.generate_content("hello", system_instruction="be a customer",
                                   temperature=0.9, max_output_tokens=128)

    assert text == "reply"
    assert captured["url"] == ("https://us-central1-aiplatform.googleapis.com/v1/projects/demo-project/"
                               "locations/us-central1/publishers/google/models/gemini-2.5-flash-lite:generateContent")
    assert captured["headers"]["Authorization"] == "Bearer token-1"
    body = captured["body"]
    assert body["contents"][0]["parts"][0]["text"] == "hello"
    assert body["systemInstruction"]["parts"][0]["text"] == "be a customer"
    assert body["generationConfig"] == {"temperature": 0.9, "maxOutputTokens": 128}


def test_valid_token_is_reused(monkeypatch):
    monkeypatch.setattr(requests, "post", lambda *a, **kw: reply("ok"))
    client = make_client()
    client.generate_content("one")
    client.generate_content("two")
    assert client._credentials.refreshes == 1


def test_rejected_token_is_refreshed_and_retried(monkeypatch):
    responses = [FakeResponse(401, text="expired"), reply("after refresh")]
    tokens = []

    def fake_post(url, headers=None, json=None, timeout=None):
        tokens.append(headers["Authorization"])
        return responses.pop(0)

    monkeypatch.setattr(requests, "post", fake_post)
    client = make_client()
    assert client.generate_content("hello") == "after refresh"
    assert tokens == ["Bearer token-1", "Bearer token-2"]


def test_http_error_becomes_runtime_error(monkeypatch):
    monkeypatch.setattr(requests, "post", lambda *a, **kw: FakeResponse(429, text="quota"))
    with pytest.raises(RuntimeError, match="429"):
        make_client().generate_content("hello")


def test_network_error_becomes_runtime_error(monkeypatch):
    def fail(*args, **kwargs):
        raise requests.ConnectionError("unreachable")

    monkeypatch.setattr(requests, "post", fail)
    with pytest.raises(RuntimeError, match="unreachable"):
        make_client().generate_content("hello")
