import pytest
import requests

from utils.ai_client import (
    ChatClient, LLMError, LLMNotConfigured, client_from_config, parse_json_object,
)


class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.requests.append({"url": url, "headers": headers, "json": json})
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp


def openai_reply(text):
    return FakeResponse({"choices": [{"message": {"content": text}}]})


def test_parse_json_object_plain_and_fenced():
    assert parse_json_object('{"topics": ["A"]}') == {"topics": ["A"]}
    assert parse_json_object('```json\n{"a": 1}\n```') == {"a": 1}


def test_parse_json_object_embedded_in_prose():
    assert parse_json_object('Sure! Here it is: {"correct": true} hope that helps') == {"correct": True}


@pytest.mark.parametrize("text", ["", "no json here", "[1, 2, 3]", "{broken"])
def test_parse_json_object_rejects(text):
    with pytest.raises(LLMError):
        parse_json_object(text)


def test_openai_compatible_request_shape():
    session = FakeSession([openai_reply('{"ok": true}')])
    client = ChatClient("cerebras", "k", "llama-3.3-70b", base_url="https://api.cerebras.ai/v1/",
                        session=session)
    assert client.complete_json([{"role": "user", "content": "hi"}], temperature=0.1) == {"ok": True}
    sent = session.requests[0]
    assert sent["url"] == "https://api.cerebras.ai/v1/chat/completions"
    assert sent["headers"]["Authorization"] == "Bearer k"
    assert sent["json"]["response_format"] == {"type": "json_object"}
    assert sent["json"]["temperature"] == 0.1


def test_gemini_request_shape():
    reply = FakeResponse({"candidates": [{"content": {"parts": [{"text": "cleaned"}]}}]})
    session = FakeSession([reply])
    client = ChatClient("gemini", "g", "gemini-2.5-flash", session=session)
    out = client.complete([
        {"role": "system", "content": "be terse"},
        {"role": "user", "content": "hello"},
    ])
    assert out == "cleaned"
    sent = session.requests[0]
    assert sent["url"].endswith("/models/gemini-2.5-flash:generateContent")
    assert sent["headers"]["x-goog-api-key"] == "g"
    assert sent["json"]["systemInstruction"]["parts"][0]["text"] == "be terse"
    assert sent["json"]["contents"] == [{"role": "user", "parts": [{"text": "hello"}]}]
    assert "responseMimeType" not in sent["json"]["generationConfig"]


def test_retries_then_succeeds(monkeypatch):
    sleeps = []
    monkeypatch.setattr("utils.ai_client.time.sleep", sleeps.append)
    session = FakeSession([
        FakeResponse({}, status=429),
        requests.ConnectionError("reset"),
        openai_reply("done"),
    ])
    client = ChatClient("openai", "k", "m", base_url="https://x/v1", max_attempts=3, backoff=0.5,
                        session=session)
    assert client.complete([{"role": "user", "content": "q"}]) == "done"
    assert sleeps == [0.5, 1.0]


def test_gives_up_after_max_attempts(monkeypatch):
    monkeypatch.setattr("utils.ai_client.time.sleep", lambda s: None)
    session = FakeSession([openai_reply(""), openai_reply("   ")])
    client = ChatClient("openai", "k", "m", base_url="https://x/v1", max_attempts=2, session=session)
    with pytest.raises(LLMError):
        client.complete([{"role": "user", "content": "q"}])
    assert len(session.requests) == 2


def test_client_from_config_requires_key():
    with pytest.raises(LLMNotConfigured):
        client_from_config({"LLM_PROVIDER": "cerebras", "LLM_API_KEY": ""})
    client = client_from_config({"LLM_PROVIDER": "cerebras", "LLM_API_KEY": "k", "LLM_MODEL": "m",
                                 "LLM_BASE_URL": "https://api.cerebras.ai/v1"})
    assert client.model == "m"


def test_unknown_provider():
    with pytest.raises(ValueError):
        ChatClient("anthropic-ish", "k", "m")
