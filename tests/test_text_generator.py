"""
Unit tests for the chat-completions text generator and the link cache.
"""
import pytest
import requests

import core.text_generator as text_generator
from core.link_cache import LinkCache
from core.text_generator import ChatCompletionGenerator, GenerationError, get_default_generator


class _FakeResponse:
    def __init__(self, payload=None, status=200, bad_json=False):
        self.payload = payload
        self.status_code = status
        self.bad_json = bad_json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(response=self)

    def json(self):
        if self.bad_json:
            raise ValueError("not json")
        return self.payload


def _patch_post(monkeypatch, response=None, exc=None):
    calls = []

    def fake_post(url, json=None, headers=None, timeout=None):
        calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if exc is not None:
            raise exc
        return response

    monkeypatch.setattr(text_generator.requests, "post", fake_post)
    return calls


def test_generator_returns_content(monkeypatch):
    calls = _patch_post(monkeypatch, _FakeResponse({"choices": [{"message": {"content": "{\"a\": 1}"}}]}))
    gen = ChatCompletionGenerator("key-123", url="https://llm.local/v1/chat/completions", model="m", timeout=5)
    assert gen("olá") == "{\"a\": 1}"

    call = calls[0]
    assert call["url"] == "https://llm.local/v1/chat/completions"
    assert call["headers"]["Authorization"] == "Bearer key-123"
    assert call["timeout"] == 5
    assert call["json"]["model"] == "m"
    assert call["json"]["messages"][-1] == {"role": "user", "content": "olá"}


@pytest.mark.parametrize("response,exc", [
    (None, requests.exceptions.Timeout()),
    (None, requests.exceptions.ConnectionError("refused")),
    (_FakeResponse(status=429), None),
    (_FakeResponse(bad_json=True), None),
    (_FakeResponse({"choices": []}), None),
    (_FakeResponse({"choices": [{"message": {"content": "   "}}]}), None),
])
def test_generator_failures_raise_generation_error(monkeypatch, response, exc):
    _patch_post(monkeypatch, response, exc)
    with pytest.raises(GenerationError):
        ChatCompletionGenerator("key")("prompt")


def test_generator_requires_key():
    with pytest.raises(ValueError):
        ChatCompletionGenerator("")


def test_default_generator_without_key(monkeypatch):
    monkeypatch.setattr(text_generator, "get_setting", lambda name, default=None: default)
    assert get_default_generator() is None


def test_default_generator_with_key(monkeypatch):
    settings = {"TEXT_GENERATION_API_KEY": "k", "TEXT_GENERATION_MODEL": "custom-model"}
    monkeypatch.setattr(text_generator, "get_setting", lambda name, default=None: settings.get(name, default))
    gen = get_default_generator()
    assert gen.api_key == "k"
    assert gen.model == "custom-model"


def test_link_cache_hits_store_once_per_pair():
    calls = []

    def lookup(code, component):
        calls.append((code, component))
        return "https://example.org/x" if code == "LP01" else None

    cache = LinkCache(lookup)
    assert cache.get("LP01", "LP") == "https://example.org/x"
    assert cache.get("LP01", "LP") == "https://example.org/x"
    assert cache.get("LP99", "LP") is None
    assert cache.get("LP99", "LP") is None
    assert calls == [("LP01", "LP"), ("LP99", "LP")]
    assert ("LP99", "LP") in cache
    assert len(cache) == 2


def test_link_cache_does_not_cache_errors():
    attempts = []

    def flaky(code, component):
        attempts.append(code)
        if len(attempts) == 1:
            raise ConnectionError("down")
        return "https://example.org/y"

    cache = LinkCache(flaky)
    assert cache.get("MT01", "MT") is None
    assert cache.get("MT01", "MT") == "https://example.org/y"
    assert len(attempts) == 2


def test_link_cache_only_looks_up_weak_skills():
    calls = []

    def lookup(code, component):
        calls.append(code)
        return f"https://example.org/{code}"

    cache = LinkCache(lookup)
    mastered = {"skill_code": "LP01", "is_weak": False}
    weak = {"skill_code": "LP02", "is_weak": True}
    no_code = {"skill_code": "", "is_weak": True}
    assert cache.for_skill(mastered, "LP") is None
    assert cache.for_skill(no_code, "LP") is None
    assert cache.for_skill(weak, "LP") == "https://example.org/LP02"
    assert calls == ["LP02"]
