from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from ai_proxy import DEFAULT_PROMPT, AIProxy, AnthropicProvider, CompletionProvider, OpenAIProvider
from errors import AiRequestFailed, ProviderUnconfigured, UnknownProvider


def _proxy(handler, openai_key: str = "sk-openai", anthropic_key: str = "sk-ant") -> AIProxy:
    return AIProxy(
        [
            OpenAIProvider(openai_key, "gpt-4o", "https://api.openai.com/v1"),
            AnthropicProvider(anthropic_key, "claude-3-opus-20240229", "https://api.anthropic.com/v1"),
        ],
        transport=httpx.MockTransport(handler),
    )


def test_openai_request_shape_and_result():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": "42"}}]})

    result = asyncio.run(_proxy(handler).complete("openai", "What is the answer?"))

    assert result == "42"
    assert len(seen) == 1
    request = seen[0]
    assert str(request.url) == "https://api.openai.com/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer sk-openai"
    body = json.loads(request.content)
    assert body["model"] == "gpt-4o"
    assert body["messages"][0]["role"] == "system"
    assert body["messages"][1] == {"role": "user", "content": "What is the answer?"}


def test_anthropic_request_shape_and_result():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"content": [{"type": "text", "text": "Refactor it."}]})

    result = asyncio.run(_proxy(handler).complete("anthropic", "Review this"))

    assert result == "Refactor it."
    request = seen[0]
    assert str(request.url) == "https://api.anthropic.com/v1/messages"
    assert request.headers["x-api-key"] == "sk-ant"
    assert request.headers["anthropic-version"] == "2023-06-01"
    assert "authorization" not in request.headers
    body = json.loads(request.content)
    assert body["max_tokens"] == 4000
    assert body["messages"] == [{"role": "user", "content": "Review this"}]


@pytest.mark.parametrize("hint, payload", [("openai", {"choices": []}), ("anthropic", {"content": [{"type": "image"}]})])
def test_missing_result_field_defaults_to_empty_string(hint, payload):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    assert asyncio.run(_proxy(handler).complete(hint, DEFAULT_PROMPT)) == ""


def test_unknown_provider_is_rejected_before_any_call():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no outbound call expected")

    with pytest.raises(UnknownProvider, match="Unknown AI provider in tool: gemini"):
        asyncio.run(_proxy(handler).complete("gemini", "hi"))


def test_unconfigured_provider_is_rejected_before_any_call():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no outbound call expected")

    with pytest.raises(ProviderUnconfigured, match="API key for anthropic is not configured"):
        asyncio.run(_proxy(handler, anthropic_key="").complete("anthropic", "hi"))


def test_upstream_error_message_is_surfaced():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(401, json={"error": {"message": "Incorrect API key provided"}})

    with pytest.raises(AiRequestFailed) as exc:
        asyncio.run(_proxy(handler).complete("openai", "hi"))

    assert exc.value.message == "AI request failed: Incorrect API key provided"
    assert len(calls) == 1


def test_transport_failure_is_wrapped_without_retry():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(AiRequestFailed, match="AI request failed: connection refused"):
        asyncio.run(_proxy(handler).complete("anthropic", "hi"))

    assert len(calls) == 1


def test_provider_selection_matches_hint_substring():
    proxy = _proxy(lambda request: httpx.Response(200, json={}))
    assert proxy.select("openai").name == "openai"
    assert proxy.select("anthropic_claude").name == "anthropic"
    assert isinstance(proxy.select("OpenAI"), OpenAIProvider)


def test_provider_must_implement_request_and_extraction():
    with pytest.raises(TypeError):
        CompletionProvider("key", "model", "https://example.invalid")

    class _HalfProvider(CompletionProvider):
        name = "half"

        def build_request(self, prompt):
            return "https://example.invalid", {}, {}

    with pytest.raises(TypeError):
        _HalfProvider("key", "model", "https://example.invalid")
