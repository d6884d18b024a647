"""Unit tests for the chat-completion client.

Uses ``httpx.MockTransport`` so no request leaves the process.
"""

from __future__ import annotations

import json

import httpx
import pytest

from orgflow.services.llm_client import ChatCompletionClient, LLMError, _extract_content


def _client(handler, api_key="sk-test"):
    return ChatCompletionClient(
        api_key=api_key,
        model="test-model",
        base_url="https://llm.test/v1/",
        transport=httpx.MockTransport(handler),
    )


def _completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class TestExtractContent:
    def test_string_content(self):
        assert _extract_content(_completion("  hello ")) == "hello"

    def test_part_list_content(self):
        parts = [{"type": "text", "text": "a"}, {"type": "image"}, {"type": "text", "text": "b"}]
        assert _extract_content(_completion(parts)) == "ab"

    def test_missing_content(self):
        assert _extract_content({}) is None
        assert _extract_content({"choices": []}) is None
        assert _extract_content(_completion("   ")) is None


class TestComplete:
    async def test_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_completion(" Bonjour "))

        client = _client(handler)
        result = await client.complete(
            [{"role": "user", "content": "Salut"}],
            temperature=0.7,
            max_tokens=650,
            response_format={"type": "json_object"},
        )
        await client.close()

        assert result == "Bonjour"
        assert seen["url"] == "https://llm.test/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"] == {
            "model": "test-model",
            "messages": [{"role": "user", "content": "Salut"}],
            "temperature": 0.7,
            "max_completion_tokens": 650,
            "response_format": {"type": "json_object"},
        }

    async def test_response_format_omitted_by_default(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_completion("ok"))

        await _client(handler).complete([{"role": "user", "content": "x"}])
        assert "response_format" not in seen["body"]

    async def test_missing_api_key(self):
        client = _client(lambda r: httpx.Response(200, json=_completion("ok")), api_key="")
        with pytest.raises(LLMError, match="OPENAI_API_KEY"):
            await client.complete([])

    async def test_http_error_status(self):
        client = _client(lambda r: httpx.Response(429, text="rate limited"))
        with pytest.raises(LLMError, match="429"):
            await client.complete([])

    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("unreachable")

        with pytest.raises(LLMError, match="request failed"):
            await _client(handler).complete([])

    async def test_invalid_json(self):
        client = _client(lambda r: httpx.Response(200, text="<html>"))
        with pytest.raises(LLMError, match="invalid JSON"):
            await client.complete([])

    async def test_empty_content(self):
        client = _client(lambda r: httpx.Response(200, json=_completion("")))
        with pytest.raises(LLMError, match="Empty"):
            await client.complete([])

    async def test_close_is_idempotent(self):
        client = _client(lambda r: httpx.Response(200, json=_completion("ok")))
        await client.complete([])
        await client.close()
        await client.close()
