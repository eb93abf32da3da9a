"""Tests for the chat completion client."""
import json

import httpx
import pytest

from lumi import config
from lumi.errors import ConfigurationError
from lumi.llm_client import ChatClient

MESSAGES = [{"role": "user", "content": "Hello"}]


def client_for(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture(autouse=True)
def no_model_override(monkeypatch):
    monkeypatch.setattr(config, "CHAT_MODEL", None)


@pytest.mark.asyncio
async def test_openai_wire_chat(monkeypatch):
    monkeypatch.setenv("DEEPSEEK_API_KEY", "ds-key")
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "  Hi there  "}}]})

    chat = ChatClient("deepseek", client=client_for(handler))
    reply = await chat.chat(MESSAGES, temperature=0.2)

    assert reply == "Hi there"
    assert seen["url"] == "https://api.deepseek.com/chat/completions"
    assert seen["auth"] == "Bearer ds-key"
    assert seen["body"]["model"] == "deepseek-chat"
    assert seen["body"]["temperature"] == 0.2
    assert seen["body"]["stream"] is False


@pytest.mark.asyncio
async def test_openai_wire_stream(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    lines = [
        ": keep-alive",
        'data: {"choices": [{"delta": {"role": "assistant"}}]}',
        'data: {"choices": [{"delta": {"content": "Hel"}}]}',
        "",
        'data: {"choices": [{"delta": {"content": "lo"}}]}',
        "data: [DONE]",
        'data: {"choices": [{"delta": {"content": "ignored"}}]}',
    ]

    def handler(request):
        assert json.loads(request.content)["stream"] is True
        return httpx.Response(200, text="\n".join(lines) + "\n")

    chat = ChatClient("openai", client=client_for(handler))
    tokens = [token async for token in chat.stream_chat(MESSAGES)]

    assert tokens == ["Hel", "lo"]


@pytest.mark.asyncio
async def test_ollama_wire_chat_and_stream():
    def handler(request):
        body = json.loads(request.content)
        assert request.url.path == "/api/chat"
        if body["stream"]:
            chunks = [
                {"message": {"content": "Bon"}, "done": False},
                {"message": {"content": "jour"}, "done": False},
                {"message": {"content": ""}, "done": True},
            ]
            return httpx.Response(200, text="\n".join(json.dumps(c) for c in chunks))
        return httpx.Response(200, json={"message": {"content": "Bonjour"}})

    chat = ChatClient("ollama", model="gemma3:12b", client=client_for(handler))

    assert await chat.chat(MESSAGES) == "Bonjour"
    assert [t async for t in chat.stream_chat(MESSAGES)] == ["Bon", "jour"]


@pytest.mark.asyncio
async def test_http_errors_propagate(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    chat = ChatClient("openai", client=client_for(lambda request: httpx.Response(503)))

    with pytest.raises(httpx.HTTPStatusError):
        await chat.chat(MESSAGES)


def test_provider_without_chat_is_rejected(monkeypatch):
    monkeypatch.setenv("GOOGLE_API_KEY", "g-key")

    with pytest.raises(ConfigurationError, match="does not support chat"):
        ChatClient("google")


def test_missing_chat_credential(monkeypatch):
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)

    with pytest.raises(ConfigurationError):
        ChatClient("openrouter")
