"""Tests for the chat-completion client, against httpx.MockTransport."""
import json

import httpx
import pytest

from researchaid.exceptions import (
    AuthFailure,
    OracleTimeout,
    RateLimited,
    UnknownOracleFailure,
)
from researchaid.services.llm_client import ChatCompletionClient, CompletionOptions


def _client(handler, api_key="sk-test"):
    return ChatCompletionClient(
        api_key=api_key,
        base_url="https://llm.test/v1",
        default_model="test-model",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


def _completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


@pytest.mark.asyncio
async def test_complete_sends_prompt_and_returns_content():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_completion("Hello"))

    client = _client(handler)
    result = await client.complete(
        "Say hello",
        CompletionOptions(temperature=0.2, max_tokens=50, system="Be brief."),
    )

    assert result == "Hello"
    assert seen["url"] == "https://llm.test/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    body = seen["body"]
    assert body["model"] == "test-model"
    assert body["temperature"] == 0.2
    assert body["max_tokens"] == 50
    assert body["messages"] == [
        {"role": "system", "content": "Be brief."},
        {"role": "user", "content": "Say hello"},
    ]
    assert "stream" not in body


@pytest.mark.asyncio
async def test_missing_key_fails_without_request():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=_completion("x"))

    client = _client(handler, api_key="")
    assert not client.configured
    with pytest.raises(AuthFailure) as excinfo:
        await client.complete("hi")

    assert calls == []
    assert excinfo.value.status_code == 500


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status_code, error",
    [
        (401, AuthFailure),
        (403, AuthFailure),
        (429, RateLimited),
        (504, OracleTimeout),
        (500, UnknownOracleFailure),
    ],
)
async def test_error_status_maps_to_failure(status_code, error):
    client = _client(lambda request: httpx.Response(status_code, text="nope"))

    with pytest.raises(error):
        await client.complete("hi")


@pytest.mark.asyncio
async def test_timeout_maps_to_oracle_timeout():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(OracleTimeout) as excinfo:
        await _client(handler).complete("hi")

    assert excinfo.value.status_code == 504


@pytest.mark.asyncio
async def test_malformed_body_is_unknown_failure():
    client = _client(lambda request: httpx.Response(200, json={"unexpected": True}))

    with pytest.raises(UnknownOracleFailure):
        await client.complete("hi")


@pytest.mark.asyncio
async def test_stream_yields_content_until_done():
    events = [
        {"choices": [{"delta": {"role": "assistant"}}]},
        {"choices": [{"delta": {"content": "Hel"}}]},
        {"choices": [{"delta": {"content": "lo"}}]},
    ]
    body = "".join(f"data: {json.dumps(e)}\n\n" for e in events)
    body += ": keep-alive\n\ndata: [DONE]\n\ndata: {\"choices\": [{\"delta\": {\"content\": \"late\"}}]}\n\n"

    def handler(request):
        assert json.loads(request.content)["stream"] is True
        return httpx.Response(200, content=body.encode(), headers={"Content-Type": "text/event-stream"})

    chunks = [c async for c in _client(handler).complete_stream("hi")]

    assert chunks == ["Hel", "lo"]


@pytest.mark.asyncio
async def test_stream_error_status():
    client = _client(lambda request: httpx.Response(429, text="slow down"))

    with pytest.raises(RateLimited):
        async for _ in client.complete_stream("hi"):
            pass
