"""
Tests for the provider transport against an in-process HTTP server
"""

import json

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from relaygate.core.errors import ProviderError
from relaygate.core.failure_classifier import FailureClassifier
from relaygate.core.llm_client import (
    LLMClient, build_gemini_payload, build_openai_payload, parse_error_response
)
from relaygate.models.enums import FailureKind, Protocol

from conftest import make_settings

MESSAGES = [
    {"role": "system", "content": "Be brief."},
    {"role": "user", "content": "Hello"}
]


def test_openai_payload_clamps_sampling():
    payload = build_openai_payload("m", MESSAGES, {"max_tokens": 50, "temperature": 3.5, "top_p": -1, "stop": None})
    assert payload["model"] == "m"
    assert payload["max_tokens"] == 50
    assert payload["temperature"] == 2.0
    assert payload["top_p"] == 0.0
    assert "stop" not in payload
    assert payload["stream"] is False


def test_gemini_payload_moves_system_prompt():
    payload = build_gemini_payload(MESSAGES + [{"role": "assistant", "content": "Hi"}],
                                   {"max_tokens": 64, "temperature": 0.2})
    assert payload["systemInstruction"] == {"parts": [{"text": "Be brief."}]}
    assert [c["role"] for c in payload["contents"]] == ["user", "model"]
    assert payload["generationConfig"] == {"maxOutputTokens": 64, "temperature": 0.2}


def test_parse_gemini_error_body():
    body = json.dumps({
        "error": {
            "code": 429,
            "message": "You exceeded your current quota. Please retry in 43.2s.",
            "status": "RESOURCE_EXHAUSTED",
            "details": [{"@type": "type.googleapis.com/google.rpc.RetryInfo", "retryDelay": "43s"}]
        }
    })
    error = parse_error_response("gemini", 429, body)
    assert error.status_code == 429
    assert error.provider_status == "RESOURCE_EXHAUSTED"
    assert error.retry_after == 43.0
    assert "gemini API error 429" in str(error)
    assert FailureClassifier.classify(error) == FailureKind.RATE_LIMITED


def test_parse_plain_text_error_uses_headers():
    error = parse_error_response("groq", 429, "slow down", {"Retry-After": "4"})
    assert error.retry_after == 4.0
    assert str(error) == "groq API error 429: slow down"


def test_parse_embedded_stream_error_takes_code_from_body():
    error = parse_error_response("openrouter", None, json.dumps({"error": {"code": 503, "message": "overloaded"}}))
    assert error.status_code == 503
    assert FailureClassifier.classify(error) == FailureKind.PROVIDER_TRANSIENT


def make_app(received):
    async def chat(request):
        body = await request.json()
        received.append({"headers": dict(request.headers), "body": body})
        auth = request.headers.get("Authorization")

        if auth == "Bearer limited":
            return web.json_response(
                {"error": {"message": "Rate limit reached", "type": "requests"}},
                status=429, headers={"Retry-After": "2"}
            )
        if auth == "Bearer empty":
            return web.json_response({"choices": [{"message": {"content": ""}, "finish_reason": "stop"}]})

        if body.get("stream"):
            response = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
            await response.prepare(request)
            if auth == "Bearer garbled":
                await response.write(b'data: {"choices":[{"delta":{"content":"\xff\xfe"}}]}\n\n')
                await response.write_eof()
                return response
            for text in ("Hel", "lo"):
                event = {"choices": [{"delta": {"content": text}}]}
                await response.write(f"data: {json.dumps(event)}\n\n".encode())
            await response.write(b"data: [DONE]\n\n")
            await response.write_eof()
            return response

        return web.json_response({
            "choices": [{"message": {"content": "pong"}, "finish_reason": "stop"}],
            "usage": {"prompt_tokens": 3, "completion_tokens": 1, "total_tokens": 4}
        })

    async def gemini(request):
        received.append({"headers": dict(request.headers), "path": request.path,
                         "body": await request.json()})
        return web.json_response({
            "candidates": [{"content": {"parts": [{"text": "gemini pong"}]}, "finishReason": "STOP"}],
            "usageMetadata": {"promptTokenCount": 2, "candidatesTokenCount": 2, "totalTokenCount": 4}
        })

    app = web.Application()
    app.router.add_post("/v1/chat/completions", chat)
    app.router.add_post("/models/{action}", gemini)
    return app


@pytest.mark.asyncio
async def test_transport_against_local_server():
    received = []
    server = TestServer(make_app(received))
    await server.start_server()
    client = LLMClient(timeout_seconds=5)
    await client.start()

    try:
        settings = make_settings(name="openrouter", keys=1, models=("m",), headers={"X-Title": "relaygate"})
        settings.endpoint = str(server.make_url("/v1/chat/completions"))

        reply = await client.complete(settings, "m", "good", MESSAGES, {"max_tokens": 10})
        assert reply.content == "pong"
        assert reply.usage == {"input_tokens": 3, "output_tokens": 1, "total_tokens": 4}
        assert received[-1]["headers"]["X-Title"] == "relaygate"
        assert received[-1]["body"]["max_tokens"] == 10

        with pytest.raises(ProviderError) as excinfo:
            await client.complete(settings, "m", "limited", MESSAGES, {})
        assert excinfo.value.status_code == 429
        assert FailureClassifier.extract_retry_delay(excinfo.value) == 2.0

        with pytest.raises(ProviderError) as excinfo:
            await client.complete(settings, "m", "empty", MESSAGES, {})
        assert FailureClassifier.classify(excinfo.value) == FailureKind.PROVIDER_TRANSIENT

        chunks = [text async for text in client.stream(settings, "m", "good", MESSAGES, {})]
        assert chunks == ["Hel", "lo"]

        with pytest.raises(ProviderError) as excinfo:
            [text async for text in client.stream(settings, "m", "garbled", MESSAGES, {})]
        assert "malformed stream event" in str(excinfo.value)
        assert FailureClassifier.classify(excinfo.value) == FailureKind.PROVIDER_TRANSIENT

        gemini = make_settings(name="gemini", keys=1, models=("gemini-2.5-flash",), protocol=Protocol.GEMINI)
        gemini.endpoint = str(server.make_url("/models"))
        reply = await client.complete(gemini, "gemini-2.5-flash", "g-key", MESSAGES, {"max_tokens": 8})
        assert reply.content == "gemini pong"
        assert received[-1]["path"] == "/models/gemini-2.5-flash:generateContent"
        assert received[-1]["headers"]["x-goog-api-key"] == "g-key"
        assert received[-1]["body"]["generationConfig"] == {"maxOutputTokens": 8}
    finally:
        await client.stop()
        await server.close()


@pytest.mark.asyncio
async def test_connection_error_is_provider_error():
    client = LLMClient(timeout_seconds=2)
    await client.start()
    try:
        settings = make_settings(keys=1, models=("m",))
        settings.endpoint = "http://127.0.0.1:9/v1/chat/completions"
        with pytest.raises(ProviderError) as excinfo:
            await client.complete(settings, "m", "key", MESSAGES, {})
        assert FailureClassifier.classify(excinfo.value) == FailureKind.PROVIDER_TRANSIENT
    finally:
        await client.stop()


@pytest.mark.asyncio
async def test_complete_requires_started_session():
    with pytest.raises(RuntimeError):
        await LLMClient().complete(make_settings(), "A", "key", MESSAGES, {})
