# tests/unit/providers/test_gemini.py
"""
针对 Gemini 提供方的单元测试。

所有 HTTP 交互都通过 `httpx.MockTransport` 模拟，不会发出真实请求。
"""

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from melaka.core.types import (
    FailureCause,
    SchemaType,
    TranslationFailure,
    TranslationOptions,
    TranslationSuccess,
)
from melaka.providers.gemini import GeminiProvider, GeminiProviderConfig
from melaka.schema import SchemaBuilder

MODEL = "gemini-2.5-flash"

SCHEMA = (
    SchemaBuilder()
    .add_field("title")
    .add_field("tags", SchemaType.STRING_ARRAY)
    .build()
)
CONTENT = {"title": "Hello", "tags": ["food"]}
OPTIONS = TranslationOptions(target_language="ms-MY", temperature=0.2)


def gemini_reply(text: str, usage: dict[str, int] | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {
        "candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]
    }
    if usage is not None:
        body["usageMetadata"] = usage
    return body


def make_provider(
    handler: Callable[[httpx.Request], httpx.Response], api_key: str | None = "test-key"
) -> GeminiProvider:
    config = GeminiProviderConfig(model=MODEL, api_key=api_key)
    return GeminiProvider(config, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_translate_success_sends_expected_request() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        reply = gemini_reply(
            json.dumps({"title": "Helo", "tags": ["makanan"]}),
            usage={"promptTokenCount": 120, "candidatesTokenCount": 30, "totalTokenCount": 150},
        )
        return httpx.Response(200, json=reply)

    async with make_provider(handler) as provider:
        outcome = await provider.translate(CONTENT, SCHEMA, OPTIONS)

    assert isinstance(outcome, TranslationSuccess)
    assert outcome.output == {"title": "Helo", "tags": ["makanan"]}
    assert outcome.model == MODEL
    assert outcome.usage is not None and outcome.usage.total_tokens == 150
    assert outcome.duration_ms is not None

    request = captured[0]
    assert request.method == "POST"
    assert request.url.path == f"/v1beta/models/{MODEL}:generateContent"
    assert request.headers["x-goog-api-key"] == "test-key"
    body = json.loads(request.content)
    assert body["generationConfig"] == {
        "temperature": 0.2,
        "responseMimeType": "application/json",
    }
    assert "professional translator" in body["systemInstruction"]["parts"][0]["text"]
    assert "Malay (Malaysia)" in body["contents"][0]["parts"][0]["text"]


@pytest.mark.asyncio
async def test_translate_without_api_key_is_configuration_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("没有密钥时不应发出请求")

    async with make_provider(handler, api_key=None) as provider:
        outcome = await provider.translate(CONTENT, SCHEMA, OPTIONS)

    assert isinstance(outcome, TranslationFailure)
    assert outcome.cause == FailureCause.CONFIGURATION
    assert outcome.error == "Gemini API key not configured"
    assert outcome.is_retryable is False


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status_code, retryable", [(429, True), (503, True), (400, False), (403, False)]
)
async def test_translate_http_error_status(status_code: int, retryable: bool) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, text="quota exceeded")

    async with make_provider(handler) as provider:
        outcome = await provider.translate(CONTENT, SCHEMA, OPTIONS)

    assert isinstance(outcome, TranslationFailure)
    assert outcome.cause == FailureCause.PROVIDER
    assert outcome.error == f"Gemini API error: {status_code} quota exceeded"
    assert outcome.is_retryable is retryable


@pytest.mark.asyncio
async def test_translate_network_error_is_provider_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with make_provider(handler) as provider:
        outcome = await provider.translate(CONTENT, SCHEMA, OPTIONS)

    assert isinstance(outcome, TranslationFailure)
    assert outcome.cause == FailureCause.PROVIDER
    assert outcome.error.startswith("Gemini request failed:")
    assert outcome.is_retryable is True


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body", [{"candidates": []}, gemini_reply("   "), {"promptFeedback": {}}]
)
async def test_translate_empty_response(body: dict[str, Any]) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=body)

    async with make_provider(handler) as provider:
        outcome = await provider.translate(CONTENT, SCHEMA, OPTIONS)

    assert isinstance(outcome, TranslationFailure)
    assert outcome.error == "No response from Gemini"


@pytest.mark.asyncio
async def test_translate_unparsable_reply_is_parse_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=gemini_reply("Sorry, I cannot help with that."))

    async with make_provider(handler) as provider:
        outcome = await provider.translate(CONTENT, SCHEMA, OPTIONS)

    assert isinstance(outcome, TranslationFailure)
    assert outcome.cause == FailureCause.PARSE


@pytest.mark.asyncio
async def test_translate_schema_mismatch_is_validation_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, json=gemini_reply('```json\n{"title": "Helo", "tags": "makanan"}\n```')
        )

    async with make_provider(handler) as provider:
        outcome = await provider.translate(CONTENT, SCHEMA, OPTIONS)

    assert isinstance(outcome, TranslationFailure)
    assert outcome.cause == FailureCause.VALIDATION
    assert "tags: Input should be a valid list" in outcome.error


@pytest.mark.asyncio
async def test_close_releases_client() -> None:
    provider = make_provider(lambda request: httpx.Response(200, json={}))
    await provider.initialize()
    assert provider.initialized

    await provider.close()

    assert provider.initialized is False
    assert provider._client is None
