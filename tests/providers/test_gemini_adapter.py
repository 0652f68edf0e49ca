from __future__ import annotations

from http import HTTPStatus

import httpx
import pytest

from orchestrator.core.config import ProviderConfig
from orchestrator.core.exceptions import TransportFailure
from orchestrator.providers.base import CompletionRequest
from orchestrator.providers.gemini import GeminiProvider


@pytest.fixture
def adapter(monkeypatch) -> GeminiProvider:
    monkeypatch.setenv("GEMINI_TEST_KEY", "gem-key")
    return GeminiProvider(
        ProviderConfig(
            name="gemini",
            transport="gemini",
            base_url="https://generativelanguage.googleapis.com",
            credential_ref="GEMINI_TEST_KEY",
        )
    )


def _request(json_mode: bool = True) -> CompletionRequest:
    return CompletionRequest(
        model="models/gemini-2.0-flash",
        system_prompt="You write adventures.",
        prompt="A heist in a flooded library.",
        temperature=0.9,
        max_tokens=2048,
        json_mode=json_mode,
    )


@pytest.mark.asyncio
async def test_gemini_adapter_success(http_stub, adapter):
    recorder = http_stub(
        HTTPStatus.OK,
        {
            "candidates": [
                {
                    "content": {"role": "model", "parts": [{"text": '{"title": "Wet Pages"}'}]},
                    "finishReason": "STOP",
                }
            ],
            "usageMetadata": {"promptTokenCount": 14, "candidatesTokenCount": 8},
        },
    )

    response = await adapter.complete(_request())

    assert recorder["url"] == (
        "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.0-flash:generateContent"
    )
    assert recorder["headers"]["x-goog-api-key"] == "gem-key"
    assert recorder["json"]["systemInstruction"] == {"parts": [{"text": "You write adventures."}]}
    assert recorder["json"]["generationConfig"] == {
        "temperature": 0.9,
        "maxOutputTokens": 2048,
        "responseMimeType": "application/json",
    }
    assert response.text == '{"title": "Wet Pages"}'
    assert response.prompt_tokens == 14
    assert response.completion_tokens == 8


@pytest.mark.asyncio
async def test_gemini_adapter_plain_text_mode(http_stub, adapter):
    recorder = http_stub(
        HTTPStatus.OK,
        {"candidates": [{"content": {"parts": [{"text": "{}"}]}}]},
    )

    await adapter.complete(_request(json_mode=False))

    assert "responseMimeType" not in recorder["json"]["generationConfig"]


@pytest.mark.asyncio
async def test_gemini_adapter_blocked_prompt(http_stub, adapter):
    http_stub(HTTPStatus.OK, {"promptFeedback": {"blockReason": "SAFETY"}})

    with pytest.raises(TransportFailure) as excinfo:
        await adapter.complete(_request())

    assert excinfo.value.message == "Prompt blocked: SAFETY"


@pytest.mark.asyncio
async def test_gemini_adapter_empty_parts_reports_finish_reason(http_stub, adapter):
    http_stub(HTTPStatus.OK, {"candidates": [{"content": {"parts": []}, "finishReason": "MAX_TOKENS"}]})

    with pytest.raises(TransportFailure) as excinfo:
        await adapter.complete(_request())

    assert "MAX_TOKENS" in excinfo.value.message


@pytest.mark.asyncio
async def test_gemini_adapter_quota_exhausted(http_stub, adapter):
    http_stub(
        HTTPStatus.TOO_MANY_REQUESTS,
        {"error": {"code": 429, "status": "RESOURCE_EXHAUSTED", "message": "Quota exceeded"}},
    )

    with pytest.raises(TransportFailure) as excinfo:
        await adapter.complete(_request())

    assert excinfo.value.message == "Provider quota exhausted: RESOURCE_EXHAUSTED - Quota exceeded"


@pytest.mark.asyncio
async def test_gemini_adapter_connection_error(http_stub, adapter):
    http_stub(error=httpx.ConnectError("refused"))

    with pytest.raises(TransportFailure) as excinfo:
        await adapter.complete(_request())

    assert excinfo.value.message == "Provider request failed"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "candidate",
    [
        {"content": "oops"},
        {"content": {"parts": "oops"}},
    ],
)
async def test_gemini_adapter_malformed_content_is_transport_failure(http_stub, adapter, candidate):
    http_stub(HTTPStatus.OK, {"candidates": [candidate]})

    with pytest.raises(TransportFailure) as excinfo:
        await adapter.complete(_request())

    assert excinfo.value.message == "Unexpected response format"


@pytest.mark.asyncio
async def test_gemini_adapter_skips_non_text_parts(http_stub, adapter):
    http_stub(
        HTTPStatus.OK,
        {"candidates": [{"content": {"parts": [{"text": 7}, {"text": "{}"}]}}]},
    )

    response = await adapter.complete(_request())

    assert response.text == "{}"
