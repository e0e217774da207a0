import json
from typing import List

import httpx
import pytest
import respx

from pii_detector.exceptions import RateLimitError, UpstreamCallError
from pii_detector.gemini_client import GeminiClient, image_part, text_part

BASE_URL = "https://gemini.example.test"
ENDPOINT = f"{BASE_URL}/v1beta/models/gemini-2.5-flash:generateContent"


def candidate_response(*texts: str) -> httpx.Response:
    return httpx.Response(
        200,
        json={"candidates": [{"content": {"parts": [{"text": t} for t in texts]}}]},
    )


@pytest.mark.asyncio
@respx.mock
async def test_generate_sends_key_and_content():
    captured: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return candidate_response('{"flagged": false}')

    _ = respx.post(ENDPOINT).mock(side_effect=handler)

    async with httpx.AsyncClient(base_url=BASE_URL) as http_client:
        client = GeminiClient(http_client)
        text = await client.generate("server-key-1", [text_part("hello")])

    assert text == '{"flagged": false}'
    sent = captured[0]
    assert sent.headers["x-goog-api-key"] == "server-key-1"
    assert json.loads(sent.content) == {"contents": [{"parts": [{"text": "hello"}]}]}


@pytest.mark.asyncio
@respx.mock
async def test_generate_uses_configured_model():
    route = respx.post(
        f"{BASE_URL}/v1beta/models/gemini-pro:generateContent"
    ).mock(return_value=candidate_response("ok"))

    async with httpx.AsyncClient(base_url=BASE_URL) as http_client:
        client = GeminiClient(http_client, model="gemini-pro")
        assert await client.generate("k", [text_part("x")]) == "ok"

    assert route.called


@pytest.mark.asyncio
@respx.mock
async def test_generate_joins_text_parts():
    _ = respx.post(ENDPOINT).mock(
        return_value=candidate_response('{"fla', 'gged": true}')
    )

    async with httpx.AsyncClient(base_url=BASE_URL) as http_client:
        text = await GeminiClient(http_client).generate("k", [text_part("x")])

    assert text == '{"flagged": true}'


@pytest.mark.asyncio
@respx.mock
async def test_generate_429_raises_rate_limit():
    _ = respx.post(ENDPOINT).mock(
        return_value=httpx.Response(
            429, json={"error": {"code": 429, "message": "Quota exceeded per minute"}}
        )
    )

    async with httpx.AsyncClient(base_url=BASE_URL) as http_client:
        with pytest.raises(RateLimitError, match="Quota exceeded per minute"):
            await GeminiClient(http_client).generate("k", [text_part("x")])


@pytest.mark.asyncio
@respx.mock
async def test_generate_resource_exhausted_raises_rate_limit():
    _ = respx.post(ENDPOINT).mock(
        return_value=httpx.Response(
            403,
            json={"error": {"status": "RESOURCE_EXHAUSTED", "message": "quota"}},
        )
    )

    async with httpx.AsyncClient(base_url=BASE_URL) as http_client:
        with pytest.raises(RateLimitError) as exc_info:
            await GeminiClient(http_client).generate("k", [text_part("x")])

    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
@respx.mock
async def test_generate_server_error_raises_upstream_call_error():
    _ = respx.post(ENDPOINT).mock(
        return_value=httpx.Response(500, json={"error": {"message": "internal"}})
    )

    async with httpx.AsyncClient(base_url=BASE_URL) as http_client:
        with pytest.raises(UpstreamCallError) as exc_info:
            await GeminiClient(http_client).generate("k", [text_part("x")])

    assert exc_info.value.status_code == 500
    assert "internal" in str(exc_info.value)


@pytest.mark.asyncio
@respx.mock
async def test_generate_non_json_error_body():
    _ = respx.post(ENDPOINT).mock(return_value=httpx.Response(502, text="Bad Gateway"))

    async with httpx.AsyncClient(base_url=BASE_URL) as http_client:
        with pytest.raises(UpstreamCallError, match="Bad Gateway"):
            await GeminiClient(http_client).generate("k", [text_part("x")])


@pytest.mark.asyncio
@respx.mock
async def test_generate_without_candidates_raises():
    _ = respx.post(ENDPOINT).mock(
        return_value=httpx.Response(
            200, json={"promptFeedback": {"blockReason": "SAFETY"}}
        )
    )

    async with httpx.AsyncClient(base_url=BASE_URL) as http_client:
        with pytest.raises(UpstreamCallError):
            await GeminiClient(http_client).generate("k", [text_part("x")])


@pytest.mark.asyncio
@respx.mock
async def test_generate_timeout_propagates():
    _ = respx.post(ENDPOINT).mock(side_effect=httpx.ReadTimeout("timeout"))

    async with httpx.AsyncClient(base_url=BASE_URL) as http_client:
        with pytest.raises(httpx.TimeoutException):
            await GeminiClient(http_client).generate("k", [text_part("x")])


def test_image_part_shape():
    assert image_part("QUJD", "image/png") == {
        "inline_data": {"mime_type": "image/png", "data": "QUJD"}
    }
    assert image_part("QUJD")["inline_data"]["mime_type"] == "image/jpeg"
