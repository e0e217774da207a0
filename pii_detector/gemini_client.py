"""Thin async client for the Gemini generateContent endpoint."""

import logging
from typing import Dict, List, Protocol, cast

import httpx

from pii_detector.exceptions import RateLimitError, UpstreamCallError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"

Part = Dict[str, object]


def text_part(text: str) -> Part:
    return {"text": text}


def image_part(base64_data: str, mime_type: str = "image/jpeg") -> Part:
    return {"inline_data": {"mime_type": mime_type, "data": base64_data}}


class Upstream(Protocol):
    async def generate(self, api_key: str, content: List[Part]) -> str: ...


class GeminiClient:
    """Issues one generateContent call per ``generate`` with the given key."""

    def __init__(self, http_client: httpx.AsyncClient, model: str = DEFAULT_MODEL):
        self.http_client = http_client
        self.model = model

    async def generate(self, api_key: str, content: List[Part]) -> str:
        response = await self.http_client.post(
            f"/v1beta/models/{self.model}:generateContent",
            json={"contents": [{"parts": content}]},
            headers={"x-goog-api-key": api_key},
        )

        if response.status_code == 429 or _is_resource_exhausted(response):
            raise RateLimitError(
                _error_message(response), status_code=response.status_code
            )
        if response.status_code >= 400:
            raise UpstreamCallError(
                _error_message(response), status_code=response.status_code
            )

        return _extract_text(response)


def _is_resource_exhausted(response: httpx.Response) -> bool:
    if response.status_code < 400:
        return False
    return "RESOURCE_EXHAUSTED" in response.text


def _error_message(response: httpx.Response) -> str:
    """Pull ``error.message`` out of a Gemini error body, if there is one."""
    try:
        data = cast(Dict[str, object], response.json())
    except ValueError:
        return f"HTTP {response.status_code}: {response.text[:200]}"

    error_obj = data.get("error") if isinstance(data, dict) else None
    if isinstance(error_obj, dict):
        message = cast(Dict[str, object], error_obj).get("message")
        if message:
            return f"HTTP {response.status_code}: {message}"
    return f"HTTP {response.status_code}"


def _extract_text(response: httpx.Response) -> str:
    try:
        data = response.json()
        parts = data["candidates"][0]["content"]["parts"]
        texts = [part["text"] for part in parts if "text" in part]
    except (ValueError, KeyError, IndexError, TypeError) as exc:
        raise UpstreamCallError(
            f"Unexpected generateContent response shape: {exc!r}",
            status_code=response.status_code,
        ) from exc

    if not texts:
        raise UpstreamCallError(
            "generateContent response had no text parts",
            status_code=response.status_code,
        )
    return "".join(texts)
