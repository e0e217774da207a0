from typing import List

import httpx
import pytest
from fastapi.testclient import TestClient

from pii_detector.config import Config
from pii_detector.dispatcher import RequestDispatcher
from pii_detector.exceptions import RateLimitError, UpstreamCallError
from pii_detector.gemini_client import Part
from pii_detector.key_pool import CredentialPool
from pii_detector.main import app as main_app
from pii_detector.service import DetectionService

KEYS = ["AIzaSyTESTKEY000000000001", "AIzaSyTESTKEY000000000002"]


class ScriptedUpstream:
    def __init__(self):
        self.outcomes: List[object] = []
        self.contents: List[List[Part]] = []

    async def generate(self, api_key: str, content: List[Part]) -> str:
        self.contents.append(content)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


async def no_sleep(_: float) -> None:
    return None


@pytest.fixture
def upstream():
    return ScriptedUpstream()


@pytest.fixture
def app(upstream):
    config = Config(api_keys=KEYS, max_retries=1)
    pool = CredentialPool(config.api_keys, cooldown_seconds=config.cooldown_seconds)
    dispatcher = RequestDispatcher(pool, upstream, max_retries=1, sleep=no_sleep)

    main_app.state.config = config
    main_app.state.pool = pool
    main_app.state.detection_service = DetectionService(pool, dispatcher)

    yield main_app

    for name in ("config", "pool", "detection_service"):
        if hasattr(main_app.state, name):
            delattr(main_app.state, name)


def test_health(app):
    client = TestClient(app)
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["total_keys"] == 2
    assert data["keys_available"] == 2
    assert data["current_key_index"] == 0


def test_root(app):
    client = TestClient(app)
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["service"] == "PII Detection Service"


def test_stats(app):
    client = TestClient(app)
    response = client.get("/api/stats")
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["total_keys"] == 2
    assert len(data["stats"]) == 2
    first = data["stats"][0]
    assert first["key_preview"] == "AIzaSyTE..."
    assert first["is_current"] is True
    assert KEYS[0] not in response.text


def test_detect_text(app, upstream):
    upstream.outcomes = [
        '{"flagged": true, "confidence": 91, "severity": "high", '
        '"items": [{"category": "email", "value": "a at b dot com", '
        '"severity": "high"}], '
        '"reasoning": "spelled out email"}'
    ]
    client = TestClient(app)

    response = client.post(
        "/api/detect/text", json={"text": "mail me a at b dot com", "user_id": "u1"}
    )

    assert response.status_code == 200
    detection = response.json()["detection"]
    assert detection["flagged"] is True
    assert detection["confidence"] == 91
    assert detection["severity"] == "high"
    assert detection["items"][0]["category"] == "email"
    assert detection["items"][0]["value_or_description"] == "a at b dot com"
    assert detection["source"] == "structured"


def test_detect_text_fallback_is_returned(app, upstream):
    upstream.outcomes = ["I detected a phone number but cannot format JSON"]
    client = TestClient(app)

    response = client.post("/api/detect/text", json={"text": "five five five"})

    assert response.status_code == 200
    detection = response.json()["detection"]
    assert detection["flagged"] is True
    assert detection["confidence"] == 50
    assert detection["severity"] == "medium"
    assert detection["source"] == "fallback"


def test_detect_text_missing_text(app):
    client = TestClient(app)
    response = client.post("/api/detect/text", json={})
    assert response.status_code == 400
    assert "text is required" in response.json()["detail"]


def test_detect_text_invalid_json(app):
    client = TestClient(app)
    response = client.post(
        "/api/detect/text",
        content=b"not json",
        headers={"content-type": "application/json"},
    )
    assert response.status_code == 400


def test_detect_text_all_keys_rate_limited(app, upstream):
    upstream.outcomes = [RateLimitError("quota"), RateLimitError("quota")]
    client = TestClient(app)

    response = client.post("/api/detect/text", json={"text": "hello"})

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "60"
    assert response.json()["success"] is False


def test_detect_text_upstream_failure(app, upstream):
    upstream.outcomes = [
        UpstreamCallError("HTTP 500", status_code=500),
        httpx.ConnectError("refused"),
    ]
    client = TestClient(app)

    response = client.post("/api/detect/text", json={"text": "hello"})

    assert response.status_code == 502
    assert response.json()["success"] is False


def test_detect_image(app, upstream):
    upstream.outcomes = ['{"flagged": false, "image_contains_text": true}']
    client = TestClient(app)

    response = client.post(
        "/api/detect/image",
        json={"image_data": "iVBORw0KGgo=", "mime_type": "image/png"},
    )

    assert response.status_code == 200
    detection = response.json()["detection"]
    assert detection["flagged"] is False
    assert detection["image_contains_text"] is True
    image = upstream.contents[0][1]
    assert image["inline_data"]["mime_type"] == "image/png"


def test_detect_image_missing_data(app):
    client = TestClient(app)
    response = client.post("/api/detect/image", json={"mime_type": "image/png"})
    assert response.status_code == 400
    assert "image_data is required" in response.json()["detail"]
