"""Detection and usage endpoints."""

import logging
import math
from dataclasses import asdict
from typing import Dict

from fastapi import APIRouter, HTTPException, Request
from starlette.responses import JSONResponse

from pii_detector.exceptions import AllCredentialsExhausted, DispatchError
from pii_detector.models import DetectionResult

logger = logging.getLogger(__name__)

api_router = APIRouter(prefix="/api", tags=["detection"])


def _dispatch_error_response(request: Request, exc: DispatchError) -> JSONResponse:
    if isinstance(exc, AllCredentialsExhausted):
        retry_after = math.ceil(request.app.state.pool.cooldown_seconds)
        return JSONResponse(
            content={"success": False, "error": str(exc)},
            status_code=503,
            headers={"Retry-After": str(retry_after)},
        )
    return JSONResponse(
        content={"success": False, "error": str(exc)},
        status_code=502,
    )


def _detection_body(detection: DetectionResult) -> Dict[str, object]:
    return {"success": True, "detection": asdict(detection)}


async def _read_json(request: Request) -> Dict[str, object]:
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body must be JSON")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Request body must be an object")
    return body


@api_router.get("/stats")
async def get_stats(request: Request) -> Dict[str, object]:
    """Per-key usage counters for all keys in the pool."""
    service = request.app.state.detection_service
    stats = await service.stats()
    return {
        "success": True,
        "total_keys": len(stats),
        "stats": [asdict(usage) for usage in stats],
    }


@api_router.post("/detect/text")
async def detect_text(request: Request):
    """Classify a chat message.

    Body: {"text": "...", "user_id": "u1"}
    """
    service = request.app.state.detection_service
    body = await _read_json(request)
    text = body.get("text")
    if not isinstance(text, str) or not text.strip():
        raise HTTPException(status_code=400, detail="text is required")
    user_id = str(body.get("user_id") or "anonymous")

    try:
        detection = await service.detect_text(text, user_id=user_id)
    except DispatchError as exc:
        logger.error("Text detection unavailable: %s", exc)
        return _dispatch_error_response(request, exc)
    return _detection_body(detection)


@api_router.post("/detect/image")
async def detect_image(request: Request):
    """Classify an image given as base64 or a data URL.

    Body: {"image_data": "data:image/png;base64,...", "mime_type": "image/png"}
    """
    service = request.app.state.detection_service
    body = await _read_json(request)
    image_data = body.get("image_data")
    if not isinstance(image_data, str) or not image_data.strip():
        raise HTTPException(status_code=400, detail="image_data is required")
    mime_type = body.get("mime_type")
    user_id = str(body.get("user_id") or "anonymous")

    try:
        detection = await service.detect_image(
            image_data,
            mime_type=mime_type if isinstance(mime_type, str) else None,
            user_id=user_id,
        )
    except DispatchError as exc:
        logger.error("Image detection unavailable: %s", exc)
        return _dispatch_error_response(request, exc)
    return _detection_body(detection)
