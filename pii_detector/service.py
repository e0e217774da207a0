"""PII detection on top of the dispatcher and normalizer."""

import logging
import re
from typing import List, Optional, Tuple

from pii_detector.dispatcher import RequestDispatcher
from pii_detector.gemini_client import Part, image_part, text_part
from pii_detector.key_pool import CredentialPool
from pii_detector.models import CredentialUsage, DetectionResult
from pii_detector.normalizer import normalize
from pii_detector.prompts import build_image_prompt, build_text_prompt
from pii_detector.telemetry import usage_stats

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MIME_TYPE = "image/jpeg"

_DATA_URL_PATTERN = re.compile(r"^data:(.+?);base64,(.+)$", re.DOTALL)


def split_data_url(
    image_data: str, mime_type: Optional[str] = None
) -> Tuple[str, str]:
    """Return (base64, mime type) for raw base64 or a ``data:`` URL."""
    match = _DATA_URL_PATTERN.match(image_data)
    if match:
        return match.group(2), mime_type or match.group(1)
    return image_data, mime_type or DEFAULT_IMAGE_MIME_TYPE


class DetectionService:
    """Entry point used by the HTTP layer: classify content, report usage."""

    def __init__(self, pool: CredentialPool, dispatcher: RequestDispatcher):
        self.pool = pool
        self.dispatcher = dispatcher

    async def classify(self, content: List[Part]) -> DetectionResult:
        """Raises DispatchError when the upstream is unavailable."""
        raw_text = await self.dispatcher.dispatch(content)
        return normalize(raw_text)

    async def detect_text(
        self, text: str, user_id: str = "anonymous"
    ) -> DetectionResult:
        if not isinstance(text, str) or not text.strip():
            raise ValueError("Valid text string is required")

        detection = await self.classify([text_part(build_text_prompt(text))])
        self._log_detection("text", user_id, detection)
        return detection

    async def detect_image(
        self,
        image_data: str,
        mime_type: Optional[str] = None,
        user_id: str = "anonymous",
    ) -> DetectionResult:
        if not isinstance(image_data, str) or not image_data.strip():
            raise ValueError("Image data is required")

        data, resolved_mime = split_data_url(image_data.strip(), mime_type)
        detection = await self.classify(
            [text_part(build_image_prompt()), image_part(data, resolved_mime)]
        )
        self._log_detection("image", user_id, detection)
        return detection

    async def stats(self) -> List[CredentialUsage]:
        return await usage_stats(self.pool)

    def _log_detection(
        self, content_type: str, user_id: str, detection: DetectionResult
    ) -> None:
        if not detection.flagged:
            return
        logger.warning(
            "PII detected (type=%s, user=%s, severity=%s, confidence=%d, source=%s)",
            content_type,
            user_id,
            detection.severity,
            detection.confidence,
            detection.source,
        )
