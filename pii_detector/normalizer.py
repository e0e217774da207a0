"""
Turn raw model output into a DetectionResult.

The model is asked for a JSON object but may wrap it in markdown fences,
omit fields, or answer in prose. ``normalize`` never raises:

- A JSON object is read field by field; missing or out-of-range fields fall
  back to defaults (not flagged, confidence 0, severity "low").
- Anything else goes through a keyword heuristic that flags the content when
  the text mentions a trigger word, at confidence 50 / severity "medium".
"""

import json
import logging
import math
import re
from typing import Any, Dict, List, Optional

from pii_detector.models import (
    SEVERITIES,
    SEVERITY_LOW,
    SEVERITY_MEDIUM,
    SOURCE_FALLBACK,
    SOURCE_STRUCTURED,
    DetectedItem,
    DetectionResult,
)

logger = logging.getLogger(__name__)

FALLBACK_TRIGGER_WORDS = ("detected", "found", "phone", "email")
FALLBACK_CONFIDENCE = 50
FALLBACK_REASONING = "Failed to parse model response; flagged as potential PII"

_FENCE_PATTERN = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?```$", re.DOTALL)


def strip_fences(raw_text: str) -> str:
    """Remove BOM, surrounding whitespace and markdown code fences."""
    text = raw_text.lstrip("\ufeff").strip()
    match = _FENCE_PATTERN.match(text)
    if match:
        return match.group(1).strip()
    # Unbalanced fences, e.g. a truncated answer.
    text = re.sub(r"```[a-zA-Z]*\n?", "", text)
    return text.strip()


def normalize(raw_text: str) -> DetectionResult:
    record = _parse_record(raw_text)
    if record is None:
        return heuristic_fallback(raw_text)
    return _from_record(record)


def heuristic_fallback(raw_text: str) -> DetectionResult:
    preview = raw_text[:200] if raw_text else ""
    logger.warning(
        "Could not parse model response, using keyword fallback: %r", preview
    )

    lowered = (raw_text or "").lower()
    flagged = any(word in lowered for word in FALLBACK_TRIGGER_WORDS)
    return DetectionResult(
        flagged=flagged,
        confidence=FALLBACK_CONFIDENCE,
        items=[],
        reasoning=FALLBACK_REASONING,
        severity=SEVERITY_MEDIUM,
        source=SOURCE_FALLBACK,
        raw_response=raw_text,
    )


def _parse_record(raw_text: str) -> Optional[Dict[str, Any]]:
    if not isinstance(raw_text, str):
        return None
    cleaned = strip_fences(raw_text)
    if not cleaned:
        return None
    try:
        parsed = json.loads(cleaned)
    except ValueError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def _from_record(record: Dict[str, Any]) -> DetectionResult:
    image_contains_text = record.get("image_contains_text")
    return DetectionResult(
        flagged=_coerce_bool(record.get("flagged")),
        confidence=_coerce_confidence(record.get("confidence")),
        items=_coerce_items(record.get("items")),
        reasoning=_coerce_str(record.get("reasoning")),
        severity=_coerce_severity(record.get("severity")),
        source=SOURCE_STRUCTURED,
        image_contains_text=(
            image_contains_text if isinstance(image_contains_text, bool) else None
        ),
    )


def _coerce_bool(value: Any) -> bool:
    return value if isinstance(value, bool) else False


def _coerce_confidence(value: Any) -> int:
    # bool is an int subclass; true/false is not a confidence.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if not math.isfinite(value) or value < 0 or value > 100:
        return 0
    return int(round(value))


def _coerce_severity(value: Any) -> str:
    if isinstance(value, str) and value.lower() in SEVERITIES:
        return value.lower()
    return SEVERITY_LOW


def _coerce_str(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _coerce_optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return _coerce_str(value)


def _coerce_items(value: Any) -> List[DetectedItem]:
    if not isinstance(value, list):
        return []

    items = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        category = entry.get("category") or entry.get("type") or "other"
        detail = entry.get("value")
        if detail is None:
            detail = entry.get("description", "")
        items.append(
            DetectedItem(
                category=_coerce_str(category),
                value_or_description=_coerce_str(detail),
                severity=_coerce_severity(entry.get("severity")),
                obfuscation=_coerce_optional_str(
                    entry.get("obfuscation") or entry.get("obfuscation_type")
                ),
                location=_coerce_optional_str(entry.get("location")),
            )
        )
    return items
