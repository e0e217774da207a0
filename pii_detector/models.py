"""Data models for key usage tracking and detection results."""

from dataclasses import dataclass, field
from typing import List, Optional

SEVERITY_CRITICAL = "critical"
SEVERITY_HIGH = "high"
SEVERITY_MEDIUM = "medium"
SEVERITY_LOW = "low"

SEVERITIES = (SEVERITY_CRITICAL, SEVERITY_HIGH, SEVERITY_MEDIUM, SEVERITY_LOW)

SOURCE_STRUCTURED = "structured"
SOURCE_FALLBACK = "fallback"


@dataclass
class CredentialState:
    """Usage counters and cooldown for a single API key."""

    request_count: int = 0
    error_count: int = 0
    last_used_at: Optional[float] = None
    rate_limit_hits: int = 0
    cooldown_until: Optional[float] = None

    def in_cooldown(self, now: float) -> bool:
        return self.cooldown_until is not None and now < self.cooldown_until


@dataclass
class CredentialUsage:
    """Reporting view of one key. Never holds the full key value."""

    key_index: int
    key_preview: str
    is_current: bool
    request_count: int
    error_count: int
    last_used_at: Optional[str]
    rate_limit_hits: int
    cooldown_until: Optional[str]
    in_cooldown: bool


@dataclass
class DetectedItem:
    category: str = "other"
    value_or_description: str = ""
    severity: str = SEVERITY_LOW
    obfuscation: Optional[str] = None
    location: Optional[str] = None


@dataclass
class DetectionResult:
    """Structured answer for one piece of content."""

    flagged: bool = False
    confidence: int = 0
    items: List[DetectedItem] = field(default_factory=list)
    reasoning: str = ""
    severity: str = SEVERITY_LOW
    source: str = SOURCE_STRUCTURED
    image_contains_text: Optional[bool] = None
    raw_response: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return self.source == SOURCE_FALLBACK
