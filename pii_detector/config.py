"""Configuration management for the PII detection service."""

import logging
import os
from dataclasses import dataclass
from typing import List, Mapping, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

PLACEHOLDER_MARKERS = ("your-api-key", "your-key")
MIN_KEY_LENGTH = 20


@dataclass
class Config:
    """Application configuration loaded from environment variables."""

    api_keys: List[str]
    port: int = 8000
    host: str = "0.0.0.0"
    model: str = "gemini-2.5-flash"
    max_retries: int = 3
    retry_base_delay_ms: int = 1000
    cooldown_ms: int = 60000
    gemini_base_url: str = "https://generativelanguage.googleapis.com"
    request_timeout_seconds: float = 30.0
    log_level: str = "INFO"

    def __post_init__(self):
        if not self.api_keys:
            raise ValueError(
                "No valid Gemini API keys found. Set GEMINI_API_KEY_1 "
                "(and optionally GEMINI_API_KEY_2, ...) or GEMINI_API_KEYS"
            )
        if self.max_retries < 0:
            raise ValueError("MAX_RETRIES must be >= 0")
        if self.retry_base_delay_ms <= 0:
            raise ValueError("RETRY_BASE_DELAY_MS must be > 0")
        if self.cooldown_ms <= 0:
            raise ValueError("COOLDOWN_MS must be > 0")

    @property
    def retry_base_delay_seconds(self) -> float:
        return self.retry_base_delay_ms / 1000.0

    @property
    def cooldown_seconds(self) -> float:
        return self.cooldown_ms / 1000.0


def is_valid_key(key: str) -> bool:
    """Reject template placeholders and keys too short to be real."""
    lowered = key.lower()
    if any(marker in lowered for marker in PLACEHOLDER_MARKERS):
        return False
    return len(key.strip()) >= MIN_KEY_LENGTH


def load_api_keys(environ: Optional[Mapping[str, str]] = None) -> List[str]:
    """Collect keys from GEMINI_API_KEY_1..N and GEMINI_API_KEYS.

    Numbered keys are read until the first missing index. Placeholders and
    short keys are skipped with a warning. Duplicates keep their first slot.
    """
    env = os.environ if environ is None else environ
    candidates = []

    index = 1
    while True:
        name = f"GEMINI_API_KEY_{index}"
        value = env.get(name)
        if not value:
            break
        candidates.append((name, value.strip()))
        index += 1

    for position, value in enumerate(env.get("GEMINI_API_KEYS", "").split(","), 1):
        if value.strip():
            candidates.append((f"GEMINI_API_KEYS[{position}]", value.strip()))

    keys: List[str] = []
    for name, value in candidates:
        if not is_valid_key(value):
            logger.warning("%s appears to be a placeholder. Skipping.", name)
            continue
        if value in keys:
            continue
        keys.append(value)
        logger.info("Loaded %s", name)
    return keys


def load_config(use_dotenv: bool = True) -> Config:
    """Load configuration from environment variables.

    Returns:
        Config: Configured application settings

    Raises:
        ValueError: If no usable API key is configured or an option is invalid
    """
    if use_dotenv:
        load_dotenv()

    return Config(
        api_keys=load_api_keys(),
        port=int(os.getenv("PORT", "8000")),
        host=os.getenv("HOST", "0.0.0.0"),
        model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        max_retries=int(os.getenv("MAX_RETRIES", "3")),
        retry_base_delay_ms=int(os.getenv("RETRY_BASE_DELAY_MS", "1000")),
        cooldown_ms=int(os.getenv("COOLDOWN_MS", "60000")),
        gemini_base_url=os.getenv(
            "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com"
        ),
        request_timeout_seconds=float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
