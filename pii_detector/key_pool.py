"""Key pool management."""

import asyncio
import logging
import time
from dataclasses import replace
from typing import Callable, List, Optional, Sequence, Tuple

from pii_detector.exceptions import EmptyCredentialSet
from pii_detector.models import CredentialState

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_SECONDS = 60.0


class CredentialPool:
    """Ordered API keys with per-key usage, error and cooldown state.

    Every state transition happens under one ``asyncio.Lock``. Callers never
    hold the lock across an upstream call; they acquire a key, release, and
    report back afterwards.
    """

    def __init__(
        self,
        api_keys: Sequence[str],
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        if not api_keys:
            raise EmptyCredentialSet()

        self._keys: Tuple[str, ...] = tuple(api_keys)
        self._states: List[CredentialState] = [CredentialState() for _ in self._keys]
        self._current: int = 0
        self._cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._lock: asyncio.Lock = asyncio.Lock()

    @property
    def size(self) -> int:
        return len(self._keys)

    @property
    def cooldown_seconds(self) -> float:
        return self._cooldown_seconds

    def current(self) -> int:
        return self._current

    def now(self) -> float:
        return self._clock()

    def is_cooling_down(self, index: int) -> bool:
        return self._states[index].in_cooldown(self._clock())

    def key_preview(self, index: int, length: int = 8) -> str:
        return f"{self._keys[index][:length]}..."

    async def acquire(self) -> Tuple[int, str]:
        """Record an attempt against the current key and hand it out."""
        async with self._lock:
            index = self._current
            self._touch(index)
            return index, self._keys[index]

    async def record_attempt(self, index: int) -> None:
        async with self._lock:
            self._touch(index)

    async def record_error(self, index: int) -> None:
        async with self._lock:
            self._states[index].error_count += 1

    async def mark_rate_limited(self, index: int) -> int:
        """Start the key's cooldown and move on to the next key.

        Rotation always advances, even when the next key is itself cooling
        down (or is the same key in a one-key pool).
        """
        async with self._lock:
            state = self._states[index]
            state.rate_limit_hits += 1
            state.cooldown_until = self._clock() + self._cooldown_seconds

            previous = self._current
            self._current = (index + 1) % len(self._keys)
            logger.warning(
                "Key %d (%s) rate limited, switched from key %d to key %d",
                index,
                self.key_preview(index),
                previous,
                self._current,
            )
            return self._current

    async def advance(self, index: int) -> int:
        """Rotate past ``index`` without starting a cooldown."""
        async with self._lock:
            self._current = (index + 1) % len(self._keys)
            logger.info("Rotated from key %d to key %d", index, self._current)
            return self._current

    async def find_eligible(self) -> Optional[int]:
        """Make the first key not in cooldown current, scanning from current.

        Returns None when every key is cooling down.
        """
        async with self._lock:
            now = self._clock()
            count = len(self._keys)
            for offset in range(count):
                index = (self._current + offset) % count
                if self._states[index].in_cooldown(now):
                    continue
                if index != self._current:
                    self._current = index
                    logger.info("Using key %d", index)
                return index
            return None

    async def snapshot(self) -> List[CredentialState]:
        async with self._lock:
            return [replace(state) for state in self._states]

    def _touch(self, index: int) -> None:
        state = self._states[index]
        state.request_count += 1
        state.last_used_at = self._clock()
