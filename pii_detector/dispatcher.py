import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from pii_detector.exceptions import (
    AllCredentialsExhausted,
    RateLimitError,
    UpstreamError,
)
from pii_detector.gemini_client import Part, Upstream
from pii_detector.key_pool import CredentialPool

logger = logging.getLogger(__name__)

RATE_LIMIT_MARKERS = ("429", "rate limit", "resource_exhausted")


def is_rate_limit_error(exc: BaseException) -> bool:
    """Decide whether a failed call was a quota rejection."""
    if isinstance(exc, RateLimitError):
        return True
    if getattr(exc, "status_code", None) == 429:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


class RequestDispatcher:
    """
    Run one logical request against the upstream with retries and key rotation.

    Flow per attempt (attempt counts from 1):
    1. acquire() the current key from the pool (records the attempt)
    2. Call upstream with that key, pool lock not held
    3. Success -> return text
    4. Failure -> record_error(), then:
       - Rate limit: mark_rate_limited() and find_eligible()
         - no key left -> AllCredentialsExhausted, without waiting for cooldown
         - key found and attempt <= max_retries -> sleep base_delay, retry
       - Anything else (or a rate limit with the budget spent):
         - attempt <= max_retries -> sleep base_delay * 2**(attempt-1),
           rotate to the next key from the second attempt on, retry
         - otherwise -> UpstreamError carrying the last failure
    """

    def __init__(
        self,
        pool: CredentialPool,
        upstream: Upstream,
        max_retries: int = 3,
        base_delay_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.pool = pool
        self.upstream = upstream
        self.max_retries = max_retries
        self.base_delay_seconds = base_delay_seconds
        self._sleep = sleep

    async def dispatch(
        self,
        content: List[Part],
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
    ) -> str:
        retries = self.max_retries if max_retries is None else max_retries
        delay = self.base_delay_seconds if base_delay is None else base_delay
        attempt = 1

        while True:
            index, api_key = await self.pool.acquire()
            try:
                return await self.upstream.generate(api_key, content)
            except Exception as exc:
                last_error = exc

            await self.pool.record_error(index)

            if is_rate_limit_error(last_error):
                logger.warning("Rate limit on key %d: %s", index, last_error)
                await self.pool.mark_rate_limited(index)
                eligible = await self.pool.find_eligible()

                if eligible is None:
                    logger.error("All API keys are rate limited")
                    raise AllCredentialsExhausted() from last_error

                if attempt <= retries:
                    logger.info(
                        "Retry attempt %d/%d with key %d", attempt, retries, eligible
                    )
                    await self._sleep(delay)
                    attempt += 1
                    continue

            if attempt > retries:
                logger.error(
                    "Giving up after %d attempts, last error: %s", attempt, last_error
                )
                raise UpstreamError(
                    f"Upstream call failed after {attempt} attempts: {last_error}",
                    last_error=last_error,
                ) from last_error

            backoff = delay * 2 ** (attempt - 1)
            logger.info(
                "Retry attempt %d/%d after %.3fs (%s)",
                attempt,
                retries,
                backoff,
                last_error,
            )
            await self._sleep(backoff)
            if attempt > 1:
                await self.pool.advance(index)
            attempt += 1
