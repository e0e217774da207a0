"""Read-only usage reporting for the key pool."""

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pii_detector.key_pool import CredentialPool
from pii_detector.models import CredentialUsage

KEY_PREVIEW_LENGTH = 8


def _isoformat(timestamp: Optional[float]) -> Optional[str]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


async def usage_stats(pool: CredentialPool) -> List[CredentialUsage]:
    states = await pool.snapshot()
    current = pool.current()
    now = pool.now()

    return [
        CredentialUsage(
            key_index=index,
            key_preview=pool.key_preview(index, KEY_PREVIEW_LENGTH),
            is_current=index == current,
            request_count=state.request_count,
            error_count=state.error_count,
            last_used_at=_isoformat(state.last_used_at),
            rate_limit_hits=state.rate_limit_hits,
            cooldown_until=_isoformat(state.cooldown_until),
            in_cooldown=state.in_cooldown(now),
        )
        for index, state in enumerate(states)
    ]


async def pool_summary(pool: CredentialPool) -> Dict[str, object]:
    stats = await usage_stats(pool)
    cooling_down = sum(1 for usage in stats if usage.in_cooldown)

    return {
        "total_keys": len(stats),
        "available_keys": len(stats) - cooling_down,
        "cooling_down_keys": cooling_down,
        "current_key_index": pool.current(),
        "keys": [asdict(usage) for usage in stats],
    }
