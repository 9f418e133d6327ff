"""Real-time counter store (Redis) for the dashboard.

Key schema
----------
metrics:userStats   hash   field totalUsers   incremented once per user_signup event

Counter calls are best-effort — a failed increment is logged and dropped. The
event log stays the authoritative record; counters can be rebuilt from it.
"""

import logging

from redis.asyncio import Redis

from app.models.enums import EventName

logger = logging.getLogger(__name__)

USER_STATS_KEY = "metrics:userStats"
TOTAL_USERS_FIELD = "totalUsers"

# event_name -> (hash key, field) incremented alongside the event append.
COUNTER_ELIGIBLE: dict[str, tuple[str, str]] = {
    EventName.USER_SIGNUP.value: (USER_STATS_KEY, TOTAL_USERS_FIELD),
}


def counter_for(event_name: str) -> tuple[str, str] | None:
    return COUNTER_ELIGIBLE.get(event_name)


async def increment_counter(redis: Redis, key: str, field: str, amount: int = 1) -> bool:
    """Atomically bump ``key.field``. Returns False when Redis is unavailable."""
    try:
        await redis.hincrby(key, field, amount)
    except Exception as exc:
        logger.warning("Counter increment failed for %s.%s: %s", key, field, exc)
        return False
    return True


async def get_user_stats(redis: Redis | None) -> int:
    """Current value of the signup counter; 0 on miss or error."""
    if redis is None:
        return 0
    try:
        val = await redis.hget(USER_STATS_KEY, TOTAL_USERS_FIELD)
        return int(val) if val is not None else 0
    except Exception as exc:
        logger.warning("Counter read failed for %s: %s", USER_STATS_KEY, exc)
        return 0
