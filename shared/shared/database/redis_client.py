from typing import Any

import redis.asyncio as redis

RedisClient = redis.Redis


def get_redis_client(
    redis_url: str,
    *,
    socket_timeout: float = 2.0,
    socket_connect_timeout: float = 2.0,
    **kwargs: Any,
) -> redis.Redis:
    """Async client with decoded responses.

    Timeouts surface as exceptions; counter callers treat them like any other
    Redis failure.
    """
    return redis.from_url(
        redis_url,
        decode_responses=True,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_connect_timeout,
        **kwargs,
    )
