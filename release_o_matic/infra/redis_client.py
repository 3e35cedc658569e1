from __future__ import annotations

import redis

DEFAULT_REDIS_URL = "redis://localhost:6379/0"

# Lock waits happen client side (sleep + retry), so a single command never needs long.
SOCKET_TIMEOUT_SECONDS = 5.0


def create_redis(url: str = DEFAULT_REDIS_URL) -> redis.Redis:
    """Client for the lock backend.

    decode_responses=True so keys and tokens come back as str.
    """

    return redis.Redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=SOCKET_TIMEOUT_SECONDS,
        socket_connect_timeout=SOCKET_TIMEOUT_SECONDS,
        health_check_interval=30,
    )
