from __future__ import annotations

import redis

from labforge.settings import get_redis_url


def create_redis(url: str | None = None) -> redis.Redis:
    """Client for `url`, defaulting to REDIS_URL.

    Callers own the client and close it when done.
    """

    # decode_responses=True => strings in/out instead of bytes
    return redis.Redis.from_url(url or get_redis_url(), decode_responses=True)
