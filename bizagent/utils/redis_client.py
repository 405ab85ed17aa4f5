"""
Shared async Redis connection (booking locks, worker heartbeats, health check).

Connect and socket timeouts are short so a Redis outage costs a booking a
couple of seconds before it falls back to lock-free mode.
"""
from typing import Optional

import redis.asyncio as aioredis

from bizagent.config import get_settings

_redis_client: Optional[aioredis.Redis] = None


async def get_redis() -> aioredis.Redis:
    """Connection created on first use, then shared by the process."""
    global _redis_client
    if _redis_client is None:
        settings = get_settings()
        _redis_client = aioredis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=settings.redis_socket_timeout_seconds,
            socket_timeout=settings.redis_socket_timeout_seconds,
        )
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
