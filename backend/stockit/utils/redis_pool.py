"""Process-wide Redis client.

Redis backs the rate limiter only; nothing else in StockIT stores state
there, so an outage degrades to unlimited requests rather than errors.
"""

import asyncio

import redis.asyncio as redis

from stockit.config import settings

_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    global _client
    if _client is None:
        _client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
            socket_connect_timeout=2,
        )
    return _client


async def ping_redis(timeout: float = 2.0) -> None:
    """Raise if Redis does not answer a PING within `timeout` seconds."""
    client = await get_redis()
    await asyncio.wait_for(client.ping(), timeout)


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
