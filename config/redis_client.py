"""
config/redis_client.py
Async Redis client for the per-IP rate limiter and the chat
pub/sub channel that relays messages between API instances.
"""

import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config.settings import settings

logger = logging.getLogger(__name__)


# ── Global client (initialized on startup) ───────────────────
redis_client: Optional[aioredis.Redis] = None


async def init_redis() -> None:
    """Initialize the Redis connection pool, retrying with backoff."""
    global redis_client
    client = aioredis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
    )
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(settings.REDIS_CONNECT_ATTEMPTS),
        wait=wait_exponential(multiplier=0.5, max=8),
        retry=retry_if_exception_type(RedisConnectionError),
        reraise=True,
    ):
        with attempt:
            await client.ping()
    redis_client = client


async def close_redis() -> None:
    """Close Redis connection pool."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None


def get_redis() -> Optional[aioredis.Redis]:
    """Return the shared client, or None when Redis was never initialized."""
    return redis_client


# ── Rate Limiting ─────────────────────────────────────────────
async def check_rate_limit(
    client: aioredis.Redis,
    key: str,
    limit: int,
    window_seconds: int = 60,
) -> bool:
    """
    Fixed window rate limiter.
    Returns True if request is allowed, False if rate limited.
    """
    pipe = client.pipeline()
    pipe.incr(key)
    pipe.expire(key, window_seconds, nx=True)
    results = await pipe.execute()
    return results[0] <= limit
