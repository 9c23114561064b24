"""Shared Redis client for the derived pincode index."""

from typing import Optional

import redis.asyncio as redis
from loguru import logger

from serviceability.core.config import settings

# Global Redis client (initialized on startup)
_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> redis.Redis:
    """Get or create the Redis client; connections come from its pool lazily."""

    global _redis_client
    if _redis_client is None:
        _redis_client = redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            password=settings.REDIS_PASSWORD,
            decode_responses=True,
            socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        )
    return _redis_client


async def ping_redis() -> bool:
    """Return True if Redis answers a PING; used by the readiness probe."""

    try:
        return bool(await get_redis_client().ping())
    except redis.RedisError as exc:
        logger.bind(error=str(exc)).warning("redis_unreachable")
        return False


async def close_redis_client() -> None:
    """Close Redis client connection."""

    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
