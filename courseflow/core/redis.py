"""Redis connection management for the local fallback cache."""

import redis.asyncio as redis

from courseflow.config import Settings
from courseflow.core.logging import get_logger


logger = get_logger(__name__)


async def init_redis(settings: Settings) -> redis.Redis | None:
    """Create the Redis client backing the local fallback cache.

    Returns None when Redis cannot be reached; the cache then behaves as
    permanently empty instead of failing the caller.
    """
    client = redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        retry_on_timeout=settings.redis_retry_on_timeout,
        decode_responses=False,
    )

    try:
        await client.ping()
        logger.info("redis_connected", url=settings.redis_url)
    except redis.RedisError as e:
        logger.warning("redis_connection_failed", error=str(e))
        await client.aclose()
        return None

    return client


async def shutdown_redis(client: redis.Redis | None) -> None:
    """Close Redis connection."""
    if client is not None:
        await client.aclose()
        logger.info("redis_disconnected")
