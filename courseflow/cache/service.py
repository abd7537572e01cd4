"""Local fallback cache.

Durable, process-external key/value store (Redis) holding JSON documents,
scoped under a namespace prefix. Used by the reconciliation layer as:
- the source of state when the remote store has never been read successfully
- a write-behind mirror of local state afterwards

Cache failures never propagate: a Redis error reads as a miss and a failed
write is logged and dropped.
"""

from typing import Any

import orjson
import redis.asyncio as redis
import structlog


logger = structlog.get_logger(__name__)


def course_content_key(course_id: str) -> str:
    """Key of a course's chapter/item tree."""
    return f"course_content_{course_id}"


def course_progress_key(course_id: str, user_id: str) -> str:
    """Key of a learner's per-video progress for a course."""
    return f"course_progress_{course_id}_{user_id}"


class LocalFallbackCache:
    """JSON key/value cache backed by Redis."""

    def __init__(
        self,
        client: redis.Redis | None,
        namespace: str = "courseflow",
        ttl_seconds: int | None = None,
    ):
        """Initialize with a Redis client.

        Args:
            client: Redis client, or None when Redis is unavailable.
            namespace: Prefix scoping every key.
            ttl_seconds: Optional expiry applied on every write.
        """
        self._client = client
        self._namespace = namespace
        self._ttl_seconds = ttl_seconds

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def get(self, key: str) -> Any | None:
        """Get a cached JSON value, or None on miss or cache failure."""
        if self._client is None:
            return None

        try:
            raw = await self._client.get(self._key(key))
        except redis.RedisError as e:
            logger.warning("cache_read_failed", key=key, error=str(e))
            return None

        if raw is None:
            return None

        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning("cache_entry_corrupt", key=key)
            return None

    async def set(self, key: str, value: Any) -> bool:
        """Store a JSON-serializable value. Returns False if not written."""
        if self._client is None:
            return False

        try:
            payload = orjson.dumps(value)
        except TypeError as e:
            logger.error("cache_value_not_serializable", key=key, error=str(e))
            return False

        try:
            await self._client.set(self._key(key), payload, ex=self._ttl_seconds)
        except redis.RedisError as e:
            logger.warning("cache_write_failed", key=key, error=str(e))
            return False
        return True

    async def delete(self, key: str) -> None:
        if self._client is None:
            return
        try:
            await self._client.delete(self._key(key))
        except redis.RedisError as e:
            logger.warning("cache_delete_failed", key=key, error=str(e))
