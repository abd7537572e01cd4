"""Tests for the Redis-backed local fallback cache."""

import orjson
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from courseflow.cache import (
    LocalFallbackCache,
    course_content_key,
    course_progress_key,
)


def test_keys():
    assert course_content_key("c1") == "course_content_c1"
    assert course_progress_key("c1", "u1") == "course_progress_c1_u1"


class TestLocalFallbackCache:
    """Tests for JSON get/set and failure tolerance."""

    @pytest.mark.asyncio
    async def test_get_decodes_json(self, mock_redis):
        mock_redis.get.return_value = orjson.dumps({"chapters": [1, 2]})
        cache = LocalFallbackCache(mock_redis, namespace="ns")

        assert await cache.get("course_content_c1") == {"chapters": [1, 2]}
        mock_redis.get.assert_awaited_once_with("ns:course_content_c1")

    @pytest.mark.asyncio
    async def test_miss(self, cache):
        assert await cache.get("nothing") is None

    @pytest.mark.asyncio
    async def test_set_writes_json_with_ttl(self, mock_redis):
        cache = LocalFallbackCache(mock_redis, namespace="ns", ttl_seconds=60)

        assert await cache.set("k", {"a": 1}) is True
        mock_redis.set.assert_awaited_once_with("ns:k", b'{"a":1}', ex=60)

    @pytest.mark.asyncio
    async def test_redis_failure_reads_as_miss(self, mock_redis, cache):
        mock_redis.get.side_effect = RedisConnectionError("down")

        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_redis_failure_on_write_is_dropped(self, mock_redis, cache):
        mock_redis.set.side_effect = RedisConnectionError("down")

        assert await cache.set("k", {"a": 1}) is False

    @pytest.mark.asyncio
    async def test_corrupt_entry_reads_as_miss(self, mock_redis, cache):
        mock_redis.get.return_value = b"{not json"

        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_without_redis(self):
        cache = LocalFallbackCache(None)

        assert cache.is_available is False
        assert await cache.get("k") is None
        assert await cache.set("k", {"a": 1}) is False
        await cache.delete("k")

    @pytest.mark.asyncio
    async def test_delete(self, mock_redis, cache):
        await cache.delete("k")

        mock_redis.delete.assert_awaited_once_with("courseflow:k")
