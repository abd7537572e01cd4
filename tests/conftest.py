"""Shared fixtures for courseflow tests."""

from collections.abc import Callable
from unittest.mock import AsyncMock

import pytest

from courseflow.cache import LocalFallbackCache
from courseflow.config import Settings
from courseflow.content import (
    Chapter,
    ContentItem,
    ContentType,
    DocumentPayload,
    QuizPayload,
    VideoPayload,
)
from courseflow.progress import CheckpointOutcome, CheckpointResult


COURSE_ID = "course-1"
USER_ID = "user-1"


@pytest.fixture
def settings() -> Settings:
    """Settings for tests (no file logging)."""
    return Settings(environment="testing", log_level="WARNING", log_to_file=False)


def _payload(kind: ContentType, content_id: str):
    if kind == ContentType.DOCUMENT:
        return DocumentPayload(content_id=content_id, title=f"Doc {content_id}")
    if kind == ContentType.QUIZ:
        return QuizPayload(content_id=content_id, title=f"Quiz {content_id}")
    return VideoPayload(content_id=content_id, title=f"Video {content_id}")


@pytest.fixture
def make_chapter() -> Callable[..., Chapter]:
    """Factory building a chapter whose items are ``<chapter>-i<n>``.

    Item payload content ids are ``<chapter>-c<n>``.
    """

    def factory(
        chapter_id: str,
        order: int,
        item_count: int,
        kinds: list[ContentType] | None = None,
    ) -> Chapter:
        kinds = kinds or [ContentType.VIDEO] * item_count
        items = [
            ContentItem(
                id=f"{chapter_id}-i{n}",
                chapter_id=chapter_id,
                order=n,
                payload=_payload(kinds[n - 1], f"{chapter_id}-c{n}"),
            )
            for n in range(1, item_count + 1)
        ]
        return Chapter(
            id=chapter_id,
            course_id=COURSE_ID,
            order=order,
            title=f"Chapter {chapter_id}",
            items=items,
        )

    return factory


@pytest.fixture
def chapters(make_chapter) -> list[Chapter]:
    """Three chapters: X and Y with 3 videos each, Z with 2."""
    return [make_chapter("X", 1, 3), make_chapter("Y", 2, 3), make_chapter("Z", 3, 2)]


@pytest.fixture
def mock_redis():
    """Mock Redis client (cache starts empty)."""
    redis_mock = AsyncMock()
    redis_mock.get = AsyncMock(return_value=None)
    redis_mock.set = AsyncMock(return_value=True)
    return redis_mock


@pytest.fixture
def cache(mock_redis) -> LocalFallbackCache:
    return LocalFallbackCache(mock_redis, namespace="courseflow")


@pytest.fixture
def saving_store():
    """Checkpoint store that accepts every write."""
    store = AsyncMock()
    store.save_checkpoint = AsyncMock(
        return_value=CheckpointResult(CheckpointOutcome.SAVED)
    )
    return store
