"""Tests for engine wiring."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from courseflow.main import Engine, open_engine
from courseflow.progress import ProgressSource
from courseflow.remote import (
    ChapterContentRecord,
    ChapterRecord,
    ContentTypeRef,
    WatchProgressData,
)


@pytest.fixture
def mock_client():
    """Remote store with one chapter holding two videos and a document."""
    client = AsyncMock()
    client.list_chapters = AsyncMock(
        return_value=[ChapterRecord(id="ch-1", course_id="course-1", order=1)]
    )
    client.list_chapter_content = AsyncMock(
        return_value=[
            ChapterContentRecord(
                id=f"item-{n}",
                chapter_id="ch-1",
                content_id=content_id,
                content_type_ref=type_ref,
                order=n,
            )
            for n, (content_id, type_ref) in enumerate(
                [
                    ("v1", ContentTypeRef.VIDEO),
                    ("doc", ContentTypeRef.DOCUMENT),
                    ("v2", ContentTypeRef.VIDEO),
                ],
                start=1,
            )
        ]
    )
    client.get_watch_progress = AsyncMock(
        return_value=WatchProgressData(current_time=30, progress_percent=30, duration=100)
    )
    client.get_course_progress = AsyncMock(return_value=None)
    return client


@pytest.mark.asyncio
async def test_open_learner_session(settings, mock_client):
    engine = Engine(settings, "user-1", mock_client, None)

    session = await engine.open_learner_session("course-1")

    assert session.reconciler.video_ids == ["v1", "v2"]
    assert session.course_progress.percent == 30
    assert session.course_progress.source == ProgressSource.LOCAL
    assert session.resume_position("v2") == 30

    tracker = await session.open_video("v1")
    assert tracker._threshold == Decimal("95.0")
    assert tracker._interval == settings.checkpoint_interval_seconds


def test_one_content_reconciler_per_course(settings, mock_client):
    engine = Engine(settings, "user-1", mock_client, None)

    assert engine.content_reconciler("c1") is engine.content_reconciler("c1")
    assert engine.content_reconciler("c1") is not engine.content_reconciler("c2")


@pytest.mark.asyncio
async def test_open_engine_without_redis(settings, monkeypatch):
    monkeypatch.setattr("courseflow.main.init_redis", AsyncMock(return_value=None))

    async with open_engine(settings, "user-1", "secret-token") as engine:
        assert engine.user_id == "user-1"
        assert engine.cache.is_available is False
        http = engine.client._http

    assert http.is_closed
