"""Tests for the progress store adapter (monotonic, ordered writes)."""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from courseflow.progress import (
    Checkpoint,
    CheckpointOutcome,
    ProgressStatus,
    ProgressStoreAdapter,
)
from courseflow.remote import (
    CheckpointResponseData,
    TransientRemoteError,
    UnauthorizedError,
    WatchProgressData,
)


@pytest.fixture
def mock_client():
    """Mock remote store client accepting every checkpoint."""
    client = AsyncMock()
    client.save_checkpoint = AsyncMock(return_value=CheckpointResponseData())
    client.get_watch_progress = AsyncMock(return_value=None)
    client.get_course_progress = AsyncMock(return_value=None)
    return client


@pytest.fixture
def adapter(mock_client) -> ProgressStoreAdapter:
    return ProgressStoreAdapter(mock_client)


def checkpoint(position: float, completed: bool = False, duration: float = 200):
    return Checkpoint(
        user_id="user-1",
        course_id="course-1",
        video_id="video-1",
        current_time=position,
        percent=Decimal(str(position)) / Decimal(str(duration)) * 100,
        completed=completed,
        duration=duration,
    )


def sent_positions(client) -> list[float]:
    return [call.args[0].current_time for call in client.save_checkpoint.await_args_list]


class TestStaleWrites:
    """Tests for the monotonic high-water mark."""

    @pytest.mark.asyncio
    async def test_stale_retry_after_recovered_failures_is_ignored(
        self, adapter, mock_client
    ):
        """Three failures, success at 120, then a stale 90 is dropped."""
        mock_client.save_checkpoint.side_effect = [
            TransientRemoteError(),
            TransientRemoteError(),
            TransientRemoteError(),
            CheckpointResponseData(current_time=120),
            CheckpointResponseData(current_time=90),
        ]

        for _ in range(3):
            with pytest.raises(TransientRemoteError):
                await adapter.save_checkpoint(checkpoint(120))
        saved = await adapter.save_checkpoint(checkpoint(120))
        stale = await adapter.save_checkpoint(checkpoint(90))

        assert saved.outcome == CheckpointOutcome.SAVED
        assert stale.outcome == CheckpointOutcome.IGNORED_STALE
        assert mock_client.save_checkpoint.await_count == 4
        assert adapter.high_water("user-1", "course-1", "video-1") == 120

    @pytest.mark.asyncio
    async def test_failed_write_does_not_move_high_water(self, adapter, mock_client):
        mock_client.save_checkpoint.side_effect = TransientRemoteError()

        with pytest.raises(TransientRemoteError):
            await adapter.save_checkpoint(checkpoint(60))

        assert adapter.high_water("user-1", "course-1", "video-1") is None

    @pytest.mark.asyncio
    async def test_same_checkpoint_twice_keeps_state(self, adapter, mock_client):
        await adapter.save_checkpoint(checkpoint(45))
        await adapter.save_checkpoint(checkpoint(45))

        assert adapter.high_water("user-1", "course-1", "video-1") == 45
        assert sent_positions(mock_client) == [45, 45]

    @pytest.mark.asyncio
    async def test_first_completion_below_mark_is_sent_at_mark(
        self, adapter, mock_client
    ):
        await adapter.save_checkpoint(checkpoint(150))
        result = await adapter.save_checkpoint(checkpoint(100, completed=True))

        assert result.saved
        request = mock_client.save_checkpoint.await_args.args[0]
        assert request.current_time == 150
        assert request.completed is True
        assert request.progress_percent == 75.0

    @pytest.mark.asyncio
    async def test_completion_below_mark_after_completion_is_ignored(
        self, adapter, mock_client
    ):
        await adapter.save_checkpoint(checkpoint(195, completed=True))
        result = await adapter.save_checkpoint(checkpoint(20, completed=True))

        assert result.outcome == CheckpointOutcome.IGNORED_STALE
        assert mock_client.save_checkpoint.await_count == 1

    @pytest.mark.asyncio
    async def test_stored_progress_seeds_high_water(self, adapter, mock_client):
        mock_client.get_watch_progress.return_value = WatchProgressData(
            current_time=80, progress_percent=40, duration=200
        )

        progress = await adapter.get_watch_progress("user-1", "course-1", "video-1")
        result = await adapter.save_checkpoint(checkpoint(30))

        assert progress.watched_seconds == 80
        assert progress.status == ProgressStatus.IN_PROGRESS
        assert result.outcome == CheckpointOutcome.IGNORED_STALE
        mock_client.save_checkpoint.assert_not_awaited()


class TestOrdering:
    """Tests for per-video write ordering."""

    @pytest.mark.asyncio
    async def test_writes_for_one_video_are_sequential(self, adapter, mock_client):
        """A slow earlier write is not overtaken by a later one."""

        async def slow_first(request):
            if request.current_time == 10:
                await asyncio.sleep(0.01)
            return CheckpointResponseData()

        mock_client.save_checkpoint.side_effect = slow_first

        await asyncio.gather(
            adapter.save_checkpoint(checkpoint(10)),
            adapter.save_checkpoint(checkpoint(20)),
        )

        assert sent_positions(mock_client) == [10, 20]

    @pytest.mark.asyncio
    async def test_late_older_write_is_dropped(self, adapter, mock_client):
        results = await asyncio.gather(
            adapter.save_checkpoint(checkpoint(20)),
            adapter.save_checkpoint(checkpoint(10)),
        )

        assert [r.outcome for r in results] == [
            CheckpointOutcome.SAVED,
            CheckpointOutcome.IGNORED_STALE,
        ]
        assert sent_positions(mock_client) == [20]


class TestReads:
    """Tests for resume and course progress reads."""

    @pytest.mark.asyncio
    async def test_never_checkpointed_video(self, adapter):
        assert await adapter.get_watch_progress("user-1", "course-1", "video-9") is None

    @pytest.mark.asyncio
    async def test_course_progress_as_decimal(self, adapter, mock_client):
        mock_client.get_course_progress.return_value = 62.5

        assert await adapter.get_course_progress("user-1", "course-1") == Decimal(
            "62.5"
        )

    @pytest.mark.asyncio
    async def test_saved_result_carries_server_course_progress(
        self, adapter, mock_client
    ):
        mock_client.save_checkpoint.return_value = CheckpointResponseData(
            course_progress=40.0
        )

        result = await adapter.save_checkpoint(checkpoint(50))

        assert result.course_progress == Decimal(40)

    @pytest.mark.asyncio
    async def test_unauthorized_propagates(self, adapter, mock_client):
        mock_client.save_checkpoint.side_effect = UnauthorizedError()

        with pytest.raises(UnauthorizedError):
            await adapter.save_checkpoint(checkpoint(50))
