"""Tests for watch progress entities."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

from courseflow.progress import Checkpoint, ProgressStatus, WatchProgress
from courseflow.progress.models import compute_percent


def checkpoint(position: float, completed: bool = False, **kwargs) -> Checkpoint:
    return Checkpoint(
        user_id="user-1",
        course_id="course-1",
        video_id="video-1",
        current_time=position,
        percent=compute_percent(position, 200),
        completed=completed,
        duration=200,
        **kwargs,
    )


def test_compute_percent_clamps_and_handles_unknown_duration():
    assert compute_percent(50, 200) == Decimal(25)
    assert compute_percent(300, 200) == Decimal(100)
    assert compute_percent(-4, 200) == Decimal(0)
    assert compute_percent(50, None) == Decimal(0)
    assert compute_percent(50, 0) == Decimal(0)


class TestApplyCheckpoint:
    """Tests for merging checkpoints into stored progress."""

    def test_first_checkpoint_starts_progress(self):
        entry = WatchProgress("user-1", "course-1", "video-1")
        assert entry.status == ProgressStatus.NOT_STARTED

        assert entry.apply_checkpoint(checkpoint(40)) is True
        assert entry.watched_seconds == 40
        assert entry.last_known_duration == 200
        assert entry.percent == Decimal(20)
        assert entry.status == ProgressStatus.IN_PROGRESS

    def test_same_checkpoint_twice_is_idempotent(self):
        entry = WatchProgress("user-1", "course-1", "video-1")
        cp = checkpoint(60)

        entry.apply_checkpoint(cp)
        once = entry.to_dict()
        changed = entry.apply_checkpoint(cp)

        assert changed is False
        assert entry.to_dict() == once

    def test_watched_seconds_never_decreases(self):
        entry = WatchProgress("user-1", "course-1", "video-1")
        entry.apply_checkpoint(checkpoint(120))

        assert entry.apply_checkpoint(checkpoint(90)) is False
        assert entry.watched_seconds == 120

    def test_completion_is_sticky_and_applied_from_older_position(self):
        entry = WatchProgress("user-1", "course-1", "video-1")
        entry.apply_checkpoint(checkpoint(150))

        entry.apply_checkpoint(checkpoint(100, completed=True))
        entry.apply_checkpoint(checkpoint(180, completed=False))

        assert entry.completed is True
        assert entry.watched_seconds == 180
        assert entry.percent == Decimal(100)
        assert entry.status == ProgressStatus.COMPLETED

    def test_updated_at_follows_checkpoint(self):
        created = datetime.now(UTC) - timedelta(minutes=3)
        entry = WatchProgress("user-1", "course-1", "video-1")

        entry.apply_checkpoint(checkpoint(10, created_at=created))

        assert entry.updated_at == created


def test_dict_round_trip_keeps_naive_timestamps_utc():
    entry = WatchProgress(
        "user-1",
        "course-1",
        "video-1",
        watched_seconds=33.5,
        last_known_duration=200,
        progress_percent=Decimal("16.75"),
        updated_at=datetime(2024, 5, 1, 12, 0),
    )

    restored = WatchProgress.from_dict(entry.to_dict())

    assert restored.to_dict() == entry.to_dict()
    assert restored.updated_at.utcoffset() == timedelta(0)
    assert restored.progress_percent == Decimal("16.75")
