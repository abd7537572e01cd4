"""Entities for learner watch progress.

- WatchProgress: stored watch state per (user, course, video)
- Checkpoint: one rate-limited write produced by a tracker
- CheckpointResult: what the store did with a checkpoint

Percentages are Decimal, clamped to [0, 100].
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any


PERCENT_MIN = Decimal(0)
PERCENT_MAX = Decimal(100)


class ProgressStatus(str, Enum):
    """Video progress status."""

    NOT_STARTED = "not_started"  # Never checkpointed
    IN_PROGRESS = "in_progress"  # Watched partially
    COMPLETED = "completed"  # Crossed the threshold or marked complete


class CheckpointOutcome(str, Enum):
    """Result of handing a checkpoint to the store."""

    SAVED = "saved"
    IGNORED_STALE = "ignored_stale"  # Older than the stored high-water mark
    FAILED = "failed"


# ==============================================================================
# Helper Functions
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (the store may return naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def clamp_percent(value: Decimal) -> Decimal:
    return max(PERCENT_MIN, min(PERCENT_MAX, value))


def compute_percent(position_seconds: float, duration_seconds: float | None) -> Decimal:
    """Watched percent of a video; 0 when the duration is unknown."""
    if not duration_seconds or duration_seconds <= 0:
        return PERCENT_MIN
    return clamp_percent(
        Decimal(str(position_seconds)) / Decimal(str(duration_seconds)) * 100
    )


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass(frozen=True)
class Checkpoint:
    """A watch position write for one video.

    Attributes:
        user_id: Learner id
        course_id: Course id
        video_id: Video id
        current_time: Playback position in seconds
        percent: Watched percent at ``current_time`` (0-100)
        completed: Completion flag (sticky on the tracker side)
        duration: Duration the percent was derived from
        final: Flushed on video switch; never retried
        created_at: When the tracker produced it
    """

    user_id: str
    course_id: str
    video_id: str
    current_time: float
    percent: Decimal
    completed: bool
    duration: float | None = None
    final: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.user_id, self.course_id, self.video_id)


@dataclass(frozen=True)
class CheckpointResult:
    outcome: CheckpointOutcome
    course_progress: Decimal | None = None
    error: str | None = None

    @property
    def saved(self) -> bool:
        return self.outcome == CheckpointOutcome.SAVED


class WatchProgress:
    """Watch progress of one video for one learner.

    Attributes:
        user_id: Learner id
        course_id: Course id
        video_id: Video id
        watched_seconds: High-water mark of the watched position
        last_known_duration: Latest duration reported for the video
        progress_percent: Last known watched percent (0-100)
        completed: Completion flag, never reverts once set
        updated_at: Time of the checkpoint that last changed this row
    """

    def __init__(
        self,
        user_id: str,
        course_id: str,
        video_id: str,
        watched_seconds: float = 0.0,
        last_known_duration: float | None = None,
        progress_percent: Decimal = PERCENT_MIN,
        completed: bool = False,
        updated_at: datetime | None = None,
    ):
        self.user_id = user_id
        self.course_id = course_id
        self.video_id = video_id
        self.watched_seconds = watched_seconds
        self.last_known_duration = last_known_duration
        self.progress_percent = clamp_percent(progress_percent)
        self.completed = completed
        self.updated_at = ensure_utc_aware(updated_at)

    @property
    def status(self) -> ProgressStatus:
        if self.completed:
            return ProgressStatus.COMPLETED
        if self.watched_seconds > 0 or self.progress_percent > 0:
            return ProgressStatus.IN_PROGRESS
        return ProgressStatus.NOT_STARTED

    @property
    def percent(self) -> Decimal:
        """Best known watched percent, derived from the high-water mark."""
        if self.completed:
            return PERCENT_MAX
        if self.last_known_duration:
            return compute_percent(self.watched_seconds, self.last_known_duration)
        return self.progress_percent

    def apply_checkpoint(self, checkpoint: Checkpoint) -> bool:
        """Merge a checkpoint; returns True if the stored state changed.

        ``watched_seconds`` only moves forward and ``completed`` only turns
        on, so applying the same checkpoint twice is a no-op the second time.
        """
        before = self.to_dict()

        if checkpoint.current_time >= self.watched_seconds:
            self.watched_seconds = checkpoint.current_time
            self.progress_percent = clamp_percent(checkpoint.percent)
            if checkpoint.duration:
                self.last_known_duration = checkpoint.duration
            self.updated_at = checkpoint.created_at
        if checkpoint.completed and not self.completed:
            self.completed = True
            self.updated_at = checkpoint.created_at

        return self.to_dict() != before

    def copy(self) -> "WatchProgress":
        return WatchProgress.from_dict(self.to_dict())

    @classmethod
    def from_remote(
        cls,
        user_id: str,
        course_id: str,
        video_id: str,
        data: Any,
    ) -> "WatchProgress":
        """Create from a remote ``WatchProgressData`` payload."""
        return cls(
            user_id=user_id,
            course_id=course_id,
            video_id=video_id,
            watched_seconds=data.current_time or 0.0,
            last_known_duration=data.duration,
            progress_percent=Decimal(str(data.progress_percent or 0)),
            completed=bool(data.completed),
            updated_at=data.updated_at,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WatchProgress":
        updated_at = data.get("updated_at")
        return cls(
            user_id=data["user_id"],
            course_id=data["course_id"],
            video_id=data["video_id"],
            watched_seconds=float(data.get("watched_seconds") or 0),
            last_known_duration=data.get("last_known_duration"),
            progress_percent=Decimal(str(data.get("progress_percent") or 0)),
            completed=bool(data.get("completed")),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {
            "user_id": self.user_id,
            "course_id": self.course_id,
            "video_id": self.video_id,
            "watched_seconds": self.watched_seconds,
            "last_known_duration": self.last_known_duration,
            "progress_percent": str(self.progress_percent),
            "completed": self.completed,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return (
            f"<WatchProgress user={self.user_id} video={self.video_id} "
            f"{self.watched_seconds}s {self.status.value}>"
        )
