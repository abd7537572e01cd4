"""Progress store adapter.

Reads and writes the watch state of single videos through the remote
persistence API and enforces write ordering per (user, course, video):
- writes for one key are sent one at a time, in the order they were issued
- a write whose position is below the acknowledged high-water mark is
  dropped, unless it is the first to carry completion
"""

import asyncio
from decimal import Decimal
from typing import Protocol

import structlog

from courseflow.remote import CheckpointRequest, RemoteStoreClient

from .models import (
    Checkpoint,
    CheckpointOutcome,
    CheckpointResult,
    WatchProgress,
    compute_percent,
)


logger = structlog.get_logger(__name__)

ProgressKey = tuple[str, str, str]


class CheckpointStore(Protocol):
    """Anything a tracker can hand checkpoints to.

    Implementations raise ``RemoteStoreError`` subclasses on failure.
    """

    async def save_checkpoint(self, checkpoint: Checkpoint) -> CheckpointResult: ...


class ProgressStoreAdapter:
    """Remote store access for per-video watch progress."""

    def __init__(self, client: RemoteStoreClient):
        self._client = client
        self._high_water: dict[ProgressKey, float] = {}
        self._completed: set[ProgressKey] = set()
        self._locks: dict[ProgressKey, asyncio.Lock] = {}

    def high_water(self, user_id: str, course_id: str, video_id: str) -> float | None:
        """Highest position acknowledged by the store for a video."""
        return self._high_water.get((user_id, course_id, video_id))

    def _lock_for(self, key: ProgressKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def _acknowledge(self, key: ProgressKey, position: float, completed: bool) -> None:
        self._high_water[key] = max(self._high_water.get(key, 0.0), position)
        if completed:
            self._completed.add(key)

    async def get_watch_progress(
        self, user_id: str, course_id: str, video_id: str
    ) -> WatchProgress | None:
        """Get stored watch progress (for resume); None if never checkpointed."""
        data = await self._client.get_watch_progress(user_id, course_id, video_id)
        if data is None:
            return None

        progress = WatchProgress.from_remote(user_id, course_id, video_id, data)
        self._acknowledge(
            (user_id, course_id, video_id),
            progress.watched_seconds,
            progress.completed,
        )
        return progress

    async def get_course_progress(self, user_id: str, course_id: str) -> Decimal | None:
        """Server-computed course percent, if the store reports one."""
        value = await self._client.get_course_progress(user_id, course_id)
        return Decimal(str(value)) if value is not None else None

    async def save_checkpoint(self, checkpoint: Checkpoint) -> CheckpointResult:
        """Write a checkpoint, dropping it if it would move the position back.

        Raises:
            RemoteStoreError: If the remote write fails.
        """
        key = checkpoint.key

        async with self._lock_for(key):
            position = checkpoint.current_time
            percent = checkpoint.percent
            high_water = self._high_water.get(key)

            if high_water is not None and position < high_water:
                if not checkpoint.completed or key in self._completed:
                    logger.debug(
                        "checkpoint_ignored_stale",
                        video_id=checkpoint.video_id,
                        position=position,
                        high_water=high_water,
                    )
                    return CheckpointResult(CheckpointOutcome.IGNORED_STALE)
                # First completion arriving below the mark: keep the mark
                position = high_water
                percent = max(percent, compute_percent(position, checkpoint.duration))

            data = await self._client.save_checkpoint(
                CheckpointRequest(
                    user_id=checkpoint.user_id,
                    course_id=checkpoint.course_id,
                    video_id=checkpoint.video_id,
                    current_time=position,
                    progress_percent=float(percent),
                    completed=checkpoint.completed,
                    duration=checkpoint.duration,
                )
            )

            self._acknowledge(key, position, checkpoint.completed or data.completed)

        logger.debug(
            "checkpoint_saved",
            video_id=checkpoint.video_id,
            position=position,
            completed=checkpoint.completed,
            final=checkpoint.final,
        )

        course_progress = (
            Decimal(str(data.course_progress))
            if data.course_progress is not None
            else None
        )
        return CheckpointResult(
            CheckpointOutcome.SAVED, course_progress=course_progress
        )
