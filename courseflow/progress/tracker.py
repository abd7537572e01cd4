"""Per-video progress tracker.

Consumes ``(current_time, duration)`` samples from the playback source for
the active video and decides when to checkpoint and when the video is
complete. Checkpoint writes run as background tasks so a new sample can be
processed while an earlier write is still in flight.
"""

import asyncio
import math
from dataclasses import replace
from decimal import Decimal

import structlog

from courseflow.remote import RemoteStoreError, UnauthorizedError

from .adapter import CheckpointStore
from .models import Checkpoint, CheckpointResult, WatchProgress, compute_percent


logger = structlog.get_logger(__name__)

# Checkpoint when floor(position) is a multiple of this many seconds
CHECKPOINT_INTERVAL_SECONDS = 5

# Completion threshold: 95% watched = complete
COMPLETION_THRESHOLD = Decimal(95)


class TrackerDetachedError(Exception):
    """Sample delivered to a tracker whose video was switched away from."""


class VideoProgressTracker:
    """State machine for one learner watching one video.

    Completion is sticky: once ``completed`` is True it stays True for the
    lifetime of the tracker whatever positions later samples report.
    """

    def __init__(
        self,
        store: CheckpointStore,
        user_id: str,
        course_id: str,
        video_id: str,
        initial: WatchProgress | None = None,
        checkpoint_interval: int = CHECKPOINT_INTERVAL_SECONDS,
        completion_threshold: Decimal = COMPLETION_THRESHOLD,
    ):
        self.user_id = user_id
        self.course_id = course_id
        self.video_id = video_id
        self._store = store
        self._interval = checkpoint_interval
        self._threshold = completion_threshold

        self.completed = bool(initial and initial.completed)
        self.duration: float | None = initial.last_known_duration if initial else None
        self.current_time: float | None = None
        self.percent = Decimal(0)
        self.last_result: CheckpointResult | None = None

        self._last_checkpoint_second: int | None = None
        self._pending: Checkpoint | None = None
        self._in_flight: set[asyncio.Task[CheckpointResult | None]] = set()
        self._auth_error: UnauthorizedError | None = None
        self._detached = False

    @property
    def pending_retry(self) -> Checkpoint | None:
        """Checkpoint retained after a failed write, awaiting the next tick."""
        return self._pending

    @property
    def detached(self) -> bool:
        return self._detached

    # ==========================================================================
    # Playback Events
    # ==========================================================================

    def handle_sample(
        self, current_time: float, duration: float | None
    ) -> Checkpoint | None:
        """Process one playback sample.

        Returns the checkpoint dispatched for this sample, if any.

        Raises:
            UnauthorizedError: If an earlier write was refused for credentials.
            TrackerDetachedError: If the tracker was already detached.
        """
        self._check_usable()

        if duration is None or not math.isfinite(duration) or duration <= 0:
            # Duration not known yet; nothing to derive
            return None

        self.duration = duration
        self.current_time = max(0.0, current_time)
        self.percent = compute_percent(self.current_time, duration)

        newly_completed = False
        if not self.completed and self.percent >= self._threshold:
            self.completed = True
            newly_completed = True
            logger.info(
                "video_completed",
                video_id=self.video_id,
                percent=str(self.percent),
            )

        if not self._should_checkpoint(newly_completed):
            return None

        checkpoint = self._build_checkpoint()
        self._dispatch(checkpoint)
        return checkpoint

    def handle_seeking(self) -> None:
        """Allow the first tick after a seek to checkpoint again."""
        self._last_checkpoint_second = None

    def handle_ended(self) -> Checkpoint | None:
        """Playback reached the end; treated as a sample at full duration."""
        if self.duration is None:
            return None
        return self.handle_sample(self.duration, self.duration)

    def mark_completed(self) -> None:
        """Record an explicit "mark complete" for the video being watched."""
        self.completed = True

    def _check_usable(self) -> None:
        if self._auth_error is not None:
            error, self._auth_error = self._auth_error, None
            raise error
        if self._detached:
            msg = f"Tracker for video {self.video_id} is detached"
            raise TrackerDetachedError(msg)

    def _should_checkpoint(self, newly_completed: bool) -> bool:
        if newly_completed:
            return True
        if self.current_time is None or self.percent <= 0:
            return False
        second = math.floor(self.current_time)
        if second % self._interval != 0:
            return False
        # Several samples land in the same second; write once
        return second != self._last_checkpoint_second

    def _build_checkpoint(self, final: bool = False) -> Checkpoint:
        position = self.current_time or 0.0
        self._last_checkpoint_second = math.floor(position)
        return Checkpoint(
            user_id=self.user_id,
            course_id=self.course_id,
            video_id=self.video_id,
            current_time=position,
            percent=self.percent,
            completed=self.completed,
            duration=self.duration,
            final=final,
        )

    # ==========================================================================
    # Writes
    # ==========================================================================

    def _dispatch(self, checkpoint: Checkpoint) -> None:
        task = asyncio.get_running_loop().create_task(self._write(checkpoint))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    def _take_pending(self, checkpoint: Checkpoint) -> Checkpoint:
        """Fold a retained failed checkpoint into the one about to be sent."""
        pending, self._pending = self._pending, None
        if pending is None or pending.current_time <= checkpoint.current_time:
            return checkpoint
        return replace(
            pending,
            completed=pending.completed or checkpoint.completed,
            final=checkpoint.final,
        )

    def _retain(self, checkpoint: Checkpoint) -> None:
        pending = self._pending
        if pending is None or checkpoint.current_time >= pending.current_time:
            self._pending = replace(
                checkpoint,
                completed=checkpoint.completed or bool(pending and pending.completed),
                final=False,
            )
        else:
            self._pending = replace(
                pending, completed=pending.completed or checkpoint.completed
            )

    async def _write(self, checkpoint: Checkpoint) -> CheckpointResult | None:
        checkpoint = self._take_pending(checkpoint)

        try:
            result = await self._store.save_checkpoint(checkpoint)
        except UnauthorizedError as e:
            # Surfaced to the caller on its next interaction
            self._auth_error = e
            logger.warning("checkpoint_unauthorized", video_id=self.video_id)
            return None
        except RemoteStoreError as e:
            if not checkpoint.final:
                self._retain(checkpoint)
            logger.warning(
                "checkpoint_failed",
                video_id=self.video_id,
                position=checkpoint.current_time,
                final=checkpoint.final,
                error=e.message,
            )
            return None

        self.last_result = result
        return result

    async def detach(self) -> CheckpointResult | None:
        """Flush one final checkpoint and detach from the video.

        Pending retries are cancelled: the retained checkpoint is folded into
        the final one instead of being retried later.

        Raises:
            UnauthorizedError: If the final (or an earlier) write was refused.
        """
        if self._detached:
            return None
        self._detached = True

        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)

        result: CheckpointResult | None = None
        if self.current_time is not None and self.current_time > 0:
            result = await self._write(self._build_checkpoint(final=True))
        self._pending = None

        logger.debug("tracker_detached", video_id=self.video_id)

        if self._auth_error is not None:
            error, self._auth_error = self._auth_error, None
            raise error
        return result
