"""Reconciliation of learner watch progress.

ProgressReconciler sits between the trackers and the store adapter: each
checkpoint is applied to the local progress map (and the cache mirror)
first, then written remotely. A failed write rolls the video's local entry
back to what the store holds, or to the last committed value when the store
cannot be read either; the tracker keeps the checkpoint for its next tick.

LearnerCourseSession drives one learner through one course: it preloads
progress, owns the tracker of the video being watched and exposes the
derived course percent.
"""

from decimal import Decimal

import structlog

from courseflow.cache import LocalFallbackCache, course_progress_key
from courseflow.core.context import OperationContext
from courseflow.progress import (
    Checkpoint,
    CheckpointOutcome,
    CheckpointResult,
    CourseProgress,
    CourseProgressAggregator,
    ProgressStoreAdapter,
    VideoProgressTracker,
    WatchProgress,
)
from courseflow.progress.models import PERCENT_MAX
from courseflow.progress.tracker import (
    CHECKPOINT_INTERVAL_SECONDS,
    COMPLETION_THRESHOLD,
)
from courseflow.remote import RemoteStoreError, UnauthorizedError

from .models import Mutation, MutationKind


logger = structlog.get_logger(__name__)


class ProgressReconciler:
    """Optimistic local progress state for one learner in one course."""

    def __init__(
        self,
        adapter: ProgressStoreAdapter,
        cache: LocalFallbackCache,
        user_id: str,
        course_id: str,
        video_ids: list[str],
        aggregator: CourseProgressAggregator | None = None,
    ):
        self.user_id = user_id
        self.course_id = course_id
        self.video_ids = list(video_ids)
        self._adapter = adapter
        self._cache = cache
        self._aggregator = aggregator or CourseProgressAggregator()
        self._progress: dict[str, WatchProgress] = {}
        self._committed: dict[str, WatchProgress] = {}
        self._server_percent: Decimal | None = None
        self._remote_loaded = False
        self.last_mutation: Mutation | None = None

    @property
    def progress(self) -> dict[str, WatchProgress]:
        return dict(self._progress)

    @property
    def remote_loaded(self) -> bool:
        return self._remote_loaded

    def get(self, video_id: str) -> WatchProgress | None:
        return self._progress.get(video_id)

    @property
    def course_progress(self) -> CourseProgress:
        return self._aggregator.resolve(
            self.video_ids, self._progress, self._server_percent
        )

    def _cache_key(self) -> str:
        return course_progress_key(self.course_id, self.user_id)

    async def _mirror(self) -> None:
        await self._cache.set(
            self._cache_key(),
            {vid: entry.to_dict() for vid, entry in self._progress.items()},
        )

    # ==========================================================================
    # Loading
    # ==========================================================================

    async def load(self) -> None:
        """Load every video's progress and the server course percent.

        Falls back to the cache mirror while no remote read has succeeded.

        Raises:
            UnauthorizedError: If the credential is rejected.
        """
        with OperationContext(user_id=self.user_id, course_id=self.course_id):
            try:
                loaded: dict[str, WatchProgress] = {}
                for video_id in self.video_ids:
                    entry = await self._adapter.get_watch_progress(
                        self.user_id, self.course_id, video_id
                    )
                    if entry is not None:
                        loaded[video_id] = entry
                server_percent = await self._adapter.get_course_progress(
                    self.user_id, self.course_id
                )
            except UnauthorizedError:
                raise
            except RemoteStoreError as e:
                if not self._remote_loaded:
                    await self._load_cached()
                logger.warning("progress_load_failed", error=e.message)
                return

            self._progress = loaded
            self._committed = {vid: entry.copy() for vid, entry in loaded.items()}
            self._server_percent = server_percent
            self._remote_loaded = True
            await self._mirror()
            logger.info("progress_loaded", videos=len(loaded))

    async def _load_cached(self) -> None:
        data = await self._cache.get(self._cache_key())
        if not data:
            return
        try:
            cached = {
                vid: WatchProgress.from_dict(entry) for vid, entry in data.items()
            }
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("progress_cache_unusable", error=str(e))
            return
        # Last known good state until a remote read succeeds
        self._progress = cached
        self._committed = {vid: entry.copy() for vid, entry in cached.items()}
        logger.info("progress_loaded_from_cache", videos=len(cached))

    # ==========================================================================
    # Checkpoints
    # ==========================================================================

    def _local_entry(self, video_id: str) -> WatchProgress:
        entry = self._progress.get(video_id)
        if entry is None:
            entry = self._progress[video_id] = WatchProgress(
                user_id=self.user_id, course_id=self.course_id, video_id=video_id
            )
        return entry

    async def save_checkpoint(
        self,
        checkpoint: Checkpoint,
        kind: MutationKind = MutationKind.CHECKPOINT,
    ) -> CheckpointResult:
        """Apply a checkpoint locally, then write it through the adapter.

        Raises:
            RemoteStoreError: If the write fails (after local rollback).
        """
        video_id = checkpoint.video_id
        mutation = Mutation(kind, video_id)
        self.last_mutation = mutation

        with OperationContext(
            mutation_id=mutation.id,
            user_id=self.user_id,
            course_id=self.course_id,
            video_id=video_id,
        ):
            server_percent = self._server_percent
            if self._local_entry(video_id).apply_checkpoint(checkpoint):
                # Local change makes the last server figure stale
                self._server_percent = None
            await self._mirror()

            try:
                result = await self._adapter.save_checkpoint(checkpoint)
            except RemoteStoreError as e:
                mutation.roll_back(e.message)
                await self._resync_video(
                    video_id,
                    server_percent,
                    refetch=not isinstance(e, UnauthorizedError),
                )
                raise

            mutation.commit()
            if result.outcome == CheckpointOutcome.SAVED:
                # A concurrent rollback may have replaced the local entry
                if self._local_entry(video_id).apply_checkpoint(checkpoint):
                    self._server_percent = None
                committed = self._committed.get(video_id)
                if committed is None:
                    committed = self._committed[video_id] = WatchProgress(
                        user_id=self.user_id,
                        course_id=self.course_id,
                        video_id=video_id,
                    )
                committed.apply_checkpoint(checkpoint)
                await self._mirror()
            if result.course_progress is not None:
                self._server_percent = result.course_progress
            return result

    async def _resync_video(
        self,
        video_id: str,
        server_percent: Decimal | None,
        refetch: bool = True,
    ) -> None:
        """Replace a video's local entry and the course percent with stored ones.

        ``server_percent`` is the course percent held before the failed
        write; it is restored when the store cannot be read.
        """
        remote: WatchProgress | None = None
        fetched = False
        if refetch:
            try:
                remote = await self._adapter.get_watch_progress(
                    self.user_id, self.course_id, video_id
                )
                fetched = True
                server_percent = await self._adapter.get_course_progress(
                    self.user_id, self.course_id
                )
            except RemoteStoreError as e:
                logger.debug("progress_resync_failed", error=e.message)

        if not fetched:
            remote = self._committed.get(video_id)
        if remote is None:
            self._progress.pop(video_id, None)
        else:
            self._progress[video_id] = remote.copy()
            if fetched:
                self._committed[video_id] = remote.copy()
        if self._server_percent is None:
            self._server_percent = server_percent
        await self._mirror()


class LearnerCourseSession:
    """One learner consuming one course, one video at a time."""

    def __init__(
        self,
        reconciler: ProgressReconciler,
        checkpoint_interval: int = CHECKPOINT_INTERVAL_SECONDS,
        completion_threshold: Decimal = COMPLETION_THRESHOLD,
    ):
        self.reconciler = reconciler
        self._interval = checkpoint_interval
        self._threshold = completion_threshold
        self._tracker: VideoProgressTracker | None = None

    @property
    def tracker(self) -> VideoProgressTracker | None:
        return self._tracker

    @property
    def course_progress(self) -> CourseProgress:
        return self.reconciler.course_progress

    def resume_position(self, video_id: str) -> float:
        """Where playback of a video should resume."""
        entry = self.reconciler.get(video_id)
        return entry.watched_seconds if entry is not None else 0.0

    async def open_video(self, video_id: str) -> VideoProgressTracker:
        """Switch to a video, flushing the previous one first."""
        await self.close_video()
        self._tracker = VideoProgressTracker(
            store=self.reconciler,
            user_id=self.reconciler.user_id,
            course_id=self.reconciler.course_id,
            video_id=video_id,
            initial=self.reconciler.get(video_id),
            checkpoint_interval=self._interval,
            completion_threshold=self._threshold,
        )
        logger.debug("video_opened", video_id=video_id)
        return self._tracker

    async def close_video(self) -> CheckpointResult | None:
        tracker, self._tracker = self._tracker, None
        if tracker is None:
            return None
        return await tracker.detach()

    def _active(self) -> VideoProgressTracker:
        if self._tracker is None:
            msg = "No video is open"
            raise RuntimeError(msg)
        return self._tracker

    def handle_sample(
        self, current_time: float, duration: float | None
    ) -> Checkpoint | None:
        return self._active().handle_sample(current_time, duration)

    def handle_seeking(self) -> None:
        self._active().handle_seeking()

    def handle_ended(self) -> Checkpoint | None:
        return self._active().handle_ended()

    async def mark_complete(self, video_id: str) -> CheckpointResult:
        """Explicitly mark a video complete.

        Transient failures are reported in the result, not raised.

        Raises:
            UnauthorizedError: If the credential is rejected.
        """
        entry = self.reconciler.get(video_id)
        tracker = self._tracker
        if tracker is not None and tracker.video_id != video_id:
            tracker = None
        duration = (tracker.duration if tracker else None) or (
            entry.last_known_duration if entry else None
        )
        watched = entry.watched_seconds if entry else 0.0
        position = max(watched, duration or 0.0)

        if tracker is not None:
            tracker.mark_completed()

        checkpoint = Checkpoint(
            user_id=self.reconciler.user_id,
            course_id=self.reconciler.course_id,
            video_id=video_id,
            current_time=position,
            percent=PERCENT_MAX,
            completed=True,
            duration=duration,
        )

        try:
            return await self.reconciler.save_checkpoint(
                checkpoint, MutationKind.MARK_COMPLETE
            )
        except UnauthorizedError:
            raise
        except RemoteStoreError as e:
            logger.warning("mark_complete_failed", video_id=video_id, error=e.message)
            return CheckpointResult(CheckpointOutcome.FAILED, error=e.message)

    async def close(self) -> None:
        await self.close_video()
