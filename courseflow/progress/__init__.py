"""Learner progress tracking module.

Provides:
- Video progress tracking with checkpointing and sticky completion
- Remote store adapter with monotonic, ordered writes per video
- Course progress aggregation with server-preferred policy
"""

from .adapter import CheckpointStore, ProgressStoreAdapter
from .aggregator import CourseProgress, CourseProgressAggregator, ProgressSource
from .models import (
    Checkpoint,
    CheckpointOutcome,
    CheckpointResult,
    ProgressStatus,
    WatchProgress,
)
from .tracker import TrackerDetachedError, VideoProgressTracker


__all__ = [
    "Checkpoint",
    "CheckpointOutcome",
    "CheckpointResult",
    "CheckpointStore",
    "CourseProgress",
    "CourseProgressAggregator",
    "ProgressSource",
    "ProgressStatus",
    "ProgressStoreAdapter",
    "TrackerDetachedError",
    "VideoProgressTracker",
    "WatchProgress",
]
