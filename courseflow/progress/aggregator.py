"""Course progress aggregation.

Combines per-video watch progress into one course percent:

    percent = round_half_up(min(100, (completed + partial) / total * 100))

where ``partial`` sums the last known percent / 100 of every video that is
not completed. A server-computed course percent, when present, wins over the
local estimate.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum

import structlog

from .models import PERCENT_MAX, PERCENT_MIN, WatchProgress, clamp_percent


logger = structlog.get_logger(__name__)


class ProgressSource(str, Enum):
    SERVER = "server"  # Authoritative value from the remote store
    LOCAL = "local"  # Best-effort recomputation


@dataclass(frozen=True)
class CourseProgress:
    """Derived course progress; never persisted as ground truth."""

    percent: int
    completed_count: int
    partial_credit: Decimal
    total_videos: int
    source: ProgressSource


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _video_percent(progress: WatchProgress | None) -> Decimal:
    if progress is None:
        return PERCENT_MIN
    try:
        return clamp_percent(progress.percent)
    except (InvalidOperation, TypeError, ValueError):
        # Unreadable entry counts as unwatched
        return PERCENT_MIN


class CourseProgressAggregator:
    """Computes course completion from per-video watch progress."""

    def compute(
        self,
        video_ids: Iterable[str],
        progress: Mapping[str, WatchProgress],
    ) -> CourseProgress:
        """Recompute the course percent locally.

        Videos without progress count as 0%; an empty course is 0%.
        """
        ids = list(dict.fromkeys(video_ids))
        total = len(ids)
        if total == 0:
            return CourseProgress(
                percent=0,
                completed_count=0,
                partial_credit=Decimal(0),
                total_videos=0,
                source=ProgressSource.LOCAL,
            )

        completed_count = 0
        partial_credit = Decimal(0)
        for video_id in ids:
            entry = progress.get(video_id)
            if entry is not None and entry.completed:
                completed_count += 1
            else:
                partial_credit += _video_percent(entry) / 100

        raw = (Decimal(completed_count) + partial_credit) / Decimal(total) * 100
        return CourseProgress(
            percent=round_half_up(min(PERCENT_MAX, raw)),
            completed_count=completed_count,
            partial_credit=partial_credit,
            total_videos=total,
            source=ProgressSource.LOCAL,
        )

    def resolve(
        self,
        video_ids: Iterable[str],
        progress: Mapping[str, WatchProgress],
        server_percent: Decimal | float | None = None,
    ) -> CourseProgress:
        """Course progress preferring the server-computed percent when known."""
        local = self.compute(video_ids, progress)
        if server_percent is None:
            return local

        try:
            percent = round_half_up(clamp_percent(Decimal(str(server_percent))))
        except InvalidOperation:
            logger.warning("server_course_progress_invalid", value=str(server_percent))
            return local

        return CourseProgress(
            percent=percent,
            completed_count=local.completed_count,
            partial_credit=local.partial_credit,
            total_videos=local.total_videos,
            source=ProgressSource.SERVER,
        )
