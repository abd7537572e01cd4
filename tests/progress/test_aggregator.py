"""Tests for course progress aggregation."""

from decimal import Decimal

import pytest

from courseflow.progress import (
    CourseProgressAggregator,
    ProgressSource,
    WatchProgress,
)


def progress(video_id: str, watched: float, duration: float | None, completed=False):
    return WatchProgress(
        "user-1",
        "course-1",
        video_id,
        watched_seconds=watched,
        last_known_duration=duration,
        completed=completed,
    )


@pytest.fixture
def aggregator() -> CourseProgressAggregator:
    return CourseProgressAggregator()


class TestCompute:
    """Tests for the local recomputation."""

    def test_two_video_scenario_rounds_half_up(self, aggregator):
        """A at 96/100 (complete) and B at 50/200: (1 + 0.25) / 2 -> 63."""
        progress_map = {
            "a": progress("a", 96, 100, completed=True),
            "b": progress("b", 50, 200),
        }

        result = aggregator.compute(["a", "b"], progress_map)

        assert result.percent == 63
        assert result.completed_count == 1
        assert result.partial_credit == Decimal("0.25")
        assert result.source == ProgressSource.LOCAL

    def test_empty_course_is_zero(self, aggregator):
        result = aggregator.compute([], {})

        assert result.percent == 0
        assert result.total_videos == 0

    def test_missing_progress_counts_as_zero(self, aggregator):
        progress_map = {"a": progress("a", 100, 100, completed=True)}

        result = aggregator.compute(["a", "b", "c", "d"], progress_map)

        assert result.percent == 25

    def test_progress_of_other_videos_is_ignored(self, aggregator):
        progress_map = {"x": progress("x", 100, 100, completed=True)}

        assert aggregator.compute(["a"], progress_map).percent == 0

    def test_percent_without_duration_uses_stored_percent(self, aggregator):
        entry = WatchProgress(
            "user-1", "course-1", "a", watched_seconds=30, progress_percent=Decimal(30)
        )

        assert aggregator.compute(["a"], {"a": entry}).percent == 30

    @pytest.mark.parametrize(
        ("watched", "duration"),
        [(0, 100), (250, 100), (99.9, 100), (1, 3)],
    )
    def test_percent_stays_in_bounds(self, aggregator, watched, duration):
        result = aggregator.compute(
            ["a", "b"],
            {
                "a": progress("a", watched, duration),
                "b": progress("b", 10, 10, completed=True),
            },
        )

        assert 0 <= result.percent <= 100


class TestResolve:
    """Tests for the server-preferred policy."""

    def test_server_percent_is_preferred(self, aggregator):
        progress_map = {"a": progress("a", 10, 100)}

        result = aggregator.resolve(["a"], progress_map, server_percent=Decimal(80))

        assert result.percent == 80
        assert result.source == ProgressSource.SERVER

    def test_local_fallback_without_server_percent(self, aggregator):
        progress_map = {"a": progress("a", 10, 100)}

        result = aggregator.resolve(["a"], progress_map, server_percent=None)

        assert result.percent == 10
        assert result.source == ProgressSource.LOCAL

    def test_server_percent_is_clamped_and_rounded(self, aggregator):
        assert aggregator.resolve(["a"], {}, server_percent=130).percent == 100
        assert aggregator.resolve(["a"], {}, server_percent=-3).percent == 0
        assert aggregator.resolve(["a"], {}, server_percent=62.5).percent == 63

    def test_unreadable_server_percent_falls_back(self, aggregator):
        result = aggregator.resolve(["a"], {}, server_percent="n/a")

        assert result.source == ProgressSource.LOCAL
        assert result.percent == 0
