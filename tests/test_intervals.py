"""
Tests for interval arithmetic.
"""

import pendulum

from bookingslots.domain.intervals import coalesce, overlaps, pad_all, subtract
from bookingslots.domain.models import TimeWindow

TZ = "Europe/Berlin"


def _w(start: str, end: str) -> TimeWindow:
    return TimeWindow(
        start=pendulum.parse(f"2024-11-25 {start}", tz=TZ),
        end=pendulum.parse(f"2024-11-25 {end}", tz=TZ),
        source_zone=TZ,
    )


def _hours(windows):
    return [(w.local_start().format("HH:mm"), w.local_end().format("HH:mm")) for w in windows]


class TestCoalesce:
    """Tests for merging windows."""

    def test_merges_overlapping_and_touching(self):
        merged = coalesce([_w("10:30", "12:00"), _w("09:00", "10:00"), _w("10:00", "11:00")])
        assert _hours(merged) == [("09:00", "12:00")]

    def test_keeps_gaps(self):
        merged = coalesce([_w("14:00", "15:00"), _w("09:00", "10:00")])
        assert _hours(merged) == [("09:00", "10:00"), ("14:00", "15:00")]

    def test_nested_window_absorbed(self):
        merged = coalesce([_w("09:00", "17:00"), _w("10:00", "11:00")])
        assert _hours(merged) == [("09:00", "17:00")]

    def test_empty(self):
        assert coalesce([]) == []

    def test_idempotent(self):
        windows = [_w("09:00", "10:00"), _w("09:30", "11:00"), _w("13:00", "14:00")]
        once = coalesce(windows)
        assert coalesce(once) == once


class TestSubtract:
    """Tests for removing busy time from a base window."""

    def test_busy_in_the_middle(self):
        free = subtract(_w("09:00", "17:00"), [_w("14:00", "15:00"), _w("10:00", "11:00")])
        assert _hours(free) == [("09:00", "10:00"), ("11:00", "14:00"), ("15:00", "17:00")]

    def test_busy_clips_edges(self):
        free = subtract(_w("09:00", "17:00"), [_w("08:00", "09:30"), _w("16:30", "18:00")])
        assert _hours(free) == [("09:30", "16:30")]

    def test_busy_covers_everything(self):
        assert subtract(_w("09:00", "17:00"), [_w("08:00", "18:00")]) == []

    def test_subtract_empty_busy_returns_base(self):
        base = _w("09:00", "17:00")
        assert subtract(base, []) == [base]

    def test_subtract_itself_is_empty(self):
        base = _w("09:00", "17:00")
        assert subtract(base, [base]) == []

    def test_busy_outside_is_ignored(self):
        free = subtract(_w("09:00", "12:00"), [_w("12:00", "13:00"), _w("07:00", "09:00")])
        assert _hours(free) == [("09:00", "12:00")]

    def test_overlapping_busy_windows(self):
        free = subtract(_w("09:00", "17:00"), [_w("10:00", "12:00"), _w("11:00", "13:00")])
        assert _hours(free) == [("09:00", "10:00"), ("13:00", "17:00")]

    def test_result_keeps_base_zone(self):
        busy = TimeWindow(
            start=pendulum.datetime(2024, 11, 25, 9, 0, tz="UTC"),
            end=pendulum.datetime(2024, 11, 25, 10, 0, tz="UTC"),
        )
        free = subtract(_w("09:00", "17:00"), [busy])
        assert all(window.source_zone == TZ for window in free)
        assert _hours(free) == [("09:00", "10:00"), ("11:00", "17:00")]

    def test_free_windows_never_overlap_busy(self):
        busy = [_w("09:15", "09:45"), _w("11:00", "11:05"), _w("16:59", "17:30")]
        for window in subtract(_w("09:00", "17:00"), busy):
            assert not any(overlaps(window, b) for b in busy)


class TestPadAll:
    """Tests for buffer padding."""

    def test_padding_merges_neighbours(self):
        padded = pad_all([_w("10:00", "10:30"), _w("10:45", "11:00")], before_minutes=10, after_minutes=10)
        assert _hours(padded) == [("09:50", "11:10")]

    def test_zero_padding_only_coalesces(self):
        padded = pad_all([_w("10:00", "10:30"), _w("10:30", "11:00")], 0, 0)
        assert _hours(padded) == [("10:00", "11:00")]
