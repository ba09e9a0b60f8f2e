"""
Tests for domain models.
"""

from datetime import date, datetime, time

import pendulum
import pytest

from bookingslots.domain.exceptions import InvalidStatusTransition, SlotConflict
from bookingslots.domain.models import (
    AvailabilityRule,
    Booking,
    BookingRequest,
    BookingStatus,
    DateOverride,
    SlotSearchResult,
    TimeWindow,
    UserSchedule,
    to_utc,
)


def _window(start: str, end: str, tz: str = "America/New_York") -> TimeWindow:
    return TimeWindow(start=pendulum.parse(start, tz=tz), end=pendulum.parse(end, tz=tz), source_zone=tz)


def _booking(status: BookingStatus) -> Booking:
    return Booking(
        id="b1",
        user_id="alice",
        start_time=pendulum.datetime(2024, 11, 25, 15, 0, tz="UTC"),
        end_time=pendulum.datetime(2024, 11, 25, 15, 30, tz="UTC"),
        status=status,
        attendee_email="guest@example.com",
    )


class TestTimeWindow:
    """Tests for TimeWindow model."""

    def test_create_valid_window(self):
        """Instants are stored in UTC, the zone is kept for display."""
        window = _window("2024-11-25 09:00", "2024-11-25 17:00")

        assert window.start == pendulum.datetime(2024, 11, 25, 14, 0, tz="UTC")
        assert window.start.timezone_name == "UTC"
        assert window.duration_minutes() == 480
        assert window.local_start().hour == 9
        assert window.source_zone == "America/New_York"

    def test_invalid_window_raises_error(self):
        with pytest.raises(ValueError, match="Start time .* must be before end time"):
            _window("2024-11-25 17:00", "2024-11-25 09:00")

    def test_empty_window_raises_error(self):
        with pytest.raises(ValueError):
            _window("2024-11-25 09:00", "2024-11-25 09:00")

    def test_naive_datetime_rejected(self):
        with pytest.raises(ValueError, match="Naive datetime"):
            TimeWindow(start=datetime(2024, 11, 25, 9), end=datetime(2024, 11, 25, 10))

    def test_overlaps_is_half_open(self):
        """Back-to-back windows do not overlap."""
        morning = _window("2024-11-25 09:00", "2024-11-25 10:00")
        next_hour = _window("2024-11-25 10:00", "2024-11-25 11:00")
        straddling = _window("2024-11-25 09:30", "2024-11-25 10:30")

        assert not morning.overlaps(next_hour)
        assert not next_hour.overlaps(morning)
        assert morning.overlaps(straddling)
        assert straddling.overlaps(next_hour)

    def test_overlap_across_zones(self):
        """Comparison happens on absolute instants, not wall-clock values."""
        new_york = _window("2024-11-25 09:00", "2024-11-25 10:00")
        berlin = _window("2024-11-25 15:30", "2024-11-25 16:30", tz="Europe/Berlin")

        assert new_york.overlaps(berlin)

    def test_contains_window_and_instant(self):
        day = _window("2024-11-25 09:00", "2024-11-25 17:00")

        assert day.contains(_window("2024-11-25 16:30", "2024-11-25 17:00"))
        assert not day.contains(_window("2024-11-25 16:30", "2024-11-25 17:30"))
        assert day.contains(pendulum.parse("2024-11-25 09:00", tz="America/New_York"))
        assert not day.contains(pendulum.parse("2024-11-25 17:00", tz="America/New_York"))

    def test_intersect(self):
        a = _window("2024-11-25 09:00", "2024-11-25 12:00")
        b = _window("2024-11-25 11:00", "2024-11-25 14:00")
        c = _window("2024-11-25 12:00", "2024-11-25 13:00")

        intersection = a.intersect(b)
        assert intersection is not None
        assert intersection.local_start().hour == 11
        assert intersection.local_end().hour == 12
        assert a.intersect(c) is None

    def test_padded(self):
        window = _window("2024-11-25 10:00", "2024-11-25 10:30").padded(15, 5)

        assert window.local_start().format("HH:mm") == "09:45"
        assert window.local_end().format("HH:mm") == "10:35"

    def test_str_uses_source_zone(self):
        assert str(_window("2024-11-25 09:00", "2024-11-25 10:00")) == (
            "2024-11-25 09:00 - 10:00 (America/New_York)"
        )


def test_to_utc_converts_aware_values():
    value = to_utc(pendulum.datetime(2024, 11, 25, 9, 0, tz="America/New_York"))
    assert value == pendulum.datetime(2024, 11, 25, 14, 0, tz="UTC")
    assert value.timezone_name == "UTC"


class TestAvailabilityRule:
    """Tests for AvailabilityRule and DateOverride."""

    def test_valid_rule(self):
        rule = AvailabilityRule(weekday=0, start_time=time(9, 0), end_time=time(17, 0))
        assert rule.timezone is None

    def test_rule_weekday_range(self):
        with pytest.raises(ValueError, match="weekday"):
            AvailabilityRule(weekday=7, start_time=time(9, 0), end_time=time(17, 0))

    def test_rule_may_not_cross_midnight(self):
        with pytest.raises(ValueError, match="midnight"):
            AvailabilityRule(weekday=0, start_time=time(22, 0), end_time=time(2, 0))

    def test_override_window_must_be_ordered(self):
        with pytest.raises(ValueError):
            DateOverride(date=date(2024, 11, 25), windows=((time(12, 0), time(11, 0)),))

    def test_schedule_helpers(self):
        schedule = UserSchedule(
            user_id="alice",
            timezone="America/New_York",
            rules=[
                AvailabilityRule(weekday=0, start_time=time(9, 0), end_time=time(12, 0)),
                AvailabilityRule(weekday=0, start_time=time(13, 0), end_time=time(17, 0)),
                AvailabilityRule(weekday=1, start_time=time(9, 0), end_time=time(17, 0)),
            ],
        )
        schedule.block_date(date(2024, 12, 25))

        assert len(schedule.rules_for_weekday(0)) == 2
        assert schedule.rules_for_weekday(6) == []
        assert schedule.overrides[date(2024, 12, 25)].unavailable


class TestBooking:
    """Tests for booking status handling."""

    def test_initial_status_follows_approval_flag(self):
        start = pendulum.datetime(2024, 11, 25, 15, 0, tz="UTC")
        request = BookingRequest("alice", start, start.add(minutes=30), "guest@example.com")
        pending = BookingRequest("alice", start, start.add(minutes=30), "guest@example.com", requires_approval=True)

        assert request.initial_status == BookingStatus.CONFIRMED
        assert pending.initial_status == BookingStatus.PENDING_APPROVAL

    def test_pending_and_confirmed_are_busy(self):
        assert _booking(BookingStatus.PENDING_APPROVAL).is_busy
        assert _booking(BookingStatus.CONFIRMED).is_busy
        assert not _booking(BookingStatus.CANCELLED).is_busy

    def test_allowed_transitions(self):
        approved = _booking(BookingStatus.PENDING_APPROVAL).transition(BookingStatus.CONFIRMED)
        cancelled = approved.transition(BookingStatus.CANCELLED)

        assert approved.status == BookingStatus.CONFIRMED
        assert cancelled.status == BookingStatus.CANCELLED

    def test_cancelled_is_final(self):
        with pytest.raises(InvalidStatusTransition):
            _booking(BookingStatus.CANCELLED).transition(BookingStatus.CONFIRMED)

    def test_confirmed_cannot_go_back_to_pending(self):
        with pytest.raises(InvalidStatusTransition):
            _booking(BookingStatus.CONFIRMED).transition(BookingStatus.PENDING_APPROVAL)


class TestSlotConflict:
    """Tests for conflict messages."""

    def test_direct_overlap(self):
        requested = _window("2024-11-25 10:00", "2024-11-25 10:30")
        conflict = SlotConflict(requested, [_window("2024-11-25 10:00", "2024-11-25 11:00")])

        assert not conflict.buffer_only
        assert conflict.describe() == SlotConflict.USER_MESSAGE

    def test_buffer_only(self):
        requested = _window("2024-11-25 10:00", "2024-11-25 10:30")
        conflict = SlotConflict(requested, [_window("2024-11-25 10:30", "2024-11-25 11:00")])

        assert conflict.buffer_only
        assert "buffer" in conflict.describe()

    def test_multiple_conflicts(self):
        requested = _window("2024-11-25 10:00", "2024-11-25 12:00")
        conflict = SlotConflict(requested, [
            _window("2024-11-25 10:00", "2024-11-25 10:30"),
            _window("2024-11-25 11:00", "2024-11-25 11:30"),
        ])

        assert "2 existing meetings" in conflict.describe()


def test_empty_search_result_is_out_of_horizon():
    result = SlotSearchResult(
        user_id="alice",
        slots=[],
        searched_from=date(2024, 11, 25),
        searched_until=date(2024, 12, 8),
    )
    assert result.out_of_horizon
    assert not result.partial
