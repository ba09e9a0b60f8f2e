"""
Tests for the SQLAlchemy booking store on in-memory SQLite.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import date, time

import pendulum
import pytest

from bookingslots.adapters.sql_store import SqlBookingStore
from bookingslots.domain.exceptions import (
    BookingNotFound,
    InvalidStatusTransition,
    SlotConflict,
    UserNotFound,
)
from bookingslots.domain.models import (
    AvailabilityRule,
    Booking,
    BookingRequest,
    BookingStatus,
    CalendarConnection,
    DateOverride,
    UserSchedule,
)

NY = "America/New_York"


@pytest.fixture
def store() -> SqlBookingStore:
    store = SqlBookingStore.from_url("sqlite://")
    store.create_all()
    schedule = UserSchedule(
        user_id="alice",
        timezone=NY,
        email="alice@example.com",
        rules=[
            AvailabilityRule(weekday=0, start_time=time(9, 0), end_time=time(12, 0)),
            AvailabilityRule(weekday=0, start_time=time(13, 0), end_time=time(17, 0), timezone="Europe/London"),
        ],
        calendars=[CalendarConnection("google", "alice@example.com")],
    )
    schedule.add_override(DateOverride(
        date=date(2024, 11, 29),
        windows=((time(10, 0), time(11, 0)), (time(14, 0), time(15, 0))),
    ))
    schedule.block_date(date(2024, 12, 25))
    store.save_schedule(schedule)
    return store


def _request(start: str, minutes: int = 30, **kwargs) -> BookingRequest:
    begin = pendulum.parse(start, tz=NY)
    return BookingRequest("alice", begin, begin.add(minutes=minutes), "guest@example.com", **kwargs)


class TestSchedules:
    """Schedules survive a round trip through the tables."""

    def test_rules_and_calendars(self, store):
        schedule = store.get_schedule("alice")

        assert schedule.timezone == NY
        assert schedule.email == "alice@example.com"
        assert len(schedule.rules) == 2
        assert schedule.rules[1].timezone == "Europe/London"
        assert schedule.calendars == [CalendarConnection("google", "alice@example.com")]

    def test_overrides_and_blackouts(self, store):
        schedule = store.get_schedule("alice")

        assert schedule.overrides[date(2024, 11, 29)].windows == (
            (time(10, 0), time(11, 0)),
            (time(14, 0), time(15, 0)),
        )
        assert schedule.overrides[date(2024, 12, 25)].unavailable

    def test_save_replaces_previous_rules(self, store):
        store.save_schedule(UserSchedule(
            user_id="alice",
            timezone="Europe/Berlin",
            rules=[AvailabilityRule(weekday=2, start_time=time(8, 0), end_time=time(9, 0))],
        ))
        schedule = store.get_schedule("alice")

        assert schedule.timezone == "Europe/Berlin"
        assert [rule.weekday for rule in schedule.rules] == [2]
        assert schedule.overrides == {}
        assert schedule.calendars == []

    def test_list_schedules(self, store):
        store.save_schedule(UserSchedule(user_id="bob", timezone="UTC"))
        assert [schedule.user_id for schedule in store.list_schedules()] == ["alice", "bob"]

    def test_unknown_user(self, store):
        with pytest.raises(UserNotFound):
            store.get_schedule("mallory")


class TestBookings:
    """Bookings, conflicts and status changes."""

    def test_insert_and_read_back(self, store):
        request = _request("2024-11-25 10:00", title="Intro", notes="Bring slides")
        booking = store.insert_booking_if_free(request, request.window())
        loaded = store.get_booking(booking.id)

        assert loaded.start_time == pendulum.datetime(2024, 11, 25, 15, 0, tz="UTC")
        assert loaded.end_time == pendulum.datetime(2024, 11, 25, 15, 30, tz="UTC")
        assert loaded.status == BookingStatus.CONFIRMED
        assert loaded.title == "Intro"
        assert loaded.notes == "Bring slides"
        assert loaded.created_at is not None

    def test_overlap_rejected(self, store):
        first = _request("2024-11-25 10:00", minutes=60)
        store.insert_booking_if_free(first, first.window())

        second = _request("2024-11-25 10:30")
        with pytest.raises(SlotConflict):
            store.insert_booking_if_free(second, second.window())

    def test_guard_includes_buffers(self, store):
        first = _request("2024-11-25 10:00")
        store.insert_booking_if_free(first, first.window())

        second = _request("2024-11-25 10:30")
        with pytest.raises(SlotConflict):
            store.insert_booking_if_free(second, second.window().padded(15, 15))

    def test_busy_bookings_window(self, store):
        request = _request("2024-11-25 10:00")
        store.insert_booking_if_free(request, request.window())

        morning = _request("2024-11-25 09:00", minutes=120).window()
        afternoon = _request("2024-11-25 13:00", minutes=120).window()

        assert len(store.busy_bookings("alice", morning)) == 1
        assert store.busy_bookings("alice", afternoon) == []

    def test_pending_then_approved(self, store):
        request = _request("2024-11-25 10:00", requires_approval=True)
        booking = store.insert_booking_if_free(request, request.window())

        assert booking.status == BookingStatus.PENDING_APPROVAL
        assert store.update_booking_status(booking.id, BookingStatus.CONFIRMED).status == BookingStatus.CONFIRMED
        assert store.get_booking(booking.id).status == BookingStatus.CONFIRMED

    def test_cancelled_booking_frees_time(self, store):
        request = _request("2024-11-25 10:00")
        booking = store.insert_booking_if_free(request, request.window())
        store.update_booking_status(booking.id, BookingStatus.CANCELLED)

        assert store.busy_bookings("alice", request.window()) == []
        assert store.insert_booking_if_free(request, request.window()).id != booking.id

    def test_invalid_transition(self, store):
        request = _request("2024-11-25 10:00")
        booking = store.insert_booking_if_free(request, request.window())
        store.update_booking_status(booking.id, BookingStatus.CANCELLED)

        with pytest.raises(InvalidStatusTransition):
            store.update_booking_status(booking.id, BookingStatus.CONFIRMED)
        assert store.get_booking(booking.id).status == BookingStatus.CANCELLED

    def test_unknown_booking(self, store):
        with pytest.raises(BookingNotFound):
            store.get_booking("missing")

    def test_booking_for_unknown_user(self, store):
        begin = pendulum.parse("2024-11-25 10:00", tz=NY)
        request = BookingRequest("mallory", begin, begin.add(minutes=30), "guest@example.com")

        with pytest.raises(UserNotFound):
            store.insert_booking_if_free(request, request.window())

    def test_concurrent_inserts(self, store):
        request = _request("2024-11-25 10:00")

        def attempt(_):
            try:
                return store.insert_booking_if_free(request, request.window())
            except SlotConflict as exc:
                return exc

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(attempt, range(8)))

        assert sum(isinstance(result, Booking) for result in results) == 1


def test_not_postgres_on_sqlite(store):
    assert not store.is_postgres
