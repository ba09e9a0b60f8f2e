"""
Commit-time validation of booking requests.

Browsed slot lists are snapshots and may be stale. The acceptance decision is
made here, against live busy data, immediately before the write. The store's
atomic insert stays the final authority for concurrent bookers.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

import pendulum

from ..domain.availability import AvailabilityResolver
from ..domain.exceptions import InvalidBookingRequest, SlotConflict
from ..domain.models import Booking, BookingRequest, BookingStatus, TimeWindow, UserSchedule, to_utc
from ..domain.slot_generator import bookings_per_day
from .busy_aggregator import BusyIntervalAggregator
from .ports import BookingStore
from .slot_finder import Clock, utc_now

logger = logging.getLogger(__name__)

ONE_MINUTE = timedelta(minutes=1)


class BookingValidator:
    """
    Accepts or rejects a requested slot and persists accepted bookings.

    Steps of ``confirm``:
    1. Validate the request shape and make sure the user exists
    2. Refuse starts in the past or inside the minimum notice
    3. Optionally require the slot to lie inside the user's availability
    4. Refuse dates that already hold ``max_bookings_per_day`` bookings
    5. Re-aggregate busy time tightly around the slot (plus buffers)
    6. Reject on any overlap, otherwise insert through the store, which
       repeats the check under a per-user lock
    """

    def __init__(
        self,
        store: BookingStore,
        aggregator: BusyIntervalAggregator,
        resolver: Optional[AvailabilityResolver] = None,
        buffer_before_minutes: int = 0,
        buffer_after_minutes: int = 0,
        enforce_availability: bool = True,
        min_notice_minutes: int = 0,
        max_bookings_per_day: Optional[int] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._aggregator = aggregator
        self._resolver = resolver or AvailabilityResolver()
        self._buffer_before = buffer_before_minutes
        self._buffer_after = buffer_after_minutes
        self._enforce_availability = enforce_availability
        self._min_notice = min_notice_minutes
        self._max_per_day = max_bookings_per_day
        self._clock = clock

    async def confirm(self, request: BookingRequest) -> Booking:
        """
        Validate ``request`` against live data and store it.

        Raises:
            InvalidBookingRequest: Malformed request, too soon, outside
                availability or over the daily limit
            UserNotFound: Unknown user
            SlotConflict: The time overlaps existing busy time
        """
        schedule = self._store.get_schedule(request.user_id)

        try:
            requested = request.window(schedule.timezone)
        except ValueError as exc:
            raise InvalidBookingRequest(str(exc)) from exc

        if requested.duration() % ONE_MINUTE:
            raise InvalidBookingRequest("Bookings must last a whole number of minutes")

        if not request.attendee_email or "@" not in request.attendee_email:
            raise InvalidBookingRequest("A valid attendee email is required")

        earliest = to_utc(self._clock()).add(minutes=self._min_notice)
        if requested.start < earliest:
            raise InvalidBookingRequest(
                f"{requested} starts before the earliest bookable time {earliest.in_timezone(schedule.timezone)}"
            )

        if self._enforce_availability:
            self._ensure_within_availability(schedule, requested)

        if self._max_per_day is not None:
            self._ensure_daily_limit(schedule, requested)

        guard = requested.padded(self._buffer_before, self._buffer_after)
        snapshot = await self._aggregator.aggregate(request.user_id, guard)
        if snapshot.partial:
            logger.warning(
                "Validating booking for %s without %s",
                request.user_id, ", ".join(snapshot.degraded_providers),
            )

        conflicts = [busy for busy in snapshot.intervals if busy.overlaps(guard)]
        if conflicts:
            logger.info("Rejected booking for %s at %s: %d conflict(s)", request.user_id, requested, len(conflicts))
            raise SlotConflict(requested, conflicts)

        booking = self._store.insert_booking_if_free(request, guard)
        logger.info("Booked %s for %s (%s)", booking.id, request.user_id, booking.status.value)
        return booking

    def cancel(self, booking_id: str) -> Booking:
        """Cancel a booking; it stops counting as busy immediately."""
        return self._store.update_booking_status(booking_id, BookingStatus.CANCELLED)

    def approve(self, booking_id: str) -> Booking:
        """Confirm a booking that was waiting for approval."""
        return self._store.update_booking_status(booking_id, BookingStatus.CONFIRMED)

    def _ensure_within_availability(self, schedule, requested: TimeWindow) -> None:
        self._resolver.validate(schedule)

        local_day = requested.local_start().date()
        # A window resolved for the previous date can reach past local midnight
        # when a rule carries its own zone.
        for day in (local_day, local_day - timedelta(days=1)):
            for window in self._resolver.candidate_windows(schedule, day):
                if window.contains(requested):
                    return

        raise InvalidBookingRequest(
            f"{requested} is outside the availability of user {schedule.user_id}"
        )

    def _ensure_daily_limit(self, schedule: UserSchedule, requested: TimeWindow) -> None:
        local_day = requested.local_start().date()
        day_start = pendulum.datetime(local_day.year, local_day.month, local_day.day, tz=schedule.timezone)
        day = TimeWindow(start=day_start, end=day_start.add(days=1), source_zone=schedule.timezone)

        booked = bookings_per_day(self._store.busy_bookings(schedule.user_id, day), schedule.timezone)
        if booked.get(local_day, 0) >= self._max_per_day:
            raise InvalidBookingRequest(
                f"Daily limit of {self._max_per_day} bookings reached for {schedule.user_id} on {local_day}"
            )
