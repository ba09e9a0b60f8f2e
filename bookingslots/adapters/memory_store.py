"""
In-memory implementation of the booking store.

Used by the test-suite and by the CLI when no database is configured.
"""

from __future__ import annotations

import threading
import uuid
from collections import defaultdict
from copy import deepcopy
from typing import Dict, List

import pendulum

from ..domain.exceptions import BookingNotFound, SlotConflict, UserNotFound
from ..domain.models import (
    Booking,
    BookingRequest,
    BookingStatus,
    TimeWindow,
    UserSchedule,
)


class InMemoryBookingStore:
    """
    Dictionary-backed store.

    Every write for a user happens while holding that user's lock, so the
    overlap re-check and the insert cannot interleave with another writer.
    """

    def __init__(self) -> None:
        self._schedules: Dict[str, UserSchedule] = {}
        self._bookings: Dict[str, Booking] = {}
        self._registry_lock = threading.Lock()
        self._user_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)

    def _lock_for(self, user_id: str) -> threading.Lock:
        with self._registry_lock:
            return self._user_locks[user_id]

    def save_schedule(self, schedule: UserSchedule) -> None:
        self._schedules[schedule.user_id] = deepcopy(schedule)

    def get_schedule(self, user_id: str) -> UserSchedule:
        try:
            return deepcopy(self._schedules[user_id])
        except KeyError:
            raise UserNotFound(user_id) from None

    def list_schedules(self) -> List[UserSchedule]:
        return [deepcopy(schedule) for schedule in self._schedules.values()]

    def busy_bookings(self, user_id: str, window: TimeWindow) -> List[Booking]:
        bookings = [
            booking
            for booking in self._bookings.values()
            if booking.user_id == user_id
            and booking.is_busy
            and booking.start_time < window.end
            and booking.end_time > window.start
        ]
        return sorted(bookings, key=lambda b: b.start_time)

    def insert_booking_if_free(self, request: BookingRequest, guard: TimeWindow) -> Booking:
        if request.user_id not in self._schedules:
            raise UserNotFound(request.user_id)

        with self._lock_for(request.user_id):
            clashing = self.busy_bookings(request.user_id, guard)
            if clashing:
                raise SlotConflict(request.window(), [b.window() for b in clashing])

            booking = Booking(
                id=uuid.uuid4().hex,
                user_id=request.user_id,
                start_time=pendulum.instance(request.start_time).in_timezone("UTC"),
                end_time=pendulum.instance(request.end_time).in_timezone("UTC"),
                status=request.initial_status,
                attendee_email=request.attendee_email,
                attendee_name=request.attendee_name,
                title=request.title,
                notes=request.notes,
                created_at=pendulum.now("UTC"),
            )
            self._bookings[booking.id] = booking
            return booking

    def get_booking(self, booking_id: str) -> Booking:
        try:
            return self._bookings[booking_id]
        except KeyError:
            raise BookingNotFound(booking_id) from None

    def update_booking_status(self, booking_id: str, status: BookingStatus) -> Booking:
        booking = self.get_booking(booking_id)
        with self._lock_for(booking.user_id):
            updated = self.get_booking(booking_id).transition(status)
            self._bookings[booking_id] = updated
            return updated
