"""
Ports the services depend on.

Persistence and external calendars are reached only through these
protocols, so tests can plug in the in-memory store and stub providers.
"""

from __future__ import annotations

from typing import List, Protocol

from ..domain.models import (
    Booking,
    BookingRequest,
    BookingStatus,
    CalendarConnection,
    TimeWindow,
    UserSchedule,
)


class BookingStore(Protocol):
    """Persistence of schedules and bookings."""

    def get_schedule(self, user_id: str) -> UserSchedule:
        """Return the user's schedule or raise ``UserNotFound``."""

    def list_schedules(self) -> List[UserSchedule]:
        """Return every known schedule."""

    def save_schedule(self, schedule: UserSchedule) -> None:
        """Create or replace a user's schedule."""

    def busy_bookings(self, user_id: str, window: TimeWindow) -> List[Booking]:
        """Bookings in a busy status overlapping ``window``."""

    def insert_booking_if_free(self, request: BookingRequest, guard: TimeWindow) -> Booking:
        """
        Insert the booking unless a busy booking overlaps ``guard``.

        The re-check and the insert form one atomic unit per user. Raises
        ``SlotConflict`` when another booking won the race.
        """

    def get_booking(self, booking_id: str) -> Booking:
        """Return a booking or raise ``BookingNotFound``."""

    def update_booking_status(self, booking_id: str, status: BookingStatus) -> Booking:
        """Apply a status transition and return the updated booking."""


class CalendarProvider(Protocol):
    """An external free/busy source."""

    name: str

    async def fetch_busy(
        self,
        connection: CalendarConnection,
        window: TimeWindow,
    ) -> List[TimeWindow]:
        """Return busy windows of ``connection`` intersecting ``window``."""
