"""
Domain-specific exception hierarchy for the booking slot engine.
"""

from __future__ import annotations

from typing import List, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from .models import TimeWindow


class SchedulingError(Exception):
    """Base class for all application-level errors."""


class InvalidConfiguration(SchedulingError):
    """Raised when a user's availability setup is missing or unusable."""


class ProviderUnavailable(SchedulingError):
    """Raised when an external calendar cannot be fetched or parsed."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class AuthenticationError(SchedulingError):
    """Raised when authentication or token handling fails."""


class UserNotFound(SchedulingError):
    """Raised when no schedule exists for the requested user."""

    def __init__(self, user_id: str):
        super().__init__(f"Unknown user: {user_id}")
        self.user_id = user_id


class BookingNotFound(SchedulingError):
    """Raised when a booking id does not exist."""

    def __init__(self, booking_id: str):
        super().__init__(f"Unknown booking: {booking_id}")
        self.booking_id = booking_id


class InvalidBookingRequest(SchedulingError):
    """Raised when a booking request is malformed or outside availability."""


class InvalidStatusTransition(SchedulingError):
    """Raised when a booking cannot move to the requested status."""


class SlotConflict(SchedulingError):
    """
    Raised when the requested time overlaps a busy interval at commit time.

    ``conflicts`` holds the busy windows that were hit. ``buffer_only`` is
    true when none of them overlaps the requested time itself, i.e. only
    the configured buffer around the booking was violated.
    """

    USER_MESSAGE = "This time was just taken, pick another."

    def __init__(
        self,
        requested: "TimeWindow",
        conflicts: Sequence["TimeWindow"] = (),
    ):
        self.requested = requested
        self.conflicts: List["TimeWindow"] = list(conflicts)
        self.buffer_only = bool(self.conflicts) and not any(
            requested.overlaps(window) for window in self.conflicts
        )
        super().__init__(self.describe())

    def describe(self) -> str:
        """Human-readable explanation for the person trying to book."""
        count = len(self.conflicts)
        if self.buffer_only:
            noun = "meeting" if count == 1 else "meetings"
            return (
                f"{self.USER_MESSAGE} The time is too close to {count} "
                f"existing {noun} and would break the required buffer."
            )
        if count > 1:
            return f"{self.USER_MESSAGE} It conflicts with {count} existing meetings."
        return self.USER_MESSAGE
