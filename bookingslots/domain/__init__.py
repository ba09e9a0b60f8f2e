"""
Domain layer - Pure business logic without external dependencies.
"""

from .availability import AvailabilityResolver
from .exceptions import (
    BookingNotFound,
    InvalidBookingRequest,
    InvalidConfiguration,
    InvalidStatusTransition,
    ProviderUnavailable,
    SchedulingError,
    SlotConflict,
    UserNotFound,
)
from .intervals import coalesce, overlaps, subtract
from .models import (
    AvailabilityRule,
    Booking,
    BookingRequest,
    BookingStatus,
    BusySnapshot,
    CalendarConnection,
    DateOverride,
    Slot,
    SlotSearchResult,
    TimeWindow,
    UserSchedule,
)
from .slot_generator import SlotGenerator, SlotOptions, format_slot_label

__all__ = [
    "AvailabilityResolver",
    "AvailabilityRule",
    "Booking",
    "BookingNotFound",
    "BookingRequest",
    "BookingStatus",
    "BusySnapshot",
    "CalendarConnection",
    "DateOverride",
    "InvalidBookingRequest",
    "InvalidConfiguration",
    "InvalidStatusTransition",
    "ProviderUnavailable",
    "SchedulingError",
    "Slot",
    "SlotConflict",
    "SlotGenerator",
    "SlotOptions",
    "SlotSearchResult",
    "TimeWindow",
    "UserNotFound",
    "UserSchedule",
    "coalesce",
    "format_slot_label",
    "overlaps",
    "subtract",
]
