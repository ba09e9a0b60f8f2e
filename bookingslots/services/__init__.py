"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .booking_validator import BookingValidator
from .busy_aggregator import BusyIntervalAggregator
from .ports import BookingStore, CalendarProvider
from .slot_finder import SlotFinderService

__all__ = [
    "BookingStore",
    "BookingValidator",
    "BusyIntervalAggregator",
    "CalendarProvider",
    "SlotFinderService",
]
