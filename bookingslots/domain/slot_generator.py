"""
Core business logic for generating bookable slots.

This is the heart of the application - pure domain logic without any
external dependencies (no API calls, no database, no I/O).
"""

import math
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from pendulum import DateTime

from .availability import AvailabilityResolver
from .intervals import pad_all, subtract
from .models import Booking, Slot, TimeWindow, UserSchedule, to_utc


@dataclass(frozen=True)
class SlotOptions:
    """Knobs of a slot search."""
    duration_minutes: int = 30
    granularity_minutes: int = 30
    min_notice_minutes: int = 0
    max_slots: int = 10
    horizon_days: int = 14
    buffer_before_minutes: int = 0
    buffer_after_minutes: int = 0
    max_bookings_per_day: Optional[int] = None

    def __post_init__(self):
        for name in ("duration_minutes", "granularity_minutes", "max_slots", "horizon_days"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be greater than zero")
        for name in ("min_notice_minutes", "buffer_before_minutes", "buffer_after_minutes"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")
        if self.max_bookings_per_day is not None and self.max_bookings_per_day <= 0:
            raise ValueError("max_bookings_per_day must be greater than zero")


def bookings_per_day(bookings: Iterable[Booking], timezone: str) -> Dict[date, int]:
    """Count busy bookings by the local date of their start in ``timezone``."""
    return Counter(
        to_utc(booking.start_time).in_timezone(timezone).date()
        for booking in bookings
        if booking.is_busy
    )


def format_slot_label(start: datetime, now: datetime, timezone: str) -> str:
    """
    Format a slot start for display, e.g. ``Tomorrow at 2:00 PM``.

    The day part depends on the difference between local calendar dates in
    ``timezone``: Today, Tomorrow, the weekday name up to six days ahead,
    then ``Mon, Jan 5``.
    """
    local = to_utc(start).in_timezone(timezone)
    today = to_utc(now).in_timezone(timezone).date()
    offset = (local.date() - today).days

    if offset == 0:
        day_label = "Today"
    elif offset == 1:
        day_label = "Tomorrow"
    elif 2 <= offset <= 6:
        day_label = local.format("dddd", locale="en")
    else:
        day_label = local.format("ddd, MMM D", locale="en")

    return f"{day_label} at {local.format('h:mm A', locale='en')}"


class SlotGenerator:
    """
    Generates bookable slots from availability and busy time.

    Algorithm, per calendar day of the horizon in ascending order:
    1. Resolve the candidate windows for the day (skip empty days)
    2. Subtract the busy windows, widened by the booking buffers
    3. Walk every free sub-window on the granularity grid
    4. Keep slots that fit entirely and respect the minimum notice
    5. Skip local dates that already hold ``max_bookings_per_day`` bookings
    6. Stop as soon as ``max_slots`` slots were produced
    """

    def __init__(self, resolver: Optional[AvailabilityResolver] = None):
        self.resolver = resolver or AvailabilityResolver()

    def generate(
        self,
        schedule: UserSchedule,
        busy: List[TimeWindow],
        first_day: date,
        now: datetime,
        options: SlotOptions,
        not_before: Optional[datetime] = None,
        daily_bookings: Optional[Mapping[date, int]] = None,
    ) -> List[Slot]:
        """Materialise the slot sequence; never longer than ``options.max_slots``."""
        return list(self.iter_slots(schedule, busy, first_day, now, options, not_before, daily_bookings))

    def iter_slots(
        self,
        schedule: UserSchedule,
        busy: List[TimeWindow],
        first_day: date,
        now: datetime,
        options: SlotOptions,
        not_before: Optional[datetime] = None,
        daily_bookings: Optional[Mapping[date, int]] = None,
    ) -> Iterator[Slot]:
        """
        Lazily yield slots in chronological order.

        Args:
            schedule: The user's rules and overrides
            busy: Busy windows covering the horizon (any order)
            first_day: First local calendar date to scan
            now: Reference instant for minimum notice and labels
            options: Duration, granularity and limits
            not_before: Optional extra lower bound for slot starts
            daily_bookings: Busy bookings per local date, see ``bookings_per_day``

        Yields:
            Slot objects, at most ``options.max_slots`` of them
        """
        earliest = to_utc(now).add(minutes=options.min_notice_minutes)
        if not_before is not None:
            earliest = max(earliest, to_utc(not_before))

        # A new booking needs buffer_before free ahead of it and buffer_after
        # behind it, so existing busy time grows the other way round.
        blocked = pad_all(
            busy,
            before_minutes=options.buffer_after_minutes,
            after_minutes=options.buffer_before_minutes,
        )

        cap = options.max_bookings_per_day
        daily_bookings = daily_bookings or {}

        emitted = 0
        for _day, candidates in self.resolver.windows_between(
            schedule, first_day, options.horizon_days
        ):
            for candidate in candidates:
                relevant = [window for window in blocked if window.overlaps(candidate)]

                for free in subtract(candidate, relevant):
                    for start in self._aligned_starts(candidate.start, free, earliest, options):
                        if cap is not None and daily_bookings.get(
                            start.in_timezone(schedule.timezone).date(), 0
                        ) >= cap:
                            continue
                        yield Slot(
                            start=start,
                            end=start.add(minutes=options.duration_minutes),
                            label=format_slot_label(start, now, schedule.timezone),
                        )
                        emitted += 1
                        if emitted >= options.max_slots:
                            return

    @staticmethod
    def _aligned_starts(
        anchor: DateTime,
        free: TimeWindow,
        earliest: DateTime,
        options: SlotOptions,
    ) -> Iterator[DateTime]:
        """
        Slot starts inside ``free`` on the grid anchored at ``anchor``.

        The grid is anchored on the candidate window start, so a 09:00 rule
        with 30 minute granularity offers :00 and :30 even after a busy
        window ending at an odd minute.
        """
        step = timedelta(minutes=options.granularity_minutes)
        duration = timedelta(minutes=options.duration_minutes)

        lower = max(free.start, earliest)
        offset_seconds = (lower - anchor).total_seconds()
        steps = math.ceil(offset_seconds / step.total_seconds())
        start = anchor + step * steps

        while start + duration <= free.end:
            yield start
            start = start + step
