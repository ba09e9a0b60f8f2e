"""
Domain models for availability, busy time and bookings.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

import pendulum
from pendulum import DateTime

from .exceptions import InvalidStatusTransition


def to_utc(value: datetime) -> DateTime:
    """
    Normalise an aware datetime to a pendulum ``DateTime`` in UTC.

    Naive datetimes are rejected: every instant crossing the core must carry
    an explicit offset.
    """
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"Naive datetime {value!r} has no UTC offset")
    return pendulum.instance(value).in_timezone("UTC")


@dataclass(frozen=True)
class TimeWindow:
    """
    Half-open interval ``[start, end)`` between two absolute instants.

    Both instants are stored in UTC. ``source_zone`` only drives display
    and local rendering; comparisons always happen in absolute time.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime
    source_zone: str = "UTC"

    def __post_init__(self):
        object.__setattr__(self, "start", to_utc(self.start))
        object.__setattr__(self, "end", to_utc(self.end))
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration(self) -> timedelta:
        return self.end - self.start

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int(self.duration().total_seconds() // 60)

    def overlaps(self, other: "TimeWindow") -> bool:
        """Touching endpoints do not overlap."""
        return self.start < other.end and self.end > other.start

    def contains(self, other: "TimeWindow | datetime") -> bool:
        """Check whether a window or an instant lies inside this window."""
        if isinstance(other, TimeWindow):
            return self.start <= other.start and other.end <= self.end
        instant = to_utc(other)
        return self.start <= instant < self.end

    def intersect(self, other: "TimeWindow") -> "TimeWindow | None":
        """
        Calculate the intersection of two windows.
        Returns None if there is no overlap.
        """
        if not self.overlaps(other):
            return None

        return TimeWindow(
            start=max(self.start, other.start),
            end=min(self.end, other.end),
            source_zone=self.source_zone,
        )

    def padded(self, before_minutes: int = 0, after_minutes: int = 0) -> "TimeWindow":
        """Return the window widened by the given buffers."""
        return TimeWindow(
            start=self.start.subtract(minutes=before_minutes),
            end=self.end.add(minutes=after_minutes),
            source_zone=self.source_zone,
        )

    def local_start(self) -> DateTime:
        return self.start.in_timezone(self.source_zone)

    def local_end(self) -> DateTime:
        return self.end.in_timezone(self.source_zone)

    def __str__(self) -> str:
        start = self.local_start()
        return f"{start.format('YYYY-MM-DD HH:mm')} - {self.local_end().format('HH:mm')} ({self.source_zone})"


@dataclass(frozen=True)
class AvailabilityRule:
    """
    Recurring weekly working hours.

    ``weekday`` follows the Python convention (0=Monday, 6=Sunday). A rule
    never crosses midnight; ``timezone`` overrides the owning schedule's
    zone when set.
    """
    weekday: int
    start_time: time
    end_time: time
    timezone: Optional[str] = None

    def __post_init__(self):
        if self.weekday not in range(7):
            raise ValueError(f"weekday must be between 0 and 6, got {self.weekday}")
        if self.start_time >= self.end_time:
            raise ValueError(
                f"Rule {self.start_time}-{self.end_time} must start before it ends "
                "and may not cross midnight"
            )


@dataclass(frozen=True)
class DateOverride:
    """Explicit local windows for a single date, or a blackout when unavailable."""
    date: date
    windows: Tuple[Tuple[time, time], ...] = ()
    unavailable: bool = False

    def __post_init__(self):
        for start, end in self.windows:
            if start >= end:
                raise ValueError(f"Override window {start}-{end} on {self.date} is empty or inverted")


@dataclass(frozen=True)
class CalendarConnection:
    """An external calendar connected by a user."""
    provider: str
    calendar_id: str


@dataclass
class UserSchedule:
    """
    Everything needed to resolve a user's availability.
    """
    user_id: str
    timezone: str
    rules: List[AvailabilityRule] = field(default_factory=list)
    overrides: Dict[date, DateOverride] = field(default_factory=dict)
    calendars: List[CalendarConnection] = field(default_factory=list)
    email: str = ""

    def rules_for_weekday(self, weekday: int) -> List[AvailabilityRule]:
        return [rule for rule in self.rules if rule.weekday == weekday]

    def add_override(self, override: DateOverride) -> None:
        self.overrides[override.date] = override

    def block_date(self, day: date) -> None:
        """Mark a whole calendar date as unavailable."""
        self.add_override(DateOverride(date=day, unavailable=True))


class BookingStatus(str, Enum):
    PENDING_APPROVAL = "pending_approval"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


BUSY_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {BookingStatus.CONFIRMED, BookingStatus.PENDING_APPROVAL}
)

_ALLOWED_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING_APPROVAL: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class BookingRequest:
    """A guest's request to reserve ``[start_time, end_time)`` with a user."""
    user_id: str
    start_time: DateTime
    end_time: DateTime
    attendee_email: str
    attendee_name: str = ""
    title: str = ""
    notes: str = ""
    requires_approval: bool = False

    def window(self, zone: str = "UTC") -> TimeWindow:
        return TimeWindow(start=self.start_time, end=self.end_time, source_zone=zone)

    @property
    def initial_status(self) -> BookingStatus:
        if self.requires_approval:
            return BookingStatus.PENDING_APPROVAL
        return BookingStatus.CONFIRMED


@dataclass(frozen=True)
class Booking:
    """A durable reservation."""
    id: str
    user_id: str
    start_time: DateTime
    end_time: DateTime
    status: BookingStatus
    attendee_email: str
    attendee_name: str = ""
    title: str = ""
    notes: str = ""
    created_at: Optional[DateTime] = None

    @property
    def is_busy(self) -> bool:
        return self.status in BUSY_STATUSES

    def window(self, zone: str = "UTC") -> TimeWindow:
        return TimeWindow(start=self.start_time, end=self.end_time, source_zone=zone)

    def transition(self, status: BookingStatus) -> "Booking":
        """Return a copy in ``status`` or raise if the move is not allowed."""
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidStatusTransition(
                f"Booking {self.id} cannot move from {self.status.value} to {status.value}"
            )
        return replace(self, status=status)


@dataclass(frozen=True)
class Slot:
    """
    A bookable time window offered to a guest.

    A point-in-time projection, not a reservation.
    """
    start: DateTime
    end: DateTime
    label: str

    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def window(self, zone: str = "UTC") -> TimeWindow:
        return TimeWindow(start=self.start, end=self.end, source_zone=zone)


@dataclass(frozen=True)
class BusySnapshot:
    """Sorted, coalesced busy windows plus the providers that failed to answer."""
    intervals: List[TimeWindow]
    degraded_providers: List[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.degraded_providers)


@dataclass
class SlotSearchResult:
    """
    Outcome of a slot search.

    An empty ``slots`` list means the search horizon was exhausted; it is a
    valid answer, not an error.
    """
    user_id: str
    slots: List[Slot]
    searched_from: date
    searched_until: date
    degraded_providers: List[str] = field(default_factory=list)

    @property
    def out_of_horizon(self) -> bool:
        return not self.slots

    @property
    def partial(self) -> bool:
        return bool(self.degraded_providers)
