"""
Application service for browsing bookable slots.

The service coordinates fetching busy times via the aggregator and delegates
the actual slot computation to the domain-level ``SlotGenerator``. This keeps
the REST layer and the CLI thin and lets tests swap every collaborator.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional

import pendulum
from pendulum import DateTime

from ..domain.models import Slot, SlotSearchResult, TimeWindow, UserSchedule, to_utc
from ..domain.slot_generator import SlotGenerator, SlotOptions, bookings_per_day
from .busy_aggregator import BusyIntervalAggregator
from .ports import BookingStore

logger = logging.getLogger(__name__)

Clock = Callable[[], DateTime]


def utc_now() -> DateTime:
    return pendulum.now("UTC")


def search_window(schedule: UserSchedule, first_day: date, days: int) -> TimeWindow:
    """
    Absolute range covering ``days`` local dates starting at ``first_day``.

    Padded by one day on each side so rules in another zone and buffers
    around the edges still see their busy time.
    """
    start_day = first_day - timedelta(days=1)
    end_day = first_day + timedelta(days=days + 1)
    return TimeWindow(
        start=pendulum.datetime(start_day.year, start_day.month, start_day.day, tz=schedule.timezone),
        end=pendulum.datetime(end_day.year, end_day.month, end_day.day, tz=schedule.timezone),
        source_zone=schedule.timezone,
    )


class SlotFinderService:
    """
    Orchestrates rule resolution, busy-time aggregation and slot generation.
    """

    def __init__(
        self,
        store: BookingStore,
        aggregator: BusyIntervalAggregator,
        generator: Optional[SlotGenerator] = None,
        defaults: Optional[SlotOptions] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._aggregator = aggregator
        self._generator = generator or SlotGenerator()
        self._defaults = defaults or SlotOptions()
        self._clock = clock

    @property
    def defaults(self) -> SlotOptions:
        return self._defaults

    @property
    def resolver(self):
        return self._generator.resolver

    def options_for(
        self,
        duration_minutes: Optional[int] = None,
        count: Optional[int] = None,
    ) -> SlotOptions:
        """Defaults with the caller's duration and count applied."""
        options = self._defaults
        if duration_minutes is not None:
            options = replace(options, duration_minutes=duration_minutes)
        if count is not None:
            options = replace(options, max_slots=count)
        return options

    async def find_slots(
        self,
        user_id: str,
        *,
        duration_minutes: Optional[int] = None,
        count: Optional[int] = None,
        start_date: Optional[date] = None,
    ) -> SlotSearchResult:
        """
        Compute the next bookable slots for a user.

        Args:
            user_id: Owner of the booking page
            duration_minutes: Slot length, defaults to the configured duration
            count: Maximum number of slots, defaults to the configured maximum
            start_date: First local date to scan, defaults to today in the user's zone

        Returns:
            SlotSearchResult; ``out_of_horizon`` when nothing was found

        Raises:
            UserNotFound: Unknown user
            InvalidConfiguration: The user has no usable availability setup
            ValueError: Invalid duration or count
        """
        options = self.options_for(duration_minutes, count)
        schedule = self._store.get_schedule(user_id)
        self.resolver.validate(schedule)

        now = self._clock()
        first_day = start_date or now.in_timezone(schedule.timezone).date()

        window = search_window(schedule, first_day, options.horizon_days)
        snapshot = await self._aggregator.aggregate(user_id, window)
        slots = self._generator.generate(
            schedule, snapshot.intervals, first_day, now, options,
            daily_bookings=self._daily_bookings(schedule, window, options),
        )

        last_day = first_day + timedelta(days=options.horizon_days - 1)
        if not slots:
            logger.info(
                "No slots for user %s between %s and %s", user_id, first_day, last_day
            )

        return SlotSearchResult(
            user_id=user_id,
            slots=slots,
            searched_from=first_day,
            searched_until=last_day,
            degraded_providers=snapshot.degraded_providers,
        )

    async def suggest_alternatives(
        self,
        user_id: str,
        after: datetime,
        duration_minutes: int,
        count: int = 3,
    ) -> List[Slot]:
        """
        Offer free slots at or after ``after``, used when a booking attempt conflicted.
        """
        options = self.options_for(duration_minutes, count)
        schedule = self._store.get_schedule(user_id)
        self.resolver.validate(schedule)

        now = self._clock()
        reference = max(to_utc(now), to_utc(after))
        first_day = reference.in_timezone(schedule.timezone).date()

        window = search_window(schedule, first_day, options.horizon_days)
        snapshot = await self._aggregator.aggregate(user_id, window)
        return self._generator.generate(
            schedule, snapshot.intervals, first_day, now, options,
            not_before=after,
            daily_bookings=self._daily_bookings(schedule, window, options),
        )

    def _daily_bookings(self, schedule: UserSchedule, window: TimeWindow, options: SlotOptions):
        if options.max_bookings_per_day is None:
            return None
        return bookings_per_day(self._store.busy_bookings(schedule.user_id, window), schedule.timezone)
