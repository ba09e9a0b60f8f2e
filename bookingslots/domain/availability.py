"""
Resolution of weekly working hours into concrete candidate windows.
"""

import logging
from datetime import date, time, timedelta
from typing import Iterator, List, Optional, Tuple

import pendulum

from .exceptions import InvalidConfiguration
from .intervals import coalesce
from .models import TimeWindow, UserSchedule

logger = logging.getLogger(__name__)


def ensure_timezone(name: str) -> str:
    """
    Return ``name`` if pendulum knows the zone.

    Raises:
        InvalidConfiguration: If the zone is empty or unknown
    """
    if not name:
        raise InvalidConfiguration("No time zone configured")
    try:
        pendulum.timezone(name)
    except (ValueError, KeyError) as exc:
        raise InvalidConfiguration(f"Unknown time zone: {name}") from exc
    return name


class AvailabilityResolver:
    """
    Converts a user's rules and overrides into candidate windows.

    Algorithm for one local calendar date:
    1. A date override wins (blackout -> nothing, explicit windows -> verbatim)
    2. Otherwise every rule for the date's weekday applies
    3. Local wall-clock times become instants through the zone database
    4. Windows collapsed by a DST gap are dropped, split shifts are merged
    """

    def validate(self, schedule: UserSchedule) -> None:
        """
        Make sure the schedule can produce availability at all.

        Raises:
            InvalidConfiguration: If the zone is invalid or nothing is configured
        """
        ensure_timezone(schedule.timezone)
        for rule in schedule.rules:
            if rule.timezone:
                ensure_timezone(rule.timezone)

        has_override_windows = any(
            override.windows for override in schedule.overrides.values()
        )
        if not schedule.rules and not has_override_windows:
            raise InvalidConfiguration(
                f"User {schedule.user_id} has no availability rules configured"
            )

    def candidate_windows(self, schedule: UserSchedule, day: date) -> List[TimeWindow]:
        """
        Candidate windows for ``day``, a calendar date in the user's zone.

        Returns a list sorted by start; empty when the user is off that day.
        """
        override = schedule.overrides.get(day)

        spans: List[Tuple[time, time, str]]
        if override is not None:
            if override.unavailable:
                return []
            spans = [(start, end, schedule.timezone) for start, end in override.windows]
        else:
            spans = [
                (rule.start_time, rule.end_time, rule.timezone or schedule.timezone)
                for rule in schedule.rules_for_weekday(day.weekday())
            ]

        windows: List[TimeWindow] = []
        for start, end, zone in spans:
            window = self._to_window(day, start, end, zone, display_zone=schedule.timezone)
            if window is not None:
                windows.append(window)

        return coalesce(windows)

    def windows_between(
        self,
        schedule: UserSchedule,
        first_day: date,
        days: int,
    ) -> Iterator[Tuple[date, List[TimeWindow]]]:
        """Yield ``(day, windows)`` for ``days`` consecutive dates, empty days included."""
        for offset in range(days):
            day = first_day + timedelta(days=offset)
            yield day, self.candidate_windows(schedule, day)

    @staticmethod
    def _to_window(
        day: date,
        start: time,
        end: time,
        zone: str,
        display_zone: str,
    ) -> Optional[TimeWindow]:
        start_dt = pendulum.datetime(
            day.year, day.month, day.day, start.hour, start.minute, start.second, tz=zone
        )
        end_dt = pendulum.datetime(
            day.year, day.month, day.day, end.hour, end.minute, end.second, tz=zone
        )

        # Wall-clock times inside a DST gap are shifted by the zone rules,
        # which can leave nothing of a short window.
        if end_dt <= start_dt:
            logger.debug(
                "Dropping %s-%s on %s in %s: no time left after DST adjustment",
                start, end, day, zone,
            )
            return None

        return TimeWindow(start=start_dt, end=end_dt, source_zone=display_zone)
