"""
Aggregation of local bookings and external calendar busy time.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..domain.exceptions import ProviderUnavailable
from ..domain.intervals import coalesce
from ..domain.models import BusySnapshot, CalendarConnection, TimeWindow
from .ports import BookingStore, CalendarProvider

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_TIMEOUT_SECONDS = 5.0


class BusyIntervalAggregator:
    """
    Merges every busy source of a user into one sorted, coalesced list.

    External providers are queried concurrently, each bounded by
    ``timeout_seconds``. A provider that fails or times out contributes no
    busy time and is reported in ``BusySnapshot.degraded_providers``;
    partial data beats no availability.
    """

    def __init__(
        self,
        store: BookingStore,
        providers: Optional[Mapping[str, CalendarProvider]] = None,
        timeout_seconds: float = DEFAULT_PROVIDER_TIMEOUT_SECONDS,
    ) -> None:
        self._store = store
        self._providers: Dict[str, CalendarProvider] = dict(providers or {})
        self._timeout_seconds = timeout_seconds

    async def aggregate(self, user_id: str, window: TimeWindow) -> BusySnapshot:
        """
        Collect busy time for ``user_id`` overlapping ``window``.

        Raises:
            UserNotFound: If the store does not know the user
        """
        schedule = self._store.get_schedule(user_id)

        local = [
            booking.window(schedule.timezone)
            for booking in self._store.busy_bookings(user_id, window)
        ]

        external, degraded = await self._fetch_external(schedule.calendars, window)

        intervals = coalesce(local + external)
        logger.debug(
            "User %s: %d local and %d external busy windows -> %d merged",
            user_id, len(local), len(external), len(intervals),
        )
        return BusySnapshot(intervals=intervals, degraded_providers=degraded)

    async def _fetch_external(
        self,
        connections: Sequence[CalendarConnection],
        window: TimeWindow,
    ) -> Tuple[List[TimeWindow], List[str]]:
        tasks = []
        for connection in connections:
            provider = self._providers.get(connection.provider)
            if provider is None:
                logger.warning(
                    "No calendar provider registered for %r; ignoring calendar %s",
                    connection.provider, connection.calendar_id,
                )
                continue
            tasks.append(self._fetch_soft(provider, connection, window))

        if not tasks:
            return [], []

        results = await asyncio.gather(*tasks)

        busy: List[TimeWindow] = []
        degraded: List[str] = []
        for connection, windows in results:
            if windows is None:
                degraded.append(f"{connection.provider}:{connection.calendar_id}")
            else:
                busy.extend(windows)
        return busy, degraded

    async def _fetch_soft(
        self,
        provider: CalendarProvider,
        connection: CalendarConnection,
        window: TimeWindow,
    ) -> Tuple[CalendarConnection, Optional[List[TimeWindow]]]:
        """Fetch one calendar; ``None`` marks a failed or timed out provider."""
        try:
            windows = await asyncio.wait_for(
                provider.fetch_busy(connection, window),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Calendar %s:%s timed out after %.1fs; continuing without it",
                connection.provider, connection.calendar_id, self._timeout_seconds,
            )
            return connection, None
        except ProviderUnavailable as exc:
            logger.warning("Calendar %s unavailable: %s", connection.calendar_id, exc)
            return connection, None
        except Exception:
            logger.exception(
                "Calendar %s:%s failed unexpectedly; continuing without it",
                connection.provider, connection.calendar_id,
            )
            return connection, None

        clipped = [busy for busy in windows if busy.overlaps(window)]
        return connection, clipped
