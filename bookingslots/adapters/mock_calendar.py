"""
File-backed calendar provider for demos and tests without any external account.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import pendulum

from ..domain.exceptions import ProviderUnavailable
from ..domain.models import CalendarConnection, TimeWindow

logger = logging.getLogger(__name__)


class MockCalendarProvider:
    """
    Serves busy time from a JSON list of events.

    Each event looks like ``{"calendarId": "...", "start": "...", "end": "..."}``
    with ISO-8601 timestamps; timestamps without an offset are read as UTC.
    """

    name = "mock"

    def __init__(self, data_file: Optional[Path] = None, events: Optional[List[Dict[str, Any]]] = None):
        """
        Args:
            data_file: JSON file with the events; defaults to the bundled sample
            events: Events given directly, takes precedence over ``data_file``
        """
        if events is not None:
            self.calendar_events = list(events)
        else:
            self.calendar_events = self._load_calendar_data(
                data_file or Path(__file__).parent / "mock_calendar_data.json"
            )

    @staticmethod
    def _load_calendar_data(data_file: Path) -> List[Dict[str, Any]]:
        """Load mock calendar data from JSON file."""
        if not data_file.exists():
            logger.warning("Mock calendar file %s not found; serving no events", data_file)
            return []

        try:
            with open(data_file, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as exc:
            raise ProviderUnavailable("mock", f"Invalid JSON in {data_file}: {exc}") from exc

    async def fetch_busy(self, connection: CalendarConnection, window: TimeWindow) -> List[TimeWindow]:
        busy: List[TimeWindow] = []

        for event in self.calendar_events:
            if event.get("calendarId") != connection.calendar_id:
                continue

            try:
                busy_window = TimeWindow(
                    start=pendulum.parse(event["start"], tz="UTC"),
                    end=pendulum.parse(event["end"], tz="UTC"),
                )
            except (KeyError, ValueError) as exc:
                logger.warning("Skipping invalid mock event %r: %s", event, exc)
                continue

            if busy_window.overlaps(window):
                busy.append(busy_window)

        return busy
