"""
Google Calendar provider using the freeBusy endpoint.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List

import pendulum
import requests

from ..domain.exceptions import ProviderUnavailable
from ..domain.models import CalendarConnection, TimeWindow

logger = logging.getLogger(__name__)


class GoogleCalendarProvider:
    """
    Busy-time source backed by Google Calendar ``freeBusy``.

    Token acquisition is outside this class; pass a callable that returns a
    current OAuth access token.
    """

    name = "google"

    FREEBUSY_URL = "https://www.googleapis.com/calendar/v3/freeBusy"

    def __init__(self, token_provider: Callable[[], str], request_timeout: float = 10.0):
        self._token_provider = token_provider
        self._request_timeout = request_timeout

    async def fetch_busy(self, connection: CalendarConnection, window: TimeWindow) -> List[TimeWindow]:
        return await asyncio.to_thread(self.query_free_busy, connection.calendar_id, window)

    def query_free_busy(self, calendar_id: str, window: TimeWindow) -> List[TimeWindow]:
        """
        Return busy windows of ``calendar_id`` inside ``window``.

        Raises:
            ProviderUnavailable: If the API call fails or reports a calendar error
        """
        payload = {
            "timeMin": window.start.to_iso8601_string(),
            "timeMax": window.end.to_iso8601_string(),
            "timeZone": "UTC",
            "items": [{"id": calendar_id}],
        }
        headers = {"Authorization": f"Bearer {self._token_provider()}"}

        try:
            response = requests.post(
                self.FREEBUSY_URL,
                headers=headers,
                json=payload,
                timeout=self._request_timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise ProviderUnavailable(self.name, f"freeBusy request failed: {e}") from e
        except ValueError as e:
            raise ProviderUnavailable(self.name, f"freeBusy returned invalid JSON: {e}") from e

        return self._parse_free_busy(calendar_id, data)

    def _parse_free_busy(self, calendar_id: str, data: Dict[str, Any]) -> List[TimeWindow]:
        """
        Response format:
        {
            "calendars": {
                "primary": {
                    "busy": [{"start": "2024-11-25T10:00:00Z", "end": "..."}],
                    "errors": [{"domain": "global", "reason": "notFound"}]
                }
            }
        }
        """
        calendar = data.get("calendars", {}).get(calendar_id)
        if calendar is None:
            raise ProviderUnavailable(self.name, f"Calendar {calendar_id} missing from freeBusy response")

        errors = calendar.get("errors")
        if errors:
            reasons = ", ".join(error.get("reason", "unknown") for error in errors)
            raise ProviderUnavailable(self.name, f"Calendar {calendar_id}: {reasons}")

        busy: List[TimeWindow] = []
        for period in calendar.get("busy", []):
            try:
                busy.append(TimeWindow(
                    start=pendulum.parse(period["start"]),
                    end=pendulum.parse(period["end"]),
                ))
            except (KeyError, ValueError) as e:
                logger.warning("Skipping malformed busy period from %s: %s", calendar_id, e)

        return busy
