"""
Microsoft Graph calendar provider for fetching free/busy data.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List

import pendulum
import requests
from pendulum import DateTime

from ..domain.exceptions import ProviderUnavailable
from ..domain.models import CalendarConnection, TimeWindow

logger = logging.getLogger(__name__)


class GraphCalendarProvider:
    """
    Busy-time source backed by Microsoft Graph.

    Uses the /calendar/getSchedule endpoint to fetch free/busy information.
    All times are requested and returned in UTC.
    """

    name = "microsoft"

    GRAPH_API_ENDPOINT = "https://graph.microsoft.com/v1.0"

    # We consider these statuses as "busy"
    BUSY_STATUSES = frozenset({"busy", "tentative", "oof", "workingelsewhere"})

    def __init__(self, token_provider: Callable[[], str], request_timeout: float = 10.0):
        """
        Initialize the Graph provider.

        Args:
            token_provider: Callable returning a valid Microsoft Graph access token
            request_timeout: Socket timeout for a single HTTP call, in seconds
        """
        self._token_provider = token_provider
        self._request_timeout = request_timeout

    async def fetch_busy(self, connection: CalendarConnection, window: TimeWindow) -> List[TimeWindow]:
        return await asyncio.to_thread(self.get_schedule, connection.calendar_id, window)

    def get_schedule(self, email: str, window: TimeWindow) -> List[TimeWindow]:
        """
        Get busy times for one mailbox.

        Args:
            email: Mailbox whose calendar is queried
            window: Time range to query

        Returns:
            Busy TimeWindow objects

        Raises:
            ProviderUnavailable: If the API call fails
        """
        url = f"{self.GRAPH_API_ENDPOINT}/users/{email}/calendar/getSchedule"
        headers = {
            "Authorization": f"Bearer {self._token_provider()}",
            "Content-Type": "application/json",
            "Prefer": 'outlook.timezone="UTC"',
        }

        payload = {
            "schedules": [email],
            "startTime": {
                "dateTime": window.start.format("YYYY-MM-DDTHH:mm:ss"),
                "timeZone": "UTC",
            },
            "endTime": {
                "dateTime": window.end.format("YYYY-MM-DDTHH:mm:ss"),
                "timeZone": "UTC",
            },
            "availabilityViewInterval": 15,
        }

        try:
            response = requests.post(
                url,
                headers=headers,
                json=payload,
                timeout=self._request_timeout,
            )
            response.raise_for_status()
            data = response.json()

        except requests.exceptions.RequestException as e:
            raise ProviderUnavailable(self.name, f"Failed to fetch schedule from Microsoft Graph: {e}") from e
        except ValueError as e:
            raise ProviderUnavailable(self.name, f"Microsoft Graph returned invalid JSON: {e}") from e

        return self._parse_schedule_response(data)

    def _parse_schedule_response(self, response_data: Dict[str, Any]) -> List[TimeWindow]:
        """
        Parse the getSchedule API response into our domain model.

        Response format:
        {
            "value": [
                {
                    "scheduleId": "user@example.com",
                    "error": {"message": "..."},          # only on failure
                    "scheduleItems": [
                        {
                            "status": "busy",
                            "start": {"dateTime": "...", "timeZone": "UTC"},
                            "end": {"dateTime": "...", "timeZone": "UTC"}
                        }
                    ]
                }
            ]
        }
        """
        busy: List[TimeWindow] = []

        for schedule in response_data.get("value", []):
            error = schedule.get("error")
            if error:
                raise ProviderUnavailable(
                    self.name,
                    f"Schedule {schedule.get('scheduleId', '?')} unavailable: {error.get('message', error)}",
                )

            for item in schedule.get("scheduleItems", []):
                if item.get("status", "").lower() not in self.BUSY_STATUSES:
                    continue

                try:
                    start = self._parse_datetime(item["start"])
                    end = self._parse_datetime(item["end"])
                    busy.append(TimeWindow(start=start, end=end))

                except (KeyError, ValueError) as e:
                    logger.warning("Could not parse schedule item: %s", e)
                    continue

        return busy

    @staticmethod
    def _parse_datetime(value: Dict[str, str]) -> DateTime:
        """Graph sends wall-clock strings plus a separate zone name."""
        dt = pendulum.parse(value["dateTime"], tz=value.get("timeZone") or "UTC")

        if isinstance(dt, DateTime):
            return dt.in_timezone("UTC")

        raise ValueError(f"Could not parse datetime: {value['dateTime']}")
