"""Demonstration event lifecycle: create, update, get, delete."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from gcal_demo.calendar.client import CalendarClient, CalendarEvent
from gcal_demo.config import DEFAULT_TIME_ZONE
from gcal_demo.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEMO_EVENT = {
    "summary": "Test Event",
    "location": "Online",
    "description": "A test event created using the Google Calendar API",
}
DEMO_UPDATE = {
    "summary": "Updated Test Event",
    "location": "Updated Location",
    "description": "Updated Description",
}

CREATE_OFFSET = timedelta(hours=24)
UPDATE_OFFSET = timedelta(hours=48)
DURATION = timedelta(hours=1)


class CalendarOperationRunner:
    """Runs the demo operations in order against one calendar.

    Each step depends on the id produced by ``create_event``.

    Args:
        client: Authenticated CalendarClient.
        time_zone: IANA time zone for the demo event.
        clock: Returns the current time; injectable for tests.
    """

    def __init__(
        self,
        client: CalendarClient,
        time_zone: str = DEFAULT_TIME_ZONE,
        clock: Callable[[], datetime] | None = None,
    ):
        try:
            self.tz = ZoneInfo(time_zone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigurationError(f"Unknown time zone: {time_zone}") from e
        self.client = client
        self.time_zone = time_zone
        self.clock = clock or (lambda: datetime.now(self.tz))

    def _now(self) -> datetime:
        return self.clock().astimezone(self.tz).replace(microsecond=0)

    def build_demo_event(self) -> CalendarEvent:
        start = self._now() + CREATE_OFFSET
        return CalendarEvent(
            start=start,
            end=start + DURATION,
            time_zone=self.time_zone,
            **DEMO_EVENT,
        )

    def create_event(self) -> str:
        """Create the demo event and return its id."""
        created = self.client.create_event(self.build_demo_event())
        print(f"Event created: {created.html_link}")
        return created.id

    def update_event(self, event_id: str) -> CalendarEvent:
        """Move the demo event further out and change its text fields."""
        start = self._now() + UPDATE_OFFSET
        updated = self.client.update_event(
            event_id,
            start=start,
            end=start + DURATION,
            **DEMO_UPDATE,
        )
        print(f"Event updated: {updated.html_link}")
        return updated

    def get_event(self, event_id: str) -> CalendarEvent:
        event = self.client.get_event(event_id)
        print(f"Event retrieved: {event.summary} at {event.location}")
        return event

    def delete_event(self, event_id: str) -> None:
        self.client.delete_event(event_id)
        print("Event deleted successfully.")

    def run(self, include_get: bool = True) -> str:
        """Run create, update, (get,) delete. Returns the deleted event's id."""
        event_id = self.create_event()
        self.update_event(event_id)
        if include_get:
            self.get_event(event_id)
        self.delete_event(event_id)
        logger.info(f"Demo lifecycle finished for event {event_id}")
        return event_id
