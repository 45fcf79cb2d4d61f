"""Google Calendar API client implementation."""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httplib2
from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError

from gcal_demo.exceptions import EventNotFoundError, RemoteAPIError

logger = logging.getLogger(__name__)

NOT_FOUND_STATUSES = {404, 410}


@dataclass
class CalendarEvent:
    """Represents a Google Calendar event."""

    summary: str
    start: datetime | None
    end: datetime | None
    time_zone: str = "UTC"
    location: str | None = None
    description: str | None = None
    id: str | None = None
    html_link: str | None = None
    status: str = "confirmed"

    def to_body(self) -> dict[str, Any]:
        """Build the request body for insert/update."""
        body: dict[str, Any] = {"summary": self.summary}
        if self.start is not None:
            body["start"] = {"dateTime": _format_datetime(self.start), "timeZone": self.time_zone}
        if self.end is not None:
            body["end"] = {"dateTime": _format_datetime(self.end), "timeZone": self.time_zone}
        if self.description:
            body["description"] = self.description
        if self.location:
            body["location"] = self.location
        return body

    @classmethod
    def from_api(cls, data: dict) -> CalendarEvent:
        """Parse event from API response."""
        start_data = data.get("start", {})
        end_data = data.get("end", {})
        return cls(
            id=data.get("id"),
            summary=data.get("summary", ""),
            start=_parse_datetime(start_data),
            end=_parse_datetime(end_data),
            time_zone=start_data.get("timeZone", "UTC"),
            location=data.get("location"),
            description=data.get("description"),
            html_link=data.get("htmlLink"),
            status=data.get("status", "confirmed"),
        )


def _format_datetime(dt: datetime) -> str:
    """Format datetime for API."""
    return dt.isoformat(timespec="seconds") + ("Z" if dt.tzinfo is None else "")


def _parse_datetime(data: dict) -> datetime | None:
    value = None
    if "dateTime" in data:
        with contextlib.suppress(ValueError):
            value = datetime.fromisoformat(data["dateTime"].replace("Z", "+00:00"))
    elif "date" in data:
        with contextlib.suppress(ValueError):
            value = datetime.fromisoformat(data["date"])
    return value


class CalendarClient:
    """Google Calendar API client over an authenticated service.

    Every call either returns the service's representation or raises
    RemoteAPIError; nothing is retried.

    Usage:
        service = agent.build_service("calendar", "v3")
        client = CalendarClient(service)

        event = client.create_event(CalendarEvent(...))
        client.delete_event(event.id)
    """

    def __init__(self, service: Any, calendar_id: str = "primary") -> None:
        """Initialize Calendar client.

        Args:
            service: Calendar v3 service from ``googleapiclient.discovery.build``.
            calendar_id: Calendar ID or "primary" for the main calendar.
        """
        self._service = service
        self.calendar_id = calendar_id

    def _execute(self, operation: str, request: Any) -> Any:
        """Execute a request, translating transport and API failures."""
        try:
            return request.execute()
        except HttpError as e:
            status = e.resp.status if e.resp is not None else None
            message = getattr(e, "reason", None) or str(e)
            if status in NOT_FOUND_STATUSES:
                raise EventNotFoundError(operation, message, status=status) from e
            raise RemoteAPIError(operation, message, status=status) from e
        except (GoogleAuthError, httplib2.HttpLib2Error, OSError) as e:
            raise RemoteAPIError(operation, str(e)) from e

    # =========================================================================
    # Events
    # =========================================================================

    def create_event(self, event: CalendarEvent) -> CalendarEvent:
        """Create a new event.

        Args:
            event: Event to insert. Its ``id`` is ignored.

        Returns:
            Created Event, with the service-assigned id and link.
        """
        request = self._service.events().insert(calendarId=self.calendar_id, body=event.to_body())
        result = self._execute("create event", request)
        logger.info(f"Created event {result.get('id')}")
        return CalendarEvent.from_api(result)

    def get_event_data(self, event_id: str) -> dict[str, Any]:
        """Get the raw representation of an event."""
        request = self._service.events().get(calendarId=self.calendar_id, eventId=event_id)
        return self._execute("retrieve event", request)

    def get_event(self, event_id: str) -> CalendarEvent:
        """Get a specific event.

        Raises:
            EventNotFoundError: If the event does not exist.
        """
        return CalendarEvent.from_api(self.get_event_data(event_id))

    def update_event(
        self,
        event_id: str,
        summary: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        description: str | None = None,
        location: str | None = None,
    ) -> CalendarEvent:
        """Update an existing event.

        The current representation is fetched and the full body is sent back,
        so fields not passed here are left as they are.

        Args:
            event_id: Event ID to update.
            summary: New title (optional).
            start: New start time (optional).
            end: New end time (optional).
            description: New description (optional).
            location: New location (optional).

        Returns:
            Updated Event.
        """
        current = self.get_event_data(event_id)

        # Update fields
        if summary is not None:
            current["summary"] = summary
        if description is not None:
            current["description"] = description
        if location is not None:
            current["location"] = location
        if start is not None:
            current.setdefault("start", {})["dateTime"] = _format_datetime(start)
        if end is not None:
            current.setdefault("end", {})["dateTime"] = _format_datetime(end)

        request = self._service.events().update(
            calendarId=self.calendar_id, eventId=current.get("id", event_id), body=current
        )
        result = self._execute("update event", request)
        logger.info(f"Updated event {event_id}")
        return CalendarEvent.from_api(result)

    def delete_event(self, event_id: str) -> None:
        """Delete an event.

        Raises:
            EventNotFoundError: If the event is already gone.
        """
        request = self._service.events().delete(calendarId=self.calendar_id, eventId=event_id)
        self._execute("delete event", request)
        logger.info(f"Deleted event {event_id}")
