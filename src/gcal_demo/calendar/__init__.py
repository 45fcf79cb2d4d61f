"""Google Calendar event operations for the demo.

Usage:
    from gcal_demo.calendar import CalendarClient, CalendarOperationRunner

    client = CalendarClient(agent.build_service("calendar", "v3"))
    CalendarOperationRunner(client).run()
"""

from __future__ import annotations

from gcal_demo.calendar.client import CalendarClient, CalendarEvent
from gcal_demo.calendar.runner import CalendarOperationRunner

__all__ = ["CalendarClient", "CalendarEvent", "CalendarOperationRunner"]
