from __future__ import annotations

import logging
from datetime import datetime

from booking_engine.application.exceptions import CollaboratorError
from booking_engine.application.ports.calendar import CalendarEvent, CalendarEventDetails, CalendarPort
from booking_engine.application.utils.intervals import overlaps


class MockCalendar(CalendarPort):
    platform = "mock"

    def __init__(self) -> None:
        self._events: dict[str, CalendarEventDetails] = {}
        self._counter = 0
        self._logger = logging.getLogger(__name__)

    @property
    def events(self) -> dict[str, CalendarEventDetails]:
        return dict(self._events)

    def check_availability(self, start: datetime, end: datetime) -> bool:
        return not any(overlaps(start, end, event.start, event.end) for event in self._events.values())

    def create_event(self, details: CalendarEventDetails) -> CalendarEvent:
        self._counter += 1
        event_id = f"mock_event_{self._counter}"
        self._events[event_id] = details
        self._logger.info(
            "Mock calendar event created",
            extra={
                "event_id": event_id,
                "start": details.start.isoformat(),
                "end": details.end.isoformat(),
                "title": details.title,
            },
        )
        return CalendarEvent(id=event_id, meeting_link=f"https://meet.example.com/{event_id}")

    def cancel_event(self, event_id: str, reason: str | None = None) -> None:
        if event_id not in self._events:
            raise CollaboratorError(f"Unknown calendar event {event_id}")
        del self._events[event_id]
        self._logger.info("Mock calendar event cancelled", extra={"event_id": event_id, "reason": reason})

    def update_event(self, event_id: str, details: CalendarEventDetails) -> None:
        if event_id not in self._events:
            raise CollaboratorError(f"Unknown calendar event {event_id}")
        self._events[event_id] = details
        self._logger.info("Mock calendar event updated", extra={"event_id": event_id})
