from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class CalendarEventDetails:
    start: datetime
    end: datetime
    title: str
    description: str | None = None
    attendee_email: str | None = None
    attendee_name: str | None = None
    location: str | None = None


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    meeting_link: str | None = None


class CalendarPort(ABC):
    """External calendar mirror. Implementations raise CollaboratorError on failure."""

    platform: str = "external"

    @abstractmethod
    def check_availability(self, start: datetime, end: datetime) -> bool:
        """Check if time slot is free in the external calendar."""
        raise NotImplementedError

    @abstractmethod
    def create_event(self, details: CalendarEventDetails) -> CalendarEvent:
        raise NotImplementedError

    @abstractmethod
    def cancel_event(self, event_id: str, reason: str | None = None) -> None:
        raise NotImplementedError

    @abstractmethod
    def update_event(self, event_id: str, details: CalendarEventDetails) -> None:
        raise NotImplementedError
