from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any

from booking_engine.domain.entities.booking import Booking, BookingStats, BookingStatus, NewBooking


class BookingStorePort(ABC):
    @abstractmethod
    def window_lock(self, resource_ref: str) -> AbstractContextManager["BookingStorePort"]:
        """
        Open a transaction holding the write lock for one resource.
        The yielded store shares that transaction; it commits on clean exit
        and rolls back if the block raises.
        """
        raise NotImplementedError

    @abstractmethod
    def count_conflicts(
        self,
        resource_ref: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: int | None = None,
    ) -> int:
        """Count active bookings on resource_ref whose window overlaps [start, end)."""
        raise NotImplementedError

    @abstractmethod
    def insert(self, booking: NewBooking) -> Booking:
        raise NotImplementedError

    @abstractmethod
    def get(self, booking_id: int) -> Booking | None:
        raise NotImplementedError

    @abstractmethod
    def find_by_number(self, booking_number: str) -> Booking | None:
        raise NotImplementedError

    @abstractmethod
    def find_by_confirmation_code(self, confirmation_code: str) -> Booking | None:
        raise NotImplementedError

    @abstractmethod
    def code_exists(self, booking_number: str, confirmation_code: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def update_if_status(
        self,
        booking_id: int,
        expected_status: BookingStatus,
        changes: dict[str, Any],
    ) -> Booking:
        """
        Apply changes only while the row still has expected_status.
        Raises StaleBookingError when no row matched.
        """
        raise NotImplementedError

    @abstractmethod
    def set_calendar_link(
        self,
        booking_id: int,
        event_id: str,
        platform: str,
        meeting_link: str | None = None,
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    def list_by_status(
        self,
        statuses: set[BookingStatus],
        limit: int = 100,
        offset: int = 0,
    ) -> list[Booking]:
        raise NotImplementedError

    @abstractmethod
    def list_for_client(self, client_id: int, include_past: bool = False, now: datetime | None = None) -> list[Booking]:
        raise NotImplementedError

    @abstractmethod
    def list_upcoming(self, start: datetime, end: datetime) -> list[Booking]:
        """Active bookings whose start_time is in (start, end]."""
        raise NotImplementedError

    @abstractmethod
    def list_unsynced(self, now: datetime) -> list[Booking]:
        """Confirmed future bookings with no external calendar event."""
        raise NotImplementedError

    @abstractmethod
    def stats(self, start: datetime | None = None, end: datetime | None = None) -> BookingStats:
        raise NotImplementedError
