from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from booking_engine.application.exceptions import ValidationError
from booking_engine.application.ports.booking_store import BookingStorePort
from booking_engine.application.utils.intervals import is_valid_window


@dataclass(frozen=True)
class AvailabilityResult:
    available: bool
    conflict_count: int


class AvailabilityChecker:
    """
    Half-open conflict test against active bookings: [S, E) clashes with [s, e) iff S < e and E > s.
    No locking here; callers that insert afterwards run this inside BookingStorePort.window_lock.
    """

    def __init__(self, store: BookingStorePort, default_resource: str = "default") -> None:
        self._store = store
        self._default_resource = default_resource
        self._logger = logging.getLogger(__name__)

    def check(
        self,
        start: datetime,
        end: datetime,
        exclude_booking_id: int | None = None,
        resource_ref: str | None = None,
    ) -> AvailabilityResult:
        if not is_valid_window(start, end):
            raise ValidationError("End time must be after start time")

        resource = resource_ref or self._default_resource
        conflicts = self._store.count_conflicts(resource, start, end, exclude_booking_id)
        self._logger.info(
            "Availability checked",
            extra={
                "resource": resource,
                "start": start.isoformat(),
                "end": end.isoformat(),
                "conflicts": conflicts,
                "exclude_booking_id": exclude_booking_id,
            },
        )
        return AvailabilityResult(available=conflicts == 0, conflict_count=conflicts)

    def find_available_slots(
        self,
        day: date,
        duration_minutes: int,
        timezone: ZoneInfo,
        open_hour: int = 9,
        close_hour: int = 17,
        step_minutes: int = 30,
        resource_ref: str | None = None,
        not_before: datetime | None = None,
    ) -> list[datetime]:
        """Free start times on a local day, stepping through opening hours."""
        if duration_minutes <= 0:
            raise ValidationError("Duration must be positive")

        current = datetime.combine(day, time(hour=open_hour), tzinfo=timezone)
        closing = datetime.combine(day, time(hour=close_hour), tzinfo=timezone)
        length = timedelta(minutes=duration_minutes)
        slots: list[datetime] = []

        while current + length <= closing:
            if not_before is None or current >= not_before:
                if self.check(current, current + length, resource_ref=resource_ref).available:
                    slots.append(current)
            current += timedelta(minutes=step_minutes)

        return slots
