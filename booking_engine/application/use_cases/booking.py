from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from booking_engine.application.exceptions import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from booking_engine.application.ports.service_catalog import ServiceCatalogPort
from booking_engine.application.use_cases.availability import AvailabilityChecker
from booking_engine.application.use_cases.booking_lifecycle import BookingLifecycleManager
from booking_engine.application.utils.intervals import ensure_utc
from booking_engine.domain.entities.booking import Booking, BookingRequest, BookingStatus

if TYPE_CHECKING:
    from booking_engine.application.use_cases.notification_scheduler import NotificationScheduler

GENERIC_ERROR_MESSAGE = "Something went wrong while saving the booking. Please try again."


@dataclass(frozen=True)
class BookingResult:
    action: str
    booking: Booking | None
    message: str | None
    proposed_slots: list[datetime] | None = None


class BookingUseCase:
    """
    Caller-facing entry point over BookingLifecycleManager.
    Every outcome becomes a BookingResult; domain errors never escape.
    """

    def __init__(
        self,
        manager: BookingLifecycleManager,
        scheduler: "NotificationScheduler | None" = None,
        availability: AvailabilityChecker | None = None,
        catalog: ServiceCatalogPort | None = None,
        timezone: ZoneInfo | None = None,
        max_proposed_slots: int = 3,
    ) -> None:
        self._manager = manager
        self._scheduler = scheduler
        self._availability = availability
        self._catalog = catalog
        self._timezone = timezone or ZoneInfo("UTC")
        self._max_proposed_slots = max_proposed_slots
        self._logger = logging.getLogger(__name__)

    def book(self, request: BookingRequest, trusted: bool = False) -> BookingResult:
        try:
            booking = self._manager.create(request, trusted=trusted)
        except ConflictError as e:
            return BookingResult(
                action="unavailable",
                booking=None,
                message=str(e),
                proposed_slots=self._propose_slots(request),
            )
        except (ValidationError, NotFoundError, PersistenceError) as e:
            return self._failure(e, "book")

        if self._scheduler is not None:
            try:
                self._scheduler.send_booking_confirmation(booking)
            except Exception as e:
                self._logger.warning(
                    "Booking confirmation not sent",
                    extra={"booking_id": booking.id, "error": str(e)},
                )

        return BookingResult(
            action="booked",
            booking=booking,
            message=f"Booking {booking.booking_number} created",
        )

    def cancel(self, booking_id: int, reason: str | None = None, cancelled_by: str | None = None) -> BookingResult:
        try:
            booking = self._manager.cancel(booking_id, reason=reason, cancelled_by=cancelled_by)
        except (ValidationError, NotFoundError, PersistenceError) as e:
            return self._failure(e, "cancel")
        return BookingResult(action="cancelled", booking=booking, message=f"Booking {booking.booking_number} cancelled")

    def reschedule(self, booking_id: int, new_start: datetime, reason: str | None = None) -> BookingResult:
        try:
            booking = self._manager.reschedule(booking_id, new_start, reason=reason)
        except ConflictError as e:
            return BookingResult(action="unavailable", booking=None, message=str(e))
        except (ValidationError, NotFoundError, PersistenceError) as e:
            return self._failure(e, "reschedule")
        return BookingResult(
            action="rescheduled",
            booking=booking,
            message=f"Booking {booking.booking_number} moved to {booking.start_time.astimezone(self._timezone):%Y-%m-%d %H:%M}",
        )

    def update_status(self, booking_id: int, status: BookingStatus | str, notes: str | None = None) -> BookingResult:
        try:
            booking = self._manager.update_status(booking_id, status, notes=notes)
        except (ValidationError, NotFoundError, PersistenceError) as e:
            return self._failure(e, "update_status")
        return BookingResult(
            action="updated",
            booking=booking,
            message=f"Booking {booking.booking_number} is now {booking.status.value}",
        )

    def _failure(self, error: Exception, operation: str) -> BookingResult:
        if isinstance(error, PersistenceError):
            self._logger.exception("Booking persistence failed", extra={"operation": operation})
            return BookingResult(action="error", booking=None, message=GENERIC_ERROR_MESSAGE)
        if isinstance(error, NotFoundError):
            return BookingResult(action="not_found", booking=None, message=str(error))
        return BookingResult(action="invalid", booking=None, message=str(error))

    def _propose_slots(self, request: BookingRequest) -> list[datetime] | None:
        if self._availability is None:
            return None
        if request.end_time is not None:
            duration = int((request.end_time - request.start_time).total_seconds() // 60)
        else:
            service = self._catalog.get_service(request.service_id) if self._catalog and request.service_id else None
            if service is None:
                return None
            duration = service.duration_minutes
        start = ensure_utc(request.start_time)
        day = start.astimezone(self._timezone).date()
        try:
            slots = self._availability.find_available_slots(
                day,
                duration,
                self._timezone,
                resource_ref=request.resource_ref,
                not_before=start,
            )
        except (ValidationError, PersistenceError) as e:
            self._logger.warning("Could not propose alternative slots", extra={"error": str(e)})
            return None
        return slots[: self._max_proposed_slots] or None
