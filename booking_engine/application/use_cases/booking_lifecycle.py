from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal

from booking_engine.application.exceptions import (
    ConflictError,
    DuplicateBookingCodeError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from booking_engine.application.ports.booking_store import BookingStorePort
from booking_engine.application.ports.calendar import CalendarEventDetails, CalendarPort
from booking_engine.application.ports.directory import DirectoryPort
from booking_engine.application.ports.notification_store import NotificationStorePort
from booking_engine.application.ports.service_catalog import ServiceCatalogPort
from booking_engine.application.use_cases.availability import AvailabilityChecker
from booking_engine.application.utils.codes import generate_booking_number, generate_confirmation_code
from booking_engine.application.utils.intervals import ensure_utc, is_valid_window, utc_now
from booking_engine.application.utils.phone import validate_phone_number
from booking_engine.domain.entities.booking import (
    ACTIVE_STATUSES,
    Booking,
    BookingRequest,
    BookingStats,
    BookingStatus,
    NewBooking,
)
from booking_engine.domain.entities.client import Client, NewClient
from booking_engine.domain.entities.service_catalog import Service

MAX_CODE_ATTEMPTS = 3

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset(
        {BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.NO_SHOW}
    ),
    # no_show leaves only through reschedule
    BookingStatus.NO_SHOW: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}


@dataclass(frozen=True)
class CalendarSyncReport:
    total: int = 0
    synced: int = 0
    errors: int = 0


class BookingLifecycleManager:
    def __init__(
        self,
        store: BookingStorePort,
        directory: DirectoryPort,
        catalog: ServiceCatalogPort,
        calendar: CalendarPort | None = None,
        notifications: NotificationStorePort | None = None,
        clock: Callable[[], datetime] = utc_now,
        default_resource: str = "default",
        default_country_code: str = "+34",
        check_external_calendar: bool = True,
    ) -> None:
        self._store = store
        self._directory = directory
        self._catalog = catalog
        self._calendar = calendar
        self._notifications = notifications
        self._clock = clock
        self._default_resource = default_resource
        self._default_country_code = default_country_code
        self._check_external_calendar_enabled = check_external_calendar
        self._logger = logging.getLogger(__name__)

    # -- create -----------------------------------------------------------------

    def create(self, request: BookingRequest, trusted: bool = False) -> Booking:
        """
        Validate, check the window and persist a new booking.
        Trusted internal flows create it confirmed; everything else starts pending.
        The calendar mirror runs after the insert has committed and never fails the booking.
        """
        if request.service_id is None:
            raise ValidationError("service_id is required")
        service = self._catalog.get_service(request.service_id)
        if service is None or not service.is_active:
            raise NotFoundError(f"Service {request.service_id} not found")

        start = ensure_utc(request.start_time)
        end = ensure_utc(request.end_time) if request.end_time else start + timedelta(minutes=service.duration_minutes)
        if not is_valid_window(start, end):
            raise ValidationError("End time must be after start time")
        if start < self._clock():
            raise ValidationError("Cannot create bookings in the past")
        if request.final_price is not None and request.final_price < 0:
            raise ValidationError("final_price cannot be negative")

        client = self._resolve_client(request)
        self._check_external_calendar(start, end)

        resource = request.resource_ref or self._default_resource
        status = BookingStatus.CONFIRMED if trusted else BookingStatus.PENDING
        booking = self._insert_with_fresh_codes(
            lambda number, code: NewBooking(
                booking_number=number,
                confirmation_code=code,
                client_id=client.id,
                service_id=service.id,
                start_time=start,
                end_time=end,
                status=status,
                original_price=service.price,
                final_price=request.final_price if request.final_price is not None else service.price,
                currency=service.currency,
                resource_ref=resource,
                notes=request.notes,
                client_notes=request.client_notes,
            ),
            resource,
            start,
            end,
        )

        self._logger.info(
            "Booking created",
            extra={
                "booking_id": booking.id,
                "booking_number": booking.booking_number,
                "client_id": client.id,
                "service_id": service.id,
                "start": start.isoformat(),
                "status": booking.status.value,
            },
        )
        return self._mirror_to_calendar(booking, client, service)

    def _insert_with_fresh_codes(
        self,
        build: Callable[[str, str], NewBooking],
        resource: str,
        start: datetime,
        end: datetime,
    ) -> Booking:
        for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
            number = generate_booking_number(int(self._clock().timestamp() * 1000))
            code = generate_confirmation_code()
            try:
                with self._store.window_lock(resource) as store:
                    if store.code_exists(number, code):
                        continue
                    result = AvailabilityChecker(store, self._default_resource).check(
                        start, end, resource_ref=resource
                    )
                    if not result.available:
                        raise ConflictError(conflict_count=result.conflict_count)
                    return store.insert(build(number, code))
            except DuplicateBookingCodeError:
                self._logger.warning("Booking code collision, regenerating", extra={"attempt": attempt})
        raise PersistenceError("Could not generate a unique booking number")

    def _resolve_client(self, request: BookingRequest) -> Client:
        if request.client_id is not None:
            client = self._directory.get_client(request.client_id)
            if client is None:
                raise NotFoundError(f"Client {request.client_id} not found")
            return client

        if request.client_phone:
            validation = validate_phone_number(request.client_phone, self._default_country_code)
            if not validation.is_valid or validation.formatted is None:
                raise ValidationError(validation.error or "Invalid phone number")
            client = self._directory.find_client_by_phone(validation.formatted)
            if client is not None:
                return client
            client = self._directory.create_client(
                NewClient(
                    first_name=request.client_name or "Client",
                    last_name=request.client_last_name or "",
                    phone=validation.formatted,
                    email=request.client_email,
                )
            )
            self._logger.info("Client created from booking request", extra={"client_id": client.id})
            return client

        raise ValidationError("client_id or client_phone is required")

    def _check_external_calendar(self, start: datetime, end: datetime) -> None:
        if self._calendar is None or not self._check_external_calendar_enabled:
            return
        try:
            available = self._calendar.check_availability(start, end)
        except Exception as e:
            self._logger.warning("External availability check failed", extra={"error": str(e)})
            return
        if not available:
            raise ConflictError("Requested slot is busy in the external calendar")

    # -- cancel / status --------------------------------------------------------

    def cancel(self, booking_id: int, reason: str | None = None, cancelled_by: str | None = None) -> Booking:
        return self.update_status(
            booking_id,
            BookingStatus.CANCELLED,
            notes=f"Cancelled by {cancelled_by or 'system'}",
            reason=reason or "No reason given",
        )

    def confirm(self, booking_id: int) -> Booking:
        return self.update_status(booking_id, BookingStatus.CONFIRMED)

    def complete(self, booking_id: int, notes: str | None = None) -> Booking:
        return self.update_status(booking_id, BookingStatus.COMPLETED, notes=notes)

    def mark_no_show(self, booking_id: int) -> Booking:
        return self.update_status(booking_id, BookingStatus.NO_SHOW)

    def update_status(
        self,
        booking_id: int,
        status: BookingStatus | str,
        notes: str | None = None,
        reason: str | None = None,
    ) -> Booking:
        try:
            target = BookingStatus(status)
        except ValueError as e:
            raise ValidationError(f"Invalid status: {status}") from e

        booking = self.get(booking_id)
        if target not in ALLOWED_TRANSITIONS[booking.status]:
            raise InvalidTransitionError(booking.status.value, target.value)

        now = self._clock()
        if target == BookingStatus.NO_SHOW and booking.start_time > now:
            raise ValidationError("A booking can only be marked no_show once it has started")

        changes: dict = {"status": target}
        if notes:
            changes["staff_notes"] = notes
        if reason:
            changes["cancellation_reason"] = reason
        if target == BookingStatus.CANCELLED:
            changes["cancelled_at"] = now
        elif target == BookingStatus.COMPLETED:
            changes["completed_at"] = now

        updated = self._store.update_if_status(booking_id, booking.status, changes)
        self._logger.info(
            "Booking status updated",
            extra={
                "booking_id": booking_id,
                "old_status": booking.status.value,
                "new_status": target.value,
                "reason": reason,
            },
        )

        if target == BookingStatus.CANCELLED:
            self._cancel_calendar_twin(updated, reason)
        return updated

    # -- reschedule -------------------------------------------------------------

    def reschedule(
        self,
        booking_id: int,
        new_start: datetime,
        reason: str | None = None,
        new_end: datetime | None = None,
    ) -> Booking:
        booking = self.get(booking_id)
        if booking.is_terminal:
            raise InvalidTransitionError(booking.status.value, BookingStatus.CONFIRMED.value)

        start = ensure_utc(new_start)
        end = ensure_utc(new_end) if new_end else start + (booking.end_time - booking.start_time)
        if not is_valid_window(start, end):
            raise ValidationError("End time must be after start time")
        now = self._clock()
        if start < now:
            raise ValidationError("Cannot reschedule into the past")

        note = f"[Rescheduled: {reason or 'no reason given'}]"
        with self._store.window_lock(booking.resource_ref) as store:
            result = AvailabilityChecker(store, self._default_resource).check(
                start, end, exclude_booking_id=booking.id, resource_ref=booking.resource_ref
            )
            if not result.available:
                raise ConflictError(
                    "The new slot is not available", conflict_count=result.conflict_count
                )
            updated = store.update_if_status(
                booking.id,
                booking.status,
                {
                    "start_time": start,
                    "end_time": end,
                    "status": BookingStatus.CONFIRMED,
                    "rescheduled_at": now,
                    "notes": f"{booking.notes}\n{note}" if booking.notes else note,
                },
            )

        self._logger.info(
            "Booking rescheduled",
            extra={
                "booking_id": booking.id,
                "old_start": booking.start_time.isoformat(),
                "new_start": start.isoformat(),
                "reason": reason,
            },
        )

        if self._notifications is not None:
            try:
                self._notifications.reset_reminders(booking.id)
            except PersistenceError:
                self._logger.exception("Could not reset reminders", extra={"booking_id": booking.id})

        return self._update_calendar_twin(updated, reason)

    # -- pricing ----------------------------------------------------------------

    def override_final_price(self, booking_id: int, price: Decimal, staff_note: str | None = None) -> Booking:
        """Explicit staff override; the only path that changes final_price after creation."""
        if price < 0:
            raise ValidationError("final_price cannot be negative")
        booking = self.get(booking_id)
        if booking.status == BookingStatus.CANCELLED:
            raise ValidationError("Cannot change the price of a cancelled booking")
        changes: dict = {"final_price": price}
        if staff_note:
            changes["staff_notes"] = staff_note
        updated = self._store.update_if_status(booking_id, booking.status, changes)
        self._logger.info(
            "Final price overridden",
            extra={"booking_id": booking_id, "old_price": str(booking.final_price), "new_price": str(price)},
        )
        return updated

    # -- calendar ---------------------------------------------------------------

    def sync_calendar(self) -> CalendarSyncReport:
        """Mirror confirmed future bookings that never got a calendar twin."""
        if self._calendar is None:
            return CalendarSyncReport()

        pending = self._store.list_unsynced(self._clock())
        synced = 0
        errors = 0
        for booking in pending:
            client = self._directory.get_client(booking.client_id)
            service = self._catalog.get_service(booking.service_id)
            if client is None or service is None:
                errors += 1
                self._logger.warning("Cannot sync booking without master data", extra={"booking_id": booking.id})
                continue
            mirrored = self._mirror_to_calendar(booking, client, service)
            if mirrored.external_calendar_event_id:
                synced += 1
            else:
                errors += 1

        report = CalendarSyncReport(total=len(pending), synced=synced, errors=errors)
        self._logger.info(
            "Calendar sync finished",
            extra={"total": report.total, "synced": report.synced, "errors": report.errors},
        )
        return report

    def _event_details(self, booking: Booking, client: Client, service: Service) -> CalendarEventDetails:
        lines = [
            f"Booking #{booking.booking_number}",
            f"Service: {service.name}",
            f"Client: {client.full_name}",
            f"Phone: {client.phone or 'not provided'}",
            f"Email: {client.email or 'not provided'}",
            f"Price: {booking.final_price} {booking.currency}",
            f"Duration: {booking.duration_minutes} minutes",
            f"Code: {booking.confirmation_code}",
        ]
        if booking.notes:
            lines.append(f"Notes: {booking.notes}")
        return CalendarEventDetails(
            start=booking.start_time,
            end=booking.end_time,
            title=f"{service.name} - {client.full_name}",
            description="\n".join(lines),
            attendee_email=client.email,
            attendee_name=client.full_name,
            location=service.location or "To be confirmed",
        )

    def _mirror_to_calendar(self, booking: Booking, client: Client, service: Service) -> Booking:
        if self._calendar is None:
            return booking
        try:
            event = self._calendar.create_event(self._event_details(booking, client, service))
        except Exception as e:
            self._logger.warning(
                "Could not create calendar event",
                extra={"booking_id": booking.id, "error": str(e)},
            )
            return booking

        try:
            self._store.set_calendar_link(booking.id, event.id, self._calendar.platform, event.meeting_link)
        except PersistenceError:
            self._logger.exception("Could not store calendar event id", extra={"booking_id": booking.id})
            return booking

        return replace(
            booking,
            external_calendar_event_id=event.id,
            external_calendar_platform=self._calendar.platform,
            meeting_link=event.meeting_link,
        )

    def _cancel_calendar_twin(self, booking: Booking, reason: str | None) -> None:
        if self._calendar is None or not booking.external_calendar_event_id:
            return
        try:
            self._calendar.cancel_event(booking.external_calendar_event_id, reason or "Appointment cancelled")
            self._logger.info(
                "Calendar event cancelled",
                extra={"booking_id": booking.id, "event_id": booking.external_calendar_event_id},
            )
        except Exception as e:
            self._logger.warning(
                "Could not cancel calendar event",
                extra={"booking_id": booking.id, "event_id": booking.external_calendar_event_id, "error": str(e)},
            )

    def _update_calendar_twin(self, booking: Booking, reason: str | None) -> Booking:
        if self._calendar is None:
            return booking
        client = self._directory.get_client(booking.client_id)
        service = self._catalog.get_service(booking.service_id)
        if client is None or service is None:
            self._logger.warning("Cannot update calendar without master data", extra={"booking_id": booking.id})
            return booking

        if not booking.external_calendar_event_id:
            return self._mirror_to_calendar(booking, client, service)

        details = self._event_details(booking, client, service)
        details = replace(details, description=f"{details.description}\n\nRescheduled: {reason or 'no reason given'}")
        try:
            self._calendar.update_event(booking.external_calendar_event_id, details)
        except Exception as e:
            self._logger.warning(
                "Could not update calendar event",
                extra={"booking_id": booking.id, "event_id": booking.external_calendar_event_id, "error": str(e)},
            )
        return booking

    # -- reads ------------------------------------------------------------------

    def get(self, booking_id: int) -> Booking:
        booking = self._store.get(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    def find_by_number(self, booking_number: str) -> Booking:
        booking = self._store.find_by_number(booking_number)
        if booking is None:
            raise NotFoundError(f"Booking {booking_number} not found")
        return booking

    def find_by_confirmation_code(self, confirmation_code: str) -> Booking:
        booking = self._store.find_by_confirmation_code(confirmation_code)
        if booking is None:
            raise NotFoundError("No booking for that confirmation code")
        return booking

    def list_for_client(self, client_id: int, include_past: bool = False) -> list[Booking]:
        return self._store.list_for_client(client_id, include_past=include_past, now=self._clock())

    def list_by_status(self, status: BookingStatus | str, limit: int = 100, offset: int = 0) -> list[Booking]:
        try:
            wanted = BookingStatus(status)
        except ValueError as e:
            raise ValidationError(f"Invalid status: {status}") from e
        return self._store.list_by_status({wanted}, limit=limit, offset=offset)

    def list_active(self) -> list[Booking]:
        return self._store.list_by_status(set(ACTIVE_STATUSES))

    def stats(self, start: datetime | None = None, end: datetime | None = None) -> BookingStats:
        return self._store.stats(start, end)
