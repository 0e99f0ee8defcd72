from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from booking_engine.application.exceptions import PersistenceError
from booking_engine.application.use_cases.availability import AvailabilityChecker
from booking_engine.application.use_cases.booking import GENERIC_ERROR_MESSAGE, BookingUseCase
from booking_engine.domain.entities.booking import BookingRequest, BookingStatus

T10 = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


class RecordingScheduler:
    def __init__(self, fail: bool = False) -> None:
        self.confirmed: list[int] = []
        self.fail = fail

    def send_booking_confirmation(self, booking) -> bool:
        if self.fail:
            raise RuntimeError("messaging down")
        self.confirmed.append(booking.id)
        return True


class FailingManager:
    def create(self, request, trusted=False):
        raise PersistenceError("disk full")


def _use_case(manager, booking_store, catalog, scheduler=None) -> BookingUseCase:
    return BookingUseCase(
        manager=manager,
        scheduler=scheduler,
        availability=AvailabilityChecker(booking_store),
        catalog=catalog,
        timezone=ZoneInfo("UTC"),
    )


def test_book_sends_confirmation(manager, booking_store, catalog, client, haircut):
    scheduler = RecordingScheduler()
    use_case = _use_case(manager, booking_store, catalog, scheduler)

    result = use_case.book(BookingRequest(service_id=haircut.id, start_time=T10, client_id=client.id))

    assert result.action == "booked"
    assert result.booking is not None
    assert scheduler.confirmed == [result.booking.id]


def test_book_survives_confirmation_failure(manager, booking_store, catalog, client, haircut):
    use_case = _use_case(manager, booking_store, catalog, RecordingScheduler(fail=True))

    result = use_case.book(BookingRequest(service_id=haircut.id, start_time=T10, client_id=client.id))

    assert result.action == "booked"


def test_unavailable_slot_proposes_alternatives(manager, booking_store, catalog, client, haircut):
    use_case = _use_case(manager, booking_store, catalog)
    use_case.book(BookingRequest(service_id=haircut.id, start_time=T10, client_id=client.id))

    result = use_case.book(BookingRequest(service_id=haircut.id, start_time=T10, client_id=client.id))

    assert result.action == "unavailable"
    assert result.booking is None
    assert result.proposed_slots
    assert T10 not in result.proposed_slots
    assert all(slot > T10 for slot in result.proposed_slots)


def test_invalid_and_not_found(manager, booking_store, catalog, client, haircut, clock):
    use_case = _use_case(manager, booking_store, catalog)

    past = use_case.book(
        BookingRequest(service_id=haircut.id, start_time=clock() - timedelta(hours=1), client_id=client.id)
    )
    missing = use_case.cancel(9999)

    assert past.action == "invalid"
    assert missing.action == "not_found"


def test_persistence_failure_becomes_generic_error(booking_store, catalog, client, haircut):
    use_case = _use_case(FailingManager(), booking_store, catalog)

    result = use_case.book(BookingRequest(service_id=haircut.id, start_time=T10, client_id=client.id))

    assert result.action == "error"
    assert result.message == GENERIC_ERROR_MESSAGE


def test_cancel_reschedule_and_update(manager, booking_store, catalog, client, haircut):
    use_case = _use_case(manager, booking_store, catalog)
    booking = use_case.book(BookingRequest(service_id=haircut.id, start_time=T10, client_id=client.id)).booking
    other = use_case.book(
        BookingRequest(service_id=haircut.id, start_time=T10 + timedelta(hours=3), client_id=client.id)
    ).booking

    moved = use_case.reschedule(booking.id, T10 + timedelta(hours=1), reason="later")
    blocked = use_case.reschedule(booking.id, T10 + timedelta(hours=3))
    updated = use_case.update_status(other.id, BookingStatus.CONFIRMED)
    cancelled = use_case.cancel(booking.id, reason="sick")
    again = use_case.cancel(booking.id)

    assert moved.action == "rescheduled"
    assert "2026-03-02 11:00" in moved.message
    assert blocked.action == "unavailable"
    assert updated.action == "updated"
    assert updated.booking.status == BookingStatus.CONFIRMED
    assert cancelled.action == "cancelled"
    assert again.action == "invalid"
