from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from booking_engine.application.exceptions import ValidationError
from booking_engine.application.use_cases.availability import AvailabilityChecker
from booking_engine.domain.entities.booking import BookingStatus, NewBooking

T10 = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


def _insert(store, client, service, start, minutes, number, status=BookingStatus.PENDING, resource="default"):
    return store.insert(
        NewBooking(
            booking_number=number,
            confirmation_code=number[-6:],
            client_id=client.id,
            service_id=service.id,
            start_time=start,
            end_time=start + timedelta(minutes=minutes),
            status=status,
            original_price=service.price,
            final_price=service.price,
            currency=service.currency,
            resource_ref=resource,
        )
    )


def test_conflicting_and_adjacent_windows(booking_store, client, haircut):
    _insert(booking_store, client, haircut, T10, 60, "BK00000001001")
    checker = AvailabilityChecker(booking_store)

    inside = checker.check(T10 + timedelta(minutes=30), T10 + timedelta(minutes=90))
    adjacent = checker.check(T10 + timedelta(hours=1), T10 + timedelta(hours=2))
    before = checker.check(T10 - timedelta(hours=1), T10)

    assert not inside.available
    assert inside.conflict_count == 1
    assert adjacent.available
    assert before.available


def test_cancelled_and_completed_bookings_free_the_slot(booking_store, client, haircut):
    _insert(booking_store, client, haircut, T10, 60, "BK00000001002", status=BookingStatus.CANCELLED)
    _insert(booking_store, client, haircut, T10, 60, "BK00000001003", status=BookingStatus.COMPLETED)
    _insert(booking_store, client, haircut, T10, 60, "BK00000001004", status=BookingStatus.NO_SHOW)

    assert AvailabilityChecker(booking_store).check(T10, T10 + timedelta(hours=1)).available


def test_exclude_booking_id_ignores_itself(booking_store, client, haircut):
    booking = _insert(booking_store, client, haircut, T10, 60, "BK00000001005")
    checker = AvailabilityChecker(booking_store)

    assert not checker.check(T10, T10 + timedelta(hours=1)).available
    assert checker.check(T10, T10 + timedelta(hours=1), exclude_booking_id=booking.id).available


def test_resources_do_not_block_each_other(booking_store, client, haircut):
    _insert(booking_store, client, haircut, T10, 60, "BK00000001006", resource="chair-1")
    checker = AvailabilityChecker(booking_store)

    assert not checker.check(T10, T10 + timedelta(hours=1), resource_ref="chair-1").available
    assert checker.check(T10, T10 + timedelta(hours=1), resource_ref="chair-2").available


def test_inverted_window_is_rejected(booking_store):
    with pytest.raises(ValidationError):
        AvailabilityChecker(booking_store).check(T10, T10)


def test_find_available_slots_skips_booked_time(booking_store, client, haircut):
    utc = ZoneInfo("UTC")
    _insert(booking_store, client, haircut, T10, 60, "BK00000001007")
    checker = AvailabilityChecker(booking_store)

    slots = checker.find_available_slots(date(2026, 3, 2), 60, utc, open_hour=9, close_hour=13, step_minutes=60)

    assert [slot.hour for slot in slots] == [9, 11, 12]


def test_find_available_slots_respects_not_before(booking_store):
    utc = ZoneInfo("UTC")
    checker = AvailabilityChecker(booking_store)

    slots = checker.find_available_slots(
        date(2026, 3, 2), 30, utc, open_hour=9, close_hour=11, not_before=T10
    )

    assert [slot.strftime("%H:%M") for slot in slots] == ["10:00", "10:30"]
