"""
Tests for reminder derivation, deduplication and bounded retry.
"""

from __future__ import annotations

from datetime import timedelta
from zoneinfo import ZoneInfo

import pytest

from booking_engine.application.exceptions import CollaboratorError, PersistenceError
from booking_engine.application.ports.messaging import MessagingPort, SendReceipt
from booking_engine.application.use_cases.booking_lifecycle import BookingLifecycleManager
from booking_engine.application.use_cases.notification_scheduler import NotificationScheduler
from booking_engine.domain.entities.booking import BookingRequest
from booking_engine.domain.entities.client import NewClient
from booking_engine.domain.entities.notification import NotificationStatus, NotificationType
from booking_engine.infrastructure.db.notification_store import SqlNotificationStore
from booking_engine.infrastructure.scheduling.periodic import PeriodicScheduler, PeriodicTask

PREPARATION = ["coloracion", "tratamiento", "alisado", "permanente"]


class FlakyMessenger(MessagingPort):
    """Fails the first `failures` sends, then delivers."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.attempts: list[tuple[str, str]] = []

    def send(self, phone_number: str, message: str) -> SendReceipt:
        self.attempts.append((phone_number, message))
        if len(self.attempts) <= self.failures:
            raise CollaboratorError("provider timeout")
        return SendReceipt(id=f"msg_{len(self.attempts)}", status="queued")


@pytest.fixture
def lifecycle(booking_store, directory, catalog, clock):
    return BookingLifecycleManager(booking_store, directory, catalog, clock=clock)


def _scheduler(booking_store, notification_store, directory, catalog, clock, messenger) -> NotificationScheduler:
    return NotificationScheduler(
        bookings=booking_store,
        notifications=notification_store,
        directory=directory,
        catalog=catalog,
        messenger=messenger,
        clock=clock,
        timezone=ZoneInfo("Europe/Madrid"),
        business_name="Salón Test",
        max_retries=3,
        retry_delay=timedelta(minutes=5),
        preparation_categories=PREPARATION,
    )


def _book(lifecycle, service, client, start):
    return lifecycle.create(BookingRequest(service_id=service.id, start_time=start, client_id=client.id))


def test_repeated_scans_send_once(lifecycle, booking_store, notification_store, directory, catalog, client, haircut, clock):
    messenger = FlakyMessenger()
    scheduler = _scheduler(booking_store, notification_store, directory, catalog, clock, messenger)
    booking = _book(lifecycle, haircut, client, clock() + timedelta(hours=5))

    assert scheduler.scan_upcoming() == 1
    assert scheduler.scan_upcoming() == 0
    assert scheduler.scan_upcoming() == 0

    assert len(messenger.attempts) == 1
    phone, text = messenger.attempts[0]
    assert phone == "+34612345678"
    assert "24 hours" in text
    record = notification_store.find_existing(booking.id, client.id, NotificationType.BOOKING_REMINDER_24H)
    assert record.status == NotificationStatus.SENT
    assert record.attempts == 1


def test_reminder_appears_when_booking_enters_window(
    lifecycle, booking_store, notification_store, directory, catalog, client, haircut, clock
):
    """Booked 25h ahead: nothing now, one 24h reminder at 23h59m, nothing more afterwards."""
    messenger = FlakyMessenger()
    scheduler = _scheduler(booking_store, notification_store, directory, catalog, clock, messenger)
    booking = _book(lifecycle, haircut, client, clock() + timedelta(hours=25))

    assert scheduler.scan_upcoming() == 0

    clock.advance(hours=1, minutes=1)
    assert scheduler.scan_upcoming() == 1
    assert scheduler.scan_upcoming() == 0

    assert notification_store.find_existing(booking.id, client.id, NotificationType.BOOKING_REMINDER_24H)
    assert notification_store.find_existing(booking.id, client.id, NotificationType.BOOKING_REMINDER_2H) is None


def test_two_hour_reminder_after_twenty_four_hour_one(
    lifecycle, booking_store, notification_store, directory, catalog, client, haircut, clock
):
    messenger = FlakyMessenger()
    scheduler = _scheduler(booking_store, notification_store, directory, catalog, clock, messenger)
    _book(lifecycle, haircut, client, clock() + timedelta(hours=10))

    scheduler.scan_upcoming()
    clock.advance(hours=8, minutes=30)
    scheduler.scan_upcoming()
    clock.advance(hours=1)
    scheduler.scan_upcoming()

    texts = [text for _, text in messenger.attempts]
    assert len(texts) == 2
    assert "24 hours" in texts[0]
    assert "2 hours" in texts[1]


def test_preparation_instructions_for_allow_listed_services(
    lifecycle, booking_store, notification_store, directory, catalog, client, coloring, clock
):
    messenger = FlakyMessenger()
    scheduler = _scheduler(booking_store, notification_store, directory, catalog, clock, messenger)
    _book(lifecycle, coloring, client, clock() + timedelta(hours=20))

    assert scheduler.scan_upcoming() == 2
    assert any("Do NOT wash your hair" in text for _, text in messenger.attempts)


def test_due_notifications_windows(lifecycle, booking_store, notification_store, directory, catalog, client, haircut, clock):
    scheduler = _scheduler(booking_store, notification_store, directory, catalog, clock, FlakyMessenger())
    booking = _book(lifecycle, haircut, client, clock() + timedelta(hours=2))
    start = booking.start_time

    assert scheduler.due_notifications(booking, haircut, start - timedelta(hours=25)) == []
    assert scheduler.due_notifications(booking, haircut, start - timedelta(hours=24)) == [
        NotificationType.BOOKING_REMINDER_24H
    ]
    assert scheduler.due_notifications(booking, haircut, start - timedelta(hours=2)) == [
        NotificationType.BOOKING_REMINDER_2H
    ]
    assert scheduler.due_notifications(booking, haircut, start) == []


def test_bounded_retry_then_gives_up(lifecycle, booking_store, notification_store, directory, catalog, client, haircut, clock):
    messenger = FlakyMessenger(failures=100)
    scheduler = _scheduler(booking_store, notification_store, directory, catalog, clock, messenger)
    booking = _book(lifecycle, haircut, client, clock() + timedelta(hours=6))

    assert scheduler.scan_upcoming() == 0
    assert len(scheduler.retry_queue) == 1

    # nothing is due before the retry delay
    assert scheduler.drain_retry_queue() == 0
    assert len(messenger.attempts) == 1

    for _ in range(5):
        clock.advance(minutes=30)
        scheduler.drain_retry_queue()

    record = notification_store.find_existing(booking.id, client.id, NotificationType.BOOKING_REMINDER_24H)
    assert len(messenger.attempts) == 4
    assert record.attempts == 4
    assert record.status == NotificationStatus.FAILED_MAX_RETRIES
    assert len(scheduler.retry_queue) == 0


def test_retry_recovers(lifecycle, booking_store, notification_store, directory, catalog, client, haircut, clock):
    messenger = FlakyMessenger(failures=1)
    scheduler = _scheduler(booking_store, notification_store, directory, catalog, clock, messenger)
    booking = _book(lifecycle, haircut, client, clock() + timedelta(hours=6))

    scheduler.scan_upcoming()
    clock.advance(minutes=5)

    assert scheduler.drain_retry_queue() == 1
    record = notification_store.find_existing(booking.id, client.id, NotificationType.BOOKING_REMINDER_24H)
    assert record.status == NotificationStatus.SENT
    assert len(scheduler.retry_queue) == 0
    # the record exists, so later scans leave it alone
    assert scheduler.scan_upcoming() == 0


def test_retry_dropped_for_cancelled_booking(
    lifecycle, booking_store, notification_store, directory, catalog, client, haircut, clock
):
    messenger = FlakyMessenger(failures=1)
    scheduler = _scheduler(booking_store, notification_store, directory, catalog, clock, messenger)
    booking = _book(lifecycle, haircut, client, clock() + timedelta(hours=6))

    scheduler.scan_upcoming()
    lifecycle.cancel(booking.id)
    clock.advance(minutes=10)

    assert scheduler.drain_retry_queue() == 0
    assert len(scheduler.retry_queue) == 0
    assert len(messenger.attempts) == 1


def test_invalid_phone_fails_without_retry(
    lifecycle, booking_store, notification_store, directory, catalog, haircut, clock
):
    bad_client = directory.create_client(NewClient(first_name="Sin", phone="12"))
    messenger = FlakyMessenger()
    scheduler = _scheduler(booking_store, notification_store, directory, catalog, clock, messenger)
    booking = _book(lifecycle, haircut, bad_client, clock() + timedelta(hours=6))

    assert scheduler.scan_upcoming() == 0

    record = notification_store.find_existing(booking.id, bad_client.id, NotificationType.BOOKING_REMINDER_24H)
    assert record.status == NotificationStatus.FAILED
    assert record.last_error
    assert messenger.attempts == []
    assert len(scheduler.retry_queue) == 0

    # a later scan leaves the unreachable number alone
    assert scheduler.scan_upcoming() == 0
    assert len(scheduler.retry_queue) == 0


def test_booking_confirmation_is_sent_once(
    lifecycle, booking_store, notification_store, directory, catalog, client, haircut, clock
):
    messenger = FlakyMessenger()
    scheduler = _scheduler(booking_store, notification_store, directory, catalog, clock, messenger)
    booking = _book(lifecycle, haircut, client, clock() + timedelta(days=3))

    assert scheduler.send_booking_confirmation(booking) is True
    assert scheduler.send_booking_confirmation(booking) is False

    assert len(messenger.attempts) == 1
    assert booking.confirmation_code in messenger.attempts[0][1]


def test_stats_reflect_runner(booking_store, notification_store, directory, catalog, clock):
    scheduler = _scheduler(booking_store, notification_store, directory, catalog, clock, FlakyMessenger())
    runner = PeriodicScheduler([PeriodicTask("scan_upcoming", 300, scheduler.scan_upcoming)])
    scheduler.attach(runner)

    stats = scheduler.stats()

    assert stats.running is False
    assert stats.tasks == 1
    assert stats.retry_queue_size == 0
    assert stats.max_retries == 3
    assert stats.retry_delay_seconds == 300


def test_failed_reminder_is_retried_after_restart(
    lifecycle, booking_store, notification_store, directory, catalog, client, haircut, clock
):
    broken = FlakyMessenger(failures=100)
    before_restart = _scheduler(booking_store, notification_store, directory, catalog, clock, broken)
    booking = _book(lifecycle, haircut, client, clock() + timedelta(hours=6))
    before_restart.scan_upcoming()

    healthy = FlakyMessenger()
    after_restart = _scheduler(booking_store, notification_store, directory, catalog, clock, healthy)
    assert len(after_restart.retry_queue) == 0

    assert after_restart.scan_upcoming() == 0
    assert len(after_restart.retry_queue) == 1
    # already queued, a second scan does not add it again
    after_restart.scan_upcoming()
    assert len(after_restart.retry_queue) == 1

    clock.advance(minutes=5)
    assert after_restart.drain_retry_queue() == 1

    assert len(healthy.attempts) == 1
    record = notification_store.find_existing(booking.id, client.id, NotificationType.BOOKING_REMINDER_24H)
    assert record.status == NotificationStatus.SENT
    assert len(after_restart.retry_queue) == 0


def test_restart_keeps_the_retry_bound(
    lifecycle, booking_store, notification_store, directory, catalog, client, haircut, clock
):
    before_restart = _scheduler(booking_store, notification_store, directory, catalog, clock, FlakyMessenger(failures=100))
    booking = _book(lifecycle, haircut, client, clock() + timedelta(hours=6))
    before_restart.scan_upcoming()
    clock.advance(minutes=5)
    before_restart.drain_retry_queue()

    broken = FlakyMessenger(failures=100)
    after_restart = _scheduler(booking_store, notification_store, directory, catalog, clock, broken)
    after_restart.scan_upcoming()
    for _ in range(5):
        clock.advance(minutes=30)
        after_restart.drain_retry_queue()

    record = notification_store.find_existing(booking.id, client.id, NotificationType.BOOKING_REMINDER_24H)
    assert len(broken.attempts) == 2
    assert record.attempts == 4
    assert record.status == NotificationStatus.FAILED_MAX_RETRIES

    # given up for good, later scans do not queue it again
    after_restart.scan_upcoming()
    assert len(after_restart.retry_queue) == 0
    assert len(broken.attempts) == 2


class UnreadableRecordStore(SqlNotificationStore):
    """Raises on reads of one record id."""

    unreadable_id: int | None = None

    def get(self, notification_id):
        if notification_id == self.unreadable_id:
            raise PersistenceError("database is locked")
        return super().get(notification_id)


def test_drain_continues_past_a_failing_entry(
    lifecycle, booking_store, session_factory, directory, catalog, client, haircut, clock
):
    store = UnreadableRecordStore(session_factory, clock=clock)
    messenger = FlakyMessenger(failures=2)
    scheduler = _scheduler(booking_store, store, directory, catalog, clock, messenger)
    first = _book(lifecycle, haircut, client, clock() + timedelta(hours=6))
    second = _book(lifecycle, haircut, client, clock() + timedelta(hours=7))

    assert scheduler.scan_upcoming() == 0
    assert len(scheduler.retry_queue) == 2
    stuck = store.find_existing(first.id, client.id, NotificationType.BOOKING_REMINDER_24H)
    store.unreadable_id = stuck.id

    clock.advance(minutes=5)
    assert scheduler.drain_retry_queue() == 1

    assert stuck.id in scheduler.retry_queue
    record = store.find_existing(second.id, client.id, NotificationType.BOOKING_REMINDER_24H)
    assert record.status == NotificationStatus.SENT
