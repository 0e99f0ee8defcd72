from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from booking_engine.application.exceptions import PersistenceError
from booking_engine.application.ports.booking_store import BookingStorePort
from booking_engine.application.ports.directory import DirectoryPort
from booking_engine.application.ports.messaging import MessagingPort
from booking_engine.application.ports.notification_store import NotificationStorePort
from booking_engine.application.ports.service_catalog import ServiceCatalogPort
from booking_engine.application.use_cases.retry_queue import RetryQueue
from booking_engine.application.utils.intervals import utc_now
from booking_engine.application.utils.messages import build_message, requires_preparation
from booking_engine.application.utils.phone import validate_phone_number
from booking_engine.domain.entities.booking import Booking
from booking_engine.domain.entities.client import Client
from booking_engine.domain.entities.notification import (
    NotificationRecord,
    NotificationStatus,
    NotificationType,
    RetryQueueEntry,
)
from booking_engine.domain.entities.service_catalog import Service

if TYPE_CHECKING:
    from booking_engine.infrastructure.scheduling.periodic import PeriodicScheduler

REMINDER_HORIZON = timedelta(hours=24)
SHORT_REMINDER_HORIZON = timedelta(hours=2)


@dataclass(frozen=True)
class SchedulerStats:
    running: bool
    tasks: int
    retry_queue_size: int
    max_retries: int
    retry_delay_seconds: int


class NotificationScheduler:
    """
    Derives reminders from upcoming bookings and delivers them once.

    A scan looks at active bookings starting within the next 24 hours.
    Each (booking, client, type) is recorded before sending, so repeated scans
    never message twice. Failed sends go to the retry queue with linear backoff
    until MAX_RETRIES is exhausted.
    """

    def __init__(
        self,
        bookings: BookingStorePort,
        notifications: NotificationStorePort,
        directory: DirectoryPort,
        catalog: ServiceCatalogPort,
        messenger: MessagingPort,
        retry_queue: RetryQueue | None = None,
        clock: Callable[[], datetime] = utc_now,
        timezone: ZoneInfo | None = None,
        business_name: str = "Your Business",
        max_retries: int = 3,
        retry_delay: timedelta = timedelta(minutes=5),
        preparation_categories: list[str] | None = None,
        default_country_code: str = "+34",
    ) -> None:
        self._bookings = bookings
        self._notifications = notifications
        self._directory = directory
        self._catalog = catalog
        self._messenger = messenger
        self._retry_queue = retry_queue or RetryQueue()
        self._clock = clock
        self._timezone = timezone or ZoneInfo("UTC")
        self._business_name = business_name
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._preparation_categories = preparation_categories or []
        self._default_country_code = default_country_code
        self._runner: "PeriodicScheduler | None" = None
        self._logger = logging.getLogger(__name__)

    @property
    def retry_queue(self) -> RetryQueue:
        return self._retry_queue

    def attach(self, runner: "PeriodicScheduler") -> None:
        self._runner = runner

    # -- scan -------------------------------------------------------------------

    def due_notifications(self, booking: Booking, service: Service, now: datetime) -> list[NotificationType]:
        until = booking.start_time - now
        if until <= timedelta(0) or until > REMINDER_HORIZON:
            return []

        due: list[NotificationType] = []
        if until > SHORT_REMINDER_HORIZON:
            due.append(NotificationType.BOOKING_REMINDER_24H)
        else:
            due.append(NotificationType.BOOKING_REMINDER_2H)
        if requires_preparation(service, self._preparation_categories):
            due.append(NotificationType.PREPARATION_INSTRUCTIONS)
        return due

    def scan_upcoming(self) -> int:
        """One scan pass. Returns how many messages were delivered."""
        now = self._clock()
        upcoming = self._bookings.list_upcoming(now, now + REMINDER_HORIZON)
        delivered = 0

        for booking in upcoming:
            try:
                delivered += self._process_booking(booking, now)
            except PersistenceError:
                self._logger.exception("Reminder processing failed", extra={"booking_id": booking.id})

        self._logger.info(
            "Upcoming bookings scanned",
            extra={"bookings": len(upcoming), "delivered": delivered},
        )
        return delivered

    def _process_booking(self, booking: Booking, now: datetime) -> int:
        master = self._master_data(booking)
        if master is None:
            return 0
        client, service = master

        delivered = 0
        for notification_type in self.due_notifications(booking, service, now):
            existing = self._notifications.find_existing(booking.id, client.id, notification_type)
            if existing is not None:
                self._requeue_if_orphaned(existing, client, now)
                continue
            if self._dispatch(booking, client, service, notification_type, now):
                delivered += 1
        return delivered

    def _requeue_if_orphaned(self, record: NotificationRecord, client: Client, now: datetime) -> None:
        # A failed record outside the retry queue lost its entry in a restart.
        if record.status != NotificationStatus.FAILED or record.id in self._retry_queue:
            return
        if not validate_phone_number(client.phone or "", self._default_country_code).is_valid:
            return
        self._retry_queue.add(record.id, now, attempts=max(record.attempts - 1, 0))
        self._logger.info(
            "Failed notification queued again",
            extra={"notification_id": record.id, "attempts": record.attempts},
        )

    def send_booking_confirmation(self, booking: Booking) -> bool:
        master = self._master_data(booking)
        if master is None:
            return False
        client, service = master
        if self._notifications.find_existing(booking.id, client.id, NotificationType.BOOKING_CONFIRMATION):
            return False
        return self._dispatch(booking, client, service, NotificationType.BOOKING_CONFIRMATION, self._clock())

    # -- delivery ---------------------------------------------------------------

    def _dispatch(
        self,
        booking: Booking,
        client: Client,
        service: Service,
        notification_type: NotificationType,
        now: datetime,
    ) -> bool:
        validation = validate_phone_number(client.phone or "", self._default_country_code)
        record = self._notifications.create(
            booking.id,
            client.id,
            notification_type,
            scheduled_for=now,
            channel=self._messenger.channel,
            recipient_phone=validation.formatted or client.phone,
        )
        if record is None:
            return False

        if not validation.is_valid or validation.formatted is None:
            self._notifications.update_status(record.id, NotificationStatus.FAILED, error=validation.error)
            self._logger.warning(
                "Notification skipped, invalid phone",
                extra={"booking_id": booking.id, "notification_type": notification_type.value, "reason": validation.error},
            )
            return False

        message = build_message(notification_type, booking, client, service, self._timezone, self._business_name)
        if self._deliver(record.id, validation.formatted, message, NotificationStatus.FAILED):
            return True

        self._retry_queue.add(record.id, now + self._retry_delay)
        return False

    def _deliver(self, notification_id: int, phone: str, message: str, failure_status: NotificationStatus) -> bool:
        try:
            receipt = self._messenger.send(phone, message)
        except Exception as e:
            self._notifications.update_status(notification_id, failure_status, error=str(e))
            self._logger.warning(
                "Notification send failed",
                extra={"notification_id": notification_id, "status": failure_status.value, "error": str(e)},
            )
            return False

        self._notifications.update_status(notification_id, NotificationStatus.SENT, sent_at=self._clock())
        self._logger.info(
            "Notification sent",
            extra={"notification_id": notification_id, "message_id": receipt.id},
        )
        return True

    # -- retry ------------------------------------------------------------------

    def drain_retry_queue(self) -> int:
        """Re-dispatch due retry entries. Returns how many succeeded."""
        now = self._clock()
        recovered = 0

        for entry in self._retry_queue.due(now):
            try:
                if self._retry(entry, now):
                    recovered += 1
            except PersistenceError:
                self._logger.exception("Retry processing failed", extra={"notification_id": entry.notification_id})

        return recovered

    def _retry(self, entry: RetryQueueEntry, now: datetime) -> bool:
        record = self._notifications.get(entry.notification_id)
        booking = self._bookings.get(record.booking_id) if record else None
        if record is None or booking is None or not booking.is_active:
            self._retry_queue.remove(entry.notification_id)
            self._logger.info("Retry dropped, booking no longer active", extra={"notification_id": entry.notification_id})
            return False

        master = self._master_data(booking)
        if master is None or not record.recipient_phone:
            self._retry_queue.remove(entry.notification_id)
            return False
        client, service = master

        message = build_message(record.notification_type, booking, client, service, self._timezone, self._business_name)
        attempts = self._retry_queue.mark_attempt(entry.notification_id)
        exhausted = attempts >= self._max_retries
        failure_status = NotificationStatus.FAILED_MAX_RETRIES if exhausted else NotificationStatus.FAILED

        if self._deliver(record.id, record.recipient_phone, message, failure_status):
            self._retry_queue.remove(entry.notification_id)
            return True
        if exhausted:
            self._retry_queue.remove(entry.notification_id)
            self._logger.error(
                "Notification gave up after retries",
                extra={"notification_id": record.id, "attempts": attempts + 1},
            )
        else:
            self._retry_queue.postpone(entry.notification_id, self._retry_delay, now)
        return False

    def _master_data(self, booking: Booking) -> tuple[Client, Service] | None:
        client = self._directory.get_client(booking.client_id)
        service = self._catalog.get_service(booking.service_id)
        if client is None or service is None:
            self._logger.warning(
                "Missing master data for booking",
                extra={"booking_id": booking.id, "client_id": booking.client_id, "service_id": booking.service_id},
            )
            return None
        return client, service

    def stats(self) -> SchedulerStats:
        return SchedulerStats(
            running=self._runner.is_running if self._runner else False,
            tasks=len(self._runner.task_names) if self._runner else 0,
            retry_queue_size=len(self._retry_queue),
            max_retries=self._max_retries,
            retry_delay_seconds=int(self._retry_delay.total_seconds()),
        )
