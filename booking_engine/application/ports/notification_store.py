from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from booking_engine.domain.entities.notification import (
    NotificationRecord,
    NotificationStatus,
    NotificationType,
)


class NotificationStorePort(ABC):
    """Persisted dedup store: one record per (booking, client, notification type)."""

    @abstractmethod
    def find_existing(
        self,
        booking_id: int,
        client_id: int,
        notification_type: NotificationType,
    ) -> NotificationRecord | None:
        raise NotImplementedError

    @abstractmethod
    def create(
        self,
        booking_id: int,
        client_id: int,
        notification_type: NotificationType,
        scheduled_for: datetime,
        channel: str,
        recipient_phone: str | None,
    ) -> NotificationRecord | None:
        """Insert a pending record. Returns None if the dedup key already exists."""
        raise NotImplementedError

    @abstractmethod
    def get(self, notification_id: int) -> NotificationRecord | None:
        raise NotImplementedError

    @abstractmethod
    def update_status(
        self,
        notification_id: int,
        status: NotificationStatus,
        error: str | None = None,
        sent_at: datetime | None = None,
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    def reset_reminders(self, booking_id: int) -> int:
        """Drop reminder records of a booking so they are derived again. Returns deleted count."""
        raise NotImplementedError

    @abstractmethod
    def delete_older_than(self, cutoff: datetime) -> int:
        raise NotImplementedError
