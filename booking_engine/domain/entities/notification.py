from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class NotificationType(str, Enum):
    BOOKING_CONFIRMATION = "booking_confirmation"
    BOOKING_REMINDER_24H = "booking_reminder_24h"
    BOOKING_REMINDER_2H = "booking_reminder_2h"
    PREPARATION_INSTRUCTIONS = "preparation_instructions"


REMINDER_TYPES = frozenset(
    {
        NotificationType.BOOKING_REMINDER_24H,
        NotificationType.BOOKING_REMINDER_2H,
        NotificationType.PREPARATION_INSTRUCTIONS,
    }
)


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    FAILED_MAX_RETRIES = "failed_max_retries"


@dataclass(frozen=True)
class NotificationRecord:
    id: int
    booking_id: int
    client_id: int
    notification_type: NotificationType
    scheduled_for: datetime
    status: NotificationStatus = NotificationStatus.PENDING
    channel: str = "whatsapp"
    recipient_phone: str | None = None
    last_error: str | None = None
    attempts: int = 0
    created_at: datetime | None = None
    sent_at: datetime | None = None


@dataclass
class RetryQueueEntry:
    notification_id: int
    attempts: int
    next_retry_at: datetime
