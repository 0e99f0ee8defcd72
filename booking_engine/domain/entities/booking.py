from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


ACTIVE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})
TERMINAL_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED})


@dataclass(frozen=True)
class Booking:
    id: int
    booking_number: str
    confirmation_code: str
    client_id: int
    service_id: int
    start_time: datetime
    end_time: datetime
    status: BookingStatus
    original_price: Decimal
    final_price: Decimal
    currency: str
    resource_ref: str = "default"
    external_calendar_event_id: str | None = None
    external_calendar_platform: str | None = None  # "cal_com", "mock"
    meeting_link: str | None = None
    notes: str | None = None
    client_notes: str | None = None
    staff_notes: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    cancelled_at: datetime | None = None
    completed_at: datetime | None = None
    rescheduled_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)


@dataclass(frozen=True)
class NewBooking:
    """Everything the store needs to insert a booking row; ids and timestamps are store-assigned."""

    booking_number: str
    confirmation_code: str
    client_id: int
    service_id: int
    start_time: datetime
    end_time: datetime
    status: BookingStatus
    original_price: Decimal
    final_price: Decimal
    currency: str
    resource_ref: str
    notes: str | None = None
    client_notes: str | None = None


@dataclass(frozen=True)
class BookingRequest:
    service_id: int | None
    start_time: datetime
    client_id: int | None = None
    client_phone: str | None = None
    client_name: str | None = None
    client_last_name: str | None = None
    client_email: str | None = None
    end_time: datetime | None = None  # overrides service duration when set
    resource_ref: str | None = None
    final_price: Decimal | None = None
    notes: str | None = None
    client_notes: str | None = None


@dataclass(frozen=True)
class BookingStats:
    total: int = 0
    pending: int = 0
    confirmed: int = 0
    cancelled: int = 0
    completed: int = 0
    no_show: int = 0
    total_revenue: Decimal = Decimal("0")

    @property
    def cancellation_rate(self) -> float:
        return round(self.cancelled / self.total * 100, 2) if self.total else 0.0

    @property
    def completion_rate(self) -> float:
        return round(self.completed / self.total * 100, 2) if self.total else 0.0
