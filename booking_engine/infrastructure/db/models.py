from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)

from booking_engine.application.utils.intervals import utc_now
from booking_engine.infrastructure.db.database import Base, UTCDateTime


class ClientRow(Base):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, default="")
    phone = Column(String(20), nullable=True, unique=True, index=True)
    email = Column(String(255), nullable=True)
    preferred_channel = Column(String(20), nullable=False, default="whatsapp")
    registration_complete = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)


class ServiceRow(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(150), nullable=False)
    category = Column(String(100), nullable=False, default="")
    duration_minutes = Column(Integer, nullable=False, default=60)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="EUR")
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    requires_preparation = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)


class BookingRow(Base):
    __tablename__ = "bookings"
    __table_args__ = (Index("ix_bookings_resource_status_start", "resource_ref", "status", "start_time"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_number = Column(String(20), nullable=False, unique=True)
    confirmation_code = Column(String(6), nullable=False, unique=True)

    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    resource_ref = Column(String(100), nullable=False, default="default")

    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    status = Column(String(20), nullable=False, index=True)  # pending/confirmed/cancelled/completed/no_show

    original_price = Column(Numeric(10, 2), nullable=False)
    final_price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)

    external_calendar_event_id = Column(String(255), nullable=True)
    external_calendar_platform = Column(String(50), nullable=True)
    meeting_link = Column(String(500), nullable=True)

    notes = Column(Text, nullable=True)
    client_notes = Column(Text, nullable=True)
    staff_notes = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now)
    cancelled_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    rescheduled_at = Column(UTCDateTime, nullable=True)


class NotificationRow(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        UniqueConstraint("booking_id", "client_id", "notification_type", name="uq_notification_dedup"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False)
    notification_type = Column(String(40), nullable=False)
    recipient_phone = Column(String(20), nullable=True)
    channel = Column(String(20), nullable=False, default="whatsapp")
    scheduled_for = Column(UTCDateTime, nullable=False)
    status = Column(String(30), nullable=False, default="pending")  # pending/sent/failed/failed_max_retries
    last_error = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now, index=True)
    sent_at = Column(UTCDateTime, nullable=True)


class ResourceLockRow(Base):
    """One row per bookable resource; updating it serialises check-then-write for that resource."""

    __tablename__ = "resource_locks"

    resource_ref = Column(String(100), primary_key=True)
    version = Column(Integer, nullable=False, default=0)
