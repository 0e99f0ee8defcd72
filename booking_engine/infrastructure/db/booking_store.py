from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from booking_engine.application.exceptions import (
    DuplicateBookingCodeError,
    PersistenceError,
    StaleBookingError,
)
from booking_engine.application.ports.booking_store import BookingStorePort
from booking_engine.application.utils.intervals import utc_now
from booking_engine.domain.entities.booking import (
    ACTIVE_STATUSES,
    Booking,
    BookingStats,
    BookingStatus,
    NewBooking,
)
from booking_engine.infrastructure.db.models import BookingRow, ResourceLockRow

_ACTIVE_VALUES = [status.value for status in ACTIVE_STATUSES]


class SqlBookingStore(BookingStorePort):
    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Callable[[], datetime] = utc_now,
        session: Session | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock
        self._session = session  # set when this store is bound to a window_lock transaction
        self._known_resources: set[str] = set()
        self._logger = logging.getLogger(__name__)

    @contextmanager
    def window_lock(self, resource_ref: str) -> Iterator["SqlBookingStore"]:
        if self._session is not None:
            raise RuntimeError("window_lock cannot be nested")
        self._ensure_resource(resource_ref)

        session = self._session_factory()
        try:
            session.execute(
                update(ResourceLockRow)
                .where(ResourceLockRow.resource_ref == resource_ref)
                .values(version=ResourceLockRow.version + 1)
            )
            yield SqlBookingStore(self._session_factory, clock=self._clock, session=session)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Booking transaction failed: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _ensure_resource(self, resource_ref: str) -> None:
        if resource_ref in self._known_resources:
            return
        session = self._session_factory()
        try:
            if session.get(ResourceLockRow, resource_ref) is None:
                session.add(ResourceLockRow(resource_ref=resource_ref, version=0))
                session.commit()
        except IntegrityError:
            # Another writer created the row first; the lock row exists either way.
            session.rollback()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Could not prepare resource lock: {e}") from e
        finally:
            session.close()
        self._known_resources.add(resource_ref)

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        if self._session is not None:
            # Bound to window_lock: commit/rollback belong to the lock owner.
            yield self._session
            return

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def count_conflicts(
        self,
        resource_ref: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: int | None = None,
    ) -> int:
        stmt = select(func.count(BookingRow.id)).where(
            BookingRow.resource_ref == resource_ref,
            BookingRow.status.in_(_ACTIVE_VALUES),
            BookingRow.start_time < end,
            BookingRow.end_time > start,
        )
        if exclude_booking_id is not None:
            stmt = stmt.where(BookingRow.id != exclude_booking_id)
        with self._session_scope() as session:
            return int(session.execute(stmt).scalar_one())

    def insert(self, booking: NewBooking) -> Booking:
        now = self._clock()
        row = BookingRow(
            booking_number=booking.booking_number,
            confirmation_code=booking.confirmation_code,
            client_id=booking.client_id,
            service_id=booking.service_id,
            resource_ref=booking.resource_ref,
            start_time=booking.start_time,
            end_time=booking.end_time,
            status=booking.status.value,
            original_price=booking.original_price,
            final_price=booking.final_price,
            currency=booking.currency,
            notes=booking.notes,
            client_notes=booking.client_notes,
            created_at=now,
            updated_at=now,
        )
        with self._session_scope() as session:
            session.add(row)
            try:
                session.flush()
            except IntegrityError as e:
                raise DuplicateBookingCodeError(
                    f"Booking code collision for {booking.booking_number}/{booking.confirmation_code}"
                ) from e
            return _to_entity(row)

    def get(self, booking_id: int) -> Booking | None:
        with self._session_scope() as session:
            row = session.get(BookingRow, booking_id)
            return _to_entity(row) if row else None

    def find_by_number(self, booking_number: str) -> Booking | None:
        return self._find_one(BookingRow.booking_number == booking_number)

    def find_by_confirmation_code(self, confirmation_code: str) -> Booking | None:
        return self._find_one(BookingRow.confirmation_code == confirmation_code.upper())

    def _find_one(self, condition) -> Booking | None:
        with self._session_scope() as session:
            row = session.execute(select(BookingRow).where(condition)).scalar_one_or_none()
            return _to_entity(row) if row else None

    def code_exists(self, booking_number: str, confirmation_code: str) -> bool:
        stmt = select(func.count(BookingRow.id)).where(
            or_(
                BookingRow.booking_number == booking_number,
                BookingRow.confirmation_code == confirmation_code,
            )
        )
        with self._session_scope() as session:
            return session.execute(stmt).scalar_one() > 0

    def update_if_status(
        self,
        booking_id: int,
        expected_status: BookingStatus,
        changes: dict[str, Any],
    ) -> Booking:
        values = {key: _column_value(value) for key, value in changes.items()}
        values["updated_at"] = self._clock()
        stmt = (
            update(BookingRow)
            .where(BookingRow.id == booking_id, BookingRow.status == expected_status.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with self._session_scope() as session:
            result = session.execute(stmt)
            if result.rowcount == 0:
                raise StaleBookingError(booking_id, expected_status.value)
            row = session.get(BookingRow, booking_id, populate_existing=True)
            return _to_entity(row)

    def set_calendar_link(
        self,
        booking_id: int,
        event_id: str,
        platform: str,
        meeting_link: str | None = None,
    ) -> None:
        stmt = (
            update(BookingRow)
            .where(BookingRow.id == booking_id)
            .values(
                external_calendar_event_id=event_id,
                external_calendar_platform=platform,
                meeting_link=meeting_link,
                updated_at=self._clock(),
            )
            .execution_options(synchronize_session=False)
        )
        with self._session_scope() as session:
            session.execute(stmt)

    def list_by_status(
        self,
        statuses: set[BookingStatus],
        limit: int = 100,
        offset: int = 0,
    ) -> list[Booking]:
        stmt = (
            select(BookingRow)
            .where(BookingRow.status.in_([status.value for status in statuses]))
            .order_by(BookingRow.start_time)
            .limit(limit)
            .offset(offset)
        )
        return self._list(stmt)

    def list_for_client(self, client_id: int, include_past: bool = False, now: datetime | None = None) -> list[Booking]:
        stmt = select(BookingRow).where(BookingRow.client_id == client_id)
        if not include_past:
            stmt = stmt.where(BookingRow.start_time >= (now or self._clock()))
        return self._list(stmt.order_by(BookingRow.start_time.desc()))

    def list_upcoming(self, start: datetime, end: datetime) -> list[Booking]:
        stmt = (
            select(BookingRow)
            .where(
                BookingRow.status.in_(_ACTIVE_VALUES),
                BookingRow.start_time > start,
                BookingRow.start_time <= end,
            )
            .order_by(BookingRow.start_time)
        )
        return self._list(stmt)

    def list_unsynced(self, now: datetime) -> list[Booking]:
        stmt = (
            select(BookingRow)
            .where(
                BookingRow.status == BookingStatus.CONFIRMED.value,
                BookingRow.external_calendar_event_id.is_(None),
                BookingRow.start_time >= now,
            )
            .order_by(BookingRow.start_time)
        )
        return self._list(stmt)

    def _list(self, stmt) -> list[Booking]:
        with self._session_scope() as session:
            return [_to_entity(row) for row in session.execute(stmt).scalars().all()]

    def stats(self, start: datetime | None = None, end: datetime | None = None) -> BookingStats:
        revenue = func.sum(
            case((BookingRow.status == BookingStatus.COMPLETED.value, BookingRow.final_price), else_=0)
        )
        stmt = select(BookingRow.status, func.count(BookingRow.id), revenue).group_by(BookingRow.status)
        if start is not None:
            stmt = stmt.where(BookingRow.start_time >= start)
        if end is not None:
            stmt = stmt.where(BookingRow.start_time <= end)

        counts: dict[str, int] = {}
        total_revenue = Decimal("0")
        with self._session_scope() as session:
            for status, count, status_revenue in session.execute(stmt).all():
                counts[status] = int(count)
                total_revenue += Decimal(str(status_revenue or 0))

        return BookingStats(
            total=sum(counts.values()),
            pending=counts.get(BookingStatus.PENDING.value, 0),
            confirmed=counts.get(BookingStatus.CONFIRMED.value, 0),
            cancelled=counts.get(BookingStatus.CANCELLED.value, 0),
            completed=counts.get(BookingStatus.COMPLETED.value, 0),
            no_show=counts.get(BookingStatus.NO_SHOW.value, 0),
            total_revenue=total_revenue,
        )


def _column_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def _to_entity(row: BookingRow) -> Booking:
    return Booking(
        id=row.id,
        booking_number=row.booking_number,
        confirmation_code=row.confirmation_code,
        client_id=row.client_id,
        service_id=row.service_id,
        resource_ref=row.resource_ref,
        start_time=row.start_time,
        end_time=row.end_time,
        status=BookingStatus(row.status),
        original_price=Decimal(str(row.original_price)),
        final_price=Decimal(str(row.final_price)),
        currency=row.currency,
        external_calendar_event_id=row.external_calendar_event_id,
        external_calendar_platform=row.external_calendar_platform,
        meeting_link=row.meeting_link,
        notes=row.notes,
        client_notes=row.client_notes,
        staff_notes=row.staff_notes,
        cancellation_reason=row.cancellation_reason,
        created_at=row.created_at,
        updated_at=row.updated_at,
        cancelled_at=row.cancelled_at,
        completed_at=row.completed_at,
        rescheduled_at=row.rescheduled_at,
    )
