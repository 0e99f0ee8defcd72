from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from booking_engine.application.exceptions import PersistenceError
from booking_engine.application.ports.notification_store import NotificationStorePort
from booking_engine.application.utils.intervals import utc_now
from booking_engine.domain.entities.notification import (
    REMINDER_TYPES,
    NotificationRecord,
    NotificationStatus,
    NotificationType,
)
from booking_engine.infrastructure.db.models import NotificationRow


class SqlNotificationStore(NotificationStorePort):
    def __init__(self, session_factory: sessionmaker, clock: Callable[[], datetime] = utc_now) -> None:
        self._session_factory = session_factory
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(str(e)) from e
        finally:
            session.close()

    def find_existing(
        self,
        booking_id: int,
        client_id: int,
        notification_type: NotificationType,
    ) -> NotificationRecord | None:
        stmt = select(NotificationRow).where(
            NotificationRow.booking_id == booking_id,
            NotificationRow.client_id == client_id,
            NotificationRow.notification_type == notification_type.value,
        )
        with self._session_scope() as session:
            row = session.execute(stmt).scalar_one_or_none()
            return _to_entity(row) if row else None

    def create(
        self,
        booking_id: int,
        client_id: int,
        notification_type: NotificationType,
        scheduled_for: datetime,
        channel: str,
        recipient_phone: str | None,
    ) -> NotificationRecord | None:
        session = self._session_factory()
        try:
            row = NotificationRow(
                booking_id=booking_id,
                client_id=client_id,
                notification_type=notification_type.value,
                scheduled_for=scheduled_for,
                channel=channel,
                recipient_phone=recipient_phone,
                status=NotificationStatus.PENDING.value,
                attempts=0,
                created_at=self._clock(),
            )
            session.add(row)
            session.commit()
            return _to_entity(row)
        except IntegrityError:
            # Dedup key already taken by a concurrent scan.
            session.rollback()
            self._logger.info(
                "Notification already recorded",
                extra={"booking_id": booking_id, "notification_type": notification_type.value},
            )
            return None
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(str(e)) from e
        finally:
            session.close()

    def get(self, notification_id: int) -> NotificationRecord | None:
        with self._session_scope() as session:
            row = session.get(NotificationRow, notification_id)
            return _to_entity(row) if row else None

    def update_status(
        self,
        notification_id: int,
        status: NotificationStatus,
        error: str | None = None,
        sent_at: datetime | None = None,
    ) -> None:
        values: dict = {"status": status.value, "last_error": error}
        if sent_at is not None:
            values["sent_at"] = sent_at
        if status != NotificationStatus.PENDING:
            values["attempts"] = NotificationRow.attempts + 1
        stmt = (
            update(NotificationRow)
            .where(NotificationRow.id == notification_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with self._session_scope() as session:
            session.execute(stmt)

    def reset_reminders(self, booking_id: int) -> int:
        stmt = delete(NotificationRow).where(
            NotificationRow.booking_id == booking_id,
            NotificationRow.notification_type.in_([t.value for t in REMINDER_TYPES]),
        )
        with self._session_scope() as session:
            return session.execute(stmt).rowcount or 0

    def delete_older_than(self, cutoff: datetime) -> int:
        stmt = delete(NotificationRow).where(
            NotificationRow.created_at < cutoff,
            NotificationRow.status != NotificationStatus.PENDING.value,
        )
        with self._session_scope() as session:
            return session.execute(stmt).rowcount or 0


def _to_entity(row: NotificationRow) -> NotificationRecord:
    return NotificationRecord(
        id=row.id,
        booking_id=row.booking_id,
        client_id=row.client_id,
        notification_type=NotificationType(row.notification_type),
        scheduled_for=row.scheduled_for,
        status=NotificationStatus(row.status),
        channel=row.channel,
        recipient_phone=row.recipient_phone,
        last_error=row.last_error,
        attempts=row.attempts,
        created_at=row.created_at,
        sent_at=row.sent_at,
    )
