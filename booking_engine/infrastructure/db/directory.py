from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from booking_engine.application.exceptions import NotFoundError, PersistenceError
from booking_engine.application.ports.directory import DirectoryPort
from booking_engine.application.ports.service_catalog import ServiceCatalogPort
from booking_engine.domain.entities.client import Client, NewClient
from booking_engine.domain.entities.service_catalog import Service
from booking_engine.infrastructure.db.models import ClientRow, ServiceRow


@contextmanager
def _session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError(str(e)) from e
    finally:
        session.close()


class SqlClientDirectory(DirectoryPort):
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def get_client(self, client_id: int) -> Client | None:
        with _session_scope(self._session_factory) as session:
            row = session.get(ClientRow, client_id)
            return _client_entity(row) if row else None

    def find_client_by_phone(self, phone: str) -> Client | None:
        with _session_scope(self._session_factory) as session:
            row = session.execute(select(ClientRow).where(ClientRow.phone == phone)).scalar_one_or_none()
            return _client_entity(row) if row else None

    def create_client(self, data: NewClient) -> Client:
        with _session_scope(self._session_factory) as session:
            row = ClientRow(
                first_name=data.first_name,
                last_name=data.last_name,
                phone=data.phone,
                email=data.email,
                registration_complete=data.registration_complete,
            )
            session.add(row)
            session.flush()
            return _client_entity(row)


class SqlServiceCatalog(ServiceCatalogPort):
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def get_service(self, service_id: int) -> Service | None:
        with _session_scope(self._session_factory) as session:
            row = session.get(ServiceRow, service_id)
            return _service_entity(row) if row else None

    def list_services(self) -> list[Service]:
        with _session_scope(self._session_factory) as session:
            rows = session.execute(select(ServiceRow).order_by(ServiceRow.id)).scalars().all()
            return [_service_entity(row) for row in rows]

    def add_service(
        self,
        name: str,
        duration_minutes: int,
        price: Decimal,
        category: str = "",
        currency: str = "EUR",
        requires_preparation: bool = False,
        description: str | None = None,
    ) -> Service:
        with _session_scope(self._session_factory) as session:
            row = ServiceRow(
                name=name,
                category=category,
                duration_minutes=duration_minutes,
                price=price,
                currency=currency,
                requires_preparation=requires_preparation,
                description=description,
                is_active=True,
            )
            session.add(row)
            session.flush()
            return _service_entity(row)

    def update_price(self, service_id: int, price: Decimal) -> Service:
        with _session_scope(self._session_factory) as session:
            row = session.get(ServiceRow, service_id)
            if row is None:
                raise NotFoundError(f"Service {service_id} not found")
            row.price = price
            session.flush()
            return _service_entity(row)


def _client_entity(row: ClientRow) -> Client:
    return Client(
        id=row.id,
        first_name=row.first_name,
        last_name=row.last_name or "",
        phone=row.phone,
        email=row.email,
        preferred_channel=row.preferred_channel or "whatsapp",
    )


def _service_entity(row: ServiceRow) -> Service:
    return Service(
        id=row.id,
        name=row.name,
        category=row.category or "",
        duration_minutes=row.duration_minutes,
        price=Decimal(str(row.price)),
        currency=row.currency,
        description=row.description,
        location=row.location,
        requires_preparation=bool(row.requires_preparation),
        is_active=bool(row.is_active),
    )
