from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from booking_engine.application.use_cases.booking_lifecycle import BookingLifecycleManager
from booking_engine.domain.entities.client import NewClient
from booking_engine.infrastructure.calendar.mock_calendar import MockCalendar
from booking_engine.infrastructure.db.booking_store import SqlBookingStore
from booking_engine.infrastructure.db.database import create_db_engine, create_session_factory, init_db
from booking_engine.infrastructure.db.directory import SqlClientDirectory, SqlServiceCatalog
from booking_engine.infrastructure.db.notification_store import SqlNotificationStore


class FakeClock:
    """Callable clock the tests move forward by hand."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    # Monday 2026-03-02 08:00 UTC
    return FakeClock(datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc))


@pytest.fixture
def session_factory(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'bookings.db'}")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def booking_store(session_factory, clock) -> SqlBookingStore:
    return SqlBookingStore(session_factory, clock=clock)


@pytest.fixture
def notification_store(session_factory, clock) -> SqlNotificationStore:
    return SqlNotificationStore(session_factory, clock=clock)


@pytest.fixture
def directory(session_factory) -> SqlClientDirectory:
    return SqlClientDirectory(session_factory)


@pytest.fixture
def catalog(session_factory) -> SqlServiceCatalog:
    return SqlServiceCatalog(session_factory)


@pytest.fixture
def haircut(catalog):
    return catalog.add_service("Corte de pelo", duration_minutes=30, price=Decimal("25.00"), category="corte")


@pytest.fixture
def coloring(catalog):
    return catalog.add_service("Coloración completa", duration_minutes=90, price=Decimal("60.00"), category="coloracion")


@pytest.fixture
def client(directory):
    return directory.create_client(NewClient(first_name="Ana", last_name="García", phone="+34612345678"))


@pytest.fixture
def calendar() -> MockCalendar:
    return MockCalendar()


@pytest.fixture
def manager(booking_store, directory, catalog, calendar, notification_store, clock) -> BookingLifecycleManager:
    return BookingLifecycleManager(
        store=booking_store,
        directory=directory,
        catalog=catalog,
        calendar=calendar,
        notifications=notification_store,
        clock=clock,
    )
