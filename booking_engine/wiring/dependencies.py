from functools import lru_cache
import logging
from datetime import timedelta
from zoneinfo import ZoneInfo

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from booking_engine.core.config import settings
from booking_engine.application.ports.calendar import CalendarPort
from booking_engine.application.ports.messaging import MessagingPort
from booking_engine.application.ports.service_catalog import ServiceCatalogPort
from booking_engine.application.use_cases.availability import AvailabilityChecker
from booking_engine.application.use_cases.booking import BookingUseCase
from booking_engine.application.use_cases.booking_lifecycle import BookingLifecycleManager
from booking_engine.application.use_cases.cleanup import NotificationCleanup
from booking_engine.application.use_cases.notification_scheduler import NotificationScheduler
from booking_engine.infrastructure.calendar.cal_com_client import CalComCalendar
from booking_engine.infrastructure.calendar.mock_calendar import MockCalendar
from booking_engine.infrastructure.catalog.service_cache import ServiceCache
from booking_engine.infrastructure.db.booking_store import SqlBookingStore
from booking_engine.infrastructure.db.database import create_db_engine, create_session_factory, init_db
from booking_engine.infrastructure.db.directory import SqlClientDirectory, SqlServiceCatalog
from booking_engine.infrastructure.db.notification_store import SqlNotificationStore
from booking_engine.infrastructure.messaging.mock_messenger import MockMessenger
from booking_engine.infrastructure.messaging.twilio_client import TwilioWhatsAppClient
from booking_engine.infrastructure.scheduling.periodic import PeriodicScheduler, PeriodicTask


def _is_local() -> bool:
    return settings.ENV.lower() in {"dev", "local"}


@lru_cache
def get_engine() -> Engine:
    engine = create_db_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
    init_db(engine)
    return engine


@lru_cache
def get_session_factory() -> sessionmaker:
    return create_session_factory(get_engine())


@lru_cache
def get_booking_store() -> SqlBookingStore:
    return SqlBookingStore(get_session_factory())


@lru_cache
def get_notification_store() -> SqlNotificationStore:
    return SqlNotificationStore(get_session_factory())


@lru_cache
def get_directory() -> SqlClientDirectory:
    return SqlClientDirectory(get_session_factory())


@lru_cache
def get_service_catalog() -> ServiceCatalogPort:
    return ServiceCache(SqlServiceCatalog(get_session_factory()), ttl_seconds=settings.SERVICE_CACHE_TTL_SECONDS)


@lru_cache
def get_calendar() -> CalendarPort:
    if not settings.CAL_COM_API_KEY or _is_local():
        return MockCalendar()
    return CalComCalendar()


@lru_cache
def get_messenger() -> MessagingPort:
    logger = logging.getLogger(__name__)
    credentials = (settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN, settings.TWILIO_WHATSAPP_NUMBER)
    if not all(credentials):
        if _is_local():
            logger.info("Using MockMessenger (Twilio credentials missing, ENV=dev/local)")
            return MockMessenger()
        raise ValueError("TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN and TWILIO_WHATSAPP_NUMBER are required.")

    logger.info("Using Twilio WhatsApp messenger")
    return TwilioWhatsAppClient(
        account_sid=settings.TWILIO_ACCOUNT_SID,
        auth_token=settings.TWILIO_AUTH_TOKEN,
        from_number=settings.TWILIO_WHATSAPP_NUMBER,
        base_url=settings.TWILIO_BASE_URL,
        timeout=settings.COLLABORATOR_TIMEOUT_SECONDS,
    )


@lru_cache
def get_lifecycle_manager() -> BookingLifecycleManager:
    return BookingLifecycleManager(
        store=get_booking_store(),
        directory=get_directory(),
        catalog=get_service_catalog(),
        calendar=get_calendar(),
        notifications=get_notification_store(),
        default_resource=settings.DEFAULT_RESOURCE,
        default_country_code=settings.DEFAULT_COUNTRY_CODE,
        check_external_calendar=settings.CALENDAR_AVAILABILITY_CHECK,
    )


@lru_cache
def get_notification_scheduler() -> NotificationScheduler:
    return NotificationScheduler(
        bookings=get_booking_store(),
        notifications=get_notification_store(),
        directory=get_directory(),
        catalog=get_service_catalog(),
        messenger=get_messenger(),
        timezone=ZoneInfo(settings.BUSINESS_TIMEZONE),
        business_name=settings.BUSINESS_NAME,
        max_retries=settings.MAX_RETRIES,
        retry_delay=timedelta(seconds=settings.RETRY_DELAY_SECONDS),
        preparation_categories=settings.PREPARATION_CATEGORIES,
        default_country_code=settings.DEFAULT_COUNTRY_CODE,
    )


@lru_cache
def get_booking_use_case() -> BookingUseCase:
    return BookingUseCase(
        manager=get_lifecycle_manager(),
        scheduler=get_notification_scheduler(),
        availability=AvailabilityChecker(get_booking_store(), settings.DEFAULT_RESOURCE),
        catalog=get_service_catalog(),
        timezone=ZoneInfo(settings.BUSINESS_TIMEZONE),
    )


@lru_cache
def get_periodic_scheduler() -> PeriodicScheduler:
    notifications = get_notification_scheduler()
    cleanup = NotificationCleanup(get_notification_store(), retention_days=settings.NOTIFICATION_RETENTION_DAYS)
    runner = PeriodicScheduler(
        [
            PeriodicTask("scan_upcoming", settings.SCAN_INTERVAL_SECONDS, notifications.scan_upcoming),
            PeriodicTask("drain_retry_queue", settings.RETRY_DRAIN_INTERVAL_SECONDS, notifications.drain_retry_queue),
            PeriodicTask("cleanup", settings.CLEANUP_INTERVAL_SECONDS, cleanup.purge),
            PeriodicTask(
                "calendar_sync", settings.CALENDAR_SYNC_INTERVAL_SECONDS, get_lifecycle_manager().sync_calendar
            ),
        ]
    )
    notifications.attach(runner)
    return runner
