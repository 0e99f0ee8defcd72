from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from booking_engine.application.ports.notification_store import NotificationStorePort
from booking_engine.application.utils.intervals import utc_now


class NotificationCleanup:
    def __init__(
        self,
        notifications: NotificationStorePort,
        retention_days: int = 30,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._notifications = notifications
        self._retention = timedelta(days=retention_days)
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    def purge(self, now: datetime | None = None) -> int:
        """Delete notification records created before the retention cutoff."""
        cutoff = (now or self._clock()) - self._retention
        deleted = self._notifications.delete_older_than(cutoff)
        self._logger.info("Old notifications purged", extra={"deleted": deleted, "cutoff": cutoff.isoformat()})
        return deleted
