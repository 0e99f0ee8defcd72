from __future__ import annotations

import threading
from datetime import datetime, timedelta

from booking_engine.domain.entities.notification import RetryQueueEntry


class RetryQueue:
    """
    Process-local list of failed notifications awaiting another attempt.
    Lost on restart; the next scan queues `failed` records of upcoming bookings again.
    """

    def __init__(self) -> None:
        self._entries: dict[int, RetryQueueEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, notification_id: int) -> bool:
        with self._lock:
            return notification_id in self._entries

    def add(self, notification_id: int, next_retry_at: datetime, attempts: int = 0) -> RetryQueueEntry:
        entry = RetryQueueEntry(notification_id=notification_id, attempts=attempts, next_retry_at=next_retry_at)
        with self._lock:
            self._entries[notification_id] = entry
        return entry

    def due(self, now: datetime) -> list[RetryQueueEntry]:
        with self._lock:
            return [entry for entry in self._entries.values() if entry.next_retry_at <= now]

    def postpone(self, notification_id: int, delay: timedelta, now: datetime) -> None:
        with self._lock:
            entry = self._entries.get(notification_id)
            if entry is not None:
                entry.next_retry_at = now + delay * entry.attempts

    def mark_attempt(self, notification_id: int) -> int:
        with self._lock:
            entry = self._entries.get(notification_id)
            if entry is None:
                return 0
            entry.attempts += 1
            return entry.attempts

    def remove(self, notification_id: int) -> None:
        with self._lock:
            self._entries.pop(notification_id, None)
