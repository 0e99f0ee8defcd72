from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from booking_engine.application.ports.service_catalog import ServiceCatalogPort
from booking_engine.domain.entities.service_catalog import Service


class ServiceCache(ServiceCatalogPort):
    """
    Read-through cache over a service catalog.
    The whole catalog is reloaded by refresh(); entries older than ttl_seconds trigger a reload on get().
    """

    def __init__(
        self,
        source: ServiceCatalogPort,
        ttl_seconds: float = 300.0,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._source = source
        self._ttl_seconds = ttl_seconds
        self._monotonic = monotonic
        self._services: dict[int, Service] = {}
        self._loaded_at: float | None = None
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    def refresh(self) -> int:
        services = self._source.list_services()
        with self._lock:
            self._services = {service.id: service for service in services}
            self._loaded_at = self._monotonic()
        self._logger.info("Service cache refreshed", extra={"count": len(services)})
        return len(services)

    def is_stale(self) -> bool:
        with self._lock:
            if self._loaded_at is None:
                return True
            return self._monotonic() - self._loaded_at >= self._ttl_seconds

    def get(self, service_id: int) -> Service | None:
        if self.is_stale():
            self.refresh()
        with self._lock:
            service = self._services.get(service_id)
        if service is None:
            # Services added since the last refresh
            service = self._source.get_service(service_id)
            if service is not None:
                with self._lock:
                    self._services[service.id] = service
        return service

    def get_service(self, service_id: int) -> Service | None:
        return self.get(service_id)

    def list_services(self) -> list[Service]:
        if self.is_stale():
            self.refresh()
        with self._lock:
            return list(self._services.values())
