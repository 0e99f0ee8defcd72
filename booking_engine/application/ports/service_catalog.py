from __future__ import annotations

from abc import ABC, abstractmethod

from booking_engine.domain.entities.service_catalog import Service


class ServiceCatalogPort(ABC):
    @abstractmethod
    def get_service(self, service_id: int) -> Service | None:
        """Get service by id. Returns None if unknown."""
        raise NotImplementedError

    @abstractmethod
    def list_services(self) -> list[Service]:
        raise NotImplementedError
