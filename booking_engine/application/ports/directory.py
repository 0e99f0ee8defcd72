from __future__ import annotations

from abc import ABC, abstractmethod

from booking_engine.domain.entities.client import Client, NewClient


class DirectoryPort(ABC):
    """Client master data. The engine only reads it, except for implicit creation by phone."""

    @abstractmethod
    def get_client(self, client_id: int) -> Client | None:
        raise NotImplementedError

    @abstractmethod
    def find_client_by_phone(self, phone: str) -> Client | None:
        raise NotImplementedError

    @abstractmethod
    def create_client(self, data: NewClient) -> Client:
        raise NotImplementedError
