from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Client:
    id: int
    first_name: str
    phone: str | None = None
    last_name: str = ""
    email: str | None = None
    preferred_channel: str = "whatsapp"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class NewClient:
    first_name: str
    phone: str
    last_name: str = ""
    email: str | None = None
    registration_complete: bool = False
