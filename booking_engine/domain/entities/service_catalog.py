from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class Service:
    id: int
    name: str
    category: str
    duration_minutes: int
    price: Decimal
    currency: str = "EUR"
    description: str | None = None
    location: str | None = None
    requires_preparation: bool = False
    is_active: bool = True
