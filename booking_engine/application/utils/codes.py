from __future__ import annotations

import secrets
import string
import time

BOOKING_NUMBER_PREFIX = "BK"
CONFIRMATION_CODE_LENGTH = 6
CONFIRMATION_ALPHABET = string.digits + string.ascii_uppercase


def generate_booking_number(now_ms: int | None = None) -> str:
    """BK + last 8 digits of the epoch-millisecond timestamp + 3-digit zero-padded random."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    timestamp = str(now_ms)[-8:].rjust(8, "0")
    suffix = f"{secrets.randbelow(1000):03d}"
    return f"{BOOKING_NUMBER_PREFIX}{timestamp}{suffix}"


def generate_confirmation_code() -> str:
    return "".join(secrets.choice(CONFIRMATION_ALPHABET) for _ in range(CONFIRMATION_CODE_LENGTH))


def is_booking_number(value: str) -> bool:
    return len(value) == 13 and value.startswith(BOOKING_NUMBER_PREFIX) and value[2:].isdigit()


def is_confirmation_code(value: str) -> bool:
    return len(value) == CONFIRMATION_CODE_LENGTH and all(ch in CONFIRMATION_ALPHABET for ch in value)
