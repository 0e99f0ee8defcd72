from __future__ import annotations

import re
from dataclasses import dataclass

MIN_DIGITS = 9
MAX_DIGITS = 15

COUNTRY_PATTERNS = {
    "+34": re.compile(r"^\+34[6-9]\d{8}$"),  # Spain: mobiles 6xx-9xx
    "+1": re.compile(r"^\+1[2-9]\d{2}[2-9]\d{6}$"),  # US/Canada
    "+57": re.compile(r"^\+57[13]\d{9}$"),  # Colombia
    "+41": re.compile(r"^\+41[1-9]\d{8}$"),  # Switzerland
    "+33": re.compile(r"^\+33[1-9]\d{8}$"),  # France
    "+351": re.compile(r"^\+351[1-9]\d{8}$"),  # Portugal
    "+44": re.compile(r"^\+44[1-9]\d{8,9}$"),  # United Kingdom
    "+52": re.compile(r"^\+52[1-9]\d{9}$"),  # Mexico
}

_STRIP_CHARS = re.compile(r"[\s\-().]")
_E164 = re.compile(r"^\+\d{%d,%d}$" % (MIN_DIGITS, MAX_DIGITS))


@dataclass(frozen=True)
class PhoneValidation:
    is_valid: bool
    formatted: str | None = None
    error: str | None = None


def clean_phone_number(raw: str) -> str:
    cleaned = _STRIP_CHARS.sub("", raw.strip())
    if cleaned.startswith("whatsapp:"):
        cleaned = cleaned[len("whatsapp:"):]
    if cleaned.startswith("00"):
        cleaned = "+" + cleaned[2:]
    return cleaned


def format_phone_number(raw: str, default_country_code: str = "+34") -> str:
    """
    Best-effort E.164 formatting.
    Numbers without a leading + get the default country code unless they already start with it.
    """
    cleaned = clean_phone_number(raw)
    if not cleaned:
        return cleaned

    code_digits = default_country_code.lstrip("+")
    if cleaned.startswith("+"):
        # +3434XXXXXXXXX: country code typed twice
        doubled = f"+{code_digits}{code_digits}"
        if cleaned.startswith(doubled) and len(cleaned) > len(default_country_code) + 9:
            cleaned = f"+{code_digits}" + cleaned[len(doubled):]
        return cleaned

    if cleaned.startswith(code_digits) and len(cleaned) > 9:
        return "+" + cleaned
    return default_country_code + cleaned


def validate_phone_number(raw: str | None, default_country_code: str = "+34") -> PhoneValidation:
    if not raw or not raw.strip():
        return PhoneValidation(is_valid=False, error="Phone number is required")

    formatted = format_phone_number(raw, default_country_code)
    if not _E164.match(formatted):
        return PhoneValidation(
            is_valid=False,
            formatted=formatted,
            error=f"Phone number must be + followed by {MIN_DIGITS}-{MAX_DIGITS} digits",
        )

    for code in sorted(COUNTRY_PATTERNS, key=len, reverse=True):
        if formatted.startswith(code):
            if not COUNTRY_PATTERNS[code].match(formatted):
                return PhoneValidation(
                    is_valid=False,
                    formatted=formatted,
                    error=f"Invalid number for country code {code}",
                )
            break

    return PhoneValidation(is_valid=True, formatted=formatted)
