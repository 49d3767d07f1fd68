"""
Phone number normalization to the M-Pesa MSISDN form (254XXXXXXXXX).
Accepts 254XXXXXXXXX, 0XXXXXXXXX and XXXXXXXXX after stripping separators and a
leading plus; the 9-digit subscriber number must start with 1 or 7.
"""
from __future__ import annotations

import re

from exceptions import InvalidPhoneNumber

COUNTRY_CODE = "254"
TRUNK_PREFIX = "0"

_SEPARATORS = re.compile(r"[\s\-.()]")
_SUBSCRIBER = re.compile(r"^[17]\d{8}$")


def normalize_phone_number(phone: str | None) -> str:
    """Return the canonical 254-prefixed form or raise InvalidPhoneNumber."""
    if not phone or not phone.strip():
        raise InvalidPhoneNumber("Phone number is required")

    cleaned = _SEPARATORS.sub("", phone.strip())
    if cleaned.startswith("+"):
        cleaned = cleaned[1:]

    if cleaned.startswith(COUNTRY_CODE) and len(cleaned) == len(COUNTRY_CODE) + 9:
        subscriber = cleaned[len(COUNTRY_CODE):]
    elif cleaned.startswith(TRUNK_PREFIX):
        subscriber = cleaned[len(TRUNK_PREFIX):]
    else:
        subscriber = cleaned

    if not _SUBSCRIBER.match(subscriber):
        raise InvalidPhoneNumber(
            f"Invalid phone number {phone!r}. Use the format 07XXXXXXXX or 2547XXXXXXXX."
        )
    return COUNTRY_CODE + subscriber


def mask_phone_number(msisdn: str) -> str:
    """Hide the middle digits for logs: 254712345678 -> 2547****5678."""
    if len(msisdn) < 8:
        return "****"
    return f"{msisdn[:4]}****{msisdn[-4:]}"
