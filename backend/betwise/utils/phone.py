"""Kenyan mobile number handling for gateway billing details."""
from __future__ import annotations

import re

from betwise.errors import ValidationError

_KE_MOBILE = re.compile(r"^2547\d{8}$")


def format_phone_number(raw: str) -> str:
    """Normalise 0700.., 700.., +254700.. and 254700.. to 254XXXXXXXXX."""
    cleaned = re.sub(r"\D", "", raw or "")
    if cleaned.startswith("0"):
        return "254" + cleaned[1:]
    if cleaned.startswith("254"):
        return cleaned
    return "254" + cleaned


def phone_number_error(raw: str) -> str | None:
    if not (raw or "").strip():
        return "Phone number is required"
    formatted = format_phone_number(raw)
    if not re.match(r"^254\d{9}$", formatted):
        return "Phone number must be 12 digits (including country code)"
    if not _KE_MOBILE.match(formatted):
        return "Phone number must be a valid Kenyan mobile number"
    return None


def normalize_phone_number(raw: str) -> str:
    err = phone_number_error(raw)
    if err:
        raise ValidationError(err, meta={"field": "phone"})
    return format_phone_number(raw)
