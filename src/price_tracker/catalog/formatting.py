from __future__ import annotations

from datetime import datetime
from typing import Optional

from .models import Location


# Currencies whose symbol is written after the amount.
_SUFFIX_SYMBOLS = {"UAH": "₴", "PLN": "zł"}
_PREFIX_SYMBOLS = {"USD": "$"}


def format_price(price: Optional[float], currency: str) -> str:
    if price is None:
        return "Price not available"
    amount = f"{price:.2f}"
    code = (currency or "").upper()
    if code in _SUFFIX_SYMBOLS:
        return f"{amount} {_SUFFIX_SYMBOLS[code]}"
    return f"{_PREFIX_SYMBOLS.get(code, code)}{amount}"


def format_date(value: Optional[str]) -> str:
    """"2025-01-05T10:00:00.000Z" -> "Jan 5, 2025"; unparsable input is returned as-is."""
    if not value:
        return ""
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return value
    return f"{dt:%b} {dt.day}, {dt.year}"


def location_label(location: Optional[Location]) -> str:
    if location is None:
        return "Unknown location"
    return location.name or location.address or "Unknown location"
