"""
Display formatting for amounts and dates.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from escrow.fees import round2


CURRENCIES: dict[str, dict[str, str]] = {
    "USD": {"symbol": "$", "name": "US Dollar"},
    "EUR": {"symbol": "€", "name": "Euro"},
    "GBP": {"symbol": "£", "name": "British Pound"},
    "CNY": {"symbol": "CN¥", "name": "Chinese Yuan"},
    "JPY": {"symbol": "¥", "name": "Japanese Yen"},
    "AUD": {"symbol": "A$", "name": "Australian Dollar"},
    "CAD": {"symbol": "CA$", "name": "Canadian Dollar"},
    "INR": {"symbol": "₹", "name": "Indian Rupee"},
    "NGN": {"symbol": "₦", "name": "Nigerian Naira"},
    "ZAR": {"symbol": "ZAR ", "name": "South African Rand"},
    "KES": {"symbol": "KES ", "name": "Kenyan Shilling"},
    "GHS": {"symbol": "GH₵", "name": "Ghanaian Cedi"},
}

SUPPORTED_CURRENCIES = tuple(CURRENCIES)


def currency_symbol(currency: str) -> str:
    entry = CURRENCIES.get(currency.upper())
    return entry["symbol"] if entry else f"{currency.upper()} "


def format_currency(amount: Any, currency: str = "USD") -> str:
    """``1234.5, "USD"`` -> ``"$1,234.50"``; negatives put the sign first."""
    value = round2(amount)
    sign = "-" if value < 0 else ""
    return f"{sign}{currency_symbol(currency)}{abs(value):,.2f}"


def _as_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def format_date(value: Any) -> str:
    """``2026-01-05T10:00:00Z`` -> ``"Jan 5, 2026"``."""
    dt = _as_datetime(value)
    return f"{dt.strftime('%b')} {dt.day}, {dt.year}"


def format_relative_time(value: Any, now: datetime | None = None) -> str:
    then = _as_datetime(value)
    if then.tzinfo is None:
        then = then.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    seconds = int((now - then).total_seconds())
    if seconds < 60:
        return "Just now"
    if seconds < 3600:
        return f"{seconds // 60} minutes ago"
    if seconds < 86400:
        return f"{seconds // 3600} hours ago"
    if seconds < 604800:
        return f"{seconds // 86400} days ago"
    return format_date(then)


def format_percentage(rate: Decimal) -> str:
    """``Decimal("0.035")`` -> ``"3.50%"``."""
    return f"{rate * 100:.2f}%"
