"""Turkish-locale rendering helpers shared by the dataset accessor.

Currency is always shown as whole Turkish lira (``₺128.000``) and dates as
``DD.MM.YYYY``, matching what business owners expect to read on WhatsApp.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal

# Turkish letters folded to ASCII so "Eylül", "EYLÜL" and "eylul" all match.
_ASCII_FOLD = str.maketrans("çğıöşü", "cgiosu")


def format_currency(amount: float | int) -> str:
    """Render *amount* as integer Turkish lira, e.g. ``₺1.234.568``."""
    rounded = int(Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    digits = f"{abs(rounded):,}".replace(",", ".")
    sign = "-" if rounded < 0 else ""
    return f"{sign}₺{digits}"


def parse_date(value: str | date) -> date:
    """Parse an ISO date or datetime string (or pass a ``date`` through)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value[:10])


def format_date(value: str | date) -> str:
    """Render a date as ``DD.MM.YYYY``."""
    return parse_date(value).strftime("%d.%m.%Y")


def percent_change(old: float, new: float) -> float | None:
    """Return ``(new - old) / old * 100`` rounded to two decimals.

    ``None`` when *old* is zero, since the change is undefined.
    """
    if not old:
        return None
    return round((new - old) / old * 100, 2)


def format_percent(value: float | None) -> str:
    if value is None:
        return "—"
    return f"%{value:.2f}"


def trend_indicator(change: float | None) -> str:
    """Pick the direction emoji strictly by the sign of *change*."""
    if change is None or change == 0:
        return "➡️"
    return "📈" if change > 0 else "📉"


def normalize_key(text: str) -> str:
    """Turkish-aware lowercase folded to ASCII, for lookups and searches."""
    lowered = text.strip().replace("İ", "i").replace("I", "ı").lower()
    return lowered.translate(_ASCII_FOLD)
