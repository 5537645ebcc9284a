"""Month-key (YYYY-MM) helpers: range expansion and display labels."""

from __future__ import annotations

import re
from datetime import date, datetime

MONTH_KEY_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"
_MONTH_KEY_RE = re.compile(MONTH_KEY_PATTERN)


def is_month_key(value: str) -> bool:
    """Return True if *value* is a zero-padded ``YYYY-MM`` key."""
    return bool(_MONTH_KEY_RE.match(value or ""))


def current_month(today: date | None = None) -> str:
    today = today or date.today()
    return f"{today.year:04d}-{today.month:02d}"


def months_between(start: str, end: str) -> list[str]:
    """
    Every month key from *start* to *end* inclusive, ascending.

    ``start > end`` yields an empty list rather than an error; a bound that
    is not a month key raises ValueError.
    """
    for bound in (start, end):
        if not is_month_key(bound):
            raise ValueError(f"Not a YYYY-MM month: {bound!r}")
    year, month = (int(p) for p in start.split("-"))
    end_year, end_month = (int(p) for p in end.split("-"))

    months: list[str] = []
    while (year, month) <= (end_year, end_month):
        months.append(f"{year:04d}-{month:02d}")
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return months


def format_month(month: str) -> str:
    """'2024-01' -> 'January 2024'. Unparseable input is returned as-is."""
    try:
        return datetime.strptime(month, "%Y-%m").strftime("%B %Y")
    except (TypeError, ValueError):
        return month
