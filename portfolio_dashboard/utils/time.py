"""Date/time helpers shared by the valuation and optimization services."""

from __future__ import annotations

import calendar
from datetime import date, datetime, timezone
from typing import Optional, Union


def today_utc() -> date:
    """Current calendar day in UTC (the day key used for chart points)."""
    return datetime.now(timezone.utc).date()


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_day(value: Union[date, datetime, str]) -> date:
    """
    Normalize a market-data date to a calendar day.

    Accepts date/datetime objects and ISO-8601 strings, including the
    trailing "Z" form returned by the upstream API.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    return parse_timestamp(value).date()


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are treated as UTC."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def safe_parse_timestamp(value: object) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return parse_timestamp(value)
    except ValueError:
        return None


def shift_months(day: date, months: int) -> date:
    """Move `day` by a number of calendar months, clamping to month end."""
    month_index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))
