"""Date range helpers for period-based expense filtering."""

import calendar
import logging
from datetime import datetime, timedelta, timezone
from typing import NamedTuple, Optional

logger = logging.getLogger(__name__)

PERIOD_WEEK = 'week'
PERIOD_MONTH = 'month'
PERIOD_THREE_MONTHS = '3months'
PERIOD_CUSTOM = 'custom'

VALID_PERIODS = [PERIOD_WEEK, PERIOD_MONTH, PERIOD_THREE_MONTHS, PERIOD_CUSTOM]


class DateRange(NamedTuple):
    """Inclusive datetime bounds."""

    start_date: datetime
    end_date: datetime


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """Render a datetime as a fixed-width UTC ISO-8601 string."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec='microseconds')


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(value: datetime) -> datetime:
    # Millisecond precision, matching the 23:59:59.999 boundary clients send
    return value.replace(hour=23, minute=59, second=59, microsecond=999000)


def subtract_months(value: datetime, months: int) -> datetime:
    """
    Move a datetime back by whole calendar months.

    The day is clamped to the length of the target month, so March 31
    minus one month is the last day of February.
    """
    month_index = value.month - 1 - months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def parse_date(date_str: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO date or datetime string.

    Args:
        date_str: String such as ``2024-01-15`` or ``2024-01-15T10:00:00Z``

    Returns:
        Timezone-aware UTC datetime, or None if the string is not a date
    """
    if not date_str or not isinstance(date_str, str):
        return None

    text = date_str.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_date(value: datetime) -> str:
    """Format a datetime as YYYY-MM-DD."""
    return value.strftime('%Y-%m-%d')


def get_past_days_range(days: int, now: Optional[datetime] = None) -> DateRange:
    now = now or utc_now()
    return DateRange(start_of_day(now - timedelta(days=days)), end_of_day(now))


def get_past_months_range(months: int, now: Optional[datetime] = None) -> DateRange:
    now = now or utc_now()
    return DateRange(start_of_day(subtract_months(now, months)), end_of_day(now))


def get_custom_range(start_date: Optional[str], end_date: Optional[str]) -> Optional[DateRange]:
    """
    Build an explicit date range.

    Returns:
        The normalized range, or None if either bound is missing,
        unparseable, or the start falls after the end
    """
    start = parse_date(start_date)
    end = parse_date(end_date)

    if not start or not end:
        return None

    if start > end:
        return None

    return DateRange(start_of_day(start), end_of_day(end))


def get_date_range(
    period: Optional[str],
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    now: Optional[datetime] = None
) -> Optional[DateRange]:
    """
    Resolve a period token to concrete bounds.

    Args:
        period: One of week, month, 3months, custom
        start_date: Start date string for the custom period
        end_date: End date string for the custom period
        now: Reference time (default: current UTC time)

    Returns:
        DateRange, or None meaning no date filter
    """
    if period == PERIOD_WEEK:
        return get_past_days_range(7, now)
    if period == PERIOD_MONTH:
        return get_past_months_range(1, now)
    if period == PERIOD_THREE_MONTHS:
        return get_past_months_range(3, now)
    if period == PERIOD_CUSTOM:
        date_range = get_custom_range(start_date, end_date)
        if date_range is None:
            logger.warning(
                f"Custom period with invalid bounds ({start_date!r}, {end_date!r}); "
                "no date filter applied"
            )
        return date_range
    return None
