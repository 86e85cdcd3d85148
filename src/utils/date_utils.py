"""Date utility functions."""

import logging
from datetime import date, datetime, timezone
from typing import Optional, Union

logger = logging.getLogger(__name__)

DateLike = Union[str, date, datetime]


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.replace(tzinfo=None)


def parse_timestamp(value: DateLike) -> datetime:
    """
    Parse an ISO timestamp or date into a naive datetime.

    Journal rows carry either full ISO timestamps ("2025-11-01T14:30:00Z")
    or plain dates ("2025-11-01"). Aware values are converted to UTC before
    the timezone is dropped, so events recorded with different offsets sort
    on one naive UTC timeline. Naive values are taken as already UTC.

    Args:
        value: ISO string, date or datetime

    Returns:
        Naive datetime

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        return _to_naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid timestamp: {value!r}")

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return _to_naive_utc(datetime.fromisoformat(text))


def to_ymd(value: DateLike) -> str:
    """
    Normalize a date-like value to a YYYY-MM-DD string.

    The calendar date is taken as written, without shifting to UTC.

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1]
        return datetime.fromisoformat(text).date().isoformat()
    return parse_timestamp(value).date().isoformat()


def days_until(target: DateLike, as_of: Optional[date] = None) -> Optional[int]:
    """
    Calculate whole calendar days from as_of to target.

    Today to today is 0, today to tomorrow is 1, and dates in the past are
    negative. Unlike a pricing DTE, the result is not clamped, so alerting
    can tell "expires today" apart from "already expired".

    Args:
        target: Target date (YYYY-MM-DD string, date or datetime)
        as_of: Reference date (defaults to today)

    Returns:
        Signed number of calendar days, or None if target cannot be parsed
    """
    reference = as_of or date.today()
    if isinstance(reference, datetime):
        reference = reference.date()
    try:
        target_date = date.fromisoformat(to_ymd(target))
    except (ValueError, TypeError) as e:
        logger.warning(f"Could not parse date '{target}': {e}")
        return None
    return (target_date - reference).days
