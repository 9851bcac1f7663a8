"""Datetime normalization for ledger timestamps.

Stored timestamps are naive local time, matching ``datetime.now()``.
"""

from datetime import date, datetime, time

from ..errors import InvalidArgumentError


def to_naive_local(value: datetime) -> datetime:
    """Convert an aware datetime to naive local time; naive values pass through."""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def as_due_datetime(value: date | datetime | str) -> datetime:
    """
    Interpret a due date or reference time.

    A bare date, or an ISO date string such as ``"2024-03-20"``, means the
    end of that day. ISO datetime strings keep their time of day.

    Raises:
        InvalidArgumentError: If the value is not a date, datetime or ISO string
    """
    if isinstance(value, str):
        value = _parse_iso(value)
    if isinstance(value, datetime):
        return to_naive_local(value)
    if isinstance(value, date):
        return datetime.combine(value, time(23, 59, 59))
    raise InvalidArgumentError(f"Invalid date: {value!r}")


def _parse_iso(text: str) -> date | datetime:
    text = text.strip()
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        return datetime.fromisoformat(text)
    except ValueError as e:
        raise InvalidArgumentError(f"Invalid date: {text!r}") from e
