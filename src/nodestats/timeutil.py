from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

from nodestats.errors import MalformedDateError, MalformedTimeError

WEEKDAY_CRON_INDEX = {
    "sunday": 0,
    "sun": 0,
    "monday": 1,
    "mon": 1,
    "tuesday": 2,
    "tue": 2,
    "wednesday": 3,
    "wed": 3,
    "thursday": 4,
    "thu": 4,
    "friday": 5,
    "fri": 5,
    "saturday": 6,
    "sat": 6,
}


@dataclass(frozen=True)
class MonthDay:
    """A month/day pair, optionally pinned to a year (annual schedules)."""

    month: int
    day: int
    year: int | None = None

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise MalformedDateError(f"Month out of range: {self.month!r}")
        # Feb 29 must stay representable for yearless dates.
        max_day = last_day_of_month(self.year if self.year is not None else 2000, self.month)
        if not 1 <= self.day <= max_day:
            raise MalformedDateError(f"Day out of range for month {self.month}: {self.day!r}")

    def isoformat(self) -> str:
        if self.year is None:
            return f"{self.month:02d}-{self.day:02d}"
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"


def _parse_decimal(segment: str) -> int | None:
    if not segment or not segment.isdecimal():
        return None
    return int(segment, 10)


def parse_time_of_day(time: str) -> tuple[int, int]:
    """Parse a 24-hour ``HH:MM`` string into ``(hour, minute)``."""
    if not isinstance(time, str):
        raise MalformedTimeError(f"Time of day must be a string, got {type(time).__name__}")
    parts = time.split(":")
    if len(parts) != 2:
        raise MalformedTimeError(f"Time of day must be HH:MM: {time!r}")
    hour = _parse_decimal(parts[0])
    minute = _parse_decimal(parts[1])
    if hour is None or minute is None:
        raise MalformedTimeError(f"Time of day must be numeric: {time!r}")
    if not 0 <= hour <= 23 or not 0 <= minute <= 59:
        raise MalformedTimeError(f"Time of day out of range: {time!r}")
    return hour, minute


def format_time_of_day(hour: int, minute: int) -> str:
    return f"{hour:02d}:{minute:02d}"


def weekday_to_cron_index(name: str) -> int:
    """
    Map a weekday name to its cron index (Sunday=0).

    Unknown names map to 0; validate against ``WEEKDAY_CRON_INDEX`` first
    when that matters.
    """
    return WEEKDAY_CRON_INDEX.get(str(name).strip().lower(), 0)


def is_weekday_name(name: str) -> bool:
    return isinstance(name, str) and name.strip().lower() in WEEKDAY_CRON_INDEX


def cron_weekday(day: date) -> int:
    """Cron weekday index of a calendar date (Sunday=0)."""
    return (day.weekday() + 1) % 7


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def parse_month_day(text: str) -> MonthDay:
    """Parse ``MM-DD`` or ``YYYY-MM-DD`` into a MonthDay."""
    if not isinstance(text, str):
        raise MalformedDateError(f"Date must be a string, got {type(text).__name__}")
    parts = [_parse_decimal(part) for part in text.strip().split("-")]
    if any(part is None for part in parts):
        raise MalformedDateError(f"Date must be MM-DD or YYYY-MM-DD: {text!r}")
    if len(parts) == 2:
        return MonthDay(month=parts[0], day=parts[1])
    if len(parts) == 3:
        return MonthDay(month=parts[1], day=parts[2], year=parts[0])
    raise MalformedDateError(f"Date must be MM-DD or YYYY-MM-DD: {text!r}")


def parse_calendar_date(value: Any) -> date:
    """Coerce a date, datetime or ``YYYY-MM-DD`` string into a calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError as exc:
            raise MalformedDateError(f"Invalid calendar date: {value!r}") from exc
    raise MalformedDateError(f"Invalid calendar date: {value!r}")


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: Any) -> datetime | None:
    """
    Parse an ISO-8601 instant (``Z`` suffix allowed) as UTC; None if unparsable.

    A plain ``date`` is midnight UTC of that day.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        text = text[:-1] + "+00:00" if text.endswith("Z") else text
        try:
            return ensure_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def isoformat_utc(value: datetime) -> str:
    return ensure_utc(value).isoformat().replace("+00:00", "Z")


def local_today() -> date:
    """Today's date on the local wall clock."""
    return datetime.now().date()
