from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from nodestats import MalformedDateError, MalformedTimeError, parse_time_of_day, weekday_to_cron_index
from nodestats.timeutil import (
    MonthDay,
    cron_weekday,
    format_time_of_day,
    last_day_of_month,
    parse_calendar_date,
    parse_datetime,
    parse_month_day,
)


@pytest.mark.parametrize("hour", range(24))
def test_parse_time_of_day_round_trips(hour: int) -> None:
    for minute in (0, 1, 30, 59):
        assert parse_time_of_day(format_time_of_day(hour, minute)) == (hour, minute)


@pytest.mark.parametrize("text", ["24:00", "12:60", "12", "12:00:00", "ab:cd", "-1:00", " 9:00", "", "12:"])
def test_parse_time_of_day_rejects_malformed(text: str) -> None:
    with pytest.raises(MalformedTimeError):
        parse_time_of_day(text)


def test_parse_time_of_day_rejects_non_strings() -> None:
    with pytest.raises(MalformedTimeError):
        parse_time_of_day(900)  # type: ignore[arg-type]


def test_malformed_time_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        parse_time_of_day("noon")


@pytest.mark.parametrize(
    ("name", "index"),
    [("Sunday", 0), ("sun", 0), ("MON", 1), ("tuesday", 2), ("wed", 3), ("Thu", 4), ("friday", 5), ("sat", 6)],
)
def test_weekday_to_cron_index(name: str, index: int) -> None:
    assert weekday_to_cron_index(name) == index


def test_unknown_weekday_falls_back_to_sunday() -> None:
    assert weekday_to_cron_index("someday") == 0
    assert weekday_to_cron_index("") == 0


def test_cron_weekday_of_calendar_dates() -> None:
    assert cron_weekday(date(2026, 2, 22)) == 0
    assert cron_weekday(date(2026, 2, 23)) == 1
    assert cron_weekday(date(2026, 2, 28)) == 6


def test_last_day_of_month() -> None:
    assert last_day_of_month(2026, 2) == 28
    assert last_day_of_month(2028, 2) == 29
    assert last_day_of_month(2026, 4) == 30
    assert last_day_of_month(2026, 12) == 31


def test_parse_month_day() -> None:
    assert parse_month_day("12-31") == MonthDay(month=12, day=31)
    assert parse_month_day("2025-07-04") == MonthDay(month=7, day=4, year=2025)
    assert parse_month_day("02-29").isoformat() == "02-29"
    for bad in ("13-01", "2025-02-29", "12/31", "1-2-3-4", "", "xx-01"):
        with pytest.raises(MalformedDateError):
            parse_month_day(bad)


def test_parse_calendar_date() -> None:
    assert parse_calendar_date("2026-02-20") == date(2026, 2, 20)
    assert parse_calendar_date(datetime(2026, 2, 20, 23, 59)) == date(2026, 2, 20)
    with pytest.raises(MalformedDateError):
        parse_calendar_date("20/02/2026")
    with pytest.raises(MalformedDateError):
        parse_calendar_date(20260220)


def test_parse_datetime_normalises_to_utc() -> None:
    assert parse_datetime("2026-02-20T16:00:00Z") == datetime(2026, 2, 20, 16, 0, tzinfo=timezone.utc)
    assert parse_datetime("2026-02-20T18:00:00+02:00") == datetime(2026, 2, 20, 16, 0, tzinfo=timezone.utc)
    assert parse_datetime("garbage") is None
    assert parse_datetime(None) is None


def test_parse_datetime_accepts_plain_dates() -> None:
    assert parse_datetime(date(2026, 2, 20)) == datetime(2026, 2, 20, tzinfo=timezone.utc)
