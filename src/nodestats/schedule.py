from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, ClassVar, Iterator, Literal, Mapping

from nodestats.errors import MalformedDateError, MalformedTimeError
from nodestats.timeutil import (
    MonthDay,
    cron_weekday,
    ensure_utc,
    is_weekday_name,
    last_day_of_month,
    parse_month_day,
    parse_time_of_day,
    weekday_to_cron_index,
)

logger = logging.getLogger(__name__)

DAILY = "daily"
WEEKLY = "weekly"
MONTHLY = "monthly"
ANNUAL = "annual"

# Cron has no "last day of month" token; day 28 is used instead.
LAST_DAY_CRON_APPROXIMATION = 28

CRON_FIELD_RANGES = (
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day", 1, 31),
    ("month", 1, 12),
    ("weekday", 0, 6),
)

DEFAULT_SCHEDULE_CONFIG: dict[str, Any] = {
    "schedules": {
        DAILY: {
            "enabled": True,
            "time": "16:00",
            "days": ["mon", "tue", "wed", "thu", "fri", "sat", "sun"],
            "channels": {"nostr": {"enabled": True}, "telegram": {"enabled": True}},
        },
        WEEKLY: {
            "enabled": False,
            "time": "18:00",
            "dayOfWeek": "sunday",
            "channels": {"nostr": {"enabled": True}, "telegram": {"enabled": True}},
        },
        MONTHLY: {
            "enabled": False,
            "time": "19:00",
            "dayOfMonth": "1",
            "channels": {"nostr": {"enabled": True}, "telegram": {"enabled": True}},
        },
        ANNUAL: {
            "enabled": False,
            "time": "20:00",
            "date": "12-31",
            "channels": {"nostr": {"enabled": True}, "telegram": {"enabled": True}},
        },
    }
}


@dataclass(frozen=True)
class ChannelSetting:
    enabled: bool = True

    @classmethod
    def from_dict(cls, data: Any) -> ChannelSetting:
        if isinstance(data, Mapping):
            return cls(enabled=bool(data.get("enabled", False)))
        return cls(enabled=bool(data))


@dataclass(frozen=True)
class CategorySchedule(ABC):
    """Fields shared by every schedule kind. Subclasses define the day rule."""

    kind: ClassVar[str] = ""

    enabled: bool = False
    time: str = "00:00"
    channels: Mapping[str, ChannelSetting] = field(default_factory=dict)

    def __post_init__(self) -> None:
        parse_time_of_day(self.time)
        object.__setattr__(self, "channels", dict(self.channels))

    @abstractmethod
    def cron_day_fields(self) -> tuple[str, str, str]:
        """Return the (day-of-month, month, day-of-week) cron fields."""

    @abstractmethod
    def matches_day(self, day: date) -> bool: ...

    def enabled_channels(self) -> list[str]:
        return [name for name, setting in self.channels.items() if setting.enabled]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"enabled": self.enabled, "time": self.time}
        data.update(self._kind_fields_to_dict())
        data["channels"] = {name: {"enabled": setting.enabled} for name, setting in self.channels.items()}
        return data

    def _kind_fields_to_dict(self) -> dict[str, Any]:
        return {}

    @classmethod
    def _kind_fields_from_dict(cls, data: Mapping[str, Any]) -> dict[str, Any]:
        return {}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CategorySchedule:
        raw_channels = data.get("channels")
        if raw_channels is None:
            raw_channels = data.get("platforms") or {}
        channels = {str(name): ChannelSetting.from_dict(value) for name, value in raw_channels.items()}
        if data.get("time") is None:
            raise MalformedTimeError(f"{cls.kind or cls.__name__} schedule has no time")
        return cls(
            enabled=bool(data.get("enabled", False)),
            time=str(data["time"]),
            channels=channels,
            **cls._kind_fields_from_dict(data),
        )


@dataclass(frozen=True)
class DailySchedule(CategorySchedule):
    """Fires every day, or only on the listed weekdays when ``days`` is non-empty."""

    kind: ClassVar[str] = DAILY

    days: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "days", tuple(self.days))
        unknown = [name for name in self.days if not is_weekday_name(name)]
        if unknown:
            logger.debug(f"Unknown weekday names treated as Sunday: {unknown}")

    def _indices(self) -> list[int]:
        return [weekday_to_cron_index(name) for name in self.days]

    def cron_day_fields(self) -> tuple[str, str, str]:
        if not self.days:
            return "*", "*", "*"
        return "*", "*", ",".join(str(index) for index in self._indices())

    def matches_day(self, day: date) -> bool:
        if not self.days:
            return True
        return cron_weekday(day) in self._indices()

    def _kind_fields_to_dict(self) -> dict[str, Any]:
        return {"days": list(self.days)}

    @classmethod
    def _kind_fields_from_dict(cls, data: Mapping[str, Any]) -> dict[str, Any]:
        return {"days": tuple(str(name) for name in data.get("days") or ())}


@dataclass(frozen=True)
class WeeklySchedule(CategorySchedule):
    kind: ClassVar[str] = WEEKLY

    day_of_week: str = "sunday"

    def cron_day_fields(self) -> tuple[str, str, str]:
        return "*", "*", str(weekday_to_cron_index(self.day_of_week))

    def matches_day(self, day: date) -> bool:
        return cron_weekday(day) == weekday_to_cron_index(self.day_of_week)

    def _kind_fields_to_dict(self) -> dict[str, Any]:
        return {"dayOfWeek": self.day_of_week}

    @classmethod
    def _kind_fields_from_dict(cls, data: Mapping[str, Any]) -> dict[str, Any]:
        return {"day_of_week": str(data.get("dayOfWeek", "sunday"))}


@dataclass(frozen=True)
class MonthlySchedule(CategorySchedule):
    """
    Fires on a fixed day of the month or on its last day.

    The cron form of ``"last"`` is day 28; ``matches_day`` uses the real last
    calendar day of the month.
    """

    kind: ClassVar[str] = MONTHLY

    day_of_month: int | Literal["last"] = 1

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "day_of_month", _parse_day_of_month(self.day_of_month))

    def cron_day_fields(self) -> tuple[str, str, str]:
        if self.day_of_month == "last":
            return str(LAST_DAY_CRON_APPROXIMATION), "*", "*"
        return str(self.day_of_month), "*", "*"

    def matches_day(self, day: date) -> bool:
        if self.day_of_month == "last":
            return day.day == last_day_of_month(day.year, day.month)
        return day.day == self.day_of_month

    def _kind_fields_to_dict(self) -> dict[str, Any]:
        return {"dayOfMonth": self.day_of_month if self.day_of_month == "last" else str(self.day_of_month)}

    @classmethod
    def _kind_fields_from_dict(cls, data: Mapping[str, Any]) -> dict[str, Any]:
        return {"day_of_month": data.get("dayOfMonth", 1)}


@dataclass(frozen=True)
class AnnualSchedule(CategorySchedule):
    """Fires once a year on ``date``; December 31 when no date is configured."""

    kind: ClassVar[str] = ANNUAL

    date: MonthDay | None = None

    def __post_init__(self) -> None:
        super().__post_init__()
        if isinstance(self.date, str):
            object.__setattr__(self, "date", parse_month_day(self.date))

    @property
    def effective_date(self) -> MonthDay:
        return self.date if self.date is not None else MonthDay(month=12, day=31)

    def cron_day_fields(self) -> tuple[str, str, str]:
        target = self.effective_date
        return str(target.day), str(target.month), "*"

    def matches_day(self, day: date) -> bool:
        target = self.effective_date
        return day.month == target.month and day.day == target.day

    def _kind_fields_to_dict(self) -> dict[str, Any]:
        return {"date": self.date.isoformat()} if self.date is not None else {}

    @classmethod
    def _kind_fields_from_dict(cls, data: Mapping[str, Any]) -> dict[str, Any]:
        raw = data.get("date")
        return {"date": parse_month_day(str(raw)) if raw else None}


def _parse_day_of_month(value: Any) -> int | Literal["last"]:
    if isinstance(value, str):
        text = value.strip().lower()
        if text == "last":
            return "last"
        if not text.isdecimal():
            raise MalformedDateError(f"Day of month must be 1-31 or 'last': {value!r}")
        value = int(text, 10)
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 31:
        raise MalformedDateError(f"Day of month must be 1-31 or 'last': {value!r}")
    return value


SCHEDULE_KINDS: dict[str, type[CategorySchedule]] = {
    DAILY: DailySchedule,
    WEEKLY: WeeklySchedule,
    MONTHLY: MonthlySchedule,
    ANNUAL: AnnualSchedule,
}


@dataclass(frozen=True)
class ScheduleConfig:
    """Per-category schedules in configuration order."""

    schedules: Mapping[str, CategorySchedule] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "schedules", dict(self.schedules))

    def __iter__(self) -> Iterator[str]:
        return iter(self.schedules)

    def items(self) -> Iterator[tuple[str, CategorySchedule]]:
        return iter(self.schedules.items())

    def get(self, category: str) -> CategorySchedule | None:
        return self.schedules.get(category)

    def to_dict(self) -> dict[str, Any]:
        return {"schedules": {category: schedule.to_dict() for category, schedule in self.schedules.items()}}

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        kinds: Mapping[str, type[CategorySchedule]] | None = None,
    ) -> ScheduleConfig:
        """
        Build from raw configuration; unknown categories are skipped.

        ``kinds`` maps category names to schedule types and defaults to
        ``SCHEDULE_KINDS``.
        """
        known = SCHEDULE_KINDS if kinds is None else kinds
        raw = data.get("schedules", data) if isinstance(data, Mapping) else {}
        schedules: dict[str, CategorySchedule] = {}
        for category, raw_schedule in (raw or {}).items():
            schedule_type = known.get(category)
            if schedule_type is None:
                logger.debug(f"Ignoring unknown schedule category {category!r}")
                continue
            if not isinstance(raw_schedule, Mapping):
                logger.debug(f"Ignoring non-mapping schedule for {category!r}")
                continue
            schedules[category] = schedule_type.from_dict(raw_schedule)
        return cls(schedules=schedules)


def default_schedule_config() -> ScheduleConfig:
    return ScheduleConfig.from_dict(DEFAULT_SCHEDULE_CONFIG)


@dataclass(frozen=True)
class ScheduleConflict:
    """Two categories that would fire on the same channel at the same instant."""

    channel: str
    cron: str
    first_category: str
    category: str

    @property
    def conflicting(self) -> tuple[str, str]:
        return self.first_category, self.category


def generate_cron(schedule: CategorySchedule) -> str | None:
    """Return the five-field cron expression for a schedule, or None when disabled."""
    if not schedule.enabled:
        return None
    hour, minute = parse_time_of_day(schedule.time)
    day_of_month, month, day_of_week = schedule.cron_day_fields()
    return f"{minute} {hour} {day_of_month} {month} {day_of_week}"


def _as_config(config: ScheduleConfig | Mapping[str, Any]) -> ScheduleConfig:
    if isinstance(config, ScheduleConfig):
        return config
    return ScheduleConfig.from_dict(config)


def generate_all_schedules(config: ScheduleConfig | Mapping[str, Any]) -> dict[str, dict[str, str | None]]:
    """
    Map each enabled category to ``{channel: cron}``.

    Disabled categories are left out. Disabled channels map to None; enabled
    channels share the category's expression.
    """
    result: dict[str, dict[str, str | None]] = {}
    for category, schedule in _as_config(config).items():
        cron = generate_cron(schedule)
        if cron is None:
            continue
        result[category] = {
            channel: cron if setting.enabled else None for channel, setting in schedule.channels.items()
        }
    return result


def detect_conflicts(schedules: Mapping[str, Mapping[str, str | None]]) -> list[ScheduleConflict]:
    """Report categories that target the same channel with an identical cron expression."""
    conflicts: list[ScheduleConflict] = []
    first_seen: dict[tuple[str, str], str] = {}
    for category, channels in schedules.items():
        for channel, cron in channels.items():
            if not cron:
                continue
            slot = (channel, cron)
            if slot in first_seen:
                conflict = ScheduleConflict(
                    channel=channel,
                    cron=cron,
                    first_category=first_seen[slot],
                    category=category,
                )
                logger.warning(
                    f"Schedule conflict on {channel}: {conflict.first_category} and {category} both at {cron!r}"
                )
                conflicts.append(conflict)
            else:
                first_seen[slot] = category
    return conflicts


def validate_cron_expression(expression: Any) -> bool:
    """
    Check an externally supplied cron expression.

    Each of the five fields must be ``*`` or one decimal integer in range.
    Lists such as ``1,3,5`` are rejected, so expressions produced by
    ``generate_cron`` for daily weekday sets do not pass.
    """
    if not isinstance(expression, str):
        return False
    parts = expression.split()
    if len(parts) != len(CRON_FIELD_RANGES):
        return False
    for value, (_, low, high) in zip(parts, CRON_FIELD_RANGES):
        if value == "*":
            continue
        if not value.isdecimal():
            return False
        if not low <= int(value, 10) <= high:
            return False
    return True


def matches_now(schedule: CategorySchedule | None, now: datetime) -> bool:
    """True when ``now`` (compared in UTC, to the minute) is a firing instant of the schedule."""
    if schedule is None or not schedule.enabled:
        return False
    now_utc = ensure_utc(now)
    hour, minute = parse_time_of_day(schedule.time)
    if now_utc.hour != hour or now_utc.minute != minute:
        return False
    return schedule.matches_day(now_utc.date())


def due_deliveries(config: ScheduleConfig | Mapping[str, Any], now: datetime) -> list[tuple[str, str]]:
    """Return ``(category, channel)`` pairs that should deliver at ``now``."""
    due: list[tuple[str, str]] = []
    for category, schedule in _as_config(config).items():
        if not matches_now(schedule, now):
            continue
        for channel in schedule.enabled_channels():
            due.append((category, channel))
    if due:
        logger.info(f"Schedules due at {ensure_utc(now).isoformat()}: {due}")
    return due
