from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Literal, Protocol

from nodestats.errors import MalformedDateError, StoreUnavailableError
from nodestats.timeutil import isoformat_utc, parse_calendar_date, parse_datetime

logger = logging.getLogger(__name__)

Urgency = Literal["none", "low", "medium", "high", "critical", "expired"]

DEFAULT_WARNING_THRESHOLDS = (7, 3, 1)
SECONDS_PER_DAY = 24 * 60 * 60

NO_EXPIRY_CONFIGURED = "No expiration date configured"
INVALID_EXPIRY = "Invalid expiration date format"


@dataclass(frozen=True)
class ExpiryCheckResult:
    should_warn: bool
    days_until_expiry: int | None = None
    urgency: Urgency = "none"
    expiry_date: datetime | None = None
    error: str | None = None

    @property
    def expired(self) -> bool:
        return self.urgency == "expired"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"shouldWarn": self.should_warn}
        if self.error is not None:
            data["error"] = self.error
            return data
        data["daysUntilExpiry"] = self.days_until_expiry
        data["urgency"] = self.urgency
        if self.expiry_date is not None:
            data["expiryDate"] = isoformat_utc(self.expiry_date)
        return data


def urgency_for(days: int) -> Urgency:
    if days <= 1:
        return "critical"
    if days <= 3:
        return "high"
    if days <= 7:
        return "medium"
    return "low"


def parse_expiry_date(value: Any) -> datetime:
    """Parse an ISO-8601 expiry instant; naive values are taken as UTC."""
    parsed = parse_datetime(value)
    if parsed is None:
        raise MalformedDateError(f"{INVALID_EXPIRY}: {value!r}")
    return parsed


def parse_warning_thresholds(value: str | Iterable[int] | None) -> tuple[int, ...]:
    """Parse ``"7,3,1"`` (or an iterable of ints) into thresholds; blanks and junk are dropped."""
    if value is None:
        return DEFAULT_WARNING_THRESHOLDS
    items = value.split(",") if isinstance(value, str) else value
    thresholds: list[int] = []
    for item in items:
        text = str(item).strip()
        try:
            thresholds.append(int(text, 10))
        except ValueError:
            continue
    return tuple(thresholds)


def check_expiration(
    expiry_date: Any,
    warning_thresholds: Iterable[int] = DEFAULT_WARNING_THRESHOLDS,
    now: datetime | None = None,
) -> ExpiryCheckResult:
    """
    Decide whether an expiry warning is due.

    A warning is due when the whole days left (rounded up) equal one of
    ``warning_thresholds``, or on every check once the expiry has passed.
    Missing or unparsable expiry dates come back as ``error`` rather than
    raising.
    """
    if expiry_date is None or expiry_date == "":
        return ExpiryCheckResult(should_warn=False, error=NO_EXPIRY_CONFIGURED)
    try:
        expiry = parse_expiry_date(expiry_date)
    except MalformedDateError:
        return ExpiryCheckResult(should_warn=False, error=INVALID_EXPIRY)

    current = parse_datetime(now) if now is not None else datetime.now(timezone.utc)
    days_until_expiry = math.ceil((expiry - current).total_seconds() / SECONDS_PER_DAY)
    logger.debug(f"Expiry {isoformat_utc(expiry)} is {days_until_expiry} days away")

    if days_until_expiry in set(warning_thresholds):
        return ExpiryCheckResult(
            should_warn=True,
            days_until_expiry=days_until_expiry,
            urgency=urgency_for(days_until_expiry),
            expiry_date=expiry,
        )
    if days_until_expiry < 0:
        return ExpiryCheckResult(should_warn=True, days_until_expiry=0, urgency="expired", expiry_date=expiry)
    return ExpiryCheckResult(should_warn=False, days_until_expiry=days_until_expiry, expiry_date=expiry)


class NotificationState(Protocol):
    """Remembers the last calendar day a warning was delivered, per key."""

    def last_notified(self, key: str) -> date | None: ...

    def mark_notified(self, key: str, day: date) -> None: ...


class InMemoryNotificationState:
    def __init__(self) -> None:
        self._days: dict[str, date] = {}

    def last_notified(self, key: str) -> date | None:
        return self._days.get(key)

    def mark_notified(self, key: str, day: date) -> None:
        self._days[key] = day


class FileNotificationState:
    """Notification days kept in ``<workspace>/store/state/notifications.json``."""

    def __init__(self, workspace: str | Path) -> None:
        self.workspace = Path(workspace)
        self.state_dir = self.workspace / "store" / "state"
        self.state_file = self.state_dir / "notifications.json"
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreUnavailableError(f"Cannot create {self.state_dir}: {exc}") from exc

    def _load(self) -> dict[str, str]:
        if not self.state_file.exists():
            return {}
        try:
            with self.state_file.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreUnavailableError(f"Cannot read {self.state_file}: {exc}") from exc
        return data if isinstance(data, dict) else {}

    def last_notified(self, key: str) -> date | None:
        value = self._load().get(key)
        if value is None:
            return None
        return parse_calendar_date(value)

    def mark_notified(self, key: str, day: date) -> None:
        data = self._load()
        data[key] = day.isoformat()
        try:
            with self.state_file.open("w", encoding="utf-8") as handle:
                json.dump(data, handle, sort_keys=True, separators=(",", ":"))
                handle.write("\n")
        except OSError as exc:
            raise StoreUnavailableError(f"Cannot write {self.state_file}: {exc}") from exc


class ExpiryMonitor:
    """Daily expiry check with at-most-once-per-day delivery tracked in ``state``."""

    def __init__(self, state: NotificationState, key: str = "api_key") -> None:
        self.state = state
        self.key = key

    def should_notify(self, result: ExpiryCheckResult, today: date) -> bool:
        if not result.should_warn:
            return False
        return self.state.last_notified(self.key) != today

    def run_daily_check(
        self,
        expiry_date: Any,
        warning_thresholds: Iterable[int],
        notify: Callable[[ExpiryCheckResult], Any],
        now: datetime | None = None,
    ) -> ExpiryCheckResult:
        """
        Check the expiry and hand a due warning to ``notify``.

        The day is recorded only after ``notify`` returns, so a failed
        delivery is retried on the next invocation.
        """
        current = now or datetime.now(timezone.utc)
        result = check_expiration(expiry_date, warning_thresholds, now=current)
        if result.error is not None:
            logger.warning(f"Expiry check for {self.key} skipped: {result.error}")
            return result
        today = current.astimezone(timezone.utc).date() if current.tzinfo is not None else current.date()
        if not self.should_notify(result, today):
            return result
        logger.info(f"Sending {result.urgency} expiry warning for {self.key} ({result.days_until_expiry} days)")
        notify(result)
        self.state.mark_notified(self.key, today)
        return result
