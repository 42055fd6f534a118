from __future__ import annotations

import csv
import io
import json
import logging
import math
import random
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Mapping, Protocol

from nodestats.errors import MalformedDateError, StoreUnavailableError
from nodestats.timeutil import isoformat_utc, local_today, parse_calendar_date

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 400
DEFAULT_SOURCE = "Amboss.space"
NO_DATA_MESSAGE = "No data available for the specified date range"
EXPORT_HEADER = (
    "Date",
    "Timestamp",
    "Member Count",
    "Total Channels",
    "Total Capacity (BTC)",
    "Block Height",
    "Source",
)


def _require_count(value: Any, name: str) -> int:
    if value is None:
        raise ValueError(f"{name} is required")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"{name} must be a whole number, got {value!r}")
    number = int(value)
    if number < 0:
        raise ValueError(f"{name} must be >= 0, got {value!r}")
    return number


@dataclass(frozen=True)
class Snapshot:
    """One day's metric reading. At most one snapshot exists per calendar date."""

    date: date
    timestamp: str
    member_count: int
    total_channels: int
    total_capacity: float
    block_height: int | None = None
    source: str = DEFAULT_SOURCE

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", parse_calendar_date(self.date))
        object.__setattr__(self, "member_count", _require_count(self.member_count, "member_count"))
        object.__setattr__(self, "total_channels", _require_count(self.total_channels, "total_channels"))
        if self.total_capacity is None:
            raise ValueError("total_capacity is required")
        capacity = float(self.total_capacity)
        if not math.isfinite(capacity) or capacity < 0:
            raise ValueError(f"total_capacity must be a finite number >= 0, got {self.total_capacity!r}")
        object.__setattr__(self, "total_capacity", capacity)
        if self.block_height is not None:
            object.__setattr__(self, "block_height", int(self.block_height))

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "timestamp": self.timestamp,
            "member_count": self.member_count,
            "total_channels": self.total_channels,
            "total_capacity": self.total_capacity,
            "block_height": self.block_height,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Snapshot:
        if "date" not in data:
            raise MalformedDateError("Snapshot record has no date")
        return cls(
            date=parse_calendar_date(data["date"]),
            timestamp=str(data.get("timestamp", "")),
            member_count=data.get("member_count"),
            total_channels=data.get("total_channels"),
            total_capacity=data.get("total_capacity"),
            block_height=data.get("block_height"),
            source=str(data.get("source") or DEFAULT_SOURCE),
        )

    @classmethod
    def from_metrics(cls, metrics: Mapping[str, Any], captured_at: datetime | None = None) -> Snapshot:
        """
        Build a snapshot from a raw fetch payload.

        The payload uses the upstream names ``memberCount``, ``totalChannels``,
        ``totalCapacity`` and optionally ``blockHeight``, ``timestamp`` and
        ``source``. The snapshot date is the local calendar date of
        ``captured_at`` (naive values are local wall-clock time).
        """
        captured = captured_at or datetime.now()
        local_capture = captured.astimezone() if captured.tzinfo is not None else captured
        timestamp = metrics.get("timestamp") or isoformat_utc(captured.astimezone(timezone.utc))
        return cls(
            date=local_capture.date(),
            timestamp=str(timestamp),
            member_count=metrics.get("memberCount"),
            total_channels=metrics.get("totalChannels"),
            total_capacity=metrics.get("totalCapacity"),
            block_height=metrics.get("blockHeight") or None,
            source=str(metrics.get("source") or DEFAULT_SOURCE),
        )


class RecordStore(Protocol):
    """Date-keyed record persistence consumed by HistoricalStore."""

    def put(self, key: date, record: dict[str, Any]) -> None: ...

    def get(self, key: date) -> dict[str, Any] | None: ...

    def range_scan(self, start: date, end: date) -> list[tuple[date, dict[str, Any]]]: ...

    def delete_before(self, cutoff: date) -> int: ...

    def keys(self) -> list[date]: ...


class InMemoryRecordStore:
    """Process-local record store, mainly for tests and one-shot invocations."""

    def __init__(self) -> None:
        self._records: dict[date, dict[str, Any]] = {}

    def put(self, key: date, record: dict[str, Any]) -> None:
        self._records[key] = json.loads(json.dumps(record))

    def get(self, key: date) -> dict[str, Any] | None:
        record = self._records.get(key)
        return dict(record) if record is not None else None

    def range_scan(self, start: date, end: date) -> list[tuple[date, dict[str, Any]]]:
        return [(day, dict(self._records[day])) for day in sorted(self._records) if start <= day <= end]

    def delete_before(self, cutoff: date) -> int:
        expired = [day for day in self._records if day < cutoff]
        for day in expired:
            del self._records[day]
        return len(expired)

    def keys(self) -> list[date]:
        return sorted(self._records)


class FileSystemRecordStore:
    """One JSON document per calendar day under ``<workspace>/store/snapshots``."""

    def __init__(self, workspace: str | Path) -> None:
        self.workspace = Path(workspace)
        self.store_root = self.workspace / "store"
        self.snapshots_dir = self.store_root / "snapshots"
        self._ensure_dirs()

    def _ensure_dirs(self) -> None:
        try:
            self.snapshots_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreUnavailableError(f"Cannot create {self.snapshots_dir}: {exc}") from exc

    def _path_for(self, key: date) -> Path:
        return self.snapshots_dir / f"{key.isoformat()}.json"

    def _partitions(self) -> list[tuple[date, Path]]:
        partitions: list[tuple[date, Path]] = []
        try:
            candidates = sorted(self.snapshots_dir.glob("*.json"))
        except OSError as exc:
            raise StoreUnavailableError(f"Cannot list {self.snapshots_dir}: {exc}") from exc
        for path in candidates:
            try:
                day = date.fromisoformat(path.stem)
            except ValueError:
                continue
            partitions.append((day, path))
        return partitions

    def _read(self, path: Path) -> dict[str, Any]:
        try:
            with path.open("r", encoding="utf-8") as handle:
                return json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreUnavailableError(f"Cannot read {path}: {exc}") from exc

    def put(self, key: date, record: dict[str, Any]) -> None:
        destination = self._path_for(key)
        try:
            with destination.open("w", encoding="utf-8") as handle:
                json.dump(record, handle, sort_keys=True, separators=(",", ":"))
                handle.write("\n")
        except OSError as exc:
            raise StoreUnavailableError(f"Cannot write {destination}: {exc}") from exc

    def get(self, key: date) -> dict[str, Any] | None:
        source = self._path_for(key)
        if not source.exists():
            return None
        return self._read(source)

    def range_scan(self, start: date, end: date) -> list[tuple[date, dict[str, Any]]]:
        return [(day, self._read(path)) for day, path in self._partitions() if start <= day <= end]

    def delete_before(self, cutoff: date) -> int:
        deleted = 0
        for day, path in self._partitions():
            if day >= cutoff:
                continue
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise StoreUnavailableError(f"Cannot delete {path}: {exc}") from exc
            deleted += 1
        return deleted

    def keys(self) -> list[date]:
        return [day for day, _ in self._partitions()]


class HistoricalStore:
    """Daily snapshots keyed by local calendar date, with retention eviction."""

    def __init__(
        self,
        record_store: RecordStore,
        *,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        eviction_probability: float = 0.0,
        rng: random.Random | None = None,
    ) -> None:
        if retention_days < 0:
            raise ValueError("retention_days must be >= 0")
        if not 0.0 <= eviction_probability <= 1.0:
            raise ValueError("eviction_probability must be within [0, 1]")
        self.record_store = record_store
        self.retention_days = retention_days
        self.eviction_probability = eviction_probability
        self._rng = rng or random.Random()

    def put(self, snapshot: Snapshot) -> None:
        """Store ``snapshot``, replacing any snapshot already stored for its date."""
        self.record_store.put(snapshot.date, snapshot.to_dict())
        logger.info(f"Stored snapshot for {snapshot.date.isoformat()}")
        if self.eviction_probability and self._rng.random() < self.eviction_probability:
            self.evict_older_than(self.retention_days)

    def record(self, metrics: Mapping[str, Any], captured_at: datetime | None = None) -> Snapshot:
        """Build a snapshot from a raw fetch payload and store it."""
        snapshot = Snapshot.from_metrics(metrics, captured_at=captured_at)
        self.put(snapshot)
        return snapshot

    def get(self, day: date | datetime | str) -> Snapshot | None:
        record = self.record_store.get(parse_calendar_date(day))
        if record is None:
            return None
        return Snapshot.from_dict(record)

    def get_range(self, start: date | datetime | str, end: date | datetime | str) -> list[Snapshot]:
        """Snapshots in [start, end], ascending; days without a reading are skipped."""
        start_day = parse_calendar_date(start)
        end_day = parse_calendar_date(end)
        if end_day < start_day:
            raise ValueError("end must be greater than or equal to start")
        return [Snapshot.from_dict(record) for _, record in self.record_store.range_scan(start_day, end_day)]

    def available_dates(self) -> list[date]:
        return self.record_store.keys()

    def get_latest(self) -> Snapshot | None:
        days = self.record_store.keys()
        if not days:
            return None
        return self.get(max(days))

    def get_n_days_ago(self, n: int, today: date | None = None) -> Snapshot | None:
        """Exact lookup of the snapshot dated ``today - n`` days; no nearest-day fallback."""
        target = (today or local_today()) - timedelta(days=n)
        snapshot = self.get(target)
        if snapshot is None:
            logger.debug(f"No snapshot for {target.isoformat()} ({n} days ago)")
        return snapshot

    def evict_older_than(self, retention_days: int, today: date | None = None) -> int:
        """Delete snapshots dated strictly before ``today - retention_days``."""
        cutoff = (today or local_today()) - timedelta(days=retention_days)
        deleted = self.record_store.delete_before(cutoff)
        logger.info(f"Evicted {deleted} snapshots older than {cutoff.isoformat()}")
        return deleted

    def export_range(self, start: date | datetime | str, end: date | datetime | str) -> str:
        """
        Render [start, end] as CSV with every field quoted.

        Returns ``NO_DATA_MESSAGE`` instead of a header-only table when the
        range holds no snapshots.
        """
        snapshots = self.get_range(start, end)
        if not snapshots:
            return NO_DATA_MESSAGE
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(EXPORT_HEADER)
        for snapshot in snapshots:
            writer.writerow(
                [
                    snapshot.date.isoformat(),
                    snapshot.timestamp,
                    snapshot.member_count,
                    snapshot.total_channels,
                    snapshot.total_capacity,
                    snapshot.block_height if snapshot.block_height is not None else "",
                    snapshot.source,
                ]
            )
        return buffer.getvalue().rstrip("\n")
