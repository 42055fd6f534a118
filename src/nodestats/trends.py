from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Literal

from nodestats.store import HistoricalStore, Snapshot
from nodestats.timeutil import isoformat_utc

logger = logging.getLogger(__name__)

TrendBucket = Literal["strong-growth", "growth", "flat", "decline", "strong-decline"]

STRONG_CHANGE_PERCENT = 5.0
STANDARD_LOOKBACKS = {"weekly": 7, "monthly": 30, "annual": 365}

NO_CURRENT_DATA = "No current data"
NO_PREVIOUS_DATA = "No previous data"

# metric name -> Snapshot attribute
METRIC_FIELDS = (
    ("members", "member_count"),
    ("channels", "total_channels"),
    ("capacity", "total_capacity"),
)


@dataclass(frozen=True)
class Delta:
    absolute: float
    percent: float


@dataclass(frozen=True)
class MetricTrend:
    current: float
    previous: float
    absolute_delta: float
    percent_delta: float
    bucket: TrendBucket

    def to_dict(self) -> dict[str, Any]:
        return {
            "current": self.current,
            "previous": self.previous,
            "absolute": self.absolute_delta,
            "percentage": self.percent_delta,
            "bucket": self.bucket,
        }


@dataclass(frozen=True)
class TrendAnalysis:
    available: bool
    reason: str | None = None
    current_date: date | None = None
    previous_date: date | None = None
    metrics: dict[str, MetricTrend] = field(default_factory=dict)

    def __getitem__(self, metric: str) -> MetricTrend:
        return self.metrics[metric]

    def to_dict(self) -> dict[str, Any]:
        if not self.available:
            return {"available": False, "reason": self.reason}
        data: dict[str, Any] = {
            "available": True,
            "period": {
                "current": self.current_date.isoformat() if self.current_date else "current",
                "previous": self.previous_date.isoformat() if self.previous_date else "previous",
            },
        }
        for name, trend in self.metrics.items():
            data[name] = trend.to_dict()
        return data


@dataclass(frozen=True)
class TrendReport:
    period_label: str
    lookback_days: int
    generated_at: datetime
    analysis: TrendAnalysis

    def to_dict(self) -> dict[str, Any]:
        return {
            "period": self.period_label,
            "lookback_days": self.lookback_days,
            "generated": isoformat_utc(self.generated_at),
            "analysis": self.analysis.to_dict(),
        }


def compute_delta(current: float, previous: float) -> Delta:
    """
    Absolute and percentage change from ``previous`` to ``current``.

    A zero ``previous`` yields +100% when ``current`` is positive and 0%
    otherwise.
    """
    absolute = current - previous
    if previous == 0:
        percent = 100.0 if current > 0 else 0.0
    else:
        percent = (absolute / previous) * 100
    return Delta(absolute=absolute, percent=percent)


def classify(percent: float) -> TrendBucket:
    if percent > STRONG_CHANGE_PERCENT:
        return "strong-growth"
    if percent > 0:
        return "growth"
    if percent == 0:
        return "flat"
    if percent < -STRONG_CHANGE_PERCENT:
        return "strong-decline"
    return "decline"


def analyze(current: Snapshot | None, previous: Snapshot | None) -> TrendAnalysis:
    """Compare two snapshots metric by metric."""
    if current is None:
        return TrendAnalysis(available=False, reason=NO_CURRENT_DATA)
    if previous is None:
        return TrendAnalysis(available=False, reason=NO_PREVIOUS_DATA)

    metrics: dict[str, MetricTrend] = {}
    for name, attribute in METRIC_FIELDS:
        current_value = getattr(current, attribute)
        previous_value = getattr(previous, attribute)
        delta = compute_delta(current_value, previous_value)
        metrics[name] = MetricTrend(
            current=current_value,
            previous=previous_value,
            absolute_delta=delta.absolute,
            percent_delta=delta.percent,
            bucket=classify(delta.percent),
        )
    return TrendAnalysis(
        available=True,
        current_date=current.date,
        previous_date=previous.date,
        metrics=metrics,
    )


def format_percent_change(percent: float) -> str:
    sign = "+" if percent >= 0 else ""
    return f"{sign}{percent:.1f}%"


def growth_summary(trend: MetricTrend) -> str:
    """Describe a metric's change in words, e.g. ``Good growth (+10)``."""
    percent = trend.percent_delta
    absolute = trend.absolute_delta
    if percent > 10:
        return f"Strong growth (+{absolute:g})"
    if percent > 5:
        return f"Good growth (+{absolute:g})"
    if percent > 0:
        return f"Slight growth (+{absolute:g})"
    if percent == 0:
        return "No change"
    if percent > -5:
        return f"Slight decline ({absolute:g})"
    if percent > -10:
        return f"Moderate decline ({absolute:g})"
    return f"Significant decline ({absolute:g})"


class TrendAnalyzer:
    """Builds look-back reports from a HistoricalStore."""

    def __init__(self, store: HistoricalStore) -> None:
        self.store = store

    def report(self, lookback_days: int, now: datetime | None = None) -> TrendReport:
        """Compare the latest snapshot with the one dated exactly ``lookback_days`` ago."""
        if lookback_days <= 0:
            raise ValueError("lookback_days must be positive")
        generated_at = now or datetime.now(timezone.utc)
        today = generated_at.astimezone().date() if generated_at.tzinfo is not None else generated_at.date()
        current = self.store.get_latest()
        previous = self.store.get_n_days_ago(lookback_days, today=today)
        analysis = analyze(current, previous)
        if not analysis.available:
            logger.info(f"{lookback_days}-day trend unavailable: {analysis.reason}")
        return TrendReport(
            period_label=f"{lookback_days} days",
            lookback_days=lookback_days,
            generated_at=generated_at.astimezone(timezone.utc),
            analysis=analysis,
        )

    def standard_report(self, kind: str, now: datetime | None = None) -> TrendReport:
        """Report for one of ``STANDARD_LOOKBACKS`` (weekly, monthly, annual)."""
        try:
            lookback_days = STANDARD_LOOKBACKS[kind]
        except KeyError:
            raise ValueError(f"Unknown report kind: {kind!r}") from None
        return self.report(lookback_days, now=now)
