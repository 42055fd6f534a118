from nodestats.errors import (
    MalformedDateError,
    MalformedTimeError,
    NodestatsError,
    StoreUnavailableError,
)
from nodestats.expiry import (
    ExpiryCheckResult,
    ExpiryMonitor,
    FileNotificationState,
    InMemoryNotificationState,
    check_expiration,
)
from nodestats.schedule import (
    AnnualSchedule,
    DailySchedule,
    MonthlySchedule,
    ScheduleConfig,
    ScheduleConflict,
    WeeklySchedule,
    detect_conflicts,
    due_deliveries,
    generate_all_schedules,
    generate_cron,
    matches_now,
    validate_cron_expression,
)
from nodestats.store import (
    NO_DATA_MESSAGE,
    FileSystemRecordStore,
    HistoricalStore,
    InMemoryRecordStore,
    Snapshot,
)
from nodestats.timeutil import parse_time_of_day, weekday_to_cron_index
from nodestats.trends import TrendAnalyzer, analyze, classify, compute_delta

__all__ = [
    "AnnualSchedule",
    "DailySchedule",
    "ExpiryCheckResult",
    "ExpiryMonitor",
    "FileNotificationState",
    "FileSystemRecordStore",
    "HistoricalStore",
    "InMemoryNotificationState",
    "InMemoryRecordStore",
    "MalformedDateError",
    "MalformedTimeError",
    "MonthlySchedule",
    "NO_DATA_MESSAGE",
    "NodestatsError",
    "ScheduleConfig",
    "ScheduleConflict",
    "Snapshot",
    "StoreUnavailableError",
    "TrendAnalyzer",
    "WeeklySchedule",
    "analyze",
    "check_expiration",
    "classify",
    "compute_delta",
    "detect_conflicts",
    "due_deliveries",
    "generate_all_schedules",
    "generate_cron",
    "matches_now",
    "parse_time_of_day",
    "validate_cron_expression",
    "weekday_to_cron_index",
]
