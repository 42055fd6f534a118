"""
Environment configuration for nodestats.

- NODESTATS_DATA_DIR: filesystem workspace for snapshots and state (default: ./data)
- DATABASE_URL: SQLAlchemy URL; when set, snapshots live in the database
- DATA_RETENTION_DAYS: days of snapshots to keep (default: 400)
- NODESTATS_EVICTION_PROBABILITY: chance of running eviction after a write (default: 0.1)
- API_KEY_EXPIRY_DATE: monitored credential expiry (falls back to AMBOSS_API_KEY_EXPIRY_DATE)
- API_KEY_WARNING_DAYS: comma-separated warning thresholds (default: 7,3,1)

Loads .env from the working directory when available.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from nodestats.expiry import DEFAULT_WARNING_THRESHOLDS, parse_warning_thresholds
from nodestats.store import DEFAULT_RETENTION_DAYS, FileSystemRecordStore, HistoricalStore, RecordStore

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = "./data"
DEFAULT_EVICTION_PROBABILITY = 0.1


@dataclass(frozen=True)
class Settings:
    data_dir: Path = Path(DEFAULT_DATA_DIR)
    database_url: str | None = None
    retention_days: int = DEFAULT_RETENTION_DAYS
    eviction_probability: float = DEFAULT_EVICTION_PROBABILITY
    api_key_expiry_date: str | None = None
    warning_thresholds: tuple[int, ...] = field(default=DEFAULT_WARNING_THRESHOLDS)


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw, 10)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def load_settings(env_file: str | Path | None = None) -> Settings:
    """Read settings from the environment after loading ``.env``."""
    load_dotenv(env_file)
    expiry = (os.getenv("API_KEY_EXPIRY_DATE") or os.getenv("AMBOSS_API_KEY_EXPIRY_DATE") or "").strip()
    warning_days = (os.getenv("API_KEY_WARNING_DAYS") or "").strip()
    return Settings(
        data_dir=Path(os.getenv("NODESTATS_DATA_DIR") or DEFAULT_DATA_DIR),
        database_url=(os.getenv("DATABASE_URL") or "").strip() or None,
        retention_days=_env_int("DATA_RETENTION_DAYS", DEFAULT_RETENTION_DAYS),
        eviction_probability=_env_float("NODESTATS_EVICTION_PROBABILITY", DEFAULT_EVICTION_PROBABILITY),
        api_key_expiry_date=expiry or None,
        warning_thresholds=parse_warning_thresholds(warning_days) if warning_days else DEFAULT_WARNING_THRESHOLDS,
    )


def open_record_store(settings: Settings) -> RecordStore:
    """SQL store when DATABASE_URL is set, filesystem store otherwise."""
    if settings.database_url:
        from nodestats.sql import SqlRecordStore

        logger.info(f"Using SQL record store at {settings.database_url.split('@')[-1]}")
        return SqlRecordStore(settings.database_url)
    logger.info(f"Using filesystem record store in {settings.data_dir}")
    return FileSystemRecordStore(settings.data_dir)


def open_historical_store(settings: Settings) -> HistoricalStore:
    return HistoricalStore(
        open_record_store(settings),
        retention_days=settings.retention_days,
        eviction_probability=settings.eviction_probability,
    )
