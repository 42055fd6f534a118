from __future__ import annotations

from pathlib import Path

import pytest

from nodestats import FileSystemRecordStore
from nodestats.config import Settings, load_settings, open_historical_store, open_record_store
from nodestats.sql import SqlRecordStore

ENV_VARS = (
    "NODESTATS_DATA_DIR",
    "DATABASE_URL",
    "DATA_RETENTION_DAYS",
    "NODESTATS_EVICTION_PROBABILITY",
    "API_KEY_EXPIRY_DATE",
    "AMBOSS_API_KEY_EXPIRY_DATE",
    "API_KEY_WARNING_DAYS",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    # setenv first so teardown removes anything load_dotenv adds.
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


def test_defaults(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    settings = load_settings(tmp_path / "missing.env")
    assert settings.data_dir == Path("./data")
    assert settings.database_url is None
    assert settings.retention_days == 400
    assert settings.eviction_probability == 0.1
    assert settings.api_key_expiry_date is None
    assert settings.warning_thresholds == (7, 3, 1)


def test_environment_overrides(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    clean_env.setenv("NODESTATS_DATA_DIR", str(tmp_path))
    clean_env.setenv("DATA_RETENTION_DAYS", "30")
    clean_env.setenv("NODESTATS_EVICTION_PROBABILITY", "0.5")
    clean_env.setenv("AMBOSS_API_KEY_EXPIRY_DATE", "2026-06-01")
    clean_env.setenv("API_KEY_WARNING_DAYS", "14,7")

    settings = load_settings(tmp_path / "missing.env")

    assert settings.data_dir == tmp_path
    assert settings.retention_days == 30
    assert settings.eviction_probability == 0.5
    assert settings.api_key_expiry_date == "2026-06-01"
    assert settings.warning_thresholds == (14, 7)


def test_dotenv_file_is_loaded(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("DATA_RETENTION_DAYS=90\nAPI_KEY_EXPIRY_DATE=2026-12-31T00:00:00Z\n", encoding="utf-8")

    settings = load_settings(env_file)

    assert settings.retention_days == 90
    assert settings.api_key_expiry_date == "2026-12-31T00:00:00Z"


def test_invalid_integer_names_the_variable(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    clean_env.setenv("DATA_RETENTION_DAYS", "a year")
    with pytest.raises(ValueError, match="DATA_RETENTION_DAYS"):
        load_settings(tmp_path / "missing.env")


def test_backend_selection(tmp_path: Path) -> None:
    assert isinstance(open_record_store(Settings(data_dir=tmp_path)), FileSystemRecordStore)
    sql_settings = Settings(database_url=f"sqlite:///{tmp_path / 'stats.db'}")
    assert isinstance(open_record_store(sql_settings), SqlRecordStore)


def test_open_historical_store_applies_retention(tmp_path: Path) -> None:
    store = open_historical_store(Settings(data_dir=tmp_path, retention_days=10, eviction_probability=0.0))
    assert store.retention_days == 10
    assert store.eviction_probability == 0.0
