"""
Relational record store.

Same date-keyed contract as the filesystem store, backed by any database
SQLAlchemy can reach. Each day is one row holding the JSON record.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any, Iterator

from sqlalchemy import JSON, Date, DateTime, create_engine, delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from nodestats.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DailySnapshotRow(Base):
    """One stored snapshot record per calendar day."""

    __tablename__ = "daily_snapshots"

    day: Mapped[date] = mapped_column(Date, primary_key=True)
    record: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)

    def __repr__(self) -> str:
        return f"<DailySnapshotRow(day={self.day})>"


class SqlRecordStore:
    """Record store over a SQLAlchemy engine. Tables are created on first use."""

    def __init__(self, engine: Engine | str, *, create_tables: bool = True) -> None:
        self.engine = create_engine(engine, future=True) if isinstance(engine, str) else engine
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        if create_tables:
            try:
                Base.metadata.create_all(self.engine)
            except SQLAlchemyError as exc:
                raise StoreUnavailableError(f"Cannot create snapshot table: {exc}") from exc

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error(f"Record store operation failed: {exc}")
            raise StoreUnavailableError(str(exc)) from exc
        finally:
            session.close()

    def put(self, key: date, record: dict[str, Any]) -> None:
        with self._session() as session:
            session.merge(DailySnapshotRow(day=key, record=dict(record), updated_at=utc_now()))

    def get(self, key: date) -> dict[str, Any] | None:
        with self._session() as session:
            row = session.get(DailySnapshotRow, key)
            return dict(row.record) if row is not None else None

    def range_scan(self, start: date, end: date) -> list[tuple[date, dict[str, Any]]]:
        statement = (
            select(DailySnapshotRow)
            .where(DailySnapshotRow.day >= start, DailySnapshotRow.day <= end)
            .order_by(DailySnapshotRow.day)
        )
        with self._session() as session:
            return [(row.day, dict(row.record)) for row in session.scalars(statement)]

    def delete_before(self, cutoff: date) -> int:
        with self._session() as session:
            result = session.execute(delete(DailySnapshotRow).where(DailySnapshotRow.day < cutoff))
            return int(result.rowcount or 0)

    def keys(self) -> list[date]:
        with self._session() as session:
            return list(session.scalars(select(DailySnapshotRow.day).order_by(DailySnapshotRow.day)))
