"""
Durable report storage over SQLAlchemy
"""

from __future__ import annotations

from datetime import datetime, tzinfo
from typing import List, Type, TypeVar

import structlog
from dateutil import parser as date_parser
from sqlalchemy import desc, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from partmon.core.exceptions import StorageError
from partmon.database.connection import Base, create_session_factory, init_database

logger = structlog.get_logger(__name__)

RecordT = TypeVar("RecordT", bound=Base)


class ReportStore:
    """Append/read layer over persisted interval and alert records.

    Writes are single-row insert-or-replace operations keyed by primary key,
    so a failed write never leaves a partial row behind. SQLite serializes
    writers; ``write`` blocks while the database is locked.
    """

    def __init__(self, engine: Engine, timezone: tzinfo) -> None:
        self._engine = engine
        self._timezone = timezone
        self._session_factory = create_session_factory(engine)
        try:
            init_database(engine)
        except SQLAlchemyError as exc:
            raise StorageError(f"schema creation failed: {exc}", operation="init") from exc

    def write(self, record: Base) -> Base:
        """Insert or replace ``record`` by primary key."""
        with self._session_factory() as session:
            try:
                merged = session.merge(record)
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise StorageError(f"write failed: {exc}", operation="write") from exc
            logger.debug("Record written", table=record.__tablename__)
            return merged

    def read_recent(self, model: Type[RecordT], limit: int, offset: int) -> List[RecordT]:
        """Up to ``limit`` records, newest first, skipping ``offset`` rows."""
        query_order = self._ordering(model)
        with self._session_factory() as session:
            try:
                return (
                    session.query(model)
                    .order_by(*query_order)
                    .offset(offset)
                    .limit(limit)
                    .all()
                )
            except SQLAlchemyError as exc:
                raise StorageError(f"read failed: {exc}", operation="read_recent") from exc

    def read_range(self, model: Type[RecordT], start: str, end: str) -> List[RecordT]:
        """All records whose time column lies in ``[start, end]``, newest first."""
        lower = self._parse_bound(start)
        upper = self._parse_bound(end)
        column = getattr(model, model.__time_attribute__)
        with self._session_factory() as session:
            try:
                return (
                    session.query(model)
                    .filter(column >= lower, column <= upper)
                    .order_by(*self._ordering(model))
                    .all()
                )
            except SQLAlchemyError as exc:
                raise StorageError(f"range read failed: {exc}", operation="read_range") from exc

    def ping(self) -> None:
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            raise StorageError(f"database unreachable: {exc}", operation="ping") from exc

    def close(self) -> None:
        self._engine.dispose()
        logger.info("Report store closed")

    def to_local(self, value: datetime) -> datetime:
        """Naive wall time in the store's timezone, as persisted."""
        if value.tzinfo is not None:
            value = value.astimezone(self._timezone).replace(tzinfo=None)
        return value

    def _parse_bound(self, value: str) -> datetime:
        try:
            return self.to_local(date_parser.parse(value))
        except (ValueError, OverflowError, TypeError) as exc:
            raise StorageError(f"invalid time bound {value!r}", operation="read_range") from exc

    @staticmethod
    def _ordering(model):
        column = getattr(model, model.__time_attribute__)
        primary_keys = [desc(pk) for pk in model.__table__.primary_key.columns]
        return [desc(column), *primary_keys]
