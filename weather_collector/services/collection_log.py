"""Audit log persistence for collection attempts."""

from __future__ import annotations

import datetime as dt
import json
import logging
import traceback

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from weather_collector.core.logging_config import redact
from weather_collector.db.session import get_session
from weather_collector.models import CollectionLogEntry

logger = logging.getLogger(__name__)


class CollectionLogError(RuntimeError):
    """Raised when an audit row cannot be written."""


class CollectionLogStore:
    """Pending row at start, one terminal write at completion.

    Each write runs in its own session so the log stays writable after a
    snapshot persistence failure.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def start(self, entry: CollectionLogEntry) -> CollectionLogEntry:
        """Persist ``entry`` as pending and record the new row id on it."""
        row = CollectionLogEntry(**entry.model_dump(exclude={"id"}))
        self._write(row)
        entry.id = row.id
        return entry

    def finish(self, entry: CollectionLogEntry) -> CollectionLogEntry:
        """Write the terminal status, updating the pending row if one exists."""
        return self._write(CollectionLogEntry(**entry.model_dump()))

    def entries_for(self, collection_date: dt.date) -> list[CollectionLogEntry]:
        with get_session(self.engine) as session:
            stmt = (
                select(CollectionLogEntry)
                .where(CollectionLogEntry.collection_date == collection_date)
                .order_by(CollectionLogEntry.id)
            )
            return list(session.exec(stmt).all())

    def _write(self, row: CollectionLogEntry) -> CollectionLogEntry:
        with get_session(self.engine) as session:
            try:
                merged = session.merge(row)
                session.commit()
                session.refresh(merged)
            except SQLAlchemyError as exc:
                session.rollback()
                raise CollectionLogError(f"Failed to log collection attempt: {exc}") from exc
            row.id = merged.id
            return merged


def error_details(exc: BaseException) -> str:
    """Serialize ``exc`` as ``{"message", "trace"}`` with credentials masked."""
    trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return json.dumps({"message": redact(str(exc)), "trace": redact(trace)})


__all__ = ["CollectionLogError", "CollectionLogStore", "error_details"]
