"""Snapshot persistence and the pre-flight existence check."""

from __future__ import annotations

import datetime as dt
import logging

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import select

from weather_collector.db.session import get_session
from weather_collector.models import WeatherSnapshot

logger = logging.getLogger(__name__)


class SnapshotStoreError(RuntimeError):
    """Raised when the snapshot table cannot be read or written."""


class SnapshotStore:
    """One canonical row per date; rows are only ever inserted."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def exists(self, target: dt.date) -> bool:
        try:
            with get_session(self.engine) as session:
                row = session.exec(
                    select(WeatherSnapshot.id).where(WeatherSnapshot.date == target)
                ).first()
        except SQLAlchemyError as exc:
            raise SnapshotStoreError(f"Error checking existing data: {exc}") from exc
        return row is not None

    def get(self, target: dt.date) -> WeatherSnapshot | None:
        try:
            with get_session(self.engine) as session:
                return session.exec(
                    select(WeatherSnapshot).where(WeatherSnapshot.date == target)
                ).first()
        except SQLAlchemyError as exc:
            raise SnapshotStoreError(f"Failed to retrieve weather data: {exc}") from exc

    def insert(self, snapshot: WeatherSnapshot) -> bool:
        """Insert ``snapshot``; return ``False`` if its date is already stored.

        The unique key on ``date`` is the authority, so a concurrent run that
        slipped past ``exists`` ends up here as a no-op rather than a duplicate.
        """
        with get_session(self.engine) as session:
            session.add(snapshot)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                logger.warning("Weather snapshot for %s already stored by another run", snapshot.date)
                return False
            except SQLAlchemyError as exc:
                session.rollback()
                raise SnapshotStoreError(f"Failed to store weather snapshot: {exc}") from exc
            session.refresh(snapshot)
        logger.info("Weather data stored successfully for %s", snapshot.date)
        return True


__all__ = ["SnapshotStore", "SnapshotStoreError"]
