"""SQLModel engine and session management."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from weather_collector.core.config import Settings


def build_engine(settings: Settings) -> Engine:
    return create_engine(settings.database_url, echo=False, pool_pre_ping=True)


def init_db(engine: Engine) -> None:
    # Table classes must be registered on the metadata before create_all
    import weather_collector.models  # noqa: F401

    SQLModel.metadata.create_all(engine)


@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """Get a database session as a context manager (for use with 'with' statement)."""
    session = Session(engine)
    try:
        yield session
    finally:
        session.close()


__all__ = ["build_engine", "get_session", "init_db"]
