"""
Database engine, declarative base, and session helpers.

Every unit of work goes through DatabaseManager.db_session(): one session,
one transaction, committed on success and rolled back on any exception.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from parley.config import get_settings

Base = declarative_base()


def _enable_sqlite_foreign_keys(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _set_pragma(dbapi_connection, _record):  # pragma: no cover - driver hook
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def build_engine(database_url: Optional[str] = None, **kwargs) -> Engine:
    """Create an engine for the configured database (pool settings only apply to server databases)."""
    settings = get_settings()
    url = database_url or settings.database_url
    if url.startswith("sqlite"):
        engine = create_engine(url, **kwargs)
        _enable_sqlite_foreign_keys(engine)
        return engine
    kwargs.setdefault("pool_size", settings.database_pool_size)
    kwargs.setdefault("max_overflow", settings.database_max_overflow)
    kwargs.setdefault("pool_pre_ping", True)
    return create_engine(url, **kwargs)


class DatabaseManager:
    """Owns the engine and session factory. The engine is created lazily."""

    def __init__(self, engine: Optional[Engine] = None) -> None:
        self._engine = engine
        self._session_factory: Optional[sessionmaker] = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = build_engine()
        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine, autoflush=False, expire_on_commit=False
            )
        return self._session_factory

    @contextmanager
    def db_session(self) -> Iterator[Session]:
        """Yield a session bound to one transaction; commit on success, rollback on error."""
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


db_manager = DatabaseManager()


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding a transactional session."""
    with db_manager.db_session() as db:
        yield db
