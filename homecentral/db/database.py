"""SQLAlchemy engine, session factory and FastAPI session dependency."""

import os
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from homecentral.config import get_settings
from homecentral.core.logging import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all models."""


_engine: Optional[Engine] = None
_session_local: Optional[sessionmaker] = None


def _make_engine(database_url: str) -> Engine:
    """Create an engine with dialect-specific configuration.

    - SQLite: check_same_thread=False, foreign keys enforced per connection
    - PostgreSQL: connection pooling with pre-ping
    """
    connect_args: dict = {}
    kwargs: dict = {"pool_pre_ping": True}

    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        if database_url.startswith("sqlite:///") and ":memory:" not in database_url:
            directory = os.path.dirname(database_url[len("sqlite:///"):])
            if directory:
                os.makedirs(directory, exist_ok=True)
    elif database_url.startswith("postgresql"):
        kwargs["pool_size"] = 10
        kwargs["max_overflow"] = 20

    kwargs["connect_args"] = connect_args
    engine = create_engine(database_url, **kwargs)

    if database_url.startswith("sqlite"):

        @event.listens_for(engine, "connect")
        def _enable_sqlite_fks(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def get_engine() -> Engine:
    """Return the process-wide engine, creating it from settings on first use."""
    global _engine
    if _engine is None:
        _engine = _make_engine(get_settings().effective_database_url)
    return _engine


def get_session_local() -> sessionmaker:
    """Return the session factory bound to the current engine."""
    global _session_local
    if _session_local is None:
        _session_local = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _session_local


def dispose_engine() -> None:
    """Dispose the engine so the next call rebuilds it from fresh settings."""
    global _engine, _session_local
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_local = None


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a request-scoped session."""
    db = get_session_local()()
    try:
        yield db
    finally:
        db.close()


def verify_database_connection() -> bool:
    """Run a trivial query to confirm the database is reachable."""
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as exc:
        logger.error("Database connection check failed", data={"error": type(exc).__name__})
        return False
