"""Engine and session wiring for the Helpline database."""
from __future__ import annotations

from collections.abc import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from helpline.config import get_settings
from helpline.models.base import Base

_engine: Engine | None = None
_sessionmaker: sessionmaker[Session] | None = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:  # pragma: no cover
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str) -> Engine:
    """Create an engine for ``url``.

    SQLite connections are shared across the request threadpool and enforce
    foreign keys.
    """

    if not url.startswith("sqlite"):
        return create_engine(url, future=True, pool_pre_ping=True)

    engine = create_engine(url, future=True, connect_args={"check_same_thread": False})
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def init_engine() -> Engine:
    """Build the process-wide engine and session factory once."""

    global _engine, _sessionmaker
    if _engine is None:
        _engine = build_engine(get_settings().database_url)
        _sessionmaker = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)
    return _engine


def get_engine() -> Engine:
    return _engine if _engine is not None else init_engine()


def get_sessionmaker() -> sessionmaker[Session]:
    """Session factory for code running outside a request (sweeps, scripts)."""

    if _sessionmaker is None:
        init_engine()
    assert _sessionmaker is not None
    return _sessionmaker


def get_db() -> Iterator[Session]:
    """FastAPI dependency: one session per request, always closed."""

    session = get_sessionmaker()()
    try:
        yield session
    finally:
        session.close()


def create_all() -> None:
    Base.metadata.create_all(bind=get_engine())


def close_engine() -> None:
    global _engine, _sessionmaker
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _sessionmaker = None


__all__ = [
    "build_engine",
    "close_engine",
    "create_all",
    "get_db",
    "get_engine",
    "get_sessionmaker",
    "init_engine",
]
