"""SQLAlchemy engine/session helpers shared by the ledger stores.

Usage
-----
from db.client import session_scope

with session_scope(database_url=url) as s:
    s.execute(...)

One engine is kept per database URL, so a process can hold several databases
at once (the test suite creates a fresh SQLite file per test). SQLite
connections get a ``now()`` SQL function so the schema's ``server_default``
timestamps work there as they do on Postgres.
"""

from __future__ import annotations

import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

_ENGINES: dict[str, Engine] = {}
_SESSION_MAKERS: dict[str, sessionmaker[Session]] = {}
_LOCK = threading.Lock()


def _resolve_url(override: str | None) -> str:
    url = override or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("No database URL given and DATABASE_URL is not set")
    return url


def _sqlite_now() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S.%f")


def _install_sqlite_functions(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _record) -> None:
        dbapi_conn.create_function("now", 0, _sqlite_now)


def get_engine(*, database_url: str | None = None) -> Engine:
    """Engine for ``database_url`` (or ``DATABASE_URL``), created on first use."""

    url = _resolve_url(database_url)
    with _LOCK:
        if url in _ENGINES:
            return _ENGINES[url]
        engine = create_engine(url, pool_pre_ping=True)
        if engine.dialect.name == "sqlite":
            _install_sqlite_functions(engine)
        _ENGINES[url] = engine
        _SESSION_MAKERS[url] = sessionmaker(bind=engine, expire_on_commit=False, class_=Session)
        return engine


def get_session(*, database_url: str | None = None) -> Session:
    url = _resolve_url(database_url)
    get_engine(database_url=url)
    return _SESSION_MAKERS[url]()


@contextmanager
def session_scope(*, database_url: str | None = None) -> Iterator[Session]:
    """One unit of work: commit on success, roll back and re-raise on error."""

    session = get_session(database_url=database_url)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def dispose_engines() -> None:
    """Dispose every cached engine (closes pooled connections)."""

    with _LOCK:
        engines = list(_ENGINES.values())
        _ENGINES.clear()
        _SESSION_MAKERS.clear()
    for engine in engines:
        engine.dispose()


__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "dispose_engines",
]
