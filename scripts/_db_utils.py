"""
Database plumbing shared by the operational scripts.

Scripts never build the Flask app: the release phase runs before any worker
boots, so they open their own short-lived engine here.
"""
from __future__ import annotations

import os
from contextlib import contextmanager
from collections.abc import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

DEFAULT_DATABASE_URL = "sqlite:///tutoria.db"


def resolve_database_url(database_url: str | None = None) -> str:
    """Explicit argument, then DATABASE_URL, then the local SQLite file."""
    return (database_url or os.environ.get("DATABASE_URL") or DEFAULT_DATABASE_URL).strip()


def create_script_engine(db_url: str) -> Engine:
    if not db_url.startswith("sqlite"):
        return create_engine(db_url, future=True, pool_pre_ping=True, pool_size=1, max_overflow=0)

    engine = create_engine(db_url, future=True)

    @event.listens_for(engine, "connect")
    def _sqlite_pragmas(dbapi_connection, connection_record):
        # Same referential behaviour as the app engine.
        cur = dbapi_connection.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    return engine


@contextmanager
def script_session(database_url: str | None = None) -> Iterator[Session]:
    """One committed unit of work on a throwaway engine."""
    engine = create_script_engine(resolve_database_url(database_url))
    s = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()
