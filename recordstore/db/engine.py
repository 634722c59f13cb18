"""SQLAlchemy engine and session helpers for RecordStore."""

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .paths import db_url

# How long a SQLite writer waits on the database lock before "database is locked"
SQLITE_BUSY_TIMEOUT_SEC = 30.0

_DB_URL = db_url()


def make_engine(url: str) -> Engine:
    """
    Build an engine for `url`.

    SQLite connections are shared across request threads (check_same_thread=False)
    and wait on the engine's own lock instead of failing fast.
    """
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_SEC}
    return create_engine(url, connect_args=connect_args, future=True)


# Single engine for the process, shared by all callers
engine = make_engine(_DB_URL)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)


@contextmanager
def get_session():
    """
    Context-managed DB session.

    Usage:
        with get_session() as s:
            ...
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
