"""Centralized user-data, database and migrations paths for RecordStore."""

from __future__ import annotations

import os
import platform
from pathlib import Path

APP_NAME = "RecordStore"

__all__ = ["APP_NAME", "user_data_dir", "db_path", "db_url", "alembic_dir"]


def user_data_dir() -> Path:
    """
    Return the per-OS user data directory for the store and ensure it exists.

    Windows: %APPDATA%/RecordStore
    macOS:   ~/Library/Application Support/RecordStore
    Linux:   ~/.local/share/RecordStore

    Override (for dev/tests): set env RECORDSTORE_DATA_DIR to an absolute path.
    """
    override = os.getenv("RECORDSTORE_DATA_DIR")
    if override:
        p = Path(override).expanduser().resolve()
        p.mkdir(parents=True, exist_ok=True)
        return p

    system = platform.system()
    if system == "Windows":
        base = os.getenv("APPDATA", str(Path.home() / "AppData" / "Roaming"))
        p = Path(base) / APP_NAME
    elif system == "Darwin":
        p = Path.home() / "Library" / "Application Support" / APP_NAME
    else:
        p = Path.home() / ".local" / "share" / APP_NAME

    p.mkdir(parents=True, exist_ok=True)
    return p


def db_path() -> Path:
    """Path to the SQLite records database: <user_data_dir>/records.db."""
    return user_data_dir() / "records.db"


def db_url() -> str:
    """
    SQLAlchemy URL of the records database.

    RECORDSTORE_DB_URL wins if set (any SQLAlchemy URL), otherwise SQLite at db_path().
    """
    override = os.getenv("RECORDSTORE_DB_URL")
    if override:
        return override
    return f"sqlite:///{db_path().as_posix()}"


def alembic_dir() -> Path:
    """
    Locate the Alembic migrations folder.

    Resolution order:
      1) Env override RECORDSTORE_ALEMBIC_DIR (absolute path).
      2) Dev/editable install: <project_root>/alembic_migrations
      3) Fallback: <user_data_dir>/alembic_migrations (will be created if missing).
    """
    override = os.getenv("RECORDSTORE_ALEMBIC_DIR")
    if override:
        p = Path(override).expanduser().resolve()
        if p.exists():
            return p

    # This file is recordstore/db/paths.py → project root is parents[2]
    project_root = Path(__file__).resolve().parents[2]
    p = project_root / "alembic_migrations"
    if p.exists():
        return p

    p = user_data_dir() / "alembic_migrations"
    p.mkdir(parents=True, exist_ok=True)
    return p
