"""Programmatic Alembic upgrade for app startup (works with/without alembic.ini)."""

from __future__ import annotations

from alembic import command
from alembic.config import Config

from .paths import alembic_dir, db_url


def make_config(url: str | None = None) -> Config:
    """Alembic config pointing at our migrations and the records database."""
    root_ini = alembic_dir() / "alembic.ini"
    cfg = Config(str(root_ini)) if root_ini.exists() else Config()

    cfg.set_main_option("script_location", str(alembic_dir()))
    cfg.set_main_option("sqlalchemy.url", url or db_url())
    return cfg


def upgrade_to_head(url: str | None = None) -> None:
    """
    Ensure the DB schema is at the latest Alembic head.
    Safe to call on every app start.
    """
    command.upgrade(make_config(url), "head")
