"""ORM models for RecordStore."""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


# export models
from .record import RecordVersion  # noqa: E402,F401
