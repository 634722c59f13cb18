"""Versioned store: contract, DTOs, errors and the SQLAlchemy implementation."""

__all__ = ["record_store", "SqlAlchemyVersionedStore"]

# optionally expose concrete implementation
from .records_sql import SqlAlchemyVersionedStore  # noqa: E402,F401
