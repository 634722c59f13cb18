"""Data contracts (DTO) for versioned records. No storage logic here."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, TypeAlias


class FieldDeletion(Enum):
    """Explicit "remove this key" marker inside a set of field changes."""

    DELETE = "delete"

    def __repr__(self) -> str:
        return "DELETE"


DELETE = FieldDeletion.DELETE

# Per key: absent -> untouched, str -> set/overwrite, DELETE -> remove
FieldChange: TypeAlias = str | FieldDeletion
FieldChanges: TypeAlias = Mapping[str, FieldChange]


@dataclass(frozen=True, slots=True)
class RecordSnapshot:
    """
    Immutable (id, version) snapshot of a record.

    `data` is always a private copy; mutating it never touches stored state.
    Timestamps are timezone-aware UTC.
    """

    id: int
    version: int
    data: dict[str, str] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Plain JSON-friendly view: id, data, version, created_at, updated_at."""
        return {
            "id": self.id,
            "data": dict(self.data),
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


def changes_from_payload(payload: Mapping[str, str | None]) -> dict[str, FieldChange]:
    """JSON-style body (null = delete the key) -> typed field changes."""
    return {key: DELETE if value is None else value for key, value in payload.items()}
