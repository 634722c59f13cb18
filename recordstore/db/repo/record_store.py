"""Abstract interface for the versioned record store (no implementation here)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import TYPE_CHECKING

from .schemas import FieldChanges, RecordSnapshot

if TYPE_CHECKING:
    from recordstore.cancellation import CancelToken


class VersionedStore(ABC):
    """
    Contract for append-only versioned persistence of records.

    Implementations must:
      - keep versions of an id dense (1..N), assigning version numbers themselves,
      - never modify a written (id, version) snapshot, only append new ones,
      - carry created_at of version 1 forward unchanged,
      - make update's read-latest-then-append atomic per id w.r.t. other writers,
      - honour `cancel` without partially applying a write.
    """

    @abstractmethod
    def get_latest(self, id: int, *, cancel: CancelToken | None = None) -> RecordSnapshot:
        """Snapshot with the highest version. May raise InvalidIdError or NotFoundError."""
        raise NotImplementedError

    @abstractmethod
    def get_version(self, id: int, version: int, *, cancel: CancelToken | None = None) -> RecordSnapshot:
        """Exact (id, version) snapshot. May raise VersionNotFoundError (unknown id included)."""
        raise NotImplementedError

    @abstractmethod
    def create(self, id: int, data: Mapping[str, str], *, cancel: CancelToken | None = None) -> RecordSnapshot:
        """
        Write version 1 with created_at == updated_at == now.
        May raise InvalidIdError, InvalidDataError or AlreadyExistsError.
        """
        raise NotImplementedError

    @abstractmethod
    def list_versions(self, id: int, *, cancel: CancelToken | None = None) -> list[int]:
        """All version numbers ascending. May raise NotFoundError."""
        raise NotImplementedError

    @abstractmethod
    def apply_update(self, id: int, changes: FieldChanges, *, cancel: CancelToken | None = None) -> RecordSnapshot:
        """Apply field changes to the latest data and append version latest+1. May raise NotFoundError."""
        raise NotImplementedError
