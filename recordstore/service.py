"""Record service facade: typed operations over a VersionedStore with caller-facing error kinds."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import TypeVar

from recordstore.cancellation import CancelToken
from recordstore.db.repo.errors import AlreadyExistsError, ErrorKind, RecordStoreError
from recordstore.db.repo.record_store import VersionedStore
from recordstore.db.repo.records_sql import SqlAlchemyVersionedStore
from recordstore.db.repo.schemas import FieldChanges, RecordSnapshot, changes_from_payload

__all__ = ["DEFAULT_TIMEOUT", "ErrorKind", "RecordService", "ServiceError"]

DEFAULT_TIMEOUT = 8.0

T = TypeVar("T")


class ServiceError(Exception):
    """Every facade failure: a closed `kind` plus a human-readable message."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self) -> str:
        return f"ServiceError(kind={self.kind.value!r}, message={self.message!r})"


class RecordService:
    """
    Stable operation set for callers (an HTTP adapter, a CLI, tests).

    Holds only the store reference and configuration. Each call gets its own
    CancelToken: the caller's `cancel` if given, otherwise one built from `timeout`
    (falling back to `default_timeout`; None disables the deadline).
    """

    def __init__(
        self,
        store: VersionedStore | None = None,
        *,
        default_timeout: float | None = DEFAULT_TIMEOUT,
        logger: logging.Logger | None = None,
    ):
        self.store = store if store is not None else SqlAlchemyVersionedStore()
        self.default_timeout = default_timeout
        self.logger = logger or logging.getLogger("recordstore.service")

    # ---------- helpers ----------

    def _token(self, timeout: float | None, cancel: CancelToken | None) -> CancelToken:
        if cancel is not None:
            return cancel
        return CancelToken(timeout if timeout is not None else self.default_timeout)

    def _call(self, op: str, id: int, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except RecordStoreError as e:
            level = logging.ERROR if e.kind is ErrorKind.STORAGE_FAILURE else logging.WARNING
            self.logger.log(level, "%s failed id=%r kind=%s reason=%s", op, id, e.kind.value, e)
            raise ServiceError(e.kind, str(e)) from e

    # ---------- operations ----------

    def get_latest(self, id: int, *, timeout: float | None = None, cancel: CancelToken | None = None) -> RecordSnapshot:
        token = self._token(timeout, cancel)
        snap = self._call("record_get", id, lambda: self.store.get_latest(id, cancel=token))
        self.logger.debug("record_get ok id=%d version=%d", id, snap.version)
        return snap

    def get_version(
        self, id: int, version: int, *, timeout: float | None = None, cancel: CancelToken | None = None
    ) -> RecordSnapshot:
        token = self._token(timeout, cancel)
        snap = self._call("record_get_version", id, lambda: self.store.get_version(id, version, cancel=token))
        self.logger.debug("record_get_version ok id=%d version=%d", id, snap.version)
        return snap

    def get(
        self, id: int, version: int | None = None, *, timeout: float | None = None, cancel: CancelToken | None = None
    ) -> RecordSnapshot:
        """Latest snapshot, or the exact one when `version` is given."""
        if version is None:
            return self.get_latest(id, timeout=timeout, cancel=cancel)
        return self.get_version(id, version, timeout=timeout, cancel=cancel)

    def list_versions(self, id: int, *, timeout: float | None = None, cancel: CancelToken | None = None) -> list[int]:
        token = self._token(timeout, cancel)
        versions = self._call("record_versions", id, lambda: self.store.list_versions(id, cancel=token))
        self.logger.debug("record_versions ok id=%d count=%d", id, len(versions))
        return versions

    def create(
        self, id: int, data: Mapping[str, str], *, timeout: float | None = None, cancel: CancelToken | None = None
    ) -> RecordSnapshot:
        token = self._token(timeout, cancel)
        snap = self._call("record_create", id, lambda: self.store.create(id, data, cancel=token))
        self.logger.info("record_create ok id=%d fields=%d", id, len(snap.data))
        return snap

    def apply_update(
        self, id: int, changes: FieldChanges, *, timeout: float | None = None, cancel: CancelToken | None = None
    ) -> RecordSnapshot:
        token = self._token(timeout, cancel)
        snap = self._call("record_update", id, lambda: self.store.apply_update(id, changes, cancel=token))
        self.logger.info("record_update ok id=%d version=%d", id, snap.version)
        return snap

    def save(
        self,
        id: int,
        payload: Mapping[str, str | None],
        *,
        timeout: float | None = None,
        cancel: CancelToken | None = None,
    ) -> RecordSnapshot:
        """
        Create-or-update from a JSON-style body where null means "delete the key".

        Missing record: created from the non-null entries. Existing record (or one a
        concurrent caller just created): payload applied as field changes.
        """
        if not isinstance(payload, Mapping):
            self.logger.warning(
                "record_save failed id=%r kind=%s reason=payload is not a mapping", id, ErrorKind.INVALID_DATA.value
            )
            raise ServiceError(ErrorKind.INVALID_DATA, "payload must be a mapping of str to str or null")

        token = self._token(timeout, cancel)
        initial = {key: value for key, value in payload.items() if value is not None}

        def _save() -> RecordSnapshot:
            try:
                return self.store.create(id, initial, cancel=token)
            except AlreadyExistsError:
                return self.store.apply_update(id, changes_from_payload(payload), cancel=token)

        snap = self._call("record_save", id, _save)
        self.logger.info("record_save ok id=%d version=%d", id, snap.version)
        return snap
