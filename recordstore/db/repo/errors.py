"""Typed exceptions for the versioned store, each tagged with a closed ErrorKind."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of failure kinds surfaced by the store and the service facade."""

    INVALID_ID = "invalid_id"
    INVALID_DATA = "invalid_data"
    NOT_FOUND = "not_found"
    VERSION_NOT_FOUND = "version_not_found"
    ALREADY_EXISTS = "already_exists"
    STORAGE_FAILURE = "storage_failure"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"


class RecordStoreError(Exception):
    """Base class; `kind` identifies the failure for callers."""

    kind: ErrorKind = ErrorKind.STORAGE_FAILURE


class InvalidIdError(RecordStoreError):
    """Record id is not a positive integer."""

    kind = ErrorKind.INVALID_ID


class InvalidDataError(RecordStoreError):
    """Record data or field changes are not a flat str -> str mapping."""

    kind = ErrorKind.INVALID_DATA


class NotFoundError(RecordStoreError):
    """No version exists for the record id."""

    kind = ErrorKind.NOT_FOUND


class VersionNotFoundError(RecordStoreError):
    """The requested (id, version) snapshot does not exist."""

    kind = ErrorKind.VERSION_NOT_FOUND


class AlreadyExistsError(RecordStoreError):
    """Version 1 already exists for the record id."""

    kind = ErrorKind.ALREADY_EXISTS


class StorageError(RecordStoreError):
    """Persistent storage failure (DB I/O, serialization, exhausted write retries)."""

    kind = ErrorKind.STORAGE_FAILURE


class OperationCancelledError(RecordStoreError):
    """Caller cancelled the operation; nothing was written."""

    kind = ErrorKind.CANCELLED


class DeadlineExceededError(RecordStoreError):
    """Caller deadline passed mid-operation; nothing was written."""

    kind = ErrorKind.TIMEOUT
