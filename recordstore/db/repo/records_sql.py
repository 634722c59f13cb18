"""SQLAlchemy-backed implementation of VersionedStore."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import insert, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from recordstore.db.engine import SQLITE_BUSY_TIMEOUT_SEC, get_session
from recordstore.db.models import RecordVersion
from recordstore.db.repo.errors import (
    AlreadyExistsError,
    DeadlineExceededError,
    InvalidDataError,
    InvalidIdError,
    NotFoundError,
    OperationCancelledError,
    RecordStoreError,
    StorageError,
    VersionNotFoundError,
)
from recordstore.db.repo.record_store import VersionedStore
from recordstore.db.repo.schemas import DELETE, FieldChange, FieldChanges, RecordSnapshot
from recordstore.protection import (
    LOCK_POLL_SEC,
    MAX_READ_ATTEMPTS,
    MAX_WRITE_ATTEMPTS,
    is_transient,
    is_write_conflict,
    run_with_retries,
)

if TYPE_CHECKING:
    from recordstore.cancellation import CancelToken

logger = logging.getLogger("recordstore.store")

# SQLite VM instructions between cancellation checks while a statement runs
_PROGRESS_STEPS = 1000


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _to_db_ts(dt: datetime) -> datetime:
    """aware -> naive UTC, as stored in the table."""
    return dt.astimezone(UTC).replace(tzinfo=None)


def _from_db_ts(dt: datetime) -> datetime:
    """naive UTC from the table -> aware UTC."""
    return dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt.astimezone(UTC)


def _validate_id(id) -> None:
    if isinstance(id, bool) or not isinstance(id, int) or id <= 0:
        raise InvalidIdError(f"invalid id {id!r}; id must be a positive integer")


def _validate_data(data) -> dict[str, str]:
    if not isinstance(data, Mapping):
        raise InvalidDataError("record data must be a mapping of str to str")
    for key, value in data.items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise InvalidDataError(f"record data must map str to str, got {key!r}: {value!r}")
    return dict(data)


def _validate_changes(changes) -> dict[str, FieldChange]:
    if not isinstance(changes, Mapping):
        raise InvalidDataError("field changes must be a mapping of str to str or DELETE")
    for key, change in changes.items():
        if not isinstance(key, str) or not (change is DELETE or isinstance(change, str)):
            raise InvalidDataError(f"field change must map str to str or DELETE, got {key!r}: {change!r}")
    return dict(changes)


def _encode_data(data: Mapping[str, str]) -> str:
    return json.dumps(data, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


def _decode_data(blob: str) -> dict[str, str]:
    try:
        obj = json.loads(blob)
    except (TypeError, ValueError) as e:
        raise StorageError(f"stored record data is not valid JSON: {e}") from e
    if not isinstance(obj, dict) or not all(isinstance(k, str) and isinstance(v, str) for k, v in obj.items()):
        raise StorageError("stored record data is not a str -> str object")
    return obj


def apply_field_changes(data: Mapping[str, str], changes: FieldChanges) -> dict[str, str]:
    """Return a new mapping: DELETE removes a key (no-op if absent), a str sets it, others untouched."""
    result = dict(data)
    for key, change in changes.items():
        if change is DELETE:
            result.pop(key, None)
        else:
            result[key] = change
    return result


def _to_snapshot(row: RecordVersion) -> RecordSnapshot:
    return RecordSnapshot(
        id=row.id,
        version=row.version,
        data=_decode_data(row.data),
        created_at=_from_db_ts(row.created_at),
        updated_at=_from_db_ts(row.updated_at),
    )


@contextmanager
def _store_session() -> Iterator[Session]:
    """get_session() plus an explicit rollback, so a failed attempt never leaks into the next one."""
    with get_session() as s:
        try:
            yield s
        except BaseException:
            s.rollback()
            raise


@contextmanager
def _interruptible(session: Session, token: CancelToken | None) -> Iterator[None]:
    """
    Abort in-flight SQLite statements once `token` is cancelled or expired.

    SQLite never calls the progress handler while it waits on another
    connection's lock, so the busy timeout is also cut to a short slice (never
    past the deadline). The resulting "database is locked" goes back to
    run_with_retries, which checks the token and polls again.

    Both settings are restored before the block exits, i.e. before any commit,
    while the connection is still owned by this session.
    """
    if token is None:
        yield
        return

    conn = session.connection()
    raw = None
    if conn.dialect.name == "sqlite":
        raw = conn.connection.dbapi_connection
        raw.set_progress_handler(lambda: 1 if token.done else 0, _PROGRESS_STEPS)
        raw.execute(f"PRAGMA busy_timeout = {_busy_timeout_ms(token)}")
    try:
        yield
    finally:
        if raw is not None:
            raw.set_progress_handler(None, 0)
            raw.execute(f"PRAGMA busy_timeout = {int(SQLITE_BUSY_TIMEOUT_SEC * 1000)}")


def _busy_timeout_ms(token: CancelToken) -> int:
    wait = LOCK_POLL_SEC
    left = token.remaining()
    if left is not None:
        wait = min(wait, left)
    return int(wait * 1000)


def _storage_error(e: SQLAlchemyError, token: CancelToken | None, op: str) -> RecordStoreError:
    # an interrupted statement shows up as OperationalError; report why it was interrupted
    if token is not None and token.cancelled:
        return OperationCancelledError(f"{op} cancelled by caller")
    if token is not None and token.expired:
        return DeadlineExceededError(f"{op} deadline exceeded")
    return StorageError(f"{op} failed: {e}")


class SqlAlchemyVersionedStore(VersionedStore):
    """Append-only store over the `records` table; (id, version) primary key arbitrates writers."""

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utcnow,
        max_write_attempts: int = MAX_WRITE_ATTEMPTS,
        max_read_attempts: int = MAX_READ_ATTEMPTS,
    ):
        self._clock = clock
        self.max_write_attempts = max_write_attempts
        self.max_read_attempts = max_read_attempts

    # ---------- helpers ----------

    def _now(self) -> datetime:
        # injected clocks may hand back any timezone (or naive local time)
        return self._clock().astimezone(UTC)

    @staticmethod
    def _latest_row(s: Session, id: int) -> RecordVersion | None:
        stmt = select(RecordVersion).where(RecordVersion.id == id).order_by(RecordVersion.version.desc()).limit(1)
        return s.execute(stmt).scalars().first()

    def _read(self, fn: Callable[[], object], token: CancelToken | None, op: str):
        try:
            return run_with_retries(
                fn,
                attempts=self.max_read_attempts,
                should_retry=is_transient,
                token=token,
                op_name=op,
                lock_wait_sec=SQLITE_BUSY_TIMEOUT_SEC,
            )
        except SQLAlchemyError as e:
            raise _storage_error(e, token, op) from e

    # ---------- interface ----------

    def get_latest(self, id: int, *, cancel: CancelToken | None = None) -> RecordSnapshot:
        _validate_id(id)

        def _fetch() -> RecordSnapshot:
            with _store_session() as s, _interruptible(s, cancel):
                row = self._latest_row(s, id)
                if row is None:
                    raise NotFoundError(f"record id={id} does not exist")
                return _to_snapshot(row)

        return self._read(_fetch, cancel, "get_latest")

    def get_version(self, id: int, version: int, *, cancel: CancelToken | None = None) -> RecordSnapshot:
        _validate_id(id)
        if isinstance(version, bool) or not isinstance(version, int) or version <= 0:
            raise VersionNotFoundError(f"version {version!r} not found for record id={id}")

        def _fetch() -> RecordSnapshot:
            with _store_session() as s, _interruptible(s, cancel):
                row = s.get(RecordVersion, (id, version))
                if row is None:
                    raise VersionNotFoundError(f"version {version} not found for record id={id}")
                return _to_snapshot(row)

        return self._read(_fetch, cancel, "get_version")

    def list_versions(self, id: int, *, cancel: CancelToken | None = None) -> list[int]:
        _validate_id(id)

        def _fetch() -> list[int]:
            with _store_session() as s, _interruptible(s, cancel):
                stmt = select(RecordVersion.version).where(RecordVersion.id == id).order_by(RecordVersion.version.asc())
                versions = list(s.execute(stmt).scalars().all())
            if not versions:
                raise NotFoundError(f"record id={id} does not exist")
            return versions

        return self._read(_fetch, cancel, "list_versions")

    def create(self, id: int, data: Mapping[str, str], *, cancel: CancelToken | None = None) -> RecordSnapshot:
        _validate_id(id)
        payload = _validate_data(data)
        blob = _encode_data(payload)
        now = self._now()

        def _insert() -> None:
            with _store_session() as s:
                with _interruptible(s, cancel):
                    s.execute(
                        insert(RecordVersion).values(
                            id=id, version=1, data=blob, created_at=_to_db_ts(now), updated_at=_to_db_ts(now)
                        )
                    )
                if cancel is not None:
                    cancel.raise_if_done()
                s.commit()

        try:
            run_with_retries(
                _insert,
                attempts=self.max_read_attempts,
                should_retry=is_transient,
                token=cancel,
                op_name="create",
                lock_wait_sec=SQLITE_BUSY_TIMEOUT_SEC,
            )
        except IntegrityError as e:
            # (id, 1) already taken
            raise AlreadyExistsError(f"record id={id} already exists") from e
        except SQLAlchemyError as e:
            raise _storage_error(e, cancel, "create") from e

        return RecordSnapshot(id=id, version=1, data=dict(payload), created_at=now, updated_at=now)

    def apply_update(self, id: int, changes: FieldChanges, *, cancel: CancelToken | None = None) -> RecordSnapshot:
        _validate_id(id)
        checked = _validate_changes(changes)

        def _attempt() -> RecordSnapshot:
            with _store_session() as s:
                with _interruptible(s, cancel):
                    latest = self._latest_row(s, id)
                    if latest is None:
                        raise NotFoundError(f"record id={id} does not exist")

                    new_data = apply_field_changes(_decode_data(latest.data), checked)
                    new_version = latest.version + 1
                    created_at = _from_db_ts(latest.created_at)
                    # updated_at never goes backwards, even if the wall clock does
                    updated_at = max(self._now(), _from_db_ts(latest.updated_at))

                    s.execute(
                        insert(RecordVersion).values(
                            id=id,
                            version=new_version,
                            data=_encode_data(new_data),
                            created_at=_to_db_ts(created_at),
                            updated_at=_to_db_ts(updated_at),
                        )
                    )
                if cancel is not None:
                    cancel.raise_if_done()
                s.commit()

            return RecordSnapshot(
                id=id, version=new_version, data=new_data, created_at=created_at, updated_at=updated_at
            )

        try:
            return run_with_retries(
                _attempt,
                attempts=self.max_write_attempts,
                should_retry=is_write_conflict,
                token=cancel,
                op_name="apply_update",
                lock_wait_sec=SQLITE_BUSY_TIMEOUT_SEC,
            )
        except IntegrityError as e:
            if cancel is not None and cancel.done:
                raise _storage_error(e, cancel, "apply_update") from e
            logger.warning("version race lost id=%d attempts=%d", id, self.max_write_attempts)
            raise StorageError(
                f"apply_update id={id}: concurrent writers kept winning after {self.max_write_attempts} attempts"
            ) from e
        except SQLAlchemyError as e:
            raise _storage_error(e, cancel, "apply_update") from e
