from .cancellation import CancelToken
from .db.repo.errors import (
    AlreadyExistsError,
    DeadlineExceededError,
    ErrorKind,
    InvalidDataError,
    InvalidIdError,
    NotFoundError,
    OperationCancelledError,
    RecordStoreError,
    StorageError,
    VersionNotFoundError,
)
from .db.repo.records_sql import SqlAlchemyVersionedStore, apply_field_changes
from .db.repo.schemas import DELETE, FieldChange, RecordSnapshot, changes_from_payload
from .logging_utils import setup_logging
from .protection import MAX_READ_ATTEMPTS, MAX_WRITE_ATTEMPTS
from .service import DEFAULT_TIMEOUT, RecordService, ServiceError

__all__ = [
    "CancelToken",
    "AlreadyExistsError",
    "DeadlineExceededError",
    "ErrorKind",
    "InvalidDataError",
    "InvalidIdError",
    "NotFoundError",
    "OperationCancelledError",
    "RecordStoreError",
    "StorageError",
    "VersionNotFoundError",
    "SqlAlchemyVersionedStore",
    "apply_field_changes",
    "DELETE",
    "FieldChange",
    "RecordSnapshot",
    "changes_from_payload",
    "setup_logging",
    "MAX_READ_ATTEMPTS",
    "MAX_WRITE_ATTEMPTS",
    "DEFAULT_TIMEOUT",
    "RecordService",
    "ServiceError",
]
__version__ = "0.1.0"
