# 1) Импорты
from __future__ import annotations

import os

from recordstore import DEFAULT_TIMEOUT, RecordService, SqlAlchemyVersionedStore
from recordstore.logging_utils import setup_logging

__all__ = ["bootstrap", "main"]


# 2) Константы / Конфигурация
REQUEST_TIMEOUT = float(os.getenv("RECORDSTORE_TIMEOUT", DEFAULT_TIMEOUT))

# ---- Логирование ----
LOG_ENABLED = True
LOG_DEBUG = os.getenv("RECORDSTORE_DEBUG") == "1"
LOG_FILE = "logs/recordstore.log"
LOG_MAX_BYTES = 1_000_000
LOG_BACKUPS = 3


def bootstrap(*, migrate: bool = True, log_file: str | None = LOG_FILE) -> RecordService:
    """
    Wire the store for a host process (HTTP adapter, worker, REPL).

    Configures logging, brings the schema to the Alembic head, returns the facade.
    """
    # локальный импорт: тесты подменяют шаг миграции через monkeypatch
    from recordstore.db.migrate import upgrade_to_head  # noqa: PLC0415

    logger = setup_logging(
        enabled=LOG_ENABLED,
        debug=LOG_DEBUG,
        file_path=log_file,
        max_bytes=LOG_MAX_BYTES,
        backups=LOG_BACKUPS,
    )
    if migrate:
        upgrade_to_head()
        logger.info("schema upgraded to head")

    service = RecordService(SqlAlchemyVersionedStore(), default_timeout=REQUEST_TIMEOUT)
    logger.info("record service ready timeout=%.1fs", REQUEST_TIMEOUT)
    return service


def main() -> None:
    bootstrap()


if __name__ == "__main__":  # pragma: no cover
    main()
