import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path


def setup_logging(  # noqa: PLR0913
    *,
    enabled: bool = True,
    debug: bool = False,
    logger_name: str = "recordstore",
    file_path: str | None = "logs/recordstore.log",
    max_bytes: int = 500_000,
    backups: int = 3,
) -> logging.Logger:
    """
    Configure the `recordstore` logger tree (store, protection, service are children).

    - enabled=False: NullHandler only, level WARNING (or DEBUG if debug=True).
    - enabled=True: StreamHandler and, unless file_path is None, a RotatingFileHandler.
    """
    logger = logging.getLogger(logger_name)

    # repeated calls must not stack duplicate handlers
    logger.handlers.clear()

    level = logging.DEBUG if debug else logging.INFO
    if not enabled:
        logger.setLevel(logging.DEBUG if debug else logging.WARNING)
        logger.addHandler(logging.NullHandler())
        return logger

    logger.setLevel(level)

    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    sh = logging.StreamHandler()
    sh.setFormatter(fmt)
    logger.addHandler(sh)

    if file_path:
        Path(file_path).parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(file_path, maxBytes=max_bytes, backupCount=backups, encoding="utf-8")
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    return logger
