"""Bounded retry with jittered backoff for transient storage failures."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, TypeVar

from sqlalchemy.exc import DisconnectionError, IntegrityError, OperationalError

if TYPE_CHECKING:
    from recordstore.cancellation import CancelToken

# --- Retry and backoff constants ---
MAX_WRITE_ATTEMPTS = 10  # read-latest + insert rounds before giving up on a contended id
MAX_READ_ATTEMPTS = 3  # reads only retry on transient connectivity/lock errors
BACKOFF_BASE_SEC = 0.01
BACKOFF_MAX_SEC = 0.25
LOCK_POLL_SEC = 0.25  # longest single SQLite lock wait while a cancel token is attached

_LOCK_MARKERS = ("database is locked", "database is busy")
_TRANSIENT_MARKERS = (*_LOCK_MARKERS, "disk i/o error", "unable to open database")

T = TypeVar("T")

logger = logging.getLogger("recordstore.protection")


def backoff_delay(attempt: int, *, rand_fn: Callable[[], float] = random.random) -> float:
    """Exponential backoff for `attempt` (1-based), capped, with full jitter."""
    ceiling = min(BACKOFF_MAX_SEC, BACKOFF_BASE_SEC * (2 ** (attempt - 1)))
    return ceiling * rand_fn()


def is_transient(exc: BaseException) -> bool:
    """Connectivity or lock failure that may succeed on a fresh attempt."""
    if isinstance(exc, DisconnectionError):
        return True
    if isinstance(exc, OperationalError):
        if exc.connection_invalidated:
            return True
        msg = str(exc.orig if exc.orig is not None else exc).lower()
        return any(m in msg for m in _TRANSIENT_MARKERS)
    return False


def is_lock_wait(exc: BaseException) -> bool:
    """SQLite gave up waiting on another connection's lock (busy timeout elapsed)."""
    if not isinstance(exc, OperationalError) or exc.connection_invalidated:
        return False
    msg = str(exc.orig if exc.orig is not None else exc).lower()
    return any(m in msg for m in _LOCK_MARKERS)


def is_write_conflict(exc: BaseException) -> bool:
    """Losing writer of the (id, version) race, or a transient failure."""
    return isinstance(exc, IntegrityError) or is_transient(exc)


def run_with_retries(
    fn: Callable[[], T],
    *,
    attempts: int,
    should_retry: Callable[[BaseException], bool],
    token: CancelToken | None = None,
    sleep_fn: Callable[[float], None] = time.sleep,
    op_name: str = "operation",
    lock_wait_sec: float | None = None,
    now_fn: Callable[[], float] = time.monotonic,
) -> T:
    """
    Call `fn` up to `attempts` times.

    Only exceptions accepted by `should_retry` are retried; anything else and the
    final failure propagate unchanged. A cancelled/expired token stops retrying.

    With `lock_wait_sec`, lock waits (see is_lock_wait) do not use up attempts:
    `fn` is called again until `lock_wait_sec` has passed since the first call,
    checking the token in between. This lets callers run each statement with a
    short busy timeout and still wait for a long-held lock.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")
    lock_deadline = None if lock_wait_sec is None else now_fn() + lock_wait_sec
    attempt = 0
    while True:
        if token is not None:
            token.raise_if_done()
        try:
            return fn()
        except Exception as e:
            if lock_deadline is not None and is_lock_wait(e) and now_fn() < lock_deadline:
                logger.debug("%s lock wait, polling again", op_name)
                _pause(backoff_delay(1), token, sleep_fn)
                continue
            attempt += 1
            if attempt >= attempts or not should_retry(e):
                raise
            if token is not None and token.done:
                raise
            delay = backoff_delay(attempt)
            logger.debug("%s retry attempt=%d/%d delay=%.3f cause=%s", op_name, attempt, attempts, delay, type(e).__name__)
            _pause(delay, token, sleep_fn)


def _pause(delay: float, token: CancelToken | None, sleep_fn: Callable[[float], None]) -> None:
    if token is not None:
        token.sleep(delay)
    else:
        sleep_fn(delay)
