"""Caller-side cancellation and deadlines for store operations."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from recordstore.db.repo.errors import DeadlineExceededError, OperationCancelledError

__all__ = ["CancelToken"]


def _now_default() -> float:
    return time.monotonic()


class CancelToken:
    """
    Cancellation signal with an optional deadline.

    One token follows one request; any thread may call cancel(). The store polls
    `done` between steps and while SQLite executes a statement.
    """

    def __init__(self, timeout: float | None = None, *, now_fn: Callable[[], float] = _now_default):
        self._now_fn = now_fn
        self._event = threading.Event()
        self._deadline = None if timeout is None else now_fn() + timeout

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and self._now_fn() >= self._deadline

    @property
    def done(self) -> bool:
        return self.cancelled or self.expired

    def remaining(self) -> float | None:
        """Seconds until the deadline (never negative), None without a deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._now_fn())

    def raise_if_done(self) -> None:
        # explicit cancel wins over an expired deadline
        if self.cancelled:
            raise OperationCancelledError("operation cancelled by caller")
        if self.expired:
            raise DeadlineExceededError("operation deadline exceeded")

    def sleep(self, seconds: float) -> None:
        """Sleep up to `seconds`, waking early on cancel or deadline."""
        left = self.remaining()
        if left is not None:
            seconds = min(seconds, left)
        if seconds > 0:
            self._event.wait(seconds)
        self.raise_if_done()
