import pytest
from sqlalchemy.exc import DisconnectionError, IntegrityError, OperationalError

from recordstore import protection
from recordstore.cancellation import CancelToken
from recordstore.db.repo.errors import OperationCancelledError
from recordstore.protection import (
    BACKOFF_MAX_SEC,
    backoff_delay,
    is_lock_wait,
    is_transient,
    is_write_conflict,
    run_with_retries,
)


def _op_error(msg, **kw):
    return OperationalError("SELECT 1", {}, Exception(msg), **kw)


def test_backoff_is_capped_and_jittered():
    assert backoff_delay(1, rand_fn=lambda: 1.0) == protection.BACKOFF_BASE_SEC
    assert backoff_delay(2, rand_fn=lambda: 1.0) == protection.BACKOFF_BASE_SEC * 2
    assert backoff_delay(50, rand_fn=lambda: 1.0) == BACKOFF_MAX_SEC
    assert backoff_delay(3, rand_fn=lambda: 0.0) == 0.0


@pytest.mark.parametrize(
    "exc,expected",
    [
        (_op_error("database is locked"), True),
        (_op_error("Database is BUSY"), True),
        (_op_error("whatever", connection_invalidated=True), True),
        (DisconnectionError("gone"), True),
        (_op_error("no such table: records"), False),
        (_op_error("interrupted"), False),
        (IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")), False),
        (ValueError("nope"), False),
    ],
)
def test_is_transient(exc, expected):
    assert is_transient(exc) is expected


def test_write_conflict_includes_integrity_error():
    assert is_write_conflict(IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")))
    assert is_write_conflict(_op_error("database is locked"))
    assert not is_write_conflict(_op_error("no such column"))


def test_run_with_retries_succeeds_after_failures():
    calls = {"n": 0}
    sleeps = []

    def fn():
        calls["n"] += 1
        if calls["n"] < 3:
            raise ValueError("flaky")
        return "ok"

    out = run_with_retries(fn, attempts=5, should_retry=lambda e: isinstance(e, ValueError), sleep_fn=sleeps.append)
    assert out == "ok"
    assert calls["n"] == 3
    assert len(sleeps) == 2


def test_run_with_retries_reraises_last_error():
    calls = {"n": 0}

    def fn():
        calls["n"] += 1
        raise ValueError(f"fail {calls['n']}")

    with pytest.raises(ValueError, match="fail 3"):
        run_with_retries(fn, attempts=3, should_retry=lambda e: True, sleep_fn=lambda s: None)
    assert calls["n"] == 3


def test_run_with_retries_does_not_retry_unaccepted():
    calls = {"n": 0}

    def fn():
        calls["n"] += 1
        raise KeyError("x")

    with pytest.raises(KeyError):
        run_with_retries(fn, attempts=5, should_retry=lambda e: isinstance(e, ValueError), sleep_fn=lambda s: None)
    assert calls["n"] == 1


def test_run_with_retries_stops_on_cancel():
    token = CancelToken()
    calls = {"n": 0}

    def fn():
        calls["n"] += 1
        token.cancel()
        raise ValueError("flaky")

    with pytest.raises(ValueError):
        run_with_retries(fn, attempts=5, should_retry=lambda e: True, token=token)
    assert calls["n"] == 1

    with pytest.raises(OperationCancelledError):
        run_with_retries(lambda: "never", attempts=1, should_retry=lambda e: True, token=token)


def test_run_with_retries_rejects_zero_attempts():
    with pytest.raises(ValueError):
        run_with_retries(lambda: 1, attempts=0, should_retry=lambda e: True)


@pytest.mark.parametrize(
    "exc,expected",
    [
        (_op_error("database is locked"), True),
        (_op_error("database is busy"), True),
        (_op_error("database is locked", connection_invalidated=True), False),
        (_op_error("disk I/O error"), False),
        (IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")), False),
    ],
)
def test_is_lock_wait(exc, expected):
    assert is_lock_wait(exc) is expected


def test_lock_waits_do_not_use_up_attempts():
    calls = {"n": 0}

    def fn():
        calls["n"] += 1
        if calls["n"] <= 4:
            raise _op_error("database is locked")
        return "ok"

    out = run_with_retries(fn, attempts=1, should_retry=is_transient, sleep_fn=lambda s: None, lock_wait_sec=30.0)
    assert out == "ok"
    assert calls["n"] == 5


def test_lock_wait_budget_runs_out():
    t = {"now": 0.0}

    def fn():
        t["now"] += 1.0
        raise _op_error("database is locked")

    # 3 с ожидания блокировки, потом обычные попытки (2)
    with pytest.raises(OperationalError):
        run_with_retries(
            fn,
            attempts=2,
            should_retry=is_transient,
            sleep_fn=lambda s: None,
            lock_wait_sec=3.0,
            now_fn=lambda: t["now"],
        )
    assert t["now"] == 4.0


def test_lock_wait_stops_on_cancel():
    token = CancelToken()
    calls = {"n": 0}

    def fn():
        calls["n"] += 1
        token.cancel()
        raise _op_error("database is locked")

    with pytest.raises(OperationCancelledError):
        run_with_retries(fn, attempts=5, should_retry=is_transient, token=token, lock_wait_sec=30.0)
    assert calls["n"] == 1
