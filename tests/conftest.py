from contextlib import contextmanager

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from recordstore import protection
from recordstore.db.engine import make_engine
from recordstore.db.models import Base
from recordstore.db.repo import records_sql


class FakeLogger:
    def __init__(self):
        self.messages = []

    def log(self, level, *a, **k):
        self.messages.append((level, a, k))

    def debug(self, *a, **k):
        self.messages.append(("DEBUG", a, k))

    def info(self, *a, **k):
        self.messages.append(("INFO", a, k))

    def warning(self, *a, **k):
        self.messages.append(("WARN", a, k))

    def error(self, *a, **k):
        self.messages.append(("ERROR", a, k))


@pytest.fixture
def fake_logger():
    return FakeLogger()


@pytest.fixture(scope="function")
def db_session():
    """Создаёт чистую in-memory SQLite БД для каждого теста."""
    engine = create_engine("sqlite:///:memory:", echo=False, future=True)
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    session = Session()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture(autouse=True)
def patch_get_session(monkeypatch, db_session):

    @contextmanager
    def fake_get_session():
        yield db_session

    monkeypatch.setattr(records_sql, "get_session", fake_get_session)


@pytest.fixture
def no_backoff(monkeypatch):
    # ретраи без реальных пауз
    monkeypatch.setattr(protection, "backoff_delay", lambda attempt, **kw: 0.0)


@pytest.fixture
def file_db(tmp_path, monkeypatch):
    """
    File-backed SQLite with a real session per get_session() call.

    Needed wherever several threads must hold their own connections.
    """
    engine = make_engine(f"sqlite:///{(tmp_path / 'records.db').as_posix()}")
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)

    @contextmanager
    def real_get_session():
        session = factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    monkeypatch.setattr(records_sql, "get_session", real_get_session)
    try:
        yield engine
    finally:
        engine.dispose()
