# tests/conftest.py
from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from invite_service.db.base import Base
from invite_service.db.init_db import init_db


@pytest.fixture()
def memory_engine():
    """
    Shared in-memory SQLite.

    StaticPool keeps one connection alive, so the in-memory DB persists across
    sessions (FastAPI opens a new session per request).
    """
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(memory_engine):
    return sessionmaker(bind=memory_engine, autoflush=False)


@pytest.fixture()
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture()
def file_engine(tmp_path):
    """File-backed SQLite with a real connection pool: one connection per thread."""
    engine = create_engine(
        f"sqlite:///{(tmp_path / 'data' / 'tokens.db').as_posix()}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def broken_engine(tmp_path):
    """Points at a SQLite file whose directory does not exist: every connect fails."""
    missing = tmp_path / "does-not-exist" / "nested" / "tokens.db"
    engine = create_engine(f"sqlite:///{missing.as_posix()}")
    yield engine
    engine.dispose()
