from __future__ import annotations

from contextlib import contextmanager

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from orchestrator.storage import ledger, models, usage  # noqa: F401  registers tables
from orchestrator.storage.database import Base
from orchestrator.telemetry import events


@pytest.fixture
def memory_db(monkeypatch):
    """Point every storage module at one isolated in-memory database."""

    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )
    Base.metadata.create_all(engine)

    @contextmanager
    def session_scope():
        session = TestingSession()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    for module in (ledger, usage, events):
        monkeypatch.setattr(module, "session_scope", session_scope)

    yield session_scope

    engine.dispose()
