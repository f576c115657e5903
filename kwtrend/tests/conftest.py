from __future__ import annotations

import pytest

pytest.importorskip("sqlalchemy")
pytest.importorskip("pandas")

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from kwtrend.db.schema import METADATA
from kwtrend.db.store import KeywordStore


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    METADATA.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def store(engine) -> KeywordStore:
    return KeywordStore(engine)
