import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from candidate_matching.models import Base, Match
from candidate_matching.resources import MatchStoreResource


@pytest.fixture
def sqlite_sessions(monkeypatch):
    """In-memory SQLite standing in for PostgreSQL behind the match store."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine, tables=[Match.__table__])
    factory = sessionmaker(bind=engine)
    monkeypatch.setattr("candidate_matching.resources.match_store.get_session", factory)
    yield factory
    engine.dispose()


@pytest.fixture
def match_store(sqlite_sessions) -> MatchStoreResource:
    return MatchStoreResource()
