"""Centralized PostgreSQL engine factory.

Profile and match stores share a single SQLAlchemy engine per process.
Dagster's DefaultRunLauncher spawns one subprocess per run, so each run gets
exactly one engine.

The orchestrator calls the stores from worker threads (asyncio.to_thread) with
at most `fan_out` candidates in flight, so the pool is sized to that fan-out:
  8 candidate workers + 1 run-level connection (history, record writes)
Connections beyond the pool wait instead of opening new ones.
"""

import os
import threading

from sqlalchemy import URL, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

DEFAULT_POOL_SIZE = 9

_lock = threading.Lock()
_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def build_url() -> URL:
    return URL.create(
        "postgresql+psycopg2",
        username=os.getenv("POSTGRES_USER", "matching"),
        password=os.getenv("POSTGRES_PASSWORD", "matching_dev"),
        host=os.getenv("POSTGRES_HOST", "localhost"),
        port=int(os.getenv("POSTGRES_PORT", "5432")),
        database=os.getenv("POSTGRES_DB", "candidate_matching"),
    )


def get_engine() -> Engine:
    """Return the process-wide SQLAlchemy engine, creating it on first call."""
    global _engine, _session_factory
    if _engine is None:
        with _lock:
            if _engine is None:
                _engine = create_engine(
                    build_url(),
                    pool_size=int(os.getenv("POSTGRES_POOL_SIZE", DEFAULT_POOL_SIZE)),
                    max_overflow=0,
                    pool_pre_ping=True,
                )
                _session_factory = sessionmaker(bind=_engine)
    return _engine


def get_session() -> Session:
    """Create a new session from the shared engine."""
    get_engine()
    return _session_factory()
