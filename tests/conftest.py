"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import asyncio
import os
from datetime import UTC, datetime, timedelta

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of ascent.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from ascent.database.models import Base  # noqa: E402
from ascent.engine.catalog import RewardCatalog  # noqa: E402
from ascent.engine.events import EventLog  # noqa: E402
from ascent.services.progress_store import MemoryProgressStore, SqlProgressStore  # noqa: E402
from ascent.services.progression_service import ProgressionEngine  # noqa: E402


def run_async(coro):
    """Run an async coroutine in a new event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class FakeClock:
    """Injectable "now" that tests move forward by hand."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 2, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now += timedelta(**delta)
        return self.now


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Ascent tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used by ``run_db``).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """Every store-level contract runs against both implementations."""
    if request.param == "memory":
        return MemoryProgressStore()
    return SqlProgressStore(request.getfixturevalue("db_engine"))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def catalog() -> RewardCatalog:
    return RewardCatalog()


@pytest.fixture
def progression(store, catalog, clock) -> ProgressionEngine:
    return ProgressionEngine(store, catalog, EventLog(), clock=clock)


def make_token(sub: str = "user-1") -> str:
    """Create a dashboard JWT for *sub*."""
    import jwt

    from ascent.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode({"sub": sub}, JWT_SECRET, algorithm=JWT_ALGORITHM)
