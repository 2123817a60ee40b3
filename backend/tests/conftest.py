"""
Pytest configuration for backend tests.

This file configures pytest for the backend test suite, including
fixtures and test discovery settings.
"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend directory to Python path for imports
backend_root = Path(__file__).parent.parent
sys.path.insert(0, str(backend_root))

from availarr.models import Base  # noqa: E402
from availarr.services import rate_limiter  # noqa: E402
from availarr.services.content_store import ContentStore  # noqa: E402
from availarr.services.prober import ProbeOutcome, ProbeResult  # noqa: E402


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an async test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )


@pytest.fixture(autouse=True)
def fresh_pacer():
    """Give every test its own request budgets (they hold event-loop bound locks)."""
    rate_limiter._pacer = None
    yield
    rate_limiter._pacer = None


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared across threads (TestClient runs in one)."""
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def test_db(db_engine):
    """Create temporary test database session."""
    SessionLocal = sessionmaker(bind=db_engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def store(test_db):
    return ContentStore(test_db)


class FakeProber:
    """
    Prober double driven by a boolean verdict.

    Tests set ``verdict`` (an AsyncMock, True by default) and assert on its
    awaits; probe_detailed wraps each verdict in a ProbeResult and lets a
    raising verdict propagate.
    """

    def __init__(self):
        self.verdict = AsyncMock(return_value=True)
        self.attempt_delay = 0.0

    async def probe_detailed(self, kind, external_id, season=None, episode=None):
        if season is None and episode is None:
            available = await self.verdict(kind, external_id)
        else:
            available = await self.verdict(kind, external_id, season, episode)
        outcome = ProbeOutcome.AVAILABLE if available else ProbeOutcome.EXHAUSTED
        return ProbeResult(outcome, attempts=1)


@pytest.fixture
def mock_prober():
    """Every title available, no pacing."""
    return FakeProber()


@pytest.fixture
def mock_catalog():
    """Catalog double with empty defaults; tests set return values as needed."""
    catalog = Mock()
    catalog.fetch_page = AsyncMock()
    catalog.fetch_details = AsyncMock(return_value=None)
    catalog.fetch_season = AsyncMock(return_value=[])
    catalog.get_total_pages = AsyncMock(return_value=1)
    return catalog
