"""Pytest fixtures for DealSpotter tests.

Provides reusable test fixtures for:
- SQLite in-memory database session (tables created and dropped per test)
- Deal and correction factories
- An in-memory candidate source for pipeline tests
- A FastAPI test client wired to the test database

Usage:
    def test_compare(client, make_deal):
        make_deal("Pishori Rice 1kg", 150, unit_amount=1, unit="kg")
        response = client.post("/api/v1/deals/compare-basket", json={"items": ["2kg rice"]})
        assert response.status_code == 200
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, Generator, List, Optional

# Set environment variables BEFORE any imports to ensure they take effect
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")
# One worker: the in-memory SQLite connection is shared by every session
os.environ.setdefault("MATCH_MAX_WORKERS", "1")

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))
sys.path.insert(0, str(Path(__file__).parent))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from database import get_db as database_get_db
from fixtures.catalog import CatalogEntry, FakeClock, make_entry
from models.base import Base
from models.deal import Deal
from models.user_correction import UserCorrection


# Shared in-memory database (StaticPool keeps a single connection alive)
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=test_engine,
)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test.

    Creates all tables before the test and drops them after.
    """
    Base.metadata.create_all(bind=test_engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def session_factory(db_session: Session) -> sessionmaker:
    """Session factory over the per-test database (tables already created)."""
    return TestingSessionLocal


@pytest.fixture
def make_deal(db_session: Session) -> Callable[..., Deal]:
    """Factory persisting a Deal (scraped one hour ago by default)."""

    def _make_deal(
        name: str,
        price: float,
        store: str = "carrefour",
        unit_amount: Optional[float] = None,
        unit: Optional[str] = None,
        scraped_at: Optional[datetime] = None,
        original_price: Optional[float] = None,
        category: Optional[str] = None,
        is_active: bool = True,
        discount: Optional[float] = None,
        locations: Optional[List[str]] = None
    ) -> Deal:
        deal = Deal(
            name=name,
            store=store,
            current_price=price,
            original_price=original_price,
            discount=discount,
            locations=locations or [],
            unit_amount=unit_amount,
            unit=unit,
            category=category,
            is_active=is_active,
            scraped_at=scraped_at or datetime.now(timezone.utc) - timedelta(hours=1),
        )
        db_session.add(deal)
        db_session.commit()
        db_session.refresh(deal)
        return deal

    return _make_deal


@pytest.fixture
def make_correction(db_session: Session) -> Callable[..., UserCorrection]:
    """Factory persisting a UserCorrection."""

    def _make_correction(
        original_query: str,
        deal: Deal,
        confidence: float = 90.0,
        timestamp: Optional[datetime] = None
    ) -> UserCorrection:
        correction = UserCorrection(
            original_query=original_query,
            corrected_entry_id=str(deal.id),
            corrected_name=deal.name,
            confidence=confidence,
            timestamp=timestamp or datetime.now(timezone.utc),
        )
        db_session.add(correction)
        db_session.commit()
        db_session.refresh(correction)
        return correction

    return _make_correction


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client backed by the in-memory database.

    The context manager runs the application lifespan, which builds the
    basket cache, matcher and basket service.
    """
    from main import create_app

    app = create_app(session_factory=TestingSessionLocal, create_tables=False)

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[database_get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def pipeline_entries() -> Dict[str, CatalogEntry]:
    """Small catalog used across pipeline tests."""
    entries = [
        make_entry("rice-1kg", "Pishori Rice 1kg", 150.0, amount=1, unit="kg"),
        make_entry("rice-500g", "Basmati Rice 500g", 90.0, store="naivas", amount=500, unit="g"),
        make_entry("milk-500ml", "Fresh Milk 500ml", 60.0, store="quickmart", amount=500, unit="ml"),
        make_entry("bread", "White Bread 400g", 55.0, amount=400, unit="g"),
    ]
    return {entry.id: entry for entry in entries}
