"""Pytest configuration and fixtures for FRCCalc tests.

Provides common fixtures for testing.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from frccalc.config import AppConfig, DBConfig, reset_config
from frccalc.db.models import Base
from frccalc.lineitems.pricing import CostingRates
from frccalc.lineitems.snapshot import LineItemSnapshot
from frccalc.models import Decision, DecisionStatus, LineCategory, LineItem, LineOrigin


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    reset_config()
    yield
    reset_config()


@pytest.fixture
def assessment_id() -> str:
    """Test assessment ID."""
    return "assessment-1"


@pytest.fixture
def test_config() -> AppConfig:
    return AppConfig(db=DBConfig(url="sqlite+aiosqlite:///:memory:"))


@pytest.fixture
def rates() -> CostingRates:
    """Costing rates with round numbers."""
    return CostingRates(labour_rate=Decimal("500.00"), paint_rate=Decimal("2000.00"))


def _make_item(
    line_id: str,
    total: str = "1000.00",
    origin: LineOrigin = LineOrigin.ORIGINAL,
    category: LineCategory = LineCategory.PART,
    removed: bool = False,
    parent: str | None = None,
) -> LineItem:
    return LineItem(
        id=line_id,
        origin=origin,
        category=category,
        description=f"Line {line_id}",
        unit_price=Decimal(total),
        line_total=Decimal(total),
        removed_in_source=removed,
        parent_line_item_id=parent,
    )


def _make_decision(
    assessment_id: str,
    line_id: str,
    status: DecisionStatus = DecisionStatus.PENDING,
    adjusted_value: str | None = None,
    version: int = 1,
) -> Decision:
    return Decision(
        line_item_id=line_id,
        assessment_id=assessment_id,
        status=status,
        adjusted_value=Decimal(adjusted_value) if adjusted_value is not None else None,
        version=version,
    )


@pytest.fixture
def make_item():
    """Factory for line items (part, 1000.00, original by default)."""
    return _make_item


@pytest.fixture
def make_decision():
    """Factory for ledger decisions."""
    return _make_decision


@pytest.fixture
def single_part_snapshot(assessment_id: str) -> LineItemSnapshot:
    """One original part at 1000.00."""
    return LineItemSnapshot(assessment_id=assessment_id, items=(_make_item("L1"),))


@pytest.fixture
def estimate_payload() -> dict:
    """Upstream payload: three estimate lines and one additional."""
    return {
        "estimate_lines": [
            {"id": "L1", "category": "part", "description": "Front bumper", "unit_price": "1000.00", "quantity": 1},
            {"id": "L2", "category": "labour", "description": "Fit bumper", "hours": "2"},
            {"id": "L3", "category": "paint", "description": "Paint bumper", "hours": "0.5"},
        ],
        "additional_lines": [
            {"id": "A1", "action": "added", "category": "part", "description": "Bumper clip", "unit_price": "200.00", "quantity": 1},
        ],
        "excluded_line_ids": [],
    }


@pytest_asyncio.fixture()
async def db_session() -> AsyncSession:
    """Create in-memory database for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    SessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()
