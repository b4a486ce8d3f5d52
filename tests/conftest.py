"""Shared test fixtures."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine

from fundround.config import Settings
from fundround.db.engine import create_engine, create_tables, get_session
from fundround.db.repository import Repository
from fundround.models.funding_round import FundingRound, PhaseWindow


def _utc(month: int, day: int) -> datetime:
    return datetime(2026, month, day, tzinfo=UTC)


@pytest.fixture
def settings() -> Settings:
    """Test settings with defaults."""
    return Settings(fundround_env="development", database_url="sqlite+aiosqlite:///:memory:")


@pytest.fixture
async def engine() -> AsyncEngine:
    """Create an in-memory SQLite engine with all tables."""
    eng = create_engine("sqlite+aiosqlite:///:memory:")
    await create_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
async def repo(engine: AsyncEngine) -> Repository:
    """Yield a repository with a session bound to the in-memory database."""
    async with get_session(engine) as session:
        yield Repository(session)


@pytest.fixture
def funding_round() -> FundingRound:
    """Round for Q1 2026 with one-day gaps between phases.

    submission   Jan 1  - Jan 14
    consideration Jan 15 - Jan 31
    deliberation Feb 1  - Feb 14
    voting       Feb 15 - Mar 15
    round ends   Mar 31
    """
    return FundingRound(
        id="round-1",
        name="Q1 Grants",
        total_budget=Decimal("700"),
        start=_utc(1, 1),
        end=_utc(3, 31),
        submission=PhaseWindow(start=_utc(1, 1), end=_utc(1, 14)),
        consideration=PhaseWindow(start=_utc(1, 15), end=_utc(1, 31)),
        deliberation=PhaseWindow(start=_utc(2, 1), end=_utc(2, 14)),
        voting=PhaseWindow(start=_utc(2, 15), end=_utc(3, 15)),
    )


@pytest.fixture
async def stored_round(repo: Repository, funding_round: FundingRound) -> FundingRound:
    """``funding_round`` persisted under a topic with reviewers r-1, r-2, r-3."""
    topic = await repo.create_topic("Infrastructure")
    group = await repo.create_reviewer_group("Infra reviewers")
    for user_id in ("r-1", "r-2", "r-3"):
        await repo.add_group_member(group.id, user_id)
    await repo.attach_group_to_topic(topic.id, group.id)

    stored = funding_round.model_copy(update={"topic_id": topic.id})
    await repo.create_funding_round(stored)
    return stored
