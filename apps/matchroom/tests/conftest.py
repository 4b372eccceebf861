"""
Shared pytest configuration for matchroom tests.

Each test gets a fresh in-memory SQLite database (aiosqlite) built from
Base.metadata. Set TEST_DATABASE_URL to run against another database.
"""

import os

# Must be set before the app modules are imported (rate limiter, engine)
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import date  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from matchroom.database.db import Base  # noqa: E402
from matchroom.database.models import Player, PlayerSkillLevel  # noqa: E402
from matchroom.utils.datetime_utils import utcnow  # noqa: E402

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a database engine with all tables for one test."""
    options = {"echo": False}
    if TEST_DATABASE_URL.startswith("sqlite"):
        # One shared connection so every session sees the same in-memory database
        options["poolclass"] = StaticPool
    engine = create_async_engine(TEST_DATABASE_URL, **options)

    async with engine.begin() as conn:
        from matchroom.database import models  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine):
    """Database session bound to the test engine."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with async_session_maker() as session:
        yield session


async def create_player(
    session,
    full_name,
    gender="male",
    date_of_birth=date(1995, 5, 20),
    coins=20,
    subscription_tier="free",
    skill_levels=None,
):
    """Helper: insert a player directly, bypassing registration rules."""
    player = Player(
        full_name=full_name,
        gender=gender,
        date_of_birth=date_of_birth,
        city="Taipei",
        district="Da'an",
        coins=coins,
        subscription_tier=subscription_tier,
        monthly_reset_at=utcnow(),
    )
    session.add(player)
    await session.flush()
    for sport, level in (skill_levels or {}).items():
        session.add(PlayerSkillLevel(player_id=player.id, sport=sport, level=level))
    await session.commit()
    return player.id


@pytest_asyncio.fixture
async def players(db_session):
    """Four players with 20 coins each: two men and two women."""
    return {
        "alice": await create_player(db_session, "Alice Chen", gender="female"),
        "bob": await create_player(db_session, "Bob Lin", gender="male"),
        "carol": await create_player(db_session, "Carol Wu", gender="female"),
        "dave": await create_player(db_session, "Dave Huang", gender="male"),
    }


@pytest.fixture
def make_player(db_session):
    """Factory fixture: await make_player("Name", gender=..., coins=...) -> player id."""

    async def _make(full_name, **kwargs):
        return await create_player(db_session, full_name, **kwargs)

    return _make
