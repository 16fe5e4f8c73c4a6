"""
Shared fixtures: in-memory SQLite database, pinned clock, fresh publisher.
"""
from datetime import datetime
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import ringside.orm  # registers all models
from ringside.core import clock
from ringside.events import InMemoryEventPublisher, get_publisher, set_publisher
from ringside.orm.base import Base
from ringside.orm.roster import EntityType
from ringside.services.roster_service import RosterService

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def fixed_clock():
    """Pin "now" to 2024-01-01 for the duration of a test."""
    pinned = clock.FixedClock(datetime(2024, 1, 1))
    clock.set_clock(pinned)
    yield pinned
    clock.reset_clock()


@pytest_asyncio.fixture
async def publisher():
    fresh = InMemoryEventPublisher()
    previous = get_publisher()
    set_publisher(fresh)
    yield fresh
    await fresh.close()
    set_publisher(previous)


@pytest.fixture
def make_entity(db):
    """Factory creating a committed roster entity."""
    async def _make(entity_type: EntityType = EntityType.WRESTLER, name: str = "Test Entity"):
        return await RosterService.create_entity(db, entity_type, name)
    return _make
