"""Pytest configuration and shared fixtures.

Run with:
    pytest                                   # Run all tests
    pytest backend/tests/test_blocker_reconciliation.py -v
"""

from datetime import datetime, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.db import Base, import_models
from app.models.summary import SlackSummary

# 内存数据库，StaticPool 让所有会话共用同一个连接
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def engine():
    """Create a fresh in-memory engine per test."""
    import_models()
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest.fixture
def make_summary(session):
    """Insert a summary row directly, bypassing the pipeline."""

    async def _make(**overrides) -> SlackSummary:
        values = {
            "channel_id": "C100",
            "channel_name": "engineering",
            "team_id": "T1",
            "summary": "Team discussed the release.",
            "key_topics": ["release"],
            "blockers": ["DB migration pending", "Design review blocked"],
            "blocker_status": [],
            "message_count": 12,
            "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
            "updated_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
        }
        values.update(overrides)
        record = SlackSummary(**values)
        session.add(record)
        await session.commit()
        await session.refresh(record)
        return record

    return _make
