"""Shared fixtures: in-memory SQLite store and a controllable clock."""

import pytest
import pytest_asyncio
from datetime import datetime, timedelta
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

import group_attendance.models  # noqa: F401
from group_attendance.core.database import Base
from group_attendance.core.locks import ParticipantLockRegistry
from group_attendance.repositories import SQLAlchemyAttendanceStore

# A Monday, midday
NOW = datetime(2025, 3, 10, 12, 0, 0)


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int = 0, hours: int = 0):
        self.now = self.now + timedelta(days=days, hours=hours)


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(db_session):
    return SQLAlchemyAttendanceStore(db_session)


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def locks():
    return ParticipantLockRegistry()
