"""
Pytest configuration and fixtures.
"""

import sys
import os
from datetime import datetime, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

# Add project root to path
sys.path.append(os.getcwd())

from hundi.database import Base
from hundi.lifecycle.states import DonorStatus
from hundi.models.donor import Donor
from hundi.services.donor_service import DonorService
from hundi.services.group_service import GroupService

# Use in-memory SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


class FrozenClock:
    """Callable clock the services read "now" from."""
    
    def __init__(self, now: datetime):
        self.now = now
    
    def __call__(self) -> datetime:
        return self.now


def _sqlite_engine(url: str, wal: bool = False) -> AsyncEngine:
    engine = create_async_engine(url, echo=False)
    
    # SQLite only honours SAVEPOINT when BEGIN is emitted explicitly
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        if wal:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()
    
    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")
    
    return engine


@pytest_asyncio.fixture
async def test_engine():
    """Create a fresh in-memory database per test."""
    engine = _sqlite_engine(TEST_DB_URL)
    
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    yield engine
    
    await engine.dispose()


@pytest_asyncio.fixture
async def shared_engine(tmp_path):
    """
    File database whose connections are independent, so two sessions can
    run transactions side by side (WAL lets readers and one writer overlap).
    """
    engine = _sqlite_engine(f"sqlite+aiosqlite:///{tmp_path / 'hundi.db'}", wal=True)
    
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    yield engine
    
    await engine.dispose()


@pytest_asyncio.fixture
async def db(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for a test."""
    async_session = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    
    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FrozenClock:
    """Clock frozen at 2024-03-10 12:00 UTC."""
    return FrozenClock(datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc))


@pytest_asyncio.fixture
async def default_group(db):
    """Default groups, created the way system setup does it."""
    await GroupService(db).ensure_default_groups("setup")
    await db.commit()
    return await GroupService(db).get_default_group()


@pytest_asyncio.fixture
async def make_donor(db, default_group, clock):
    """Factory registering donors with an optional starting status."""
    counter = {"n": 0}
    
    async def _make(
        status: DonorStatus = DonorStatus.PENDING,
        collection_date: datetime = None,
        is_active: bool = True,
    ) -> Donor:
        counter["n"] += 1
        service = DonorService(db, clock=clock)
        donor = await service.create_donor(
            hundi_no=f"H-{counter['n']:04d}",
            name=f"Donor {counter['n']}",
            mobile_number="9876543210",
            address="12 Temple Street",
            created_by="creator-1",
            collection_date=collection_date,
        )
        if status is not DonorStatus.PENDING:
            donor.append_history(status, clock(), "seeded")
        donor.is_active = is_active
        await db.commit()
        return donor
    
    return _make


async def reload(db: AsyncSession, donor: Donor) -> Donor:
    """Re-read a donor and its history from the database."""
    return await db.get(Donor, donor.id, populate_existing=True)
