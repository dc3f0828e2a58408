"""
Async database engine, sessions and shared column types.

The engine is only created when DATABASE_URL is set, so the API can start
(and /health can answer) without a database.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, Optional, Tuple

from sqlalchemy import DateTime
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from hundi.config import settings

logger = logging.getLogger(__name__)


def get_database_url() -> Tuple[str, Dict[str, Any]]:
    """
    Normalize DATABASE_URL for asyncpg.

    Hosted Postgres URLs come as postgres:// with ?sslmode=..., neither of
    which asyncpg understands. Returns the URL and the engine connect_args.
    """
    if not settings.database_url:
        return "", {}

    url = make_url(settings.database_url)
    if url.drivername in ("postgres", "postgresql", "postgresql+psycopg2"):
        url = url.set(drivername="postgresql+asyncpg")

    connect_args: Dict[str, Any] = {}
    sslmode = url.query.get("sslmode")
    if sslmode is not None:
        url = url.difference_update_query(["sslmode"])
        if sslmode in ("require", "verify-ca", "verify-full"):
            connect_args["ssl"] = True

    return url.render_as_string(hide_password=False), connect_args


def create_engine_if_configured() -> Optional[AsyncEngine]:
    db_url, connect_args = get_database_url()
    if not db_url:
        logger.warning("DATABASE_URL not configured. Database features disabled.")
        return None

    return create_async_engine(
        db_url,
        echo=settings.debug,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        connect_args=connect_args,
    )


# None without DATABASE_URL
engine = create_engine_if_configured()

async_session_maker = (
    async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    if engine
    else None
)


class Base(DeclarativeBase):
    pass


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime that always round-trips as UTC.

    Naive values are treated as UTC on the way in; backends that drop the
    offset (SQLite) get it re-attached on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    """Current moment as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """
    One session per unit of work: committed when the block exits cleanly,
    rolled back when it raises.

    Used by the Celery tasks and scripts; get_db wraps it for FastAPI.
    """
    if not async_session_maker:
        raise RuntimeError("Database not configured. Set DATABASE_URL environment variable.")

    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request."""
    async with get_db_context() as session:
        yield session


async def init_db() -> None:
    """Create all tables (development and first-time setup; production uses Alembic)."""
    if not engine:
        logger.warning("Skipping table creation - DATABASE_URL not configured")
        return

    # Register every model on Base.metadata
    import hundi.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Created tables: {', '.join(sorted(Base.metadata.tables))}")


async def close_db() -> None:
    """Dispose pooled connections (they are bound to the current event loop)."""
    if engine:
        await engine.dispose()
