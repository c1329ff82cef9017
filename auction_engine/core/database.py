"""
Database configuration and async session management
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from auction_engine.core.config import Settings, get_settings

# Create declarative base for models
Base = declarative_base()

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every DateTime column stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Build the async engine; pool sizing only applies to server databases"""
    kwargs = {
        "echo": settings.DEBUG,
        "future": True,
        "pool_pre_ping": True,
    }
    if not settings.DATABASE_URL.startswith("sqlite"):
        kwargs["pool_size"] = settings.DB_POOL_SIZE
        kwargs["max_overflow"] = settings.DB_MAX_OVERFLOW

    return create_async_engine(settings.DATABASE_URL, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Objects stay readable after commit
        autoflush=False,
    )


def get_engine() -> AsyncEngine:
    """Get engine (singleton)"""
    global _engine

    if _engine is None:
        _engine = create_engine_from_settings(get_settings())

    return _engine


def get_session_factory() -> async_sessionmaker:
    """Get session factory (singleton)"""
    global _session_factory

    if _session_factory is None:
        _session_factory = create_session_factory(get_engine())

    return _session_factory


async def init_db(engine: Optional[AsyncEngine] = None):
    """
    Initialize database tables.
    Only for development - use migrations in production.
    """
    engine = engine or get_engine()
    async with engine.begin() as conn:
        # Import all models to register them with Base
        from auction_engine import models  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine():
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
