"""
Database Connection Module
Handles the order store connection using the SQLAlchemy async engine.
"""

import logging

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from fulfillment.core.config import get_settings

logger = logging.getLogger(__name__)


# Base class for all our models
class Base(DeclarativeBase):
    pass


def build_engine(database_url: str, echo: bool = False, **kwargs) -> AsyncEngine:
    """Create an async engine; sqlite URLs and custom pools skip the pool sizing options."""
    if database_url.startswith("sqlite") or "poolclass" in kwargs:
        return create_async_engine(database_url, echo=echo, **kwargs)
    kwargs.setdefault("pool_size", 5)  # Connection pool size
    kwargs.setdefault("max_overflow", 10)  # Extra connections when pool is full
    return create_async_engine(database_url, echo=echo, **kwargs)


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False  # Objects remain accessible after commit
    )


_settings = get_settings()

engine = build_engine(_settings.database_url, echo=_settings.database_echo)

# Session factory - creates new database sessions
async_session_maker = build_session_maker(engine)


async def init_db(bind: AsyncEngine = engine) -> None:
    """
    Create all tables in database.
    Called once at application startup.
    """
    # Register models on the metadata
    import fulfillment.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")
