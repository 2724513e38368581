"""
Async engine and session factory for the primary store.

Pool settings only apply to server databases; SQLite (used for local
development and tests) gets SQLAlchemy's default pool.
"""

from typing import Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from qrate.core.config import get_settings
from qrate.core.logging import get_logger
from qrate.db.base import Base

logger = get_logger(__name__)


def build_engine(database_url: Optional[str] = None) -> AsyncEngine:
    settings = get_settings()
    url = make_url(database_url or settings.DATABASE_URL)

    if url.get_backend_name() == "sqlite":
        return create_async_engine(url, echo=settings.DEBUG)

    return create_async_engine(
        url,
        echo=settings.DEBUG,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> bool:
    """Create all tables. Returns False (and logs) if the database is unreachable."""
    import qrate.models  # noqa: F401 - register models on the metadata

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        logger.warning("database_init_failed", error=str(e), message="Key-value store will serve as fallback")
        return False
    return True
