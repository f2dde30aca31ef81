"""Database engine and async session factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache
from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from care_os.config import get_settings
from care_os.core.models import Base

logger = logging.getLogger(__name__)


@lru_cache
def _get_engine():
    settings = get_settings()
    if settings.is_sqlite:
        database = make_url(settings.database_url).database
        if database:
            Path(database).parent.mkdir(parents=True, exist_ok=True)
        return create_async_engine(settings.database_url, echo=settings.database_echo)
    return create_async_engine(
        settings.database_url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        echo=settings.database_echo,
    )


@lru_cache
def _get_session_factory():
    return async_sessionmaker(_get_engine(), class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Async session that commits on success and rolls back on error."""
    async with _get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(seed: bool = True) -> None:
    """Create all tables (dev only; production uses migrations)."""
    engine = _get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    if seed:
        await seed_catalog()


async def seed_catalog() -> None:
    """Insert the platform billing programs, presets and package templates."""
    from care_os.billing.seed import seed_standard_catalog

    async with session_scope() as session:
        counts = await seed_standard_catalog(session)
    logger.info("Seeded standard catalog: %s", counts)
