"""Async engine, session factory and the ``get_db`` dependency."""
import logging
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from diamante_crm.core.config import get_settings
from diamante_crm.db.base import Base

logger = logging.getLogger(__name__)
settings = get_settings()

engine = create_async_engine(str(settings.DB_URL), pool_pre_ping=True)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency que injeta uma sessão por requisição."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_models() -> None:
    """Create missing tables; migrations remain the source of truth in production."""
    from diamante_crm.db import models  # noqa: F401  (registers mappers)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured", extra={"db_url": str(settings.DB_URL).split("@")[-1]})
