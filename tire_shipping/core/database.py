"""
Database engine and request-scoped sessions.

The shipping service only touches the orders and site_settings tables, but a
session stays checked out for the whole request, including the carrier round
trip (up to timeout x retries per call). Pool sizing and checkout timeout are
set with that in mind.
"""
from typing import Any, AsyncIterator, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from tire_shipping.core.config import Settings, settings


def build_pool_config(source: Optional[Settings] = None) -> Dict[str, Any]:
    """Engine pool options for the current environment."""
    s = source or settings
    # Connections may sit idle behind a slow carrier call
    config: Dict[str, Any] = {
        "pool_pre_ping": True,
        "pool_timeout": s.DB_POOL_TIMEOUT,
    }
    if s.ENVIRONMENT == "production":
        config.update(
            pool_size=s.DB_POOL_SIZE,
            max_overflow=s.DB_MAX_OVERFLOW,
            pool_recycle=s.DB_POOL_RECYCLE,
        )
    else:
        config.update(pool_size=2, max_overflow=3)
    return config


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    **build_pool_config(),
)

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    One session per request. Order updates written after a successful carrier
    call are committed together; any exception rolls them back.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
