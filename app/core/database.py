"""
Async database access for the fulfillment API.

Session policy:
- one session per request, handed out by get_db
- a fulfillment route commits as soon as its step has recorded a carrier
  field, so a later failure in the same request cannot lose a shipment_id
  or AWB the carrier already issued
- anything still pending when the request ends is committed; an exception
  rolls back only the work not yet committed
"""
from typing import AsyncIterator, Dict, Any

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from app.core.config import settings


def _pool_options() -> Dict[str, Any]:
    """Production sizing comes from settings; everything else stays small."""
    if settings.ENVIRONMENT == "production":
        return {
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_recycle": settings.DB_POOL_RECYCLE,
            "pool_pre_ping": True,
        }
    return {"pool_size": 2, "max_overflow": 5, "pool_pre_ping": True}


engine = create_async_engine(settings.DATABASE_URL, echo=settings.DEBUG, **_pool_options())

# Step results are serialized after commit, so loaded attributes must survive it
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


async def get_db() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
