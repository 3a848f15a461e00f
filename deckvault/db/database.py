"""
Database engine and session management.

Provides async SQLAlchemy engine and session factory for FastAPI and for
the bulk operation controller, which opens one session per stage.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from deckvault.config import settings
from deckvault.models.db import Base

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

# Objects stay usable after commit; the controller reads ids across stages
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session for the API routes.

    Ledger and inventory calls only flush; the request's work is committed
    here in one transaction, or rolled back if the database rejects it.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create the inventory, container and checkpoint tables if missing."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
