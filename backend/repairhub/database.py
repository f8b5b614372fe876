"""Async engine, session factory and declarative base.

One schema holds every table. Rows belong to a centro or corner through
their foreign keys and the auth dependencies decide who may touch them.
"""

from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from repairhub.config import settings

engine = create_async_engine(settings.database_url, echo=settings.debug, pool_pre_ping=True)

# expire_on_commit=False: routes serialize ORM rows after the request commit
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """Request-scoped session: commit when the handler returns, roll back if it raises."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def ping_database() -> None:
    """Round trip to the database; raises if it is unreachable."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
