# socialvox/database.py
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Base = declarative_base()


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    # echo=True prints every generated SQL statement; keep it off outside debugging.
    logger.info("Using DATABASE_URL: %s", database_url)
    if ":memory:" in database_url:
        # One shared connection, otherwise every session sees an empty database
        return create_async_engine(database_url, echo=echo, poolclass=StaticPool)
    return create_async_engine(database_url, echo=echo)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=engine, class_=AsyncSession, autoflush=False, expire_on_commit=False
    )


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker,
) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def create_db_and_tables(engine: AsyncEngine):
    """
    Creates the tables for local SQLite setups and tests.

    Deployed databases are managed by Alembic; create_all is a no-op for
    tables that already exist.
    """
    # Importing the models registers them on Base.metadata
    from . import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured.")
