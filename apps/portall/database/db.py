"""
Async engine, session factory and transaction helpers for the Portall database.
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy.orm import DeclarativeBase
from dotenv import load_dotenv

load_dotenv()


def build_database_url() -> str:
    """DATABASE_URL if set, otherwise assembled from the POSTGRES_* parts."""
    url = os.getenv("DATABASE_URL")
    if url:
        # Hosting providers hand out plain postgres:// URLs
        if url.startswith("postgres://"):
            url = "postgresql+asyncpg://" + url[len("postgres://"):]
        elif url.startswith("postgresql://"):
            url = "postgresql+asyncpg://" + url[len("postgresql://"):]
        return url

    user = os.getenv("POSTGRES_USER", "portall")
    password = os.getenv("POSTGRES_PASSWORD", "portall")
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    name = os.getenv("POSTGRES_DB", "portall")
    return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{name}"


DATABASE_URL = build_database_url()

engine: AsyncEngine = create_async_engine(
    DATABASE_URL,
    echo=os.getenv("SQL_ECHO", "false").lower() == "true",
    pool_pre_ping=True,
    pool_size=int(os.getenv("DB_POOL_SIZE", "10")),
    max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "20")),
)

# Serializers read attributes after commit, so nothing is expired
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


# Registers every table on Base.metadata
from portall.database import models  # noqa: F401, E402


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """One unit of work: commit on success, roll back on any exception."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency wrapping each request in session_scope().

    Services only flush; the commit happens here once the handler returns.
    Handlers that send email commit first themselves, which makes this
    commit a no-op.
    A handler that returns a non-2xx JSONResponse (e.g. a declined card)
    still commits what it wrote.
    """
    async with session_scope() as session:
        yield session


async def init_database():
    """Create any missing tables. Alembic owns the schema; this is a startup fallback."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, checkfirst=True)
