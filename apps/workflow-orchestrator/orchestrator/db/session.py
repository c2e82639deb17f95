"""Database session management."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from ..core.config import settings

DATABASE_URL = settings.database_url or "sqlite+aiosqlite:///./orchestrator.db"

engine = create_async_engine(
    DATABASE_URL,
    echo=settings.debug,
    future=True,
)

async_session_factory = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def create_session_factory(database_url: str) -> tuple[AsyncEngine, sessionmaker]:
    """Create an engine and session factory for another database (tests, tools)."""
    other_engine = create_async_engine(database_url, future=True)
    factory = sessionmaker(other_engine, class_=AsyncSession, expire_on_commit=False)
    return other_engine, factory


async def init_db(db_engine: AsyncEngine | None = None) -> None:
    """Initialize database tables."""
    from . import models  # noqa: F401  registers tables on the metadata

    async with (db_engine or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

