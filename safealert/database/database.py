# database/database.py
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from safealert.config import Settings

# Base class for all ORM models
Base = declarative_base()


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """SQLAlchemy engine (async version)."""
    if settings.database_url.startswith("sqlite"):
        # SQLite has no connection pool settings worth tuning
        return create_async_engine(settings.database_url, echo=False)

    return create_async_engine(
        settings.database_url,
        echo=False,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_pre_ping=True
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    # Session factory
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


async def create_tables(engine: AsyncEngine) -> None:
    # Imported for its side effect of registering the tables on Base.metadata
    from safealert.models import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# Dependency to get DB session in FastAPI routes
async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    session_factory = request.app.state.session_factory
    async with session_factory() as db:
        yield db
