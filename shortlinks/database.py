"""Database engine and session management for the link-shortening service.

This module builds the SQLAlchemy async engine and session factory from an
injected ``Settings`` instance and manages schema lifecycle. PostgreSQL with
asyncpg is the production backend; any SQLAlchemy async URL works.

Flow Diagram - Database Lifecycle
=================================
::
    ┌──────────────┐
    │ create_engine│
    │ (settings)   │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ init_db()    │
    │ create_all   │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ sessionmaker │ ──▶ stores open one session per call
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ close_db()   │
    │ dispose      │
    └──────────────┘

How to Use
===========
**Step 1 - Build on startup**::
    engine = create_engine(settings)
    await init_db(engine)
    sessions = create_session_factory(engine)

**Step 2 - Hand the factory to a store**::
    store = SQLAlchemyLinkStore(sessions)

**Step 3 - Cleanup on shutdown**::
    await close_db(engine)

Key Behaviours
===============
- Connection pooling is configured for production workloads on PostgreSQL.
- asyncpg statements are bounded by DB_COMMAND_TIMEOUT_SECONDS.
- Sessions do not expire attributes on commit.

Classes:
    Base:  SQLAlchemy declarative base for all models.

Functions:
    create_engine():  Builds the async engine from settings.
    create_session_factory():  Builds an async_sessionmaker.
    init_db():  Creates all tables.
    close_db():  Disposes the engine.
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from shortlinks.config import Settings

__all__ = ["Base", "create_engine", "create_session_factory", "init_db", "close_db"]


class Base(DeclarativeBase):
    pass


def create_engine(settings: Settings) -> AsyncEngine:
    options: dict[str, Any] = {
        "echo": settings.APP_ENV == "development" and settings.LOG_LEVEL == "DEBUG",
        "pool_pre_ping": True,
    }
    if settings.DATABASE_URL.startswith("postgresql"):
        options["pool_size"] = settings.DB_POOL_SIZE
        options["max_overflow"] = settings.DB_MAX_OVERFLOW
        options["connect_args"] = {"command_timeout": settings.DB_COMMAND_TIMEOUT_SECONDS}
    return create_async_engine(settings.DATABASE_URL, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    # Registers the mapped tables on Base.metadata.
    from shortlinks import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    await engine.dispose()
