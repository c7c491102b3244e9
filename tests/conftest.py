"""Shared pytest fixtures for service, store and API tests."""

import logging
from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from shortlinks.config import Settings, load_settings
from shortlinks.database import close_db, create_engine, create_session_factory, init_db
from shortlinks.dependencies import ServiceManager
from shortlinks.link_service import LinkService
from shortlinks.main import app
from shortlinks.store import SQLAlchemyLinkStore, SQLAlchemyTagStore
from shortlinks.tag_service import TagService
from tests.fakes import OWNER, FakeRedis, InMemoryLinkStore, InMemoryTagStore


# ============================================================================
# SETTINGS AND DOUBLES
# ============================================================================


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return load_settings(
        APP_ENV="test",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'shortlinks.db'}",
        CACHE_ENABLED=False,
        BASE_URL="http://sho.rt",
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("shortlinks.tests")


@pytest.fixture
def cache() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def tag_store() -> InMemoryTagStore:
    return InMemoryTagStore()


@pytest.fixture
def link_store(tag_store: InMemoryTagStore) -> InMemoryLinkStore:
    return InMemoryLinkStore(tag_store)


@pytest.fixture
def link_service(link_store, cache, logger, settings) -> LinkService:
    return LinkService(link_store, cache, logger, settings)


@pytest.fixture
def uncached_link_service(link_store, logger, settings) -> LinkService:
    return LinkService(link_store, None, logger, settings)


@pytest.fixture
def tag_service(tag_store, logger, settings) -> TagService:
    return TagService(tag_store, logger, settings)


# ============================================================================
# SQLITE-BACKED STORES
# ============================================================================


@pytest_asyncio.fixture
async def engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_engine(settings)
    await init_db(engine)
    yield engine
    await close_db(engine)


@pytest.fixture
def sessions(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def sql_link_store(sessions) -> SQLAlchemyLinkStore:
    return SQLAlchemyLinkStore(sessions)


@pytest.fixture
def sql_tag_store(sessions) -> SQLAlchemyTagStore:
    return SQLAlchemyTagStore(sessions)


# ============================================================================
# HTTP CLIENT
# ============================================================================


@pytest_asyncio.fixture
async def manager(settings: Settings, cache: FakeRedis) -> AsyncGenerator[ServiceManager, None]:
    manager = ServiceManager(settings)
    await manager.initialize()
    manager.cache = cache
    previous = getattr(app.state, "service_manager", None)
    app.state.service_manager = manager
    yield manager
    app.state.service_manager = previous
    await manager.cleanup()


@pytest_asyncio.fixture
async def client(manager: ServiceManager) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", headers={"X-User-Id": OWNER}) as ac:
        yield ac
