"""Dependency injection for the HTTP layer.

A ``ServiceManager`` owns the shared resources (settings, logger, database
engine, session factory, optional Redis client). One instance is created in
the application lifespan and kept on ``app.state``; request-scoped services
are built from it per request.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

import redis.asyncio as redis
from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from shortlinks.config import Settings
from shortlinks.database import close_db, create_engine, create_session_factory, init_db
from shortlinks.link_service import LinkService
from shortlinks.redis import close_redis, create_redis
from shortlinks.store import SQLAlchemyLinkStore, SQLAlchemyTagStore
from shortlinks.tag_service import TagService

__all__ = [
    "ServiceManager",
    "RequestContext",
    "RequestLoggerAdapter",
    "get_service_manager",
    "get_owner_id",
    "get_request_context",
    "get_link_service",
    "get_tag_service",
]


# ============================================================================
# SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Shared resources created once at startup.

    Attributes:
        settings: Injected configuration.
        logger: Package logger, configured once.
        engine: SQLAlchemy async engine.
        sessions: Session factory handed to the stores.
        cache: Redis client, or None when the cache is disabled.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.logger = self._setup_logger()
        self.engine: Optional[AsyncEngine] = None
        self.sessions: Optional[async_sessionmaker[AsyncSession]] = None
        self.cache: Optional[redis.Redis] = None
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Initialize shared resources once at startup."""
        if self._initialized:
            return
        self.engine = create_engine(self.settings)
        await init_db(self.engine)
        self.sessions = create_session_factory(self.engine)
        self.cache = create_redis(self.settings)
        if self.cache is None:
            self.logger.info("Redirect cache disabled")
        self._initialized = True

    def _setup_logger(self) -> logging.Logger:
        logger = logging.getLogger("shortlinks")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
        logger.setLevel(self.settings.LOG_LEVEL)
        return logger

    async def cleanup(self) -> None:
        """Release shared resources at shutdown."""
        await close_redis(self.cache)
        self.cache = None
        if self.engine is not None:
            await close_db(self.engine)
            self.engine = None
        self._initialized = False


# ============================================================================
# REQUEST CONTEXT
# ============================================================================


class RequestLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that keeps per-call ``extra`` next to the request fields."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


@dataclass
class RequestContext:
    """Per-request view of the shared resources plus tracking data."""

    service_manager: ServiceManager
    owner_id: Optional[str] = None
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    client_ip: Optional[str] = None
    start_time: float = field(default_factory=time.time)

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    @property
    def logger(self) -> RequestLoggerAdapter:
        return RequestLoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "owner_id": self.owner_id,
                "client_ip": self.client_ip,
            },
        )

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager(request: Request) -> ServiceManager:
    manager: ServiceManager = request.app.state.service_manager
    if not manager.initialized:
        await manager.initialize()
    return manager


async def get_owner_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Owner identity as asserted by the upstream identity provider."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="authentication required")
    return x_user_id


async def get_request_context(
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    return RequestContext(
        service_manager=manager,
        owner_id=request.headers.get("x-user-id"),
        request_id=request.headers.get("x-request-id") or str(uuid.uuid4()),
        client_ip=request.client.host if request.client else None,
    )


def get_link_service(ctx: RequestContext = Depends(get_request_context)) -> LinkService:
    manager = ctx.service_manager
    return LinkService(
        store=SQLAlchemyLinkStore(manager.sessions),
        cache=manager.cache,
        logger=ctx.logger,
        settings=ctx.settings,
    )


def get_tag_service(ctx: RequestContext = Depends(get_request_context)) -> TagService:
    return TagService(
        store=SQLAlchemyTagStore(ctx.service_manager.sessions),
        logger=ctx.logger,
        settings=ctx.settings,
    )
