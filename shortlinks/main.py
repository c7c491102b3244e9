"""FastAPI application entry point for the link-shortening service.

Application Lifecycle Diagram
=============================
::
    ┌──────────────┐
    │ create_app() │  settings loaded once, ServiceManager on app.state
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ CORS, metrics│
    │ error mapper │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ lifespan     │  startup: engine, tables, Redis (optional)
    │              │  shutdown: close Redis, dispose engine
    └──────────────┘

How to Use
===========
**Run with uvicorn**::
    uvicorn shortlinks.main:app --host 0.0.0.0 --port 8080

Key Behaviours
===============
- ``ServiceError`` kinds map to 400/404/409/500; INTERNAL never leaks its cause.
- /metrics is exposed before the catch-all redirect route is registered.
"""

__all__ = ["app", "create_app"]

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from shortlinks.config import Settings, load_settings
from shortlinks.dependencies import ServiceManager
from shortlinks.enums import ErrorKind
from shortlinks.errors import ServiceError
from shortlinks.routes import router
from shortlinks.schemas import ErrorDetail, ErrorResponse

STATUS_BY_KIND = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CODE_TAKEN: 409,
    ErrorKind.TAG_NAME_TAKEN: 409,
    ErrorKind.INTERNAL: 500,
}


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    # The service already logged INTERNAL failures with their cause.
    body = ErrorResponse(error=ErrorDetail(code=exc.kind, detail=exc.message))
    return JSONResponse(status_code=STATUS_BY_KIND.get(exc.kind, 500), content=body.model_dump(mode="json"))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    manager: ServiceManager = app.state.service_manager
    await manager.initialize()
    yield
    await manager.cleanup()


def create_app(settings: Optional[Settings] = None, manager: Optional[ServiceManager] = None) -> FastAPI:
    settings = settings or load_settings()
    manager = manager or ServiceManager(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        description="Link shortening and redirect API",
        lifespan=lifespan,
    )
    app.state.service_manager = manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ServiceError, service_error_handler)

    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=False,
        should_respect_env_var=False,
    ).instrument(app).expose(app)

    app.include_router(router)
    return app


app = create_app()
