"""FastAPI route definitions for the link-shortening API.

API Endpoint Overview
=====================
::
    GET    /api/v1/health                 └─ HealthResponse
    GET    /api/v1/links                  └─ LinkPageResponse
    POST   /api/v1/links                  └─ LinkResponse (201) / 400 / 409
    GET    /api/v1/links/{shortcode}      └─ LinkResponse / 404
    PATCH  /api/v1/links/{id}             └─ LinkResponse / 400 / 404 / 409
    DELETE /api/v1/links/{id}             └─ 204 / 404
    POST   /api/v1/links/{id}/tags        └─ LinkResponse / 404
    DELETE /api/v1/links/{id}/tags        └─ LinkResponse / 404
    GET    /api/v1/tags                   └─ list[TagRecord]
    POST   /api/v1/tags                   └─ TagRecord (201) / 400 / 409
    DELETE /api/v1/tags                   └─ list[TagRecord]
    PATCH  /api/v1/tags/{id}              └─ TagRecord / 404 / 409
    DELETE /api/v1/tags/{id}              └─ TagRecord / 404
    GET    /{code}                        └─ 302 Redirect / 404

Key Behaviours
===============
- Handlers only translate HTTP to service calls; every rule lives in the
  services. ``ServiceError`` is turned into a response by the handler
  registered in ``shortlinks.main``.
- The owner comes from the ``X-User-Id`` header set by the identity provider.
- The public redirect route is registered last so it never shadows the API.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import RedirectResponse
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from shortlinks.dependencies import (
    RequestContext,
    get_link_service,
    get_owner_id,
    get_request_context,
    get_tag_service,
)
from shortlinks.enums import HealthStatus
from shortlinks.link_service import LinkService
from shortlinks.schemas import (
    HealthResponse,
    LinkChanges,
    LinkCreate,
    LinkPageResponse,
    LinkResponse,
    LinkUpdate,
    TagCreate,
    TagIdsPayload,
    TagRecord,
    TagUpdate,
)
from shortlinks.tag_service import TagService

__all__ = ["router"]

router = APIRouter()
api = APIRouter(prefix="/api/v1")


@api.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(ctx: RequestContext = Depends(get_request_context)) -> HealthResponse:
    manager = ctx.service_manager
    db_status = HealthStatus.HEALTHY
    cache_status = HealthStatus.DISABLED

    try:
        async with manager.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        ctx.logger.error(f"Database health check failed: {exc}")
        db_status = HealthStatus.UNHEALTHY

    if manager.cache is not None:
        try:
            await manager.cache.ping()
            cache_status = HealthStatus.HEALTHY
        except RedisError as exc:
            ctx.logger.warning(f"Cache health check failed: {exc}")
            cache_status = HealthStatus.UNHEALTHY

    # The cache is optional; only the database decides overall health.
    return HealthResponse(status=db_status, database=db_status, cache=cache_status)


# ============================================================================
# LINKS
# ============================================================================


@api.get("/links", response_model=LinkPageResponse, tags=["links"])
async def list_links(
    is_active: Optional[bool] = None,
    tag_ids: list[uuid.UUID] = Query(default=[]),
    page: int = 1,
    limit: Optional[int] = None,
    owner_id: str = Depends(get_owner_id),
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> LinkPageResponse:
    result = await service.list_links(owner_id, is_active=is_active, tag_ids=tag_ids, page=page, limit=limit)
    return LinkPageResponse(
        items=[LinkResponse.from_record(link, ctx.settings.BASE_URL) for link in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


@api.post("/links", response_model=LinkResponse, status_code=201, tags=["links"])
async def create_link(
    payload: LinkCreate,
    owner_id: str = Depends(get_owner_id),
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> LinkResponse:
    link = await service.create_short_link(owner_id, payload.url, payload.shortcode, payload.expires_at)
    return LinkResponse.from_record(link, ctx.settings.BASE_URL)


@api.get("/links/{shortcode}", response_model=LinkResponse, tags=["links"])
async def get_link(
    shortcode: str,
    owner_id: str = Depends(get_owner_id),
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> LinkResponse:
    link = await service.get_link_by_shortcode(owner_id, shortcode)
    return LinkResponse.from_record(link, ctx.settings.BASE_URL)


@api.patch("/links/{link_id}", response_model=LinkResponse, tags=["links"])
async def update_link(
    link_id: uuid.UUID,
    payload: LinkUpdate,
    owner_id: str = Depends(get_owner_id),
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> LinkResponse:
    link = await service.update_link(owner_id, link_id, LinkChanges(**payload.model_dump()))
    return LinkResponse.from_record(link, ctx.settings.BASE_URL)


@api.delete("/links/{link_id}", status_code=204, tags=["links"])
async def delete_link(
    link_id: uuid.UUID,
    owner_id: str = Depends(get_owner_id),
    service: LinkService = Depends(get_link_service),
) -> Response:
    await service.delete_link(owner_id, link_id)
    return Response(status_code=204)


@api.post("/links/{link_id}/tags", response_model=LinkResponse, tags=["links"])
async def add_tags_to_link(
    link_id: uuid.UUID,
    payload: TagIdsPayload,
    owner_id: str = Depends(get_owner_id),
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> LinkResponse:
    link = await service.add_tags(owner_id, link_id, payload.tag_ids)
    return LinkResponse.from_record(link, ctx.settings.BASE_URL)


@api.delete("/links/{link_id}/tags", response_model=LinkResponse, tags=["links"])
async def remove_tags_from_link(
    link_id: uuid.UUID,
    payload: TagIdsPayload,
    owner_id: str = Depends(get_owner_id),
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> LinkResponse:
    link = await service.remove_tags(owner_id, link_id, payload.tag_ids)
    return LinkResponse.from_record(link, ctx.settings.BASE_URL)


# ============================================================================
# TAGS
# ============================================================================


@api.get("/tags", response_model=list[TagRecord], tags=["tags"])
async def list_tags(
    owner_id: str = Depends(get_owner_id),
    service: TagService = Depends(get_tag_service),
) -> list[TagRecord]:
    return await service.list_tags(owner_id)


@api.post("/tags", response_model=TagRecord, status_code=201, tags=["tags"])
async def create_tag(
    payload: TagCreate,
    owner_id: str = Depends(get_owner_id),
    service: TagService = Depends(get_tag_service),
) -> TagRecord:
    return await service.create_tag(owner_id, payload.name)


@api.delete("/tags", response_model=list[TagRecord], tags=["tags"])
async def delete_tags(
    payload: TagIdsPayload,
    owner_id: str = Depends(get_owner_id),
    service: TagService = Depends(get_tag_service),
) -> list[TagRecord]:
    return await service.delete_tags(owner_id, payload.tag_ids)


@api.patch("/tags/{tag_id}", response_model=TagRecord, tags=["tags"])
async def update_tag(
    tag_id: uuid.UUID,
    payload: TagUpdate,
    owner_id: str = Depends(get_owner_id),
    service: TagService = Depends(get_tag_service),
) -> TagRecord:
    return await service.update_tag(owner_id, tag_id, payload.name)


@api.delete("/tags/{tag_id}", response_model=TagRecord, tags=["tags"])
async def delete_tag(
    tag_id: uuid.UUID,
    owner_id: str = Depends(get_owner_id),
    service: TagService = Depends(get_tag_service),
) -> TagRecord:
    return await service.delete_tag(owner_id, tag_id)


router.include_router(api)


# ============================================================================
# PUBLIC REDIRECT
# ============================================================================


@router.get("/{code}", tags=["redirect"])
async def redirect_to_url(
    code: str,
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> RedirectResponse:
    destination = await service.resolve(code)
    ctx.logger.debug(f"Redirect {code} resolved in {ctx.get_duration():.2f}ms")
    return RedirectResponse(destination, status_code=302)
