"""Link resolution and mutation service - core business logic.

This module owns short-code generation under uniqueness constraints, the
Redis cache-aside pattern in front of the redirect path, and the rules that
keep the cache, soft-deleted rows and tag associations consistent.

Architecture Overview
=====================
::
    ┌─────────────────────────────────────────────────────────────┐
    │                       LinkService                           │
    │  ┌────────────────┐  ┌─────────────────┐  ┌───────────────┐ │
    │  │ Create         │  │ Resolve         │  │ Mutate        │ │
    │  │ • validate     │  │ • cache GET     │  │ • update      │ │
    │  │ • generate     │  │ • store lookup  │  │ • soft delete │ │
    │  │ • retry (x3)   │  │ • cache SET     │  │ • tags        │ │
    │  └────────────────┘  └─────────────────┘  └───────────────┘ │
    └─────────────────────────────────────────────────────────────┘
               │                    │                    │
               ▼                    ▼                    ▼
    ┌─────────────────┐  ┌─────────────────┐  ┌─────────────────┐
    │   LinkStore     │  │  Redis (opt.)   │  │   LinkStore     │
    │ (unique index)  │  │  link:<code>    │  │ + cache DEL     │
    └─────────────────┘  └─────────────────┘  └─────────────────┘

Create Flow
-----------
::
    ┌─────────────┐
    │ validate    │──── bad url / past expiry / bad code ──▶ INVALID_INPUT
    └──────┬──────┘
           ▼
    custom code?
    ┌──────┴──────────────┐
    │ YES                 │ NO
    ▼                     ▼
┌──────────┐     ┌──────────────────┐
│ insert   │     │ generate + insert│◀─┐
│ once     │     └────────┬─────────┘  │ conflict and
└────┬─────┘        None? │            │ attempts left
  None? ──▶ CODE_TAKEN    └────────────┘
                          exhausted ──▶ INTERNAL

Redirect Flow (cache-aside)
---------------------------
::
    ┌─────────────┐
    │ GET link:c  │──── hit ──▶ return URL (no store call)
    └──────┬──────┘
     miss / RedisError (warn)
           ▼
    ┌─────────────┐
    │ store lookup│──── missing / deleted / inactive / expired ──▶ NOT_FOUND
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ SET link:c  │  TTL = min(24h, time to expiry); failure only warns
    └──────┬──────┘
           ▼
       return URL

Key Behaviours
===============
- The service keeps no mutable shared state; concurrent creates rely on the
  store's partial unique index and a "no row returned" conflict signal.
- Cache failures are downgraded to warnings and never fail a request.
- Invalidation on update/delete is awaited before the call returns.
- Ownership mismatches, deleted rows and unknown ids all yield NOT_FOUND.
- Unexpected store failures are logged once here and raised as INTERNAL with
  the cause chained; cancellation is never caught.

Classes:
    LinkService:  Orchestrates LinkStore and the optional Redis cache.
"""

import datetime
import logging
import math
import time
import uuid
from typing import Optional, Sequence, Union

import redis.asyncio as redis
from prometheus_client import Counter, Histogram
from redis.exceptions import RedisError

from shortlinks.codegen import generate_short_code
from shortlinks.config import Settings
from shortlinks.enums import CacheStatus, ErrorKind, RequestStatus
from shortlinks.errors import ServiceError, ShortcodeConflictError
from shortlinks.models import utcnow
from shortlinks.schemas import LinkChanges, LinkPage, LinkRecord, RedirectTarget
from shortlinks.store import LinkStore
from shortlinks.validation import RESERVED_SHORTCODES, as_utc, validate_expiry, validate_shortcode, validate_url

__all__ = ["LinkService"]

Logger = Union[logging.Logger, logging.LoggerAdapter]


# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

LINK_CREATE_REQUESTS_TOTAL = Counter(
    "shortlinks_create_requests_total",
    "Total short link creation requests",
    ["status"],
)
LINK_CREATE_DURATION = Histogram(
    "shortlinks_create_duration_seconds",
    "Time taken to create short links",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)
SHORTCODE_COLLISIONS_TOTAL = Counter(
    "shortlinks_shortcode_collisions_total",
    "Generated shortcodes rejected by the store's uniqueness constraint",
)
REDIRECT_LOOKUPS_TOTAL = Counter(
    "shortlinks_redirect_lookups_total",
    "Redirect resolutions by cache outcome",
    ["cache"],
)
REDIRECT_DURATION = Histogram(
    "shortlinks_redirect_duration_seconds",
    "Time taken to resolve a shortcode",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25],
)
CACHE_ERRORS_TOTAL = Counter(
    "shortlinks_cache_errors_total",
    "Redis operations that failed and were degraded",
    ["operation"],
)

_STATUS_BY_KIND = {
    ErrorKind.INVALID_INPUT: RequestStatus.VALIDATION_ERROR,
    ErrorKind.CODE_TAKEN: RequestStatus.CONFLICT,
    ErrorKind.NOT_FOUND: RequestStatus.NOT_FOUND,
}


class LinkService:
    """Create, resolve and manage short links for their owners.

    Example:
        >>> service = LinkService(store, cache, logger, settings)
        >>> link = await service.create_short_link("user_1", "https://example.com")
        >>> await service.resolve(link.shortcode)
        'https://example.com'
    """

    def __init__(
        self,
        store: LinkStore,
        cache: Optional[redis.Redis],
        logger: Logger,
        settings: Settings,
    ):
        self._store = store
        self._cache = cache
        self._logger = logger
        self._settings = settings

    # ========================================================================
    # CREATE
    # ========================================================================

    async def create_short_link(
        self,
        owner_id: str,
        url: str,
        shortcode: Optional[str] = None,
        expires_at: Optional[datetime.datetime] = None,
    ) -> LinkRecord:
        """Create a short link, generating a code unless one is supplied.

        A caller-chosen code is inserted exactly once and a conflict is
        reported as CODE_TAKEN. Generated codes are retried on conflict up to
        SHORTCODE_MAX_ATTEMPTS times. The cache is not touched; the redirect
        path fills it lazily.

        Raises:
            ServiceError: INVALID_INPUT, CODE_TAKEN or INTERNAL.
        """
        start_time = time.perf_counter()
        status = RequestStatus.ERROR
        try:
            validate_url(url, self._settings.MAX_URL_LENGTH)
            expires_at = validate_expiry(expires_at, utcnow())

            if shortcode is not None:
                validate_shortcode(shortcode, self._settings.SHORTCODE_MAX_LENGTH)
                link = await self._create_with_custom_code(owner_id, url, shortcode, expires_at)
            else:
                link = await self._create_with_generated_code(owner_id, url, expires_at)

            status = RequestStatus.SUCCESS
            self._logger.info(
                f"Short link created: {link.shortcode}",
                extra={"operation": "create_short_link", "link_id": str(link.id)},
            )
            return link
        except ServiceError as exc:
            status = _STATUS_BY_KIND.get(exc.kind, RequestStatus.ERROR)
            if exc.kind is not ErrorKind.INTERNAL:
                self._logger.info(f"Short link creation rejected: {exc.message}")
            raise
        finally:
            LINK_CREATE_DURATION.observe(time.perf_counter() - start_time)
            LINK_CREATE_REQUESTS_TOTAL.labels(status=status).inc()

    async def _create_with_custom_code(
        self,
        owner_id: str,
        url: str,
        shortcode: str,
        expires_at: Optional[datetime.datetime],
    ) -> LinkRecord:
        link = await self._try_insert(owner_id, url, shortcode, expires_at)
        if link is None:
            raise ServiceError.code_taken(shortcode)
        return link

    async def _create_with_generated_code(
        self,
        owner_id: str,
        url: str,
        expires_at: Optional[datetime.datetime],
    ) -> LinkRecord:
        max_attempts = self._settings.SHORTCODE_MAX_ATTEMPTS
        for attempt in range(1, max_attempts + 1):
            try:
                code = generate_short_code(self._settings.SHORT_CODE_LENGTH)
            except Exception as exc:
                raise self._internal("generate_short_code", exc) from exc

            link = None if code in RESERVED_SHORTCODES else await self._try_insert(owner_id, url, code, expires_at)
            if link is not None:
                return link

            SHORTCODE_COLLISIONS_TOTAL.inc()
            self._logger.debug(f"Generated shortcode collided, retrying (attempt {attempt}/{max_attempts})")

        self._logger.error(
            f"Shortcode collision retry limit exceeded after {max_attempts} attempts",
            extra={"operation": "create_short_link"},
        )
        raise ServiceError.internal()

    async def _try_insert(
        self,
        owner_id: str,
        url: str,
        shortcode: str,
        expires_at: Optional[datetime.datetime],
    ) -> Optional[LinkRecord]:
        try:
            return await self._store.try_create_link(
                owner_id=owner_id,
                shortcode=shortcode,
                original_url=url,
                expires_at=expires_at,
            )
        except Exception as exc:
            raise self._internal("try_create_link", exc) from exc

    # ========================================================================
    # RESOLVE (public redirect path)
    # ========================================================================

    async def resolve(self, code: str) -> str:
        """Return the destination URL for ``code`` using cache-aside.

        Raises:
            ServiceError: NOT_FOUND when the code is unknown, deleted, inactive
                or expired; INTERNAL when the store fails.
        """
        start_time = time.perf_counter()
        try:
            if not code or len(code) > self._settings.SHORTCODE_MAX_LENGTH:
                raise ServiceError.not_found(f"no link for code {code!r}")

            cache_key = self._cache_key(code)
            cached, cache_status = await self._cache_lookup(cache_key)
            REDIRECT_LOOKUPS_TOTAL.labels(cache=cache_status).inc()
            if cached is not None:
                self._logger.debug(f"Cache hit for link redirect: {code}")
                return cached

            try:
                target = await self._store.get_link_for_redirect(code)
            except Exception as exc:
                raise self._internal("get_link_for_redirect", exc, shortcode=code) from exc

            now = utcnow()
            if target is None or not self._is_live(target, now):
                raise ServiceError.not_found(f"no link for code {code!r}")

            await self._cache_populate(cache_key, target.original_url, self._cache_ttl(target, now))
            return target.original_url
        finally:
            REDIRECT_DURATION.observe(time.perf_counter() - start_time)

    # ========================================================================
    # OWNER-SCOPED READS
    # ========================================================================

    async def get_link(self, owner_id: str, link_id: uuid.UUID) -> LinkRecord:
        try:
            link = await self._store.get_link(owner_id, link_id)
        except Exception as exc:
            raise self._internal("get_link", exc, link_id=str(link_id)) from exc
        if link is None:
            raise ServiceError.not_found()
        return link

    async def get_link_by_shortcode(self, owner_id: str, shortcode: str) -> LinkRecord:
        try:
            link = await self._store.get_link_by_shortcode(owner_id, shortcode)
        except Exception as exc:
            raise self._internal("get_link_by_shortcode", exc, shortcode=shortcode) from exc
        if link is None:
            raise ServiceError.not_found()
        return link

    async def list_links(
        self,
        owner_id: str,
        *,
        is_active: Optional[bool] = None,
        tag_ids: Sequence[uuid.UUID] = (),
        page: int = 1,
        limit: Optional[int] = None,
    ) -> LinkPage:
        page = max(page, 1)
        if limit is None or limit < 1:
            limit = self._settings.DEFAULT_PAGE_SIZE
        limit = min(limit, self._settings.MAX_PAGE_SIZE)
        tag_ids = list(dict.fromkeys(tag_ids))

        self._logger.debug(f"Listing links page={page} limit={limit} is_active={is_active} tags={len(tag_ids)}")
        try:
            total = await self._store.count_links(owner_id, is_active=is_active, tag_ids=tag_ids)
            items = await self._store.list_links(
                owner_id,
                is_active=is_active,
                tag_ids=tag_ids,
                offset=(page - 1) * limit,
                limit=limit,
            )
        except Exception as exc:
            raise self._internal("list_links", exc) from exc

        return LinkPage(
            items=items,
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit),
        )

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    async def update_link(self, owner_id: str, link_id: uuid.UUID, changes: LinkChanges) -> LinkRecord:
        """Apply only the fields set in ``changes``.

        On success the cache entry of the link's current shortcode is removed.
        When the shortcode was renamed, the entry for the previous code is
        left to expire through its TTL.

        Raises:
            ServiceError: INVALID_INPUT, NOT_FOUND, CODE_TAKEN or INTERNAL.
        """
        if changes.is_empty():
            raise ServiceError.invalid_input("at least one of shortcode | is_active | expires_at must be provided")
        if changes.shortcode is not None:
            validate_shortcode(changes.shortcode, self._settings.SHORTCODE_MAX_LENGTH)
        if changes.expires_at is not None:
            changes = changes.model_copy(update={"expires_at": validate_expiry(changes.expires_at, utcnow())})

        try:
            updated = await self._store.update_link(owner_id, link_id, changes)
        except ShortcodeConflictError as exc:
            raise ServiceError.code_taken(changes.shortcode or "n/a") from exc
        except Exception as exc:
            raise self._internal("update_link", exc, link_id=str(link_id)) from exc

        if updated is None:
            raise ServiceError.not_found()

        await self._invalidate(updated.shortcode)
        self._logger.info(
            f"Link updated: {updated.shortcode}",
            extra={"operation": "update_link", "link_id": str(link_id)},
        )
        return updated

    async def delete_link(self, owner_id: str, link_id: uuid.UUID) -> None:
        """Soft-delete a link and drop its cache entry immediately.

        Raises:
            ServiceError: NOT_FOUND (already deleted, not owned, unknown) or
                INTERNAL.
        """
        try:
            deleted = await self._store.delete_link(owner_id, link_id)
        except Exception as exc:
            raise self._internal("delete_link", exc, link_id=str(link_id)) from exc

        if deleted is None:
            raise ServiceError.not_found()

        await self._invalidate(deleted.shortcode)
        self._logger.info(
            f"Link deleted: {deleted.shortcode}",
            extra={"operation": "delete_link", "link_id": str(link_id)},
        )

    async def add_tags(self, owner_id: str, link_id: uuid.UUID, tag_ids: Sequence[uuid.UUID]) -> LinkRecord:
        """Attach tags (idempotent) and return the link with its full tag set."""
        tag_ids = list(dict.fromkeys(tag_ids))
        if tag_ids:
            try:
                await self._store.add_tags(owner_id, link_id, tag_ids)
            except Exception as exc:
                raise self._internal("add_tags", exc, link_id=str(link_id)) from exc
        return await self.get_link(owner_id, link_id)

    async def remove_tags(self, owner_id: str, link_id: uuid.UUID, tag_ids: Sequence[uuid.UUID]) -> LinkRecord:
        """Detach tags (idempotent) and return the link with its full tag set."""
        tag_ids = list(dict.fromkeys(tag_ids))
        if tag_ids:
            try:
                await self._store.remove_tags(owner_id, link_id, tag_ids)
            except Exception as exc:
                raise self._internal("remove_tags", exc, link_id=str(link_id)) from exc
        return await self.get_link(owner_id, link_id)

    # ========================================================================
    # PRIVATE HELPERS
    # ========================================================================

    def _cache_key(self, shortcode: str) -> str:
        return f"{self._settings.LINK_CACHE_KEY_PREFIX}{shortcode}"

    @staticmethod
    def _is_live(target: RedirectTarget, now: datetime.datetime) -> bool:
        if not target.is_active:
            return False
        return target.expires_at is None or as_utc(target.expires_at) > now

    def _cache_ttl(self, target: RedirectTarget, now: datetime.datetime) -> int:
        ttl = self._settings.LINK_CACHE_TTL_SECONDS
        if target.expires_at is not None:
            remaining = int((as_utc(target.expires_at) - now).total_seconds())
            ttl = min(ttl, max(remaining, 1))
        return ttl

    async def _cache_lookup(self, key: str) -> tuple[Optional[str], CacheStatus]:
        if self._cache is None:
            return None, CacheStatus.DISABLED
        try:
            cached = await self._cache.get(key)
        except RedisError as exc:
            CACHE_ERRORS_TOTAL.labels(operation="get").inc()
            self._logger.warning(f"Redis cache error, falling back to store: {exc}", extra={"cache_key": key})
            return None, CacheStatus.ERROR
        if cached is None:
            return None, CacheStatus.MISS
        return cached, CacheStatus.HIT

    async def _cache_populate(self, key: str, original_url: str, ttl: int) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.set(key, original_url, ex=ttl)
        except RedisError as exc:
            CACHE_ERRORS_TOTAL.labels(operation="set").inc()
            self._logger.warning(f"Failed to populate cache: {exc}", extra={"cache_key": key})
            return
        self._logger.debug(f"Cache populated for {key} (ttl={ttl}s)")

    async def _invalidate(self, shortcode: str) -> None:
        if self._cache is None:
            return
        key = self._cache_key(shortcode)
        try:
            await self._cache.delete(key)
        except RedisError as exc:
            CACHE_ERRORS_TOTAL.labels(operation="delete").inc()
            self._logger.warning(f"Failed to invalidate cache: {exc}", extra={"cache_key": key})
            return
        self._logger.debug(f"Cache invalidated for {key}")

    def _internal(self, operation: str, exc: Exception, **context: str) -> ServiceError:
        self._logger.error(
            f"{operation} failed: {exc!r}",
            exc_info=exc,
            extra={"operation": operation, **context},
        )
        return ServiceError.internal(exc)
