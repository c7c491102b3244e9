"""Owner-scoped tag management.

Tags are plain labels owned by a single user; names are unique per owner.
Attaching tags to links lives in ``LinkService``; this service manages the
tags themselves.
"""

import logging
import uuid
from typing import Sequence, Union

from shortlinks.config import Settings
from shortlinks.errors import ServiceError, TagNameConflictError
from shortlinks.schemas import TagRecord
from shortlinks.store import TagStore
from shortlinks.validation import normalize_tag_name

__all__ = ["TagService"]


class TagService:
    def __init__(self, store: TagStore, logger: Union[logging.Logger, logging.LoggerAdapter], settings: Settings):
        self._store = store
        self._logger = logger
        self._settings = settings

    async def list_tags(self, owner_id: str) -> list[TagRecord]:
        try:
            tags = await self._store.list_tags(owner_id)
        except Exception as exc:
            raise self._internal("list_tags", exc) from exc
        self._logger.debug(f"Listed {len(tags)} tags")
        return tags

    async def create_tag(self, owner_id: str, name: str) -> TagRecord:
        name = normalize_tag_name(name, self._settings.TAG_NAME_MAX_LENGTH)
        try:
            return await self._store.create_tag(owner_id, name)
        except TagNameConflictError as exc:
            raise ServiceError.tag_name_taken(name) from exc
        except Exception as exc:
            raise self._internal("create_tag", exc) from exc

    async def update_tag(self, owner_id: str, tag_id: uuid.UUID, name: str) -> TagRecord:
        name = normalize_tag_name(name, self._settings.TAG_NAME_MAX_LENGTH)
        try:
            tag = await self._store.update_tag(owner_id, tag_id, name)
        except TagNameConflictError as exc:
            raise ServiceError.tag_name_taken(name) from exc
        except Exception as exc:
            raise self._internal("update_tag", exc) from exc
        if tag is None:
            raise ServiceError.not_found("tag not found")
        return tag

    async def delete_tag(self, owner_id: str, tag_id: uuid.UUID) -> TagRecord:
        try:
            tag = await self._store.delete_tag(owner_id, tag_id)
        except Exception as exc:
            raise self._internal("delete_tag", exc) from exc
        if tag is None:
            raise ServiceError.not_found("tag not found")
        return tag

    async def delete_tags(self, owner_id: str, tag_ids: Sequence[uuid.UUID]) -> list[TagRecord]:
        if not tag_ids:
            return []
        try:
            return await self._store.delete_tags(owner_id, list(dict.fromkeys(tag_ids)))
        except Exception as exc:
            raise self._internal("delete_tags", exc) from exc

    def _internal(self, operation: str, exc: Exception) -> ServiceError:
        self._logger.error(f"{operation} failed: {exc!r}", exc_info=exc, extra={"operation": operation})
        return ServiceError.internal(exc)
