"""Persistence contract and SQLAlchemy implementation for links and tags.

The services depend on the two narrow protocols below, never on SQLAlchemy
directly, so a real database, an in-memory fake or a test double can be
swapped in without touching service code.

Conflict Signalling
===================
::
    try_create_link()  ──▶ LinkRecord        inserted
                       ──▶ None              live shortcode already exists
    update_link()      ──▶ LinkRecord | None updated | not found/not owned
                       ──▶ ShortcodeConflictError
    create/update_tag  ──▶ TagNameConflictError

Any other failure propagates unchanged; classifying it is the service's job.

Key Behaviours
===============
- Every read and write filters out soft-deleted links.
- Writes are conditional on (id, owner_id, deleted_at IS NULL) and report
  "nothing matched" as None, so ownership is never leaked.
- Uniqueness is enforced by the database (partial unique index on live
  shortcodes); the store only translates the violation.
- Each call runs in its own session and returns pydantic snapshots.
- Attaching tags is ON CONFLICT DO NOTHING, so concurrent attaches of the
  same tag both succeed. Supported dialects: PostgreSQL and SQLite.

Classes:
    LinkStore:  Protocol required by LinkService.
    TagStore:  Protocol required by TagService.
    SQLAlchemyLinkStore:  LinkStore over an async_sessionmaker.
    SQLAlchemyTagStore:  TagStore over an async_sessionmaker.
"""

import datetime
import uuid
from typing import Optional, Protocol, Sequence

from sqlalchemy import ColumnElement, delete, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortlinks.errors import ShortcodeConflictError, TagNameConflictError
from shortlinks.models import Link, Tag, link_tags, utcnow
from shortlinks.schemas import LinkChanges, LinkRecord, RedirectTarget, TagRecord

__all__ = [
    "LinkStore",
    "TagStore",
    "SQLAlchemyLinkStore",
    "SQLAlchemyTagStore",
]


class LinkStore(Protocol):
    async def try_create_link(
        self,
        *,
        owner_id: str,
        shortcode: str,
        original_url: str,
        expires_at: Optional[datetime.datetime],
    ) -> Optional[LinkRecord]: ...

    async def get_link_for_redirect(self, shortcode: str) -> Optional[RedirectTarget]: ...

    async def get_link(self, owner_id: str, link_id: uuid.UUID) -> Optional[LinkRecord]: ...

    async def get_link_by_shortcode(self, owner_id: str, shortcode: str) -> Optional[LinkRecord]: ...

    async def list_links(
        self,
        owner_id: str,
        *,
        is_active: Optional[bool],
        tag_ids: Sequence[uuid.UUID],
        offset: int,
        limit: int,
    ) -> list[LinkRecord]: ...

    async def count_links(
        self,
        owner_id: str,
        *,
        is_active: Optional[bool],
        tag_ids: Sequence[uuid.UUID],
    ) -> int: ...

    async def update_link(self, owner_id: str, link_id: uuid.UUID, changes: LinkChanges) -> Optional[LinkRecord]: ...

    async def delete_link(self, owner_id: str, link_id: uuid.UUID) -> Optional[LinkRecord]: ...

    async def add_tags(self, owner_id: str, link_id: uuid.UUID, tag_ids: Sequence[uuid.UUID]) -> None: ...

    async def remove_tags(self, owner_id: str, link_id: uuid.UUID, tag_ids: Sequence[uuid.UUID]) -> None: ...


class TagStore(Protocol):
    async def list_tags(self, owner_id: str) -> list[TagRecord]: ...

    async def create_tag(self, owner_id: str, name: str) -> TagRecord: ...

    async def update_tag(self, owner_id: str, tag_id: uuid.UUID, name: str) -> Optional[TagRecord]: ...

    async def delete_tag(self, owner_id: str, tag_id: uuid.UUID) -> Optional[TagRecord]: ...

    async def delete_tags(self, owner_id: str, tag_ids: Sequence[uuid.UUID]) -> list[TagRecord]: ...


_DIALECT_INSERT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    # asyncpg exposes the SQLSTATE as .sqlstate, psycopg as .pgcode.
    if getattr(orig, "sqlstate", None) == "23505" or getattr(orig, "pgcode", None) == "23505":
        return True
    return "UNIQUE constraint failed" in str(orig)


def _live_link(owner_id: str, link_id: uuid.UUID) -> tuple[ColumnElement[bool], ...]:
    return (Link.id == link_id, Link.owner_id == owner_id, Link.deleted_at.is_(None))


class SQLAlchemyLinkStore:
    """``LinkStore`` backed by SQLAlchemy; PostgreSQL in production."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]):
        self._sessions = sessions

    async def try_create_link(
        self,
        *,
        owner_id: str,
        shortcode: str,
        original_url: str,
        expires_at: Optional[datetime.datetime],
    ) -> Optional[LinkRecord]:
        now = utcnow()
        link = Link(
            id=uuid.uuid4(),
            shortcode=shortcode,
            original_url=original_url,
            owner_id=owner_id,
            is_active=True,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
            tags=[],
        )
        async with self._sessions() as session:
            session.add(link)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                if _is_unique_violation(exc):
                    return None
                raise
            return LinkRecord.model_validate(link)

    async def get_link_for_redirect(self, shortcode: str) -> Optional[RedirectTarget]:
        stmt = (
            select(Link.original_url, Link.is_active, Link.expires_at)
            .where(Link.shortcode == shortcode, Link.deleted_at.is_(None))
            .limit(1)
        )
        async with self._sessions() as session:
            row = (await session.execute(stmt)).one_or_none()
        if row is None:
            return None
        return RedirectTarget(original_url=row.original_url, is_active=row.is_active, expires_at=row.expires_at)

    async def get_link(self, owner_id: str, link_id: uuid.UUID) -> Optional[LinkRecord]:
        async with self._sessions() as session:
            return await self._fetch(session, *_live_link(owner_id, link_id))

    async def get_link_by_shortcode(self, owner_id: str, shortcode: str) -> Optional[LinkRecord]:
        async with self._sessions() as session:
            return await self._fetch(
                session,
                Link.shortcode == shortcode,
                Link.owner_id == owner_id,
                Link.deleted_at.is_(None),
            )

    async def list_links(
        self,
        owner_id: str,
        *,
        is_active: Optional[bool],
        tag_ids: Sequence[uuid.UUID],
        offset: int,
        limit: int,
    ) -> list[LinkRecord]:
        stmt = (
            select(Link)
            .where(*self._listing_filters(owner_id, is_active, tag_ids))
            .order_by(Link.created_at.desc(), Link.id)
            .offset(offset)
            .limit(limit)
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [LinkRecord.model_validate(row) for row in rows]

    async def count_links(
        self,
        owner_id: str,
        *,
        is_active: Optional[bool],
        tag_ids: Sequence[uuid.UUID],
    ) -> int:
        stmt = select(func.count()).select_from(Link).where(*self._listing_filters(owner_id, is_active, tag_ids))
        async with self._sessions() as session:
            return int((await session.execute(stmt)).scalar_one())

    async def update_link(self, owner_id: str, link_id: uuid.UUID, changes: LinkChanges) -> Optional[LinkRecord]:
        values = changes.model_dump(exclude_none=True)
        values["updated_at"] = utcnow()
        stmt = update(Link).where(*_live_link(owner_id, link_id)).values(**values).returning(Link.id)

        async with self._sessions() as session:
            try:
                updated_id = (await session.execute(stmt)).scalar_one_or_none()
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                if _is_unique_violation(exc):
                    raise ShortcodeConflictError(changes.shortcode) from exc
                raise
            if updated_id is None:
                return None
            return await self._fetch(session, Link.id == updated_id)

    async def delete_link(self, owner_id: str, link_id: uuid.UUID) -> Optional[LinkRecord]:
        now = utcnow()
        stmt = (
            update(Link)
            .where(*_live_link(owner_id, link_id))
            .values(deleted_at=now, updated_at=now)
            .returning(Link.id)
        )
        async with self._sessions() as session:
            deleted_id = (await session.execute(stmt)).scalar_one_or_none()
            await session.commit()
            if deleted_id is None:
                return None
            return await self._fetch(session, Link.id == deleted_id)

    async def add_tags(self, owner_id: str, link_id: uuid.UUID, tag_ids: Sequence[uuid.UUID]) -> None:
        async with self._sessions() as session, session.begin():
            if not await self._owns_live_link(session, owner_id, link_id):
                return
            already_linked = select(link_tags.c.tag_id).where(link_tags.c.link_id == link_id)
            missing = (
                await session.execute(
                    select(Tag.id).where(
                        Tag.owner_id == owner_id,
                        Tag.id.in_(tag_ids),
                        Tag.id.not_in(already_linked),
                    )
                )
            ).scalars().all()
            if missing:
                insert_link_tags = _DIALECT_INSERT[session.bind.dialect.name](link_tags).on_conflict_do_nothing(
                    index_elements=[link_tags.c.link_id, link_tags.c.tag_id]
                )
                await session.execute(
                    insert_link_tags,
                    [{"link_id": link_id, "tag_id": tag_id} for tag_id in missing],
                )

    async def remove_tags(self, owner_id: str, link_id: uuid.UUID, tag_ids: Sequence[uuid.UUID]) -> None:
        async with self._sessions() as session, session.begin():
            if not await self._owns_live_link(session, owner_id, link_id):
                return
            owned = select(Tag.id).where(Tag.owner_id == owner_id, Tag.id.in_(tag_ids))
            await session.execute(
                delete(link_tags).where(link_tags.c.link_id == link_id, link_tags.c.tag_id.in_(owned))
            )

    @staticmethod
    async def _fetch(session: AsyncSession, *criteria: ColumnElement[bool]) -> Optional[LinkRecord]:
        stmt = select(Link).where(*criteria).execution_options(populate_existing=True)
        link = (await session.execute(stmt)).scalar_one_or_none()
        return LinkRecord.model_validate(link) if link is not None else None

    @staticmethod
    async def _owns_live_link(session: AsyncSession, owner_id: str, link_id: uuid.UUID) -> bool:
        found = await session.execute(select(Link.id).where(*_live_link(owner_id, link_id)))
        return found.scalar_one_or_none() is not None

    @staticmethod
    def _listing_filters(
        owner_id: str,
        is_active: Optional[bool],
        tag_ids: Sequence[uuid.UUID],
    ) -> list[ColumnElement[bool]]:
        filters: list[ColumnElement[bool]] = [Link.owner_id == owner_id, Link.deleted_at.is_(None)]
        if is_active is not None:
            filters.append(Link.is_active.is_(is_active))
        if tag_ids:
            tagged = select(link_tags.c.link_id).where(link_tags.c.tag_id.in_(tag_ids))
            filters.append(Link.id.in_(tagged))
        return filters


class SQLAlchemyTagStore:
    """``TagStore`` backed by SQLAlchemy."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]):
        self._sessions = sessions

    async def list_tags(self, owner_id: str) -> list[TagRecord]:
        stmt = select(Tag).where(Tag.owner_id == owner_id).order_by(Tag.name)
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [TagRecord.model_validate(row) for row in rows]

    async def create_tag(self, owner_id: str, name: str) -> TagRecord:
        tag = Tag(id=uuid.uuid4(), name=name, owner_id=owner_id, created_at=utcnow())
        async with self._sessions() as session:
            session.add(tag)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                if _is_unique_violation(exc):
                    raise TagNameConflictError(name) from exc
                raise
            return TagRecord.model_validate(tag)

    async def update_tag(self, owner_id: str, tag_id: uuid.UUID, name: str) -> Optional[TagRecord]:
        stmt = (
            update(Tag)
            .where(Tag.id == tag_id, Tag.owner_id == owner_id)
            .values(name=name, updated_at=utcnow())
            .returning(Tag.id)
        )
        async with self._sessions() as session:
            try:
                updated_id = (await session.execute(stmt)).scalar_one_or_none()
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                if _is_unique_violation(exc):
                    raise TagNameConflictError(name) from exc
                raise
            if updated_id is None:
                return None
            tag = (
                await session.execute(select(Tag).where(Tag.id == updated_id).execution_options(populate_existing=True))
            ).scalar_one()
            return TagRecord.model_validate(tag)

    async def delete_tag(self, owner_id: str, tag_id: uuid.UUID) -> Optional[TagRecord]:
        deleted = await self.delete_tags(owner_id, [tag_id])
        return deleted[0] if deleted else None

    async def delete_tags(self, owner_id: str, tag_ids: Sequence[uuid.UUID]) -> list[TagRecord]:
        async with self._sessions() as session, session.begin():
            rows = (
                await session.execute(select(Tag).where(Tag.owner_id == owner_id, Tag.id.in_(tag_ids)))
            ).scalars().all()
            if not rows:
                return []
            records = [TagRecord.model_validate(row) for row in rows]
            ids = [row.id for row in rows]
            await session.execute(delete(link_tags).where(link_tags.c.tag_id.in_(ids)))
            await session.execute(delete(Tag).where(Tag.id.in_(ids)))
        return records
