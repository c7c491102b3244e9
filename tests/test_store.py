"""SQLAlchemy store tests against a throwaway SQLite database.

The partial unique index, conditional updates and tag association queries
are exercised on a real engine; PostgreSQL-only behaviour (asyncpg SQLSTATE
codes) is covered by ``test_unique_violation_detection``.
"""

import asyncio
import datetime
import uuid
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import IntegrityError

from shortlinks.errors import ShortcodeConflictError, TagNameConflictError
from shortlinks.link_service import LinkService
from shortlinks.schemas import LinkChanges, LinkRecord
from shortlinks.store import SQLAlchemyLinkStore, SQLAlchemyTagStore, _is_unique_violation
from shortlinks.validation import as_utc
from tests.fakes import OTHER_OWNER, OWNER


async def create(store: SQLAlchemyLinkStore, shortcode: str, owner_id: str = OWNER, **kwargs):
    return await store.try_create_link(
        owner_id=owner_id,
        shortcode=shortcode,
        original_url=kwargs.get("url", f"https://example.com/{shortcode}"),
        expires_at=kwargs.get("expires_at"),
    )


@pytest.mark.asyncio
async def test_create_and_read_back(sql_link_store: SQLAlchemyLinkStore) -> None:
    expires_at = datetime.datetime(2099, 1, 1, tzinfo=datetime.timezone.utc)
    link = await create(sql_link_store, "abc123", expires_at=expires_at)

    assert link is not None
    assert link.shortcode == "abc123"
    assert link.is_active is True
    assert link.tags == []

    target = await sql_link_store.get_link_for_redirect("abc123")
    assert target.original_url == "https://example.com/abc123"
    assert target.is_active is True
    assert as_utc(target.expires_at) == expires_at

    assert (await sql_link_store.get_link(OWNER, link.id)).id == link.id
    assert (await sql_link_store.get_link_by_shortcode(OWNER, "abc123")).id == link.id
    assert await sql_link_store.get_link(OTHER_OWNER, link.id) is None
    assert await sql_link_store.get_link_for_redirect("missing") is None


@pytest.mark.asyncio
async def test_live_shortcode_conflict_returns_none(sql_link_store: SQLAlchemyLinkStore) -> None:
    assert await create(sql_link_store, "dup") is not None
    assert await create(sql_link_store, "dup", owner_id=OTHER_OWNER) is None


@pytest.mark.asyncio
async def test_deleted_shortcode_can_be_reused(sql_link_store: SQLAlchemyLinkStore) -> None:
    first = await create(sql_link_store, "reuse")
    deleted = await sql_link_store.delete_link(OWNER, first.id)
    assert deleted.id == first.id

    second = await create(sql_link_store, "reuse", url="https://example.org")
    assert second is not None
    assert second.id != first.id
    assert (await sql_link_store.get_link_for_redirect("reuse")).original_url == "https://example.org"


@pytest.mark.asyncio
async def test_delete_is_conditional(sql_link_store: SQLAlchemyLinkStore) -> None:
    link = await create(sql_link_store, "gone")

    assert await sql_link_store.delete_link(OTHER_OWNER, link.id) is None
    assert await sql_link_store.delete_link(OWNER, link.id) is not None
    assert await sql_link_store.delete_link(OWNER, link.id) is None
    assert await sql_link_store.get_link(OWNER, link.id) is None
    assert await sql_link_store.get_link_for_redirect("gone") is None


@pytest.mark.asyncio
async def test_update_applies_only_given_fields(sql_link_store: SQLAlchemyLinkStore) -> None:
    expires_at = datetime.datetime(2099, 6, 1, tzinfo=datetime.timezone.utc)
    link = await create(sql_link_store, "keep", expires_at=expires_at)

    updated = await sql_link_store.update_link(OWNER, link.id, LinkChanges(is_active=False))

    assert updated.is_active is False
    assert updated.shortcode == "keep"
    assert as_utc(updated.expires_at) == expires_at


@pytest.mark.asyncio
async def test_update_not_owned_or_deleted(sql_link_store: SQLAlchemyLinkStore) -> None:
    link = await create(sql_link_store, "mine")

    assert await sql_link_store.update_link(OTHER_OWNER, link.id, LinkChanges(is_active=False)) is None
    await sql_link_store.delete_link(OWNER, link.id)
    assert await sql_link_store.update_link(OWNER, link.id, LinkChanges(is_active=False)) is None


@pytest.mark.asyncio
async def test_update_rename_conflict(sql_link_store: SQLAlchemyLinkStore) -> None:
    await create(sql_link_store, "taken", owner_id=OTHER_OWNER)
    link = await create(sql_link_store, "free")

    with pytest.raises(ShortcodeConflictError):
        await sql_link_store.update_link(OWNER, link.id, LinkChanges(shortcode="taken"))

    assert (await sql_link_store.get_link(OWNER, link.id)).shortcode == "free"


@pytest.mark.asyncio
async def test_list_and_count(sql_link_store: SQLAlchemyLinkStore) -> None:
    created = [await create(sql_link_store, f"code{i}") for i in range(4)]
    await create(sql_link_store, "foreign", owner_id=OTHER_OWNER)
    await sql_link_store.update_link(OWNER, created[0].id, LinkChanges(is_active=False))
    await sql_link_store.delete_link(OWNER, created[1].id)

    listed = await sql_link_store.list_links(OWNER, is_active=None, tag_ids=[], offset=0, limit=10)
    assert [link.shortcode for link in listed] == ["code3", "code2", "code0"]
    assert await sql_link_store.count_links(OWNER, is_active=None, tag_ids=[]) == 3

    active = await sql_link_store.list_links(OWNER, is_active=True, tag_ids=[], offset=0, limit=10)
    assert [link.shortcode for link in active] == ["code3", "code2"]
    assert await sql_link_store.count_links(OWNER, is_active=False, tag_ids=[]) == 1

    second_page = await sql_link_store.list_links(OWNER, is_active=None, tag_ids=[], offset=2, limit=2)
    assert [link.shortcode for link in second_page] == ["code0"]


@pytest.mark.asyncio
async def test_tag_associations(sql_link_store: SQLAlchemyLinkStore, sql_tag_store: SQLAlchemyTagStore) -> None:
    link = await create(sql_link_store, "tagged")
    other = await create(sql_link_store, "untagged")
    work = await sql_tag_store.create_tag(OWNER, "work")
    home = await sql_tag_store.create_tag(OWNER, "home")
    foreign = await sql_tag_store.create_tag(OTHER_OWNER, "foreign")

    await sql_link_store.add_tags(OWNER, link.id, [work.id, home.id, foreign.id])
    await sql_link_store.add_tags(OWNER, link.id, [work.id])

    reread = await sql_link_store.get_link(OWNER, link.id)
    assert [tag.name for tag in reread.tags] == ["home", "work"]

    by_tag = await sql_link_store.list_links(OWNER, is_active=None, tag_ids=[work.id], offset=0, limit=10)
    assert [item.id for item in by_tag] == [link.id]
    assert await sql_link_store.count_links(OWNER, is_active=None, tag_ids=[work.id, home.id]) == 1
    assert other.id not in {item.id for item in by_tag}

    await sql_link_store.remove_tags(OWNER, link.id, [work.id, foreign.id])
    reread = await sql_link_store.get_link(OWNER, link.id)
    assert [tag.name for tag in reread.tags] == ["home"]

    # Another owner cannot touch the link's tags.
    await sql_link_store.remove_tags(OTHER_OWNER, link.id, [home.id])
    assert [tag.name for tag in (await sql_link_store.get_link(OWNER, link.id)).tags] == ["home"]


@pytest.mark.asyncio
async def test_concurrent_add_tags_both_succeed(
    sql_link_store: SQLAlchemyLinkStore,
    sql_tag_store: SQLAlchemyTagStore,
) -> None:
    link = await create(sql_link_store, "racing")
    work = await sql_tag_store.create_tag(OWNER, "work")

    await asyncio.gather(
        sql_link_store.add_tags(OWNER, link.id, [work.id]),
        sql_link_store.add_tags(OWNER, link.id, [work.id]),
    )

    assert [tag.id for tag in (await sql_link_store.get_link(OWNER, link.id)).tags] == [work.id]


@pytest.mark.asyncio
async def test_concurrent_add_tags_through_service(
    sql_link_store: SQLAlchemyLinkStore,
    sql_tag_store: SQLAlchemyTagStore,
    logger,
    settings,
) -> None:
    service = LinkService(sql_link_store, None, logger, settings)
    link = await create(sql_link_store, "racing2")
    work = await sql_tag_store.create_tag(OWNER, "work")

    results = await asyncio.gather(
        service.add_tags(OWNER, link.id, [work.id]),
        service.add_tags(OWNER, link.id, [work.id]),
    )

    for result in results:
        assert isinstance(result, LinkRecord)
        assert [tag.name for tag in result.tags] == ["work"]


@pytest.mark.asyncio
async def test_tag_store_crud(sql_tag_store: SQLAlchemyTagStore) -> None:
    work = await sql_tag_store.create_tag(OWNER, "work")
    await sql_tag_store.create_tag(OTHER_OWNER, "work")

    with pytest.raises(TagNameConflictError):
        await sql_tag_store.create_tag(OWNER, "work")

    home = await sql_tag_store.create_tag(OWNER, "home")
    with pytest.raises(TagNameConflictError):
        await sql_tag_store.update_tag(OWNER, home.id, "work")

    renamed = await sql_tag_store.update_tag(OWNER, work.id, "office")
    assert renamed.name == "office"
    assert renamed.updated_at is not None
    assert await sql_tag_store.update_tag(OTHER_OWNER, work.id, "x") is None

    assert [tag.name for tag in await sql_tag_store.list_tags(OWNER)] == ["home", "office"]

    assert await sql_tag_store.delete_tag(OTHER_OWNER, home.id) is None
    assert (await sql_tag_store.delete_tag(OWNER, home.id)).id == home.id
    assert [tag.name for tag in await sql_tag_store.list_tags(OWNER)] == ["office"]


@pytest.mark.asyncio
async def test_delete_tags_detaches_links(
    sql_link_store: SQLAlchemyLinkStore,
    sql_tag_store: SQLAlchemyTagStore,
) -> None:
    link = await create(sql_link_store, "withtags")
    a = await sql_tag_store.create_tag(OWNER, "a")
    b = await sql_tag_store.create_tag(OWNER, "b")
    await sql_link_store.add_tags(OWNER, link.id, [a.id, b.id])

    deleted = await sql_tag_store.delete_tags(OWNER, [a.id, uuid.uuid4()])

    assert [tag.id for tag in deleted] == [a.id]
    assert [tag.name for tag in (await sql_link_store.get_link(OWNER, link.id)).tags] == ["b"]
    assert await sql_tag_store.delete_tags(OWNER, [a.id]) == []


def test_unique_violation_detection() -> None:
    def integrity_error(orig: object) -> IntegrityError:
        return IntegrityError("INSERT ...", {}, orig)

    assert _is_unique_violation(integrity_error(SimpleNamespace(sqlstate="23505")))
    assert _is_unique_violation(integrity_error(SimpleNamespace(pgcode="23505")))
    assert _is_unique_violation(integrity_error(Exception("UNIQUE constraint failed: links.shortcode")))
    assert not _is_unique_violation(integrity_error(SimpleNamespace(sqlstate="23503")))
