"""Unit tests for TagService."""

import uuid
from unittest.mock import AsyncMock

import pytest

from shortlinks.enums import ErrorKind
from shortlinks.errors import ServiceError
from shortlinks.tag_service import TagService
from tests.fakes import OTHER_OWNER, OWNER


@pytest.mark.asyncio
async def test_create_and_list_tags(tag_service: TagService) -> None:
    await tag_service.create_tag(OWNER, "work")
    await tag_service.create_tag(OWNER, "  archive ")
    await tag_service.create_tag(OTHER_OWNER, "theirs")

    tags = await tag_service.list_tags(OWNER)
    assert [tag.name for tag in tags] == ["archive", "work"]


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["", "   ", "t" * 31])
async def test_create_tag_rejects_bad_names(tag_service: TagService, tag_store, name: str) -> None:
    with pytest.raises(ServiceError) as exc_info:
        await tag_service.create_tag(OWNER, name)
    assert exc_info.value.kind is ErrorKind.INVALID_INPUT
    assert tag_store.calls["create_tag"] == 0


@pytest.mark.asyncio
async def test_tag_names_are_unique_per_owner(tag_service: TagService) -> None:
    await tag_service.create_tag(OWNER, "work")
    await tag_service.create_tag(OTHER_OWNER, "work")

    with pytest.raises(ServiceError) as exc_info:
        await tag_service.create_tag(OWNER, "work")
    assert exc_info.value.kind is ErrorKind.TAG_NAME_TAKEN


@pytest.mark.asyncio
async def test_update_tag(tag_service: TagService) -> None:
    tag = await tag_service.create_tag(OWNER, "work")
    await tag_service.create_tag(OWNER, "home")

    renamed = await tag_service.update_tag(OWNER, tag.id, "office")
    assert renamed.id == tag.id
    assert renamed.name == "office"
    assert renamed.updated_at is not None

    with pytest.raises(ServiceError) as exc_info:
        await tag_service.update_tag(OWNER, tag.id, "home")
    assert exc_info.value.kind is ErrorKind.TAG_NAME_TAKEN

    with pytest.raises(ServiceError) as exc_info:
        await tag_service.update_tag(OTHER_OWNER, tag.id, "stolen")
    assert exc_info.value.kind is ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_delete_tag(tag_service: TagService) -> None:
    tag = await tag_service.create_tag(OWNER, "work")

    with pytest.raises(ServiceError) as exc_info:
        await tag_service.delete_tag(OTHER_OWNER, tag.id)
    assert exc_info.value.kind is ErrorKind.NOT_FOUND

    deleted = await tag_service.delete_tag(OWNER, tag.id)
    assert deleted.id == tag.id
    assert await tag_service.list_tags(OWNER) == []

    with pytest.raises(ServiceError):
        await tag_service.delete_tag(OWNER, tag.id)


@pytest.mark.asyncio
async def test_delete_tags_only_removes_owned(tag_service: TagService) -> None:
    mine = await tag_service.create_tag(OWNER, "a")
    also_mine = await tag_service.create_tag(OWNER, "b")
    theirs = await tag_service.create_tag(OTHER_OWNER, "c")

    deleted = await tag_service.delete_tags(OWNER, [mine.id, also_mine.id, theirs.id, uuid.uuid4()])

    assert {tag.id for tag in deleted} == {mine.id, also_mine.id}
    assert [tag.id for tag in await tag_service.list_tags(OTHER_OWNER)] == [theirs.id]


@pytest.mark.asyncio
async def test_delete_tags_empty_list(tag_service: TagService, tag_store) -> None:
    assert await tag_service.delete_tags(OWNER, []) == []
    assert tag_store.calls["delete_tags"] == 0


@pytest.mark.asyncio
async def test_store_failure_is_internal(tag_service: TagService, tag_store) -> None:
    tag_store.list_tags = AsyncMock(side_effect=ConnectionResetError("db gone"))

    with pytest.raises(ServiceError) as exc_info:
        await tag_service.list_tags(OWNER)
    assert exc_info.value.kind is ErrorKind.INTERNAL
    assert isinstance(exc_info.value.cause, ConnectionResetError)
