"""Pydantic schemas shared by the stores, the services and the HTTP layer.

Schema Hierarchy
=================
::
    Store snapshots (output of LinkStore / TagStore)
    ├─ TagRecord
    ├─ LinkRecord (+ tags: list[TagRecord])
    └─ RedirectTarget (redirect-path projection)

    Service inputs / outputs
    ├─ LinkChanges (partial update, None means "leave untouched")
    └─ LinkPage (paginated listing)

    HTTP bodies
    ├─ LinkCreate / LinkUpdate / TagIdsPayload
    ├─ TagCreate / TagUpdate
    ├─ LinkResponse / LinkPageResponse
    ├─ HealthResponse
    └─ ErrorResponse

Key Behaviours
===============
- Snapshots are built from ORM rows with ``from_attributes`` so no live ORM
  object ever leaves a store session.
- Request bodies only shape the JSON; URL, expiry and shortcode rules are
  enforced by the services so every caller gets the same classification.
- All datetime fields are expected to be timezone-aware UTC.
"""

import datetime
import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from shortlinks.enums import ErrorKind, HealthStatus

__all__ = [
    "TagRecord",
    "LinkRecord",
    "RedirectTarget",
    "LinkChanges",
    "LinkPage",
    "LinkCreate",
    "LinkUpdate",
    "TagIdsPayload",
    "TagCreate",
    "TagUpdate",
    "LinkResponse",
    "LinkPageResponse",
    "HealthResponse",
    "ErrorDetail",
    "ErrorResponse",
]


class TagRecord(BaseModel):
    id: uuid.UUID
    name: str
    created_at: datetime.datetime
    updated_at: Optional[datetime.datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LinkRecord(BaseModel):
    id: uuid.UUID
    shortcode: str
    original_url: str
    owner_id: str
    is_active: bool
    expires_at: Optional[datetime.datetime] = None
    created_at: datetime.datetime
    updated_at: datetime.datetime
    tags: list[TagRecord] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class RedirectTarget(BaseModel):
    """What the public redirect path needs to know about a live link."""

    original_url: str
    is_active: bool
    expires_at: Optional[datetime.datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LinkChanges(BaseModel):
    shortcode: Optional[str] = None
    is_active: Optional[bool] = None
    expires_at: Optional[datetime.datetime] = None

    def is_empty(self) -> bool:
        return self.shortcode is None and self.is_active is None and self.expires_at is None


class LinkPage(BaseModel):
    items: list[LinkRecord]
    total: int
    page: int
    limit: int
    total_pages: int


class LinkCreate(BaseModel):
    url: str
    shortcode: Optional[str] = None
    expires_at: Optional[datetime.datetime] = None


class LinkUpdate(BaseModel):
    shortcode: Optional[str] = None
    is_active: Optional[bool] = None
    expires_at: Optional[datetime.datetime] = None


class TagIdsPayload(BaseModel):
    tag_ids: list[uuid.UUID] = Field(default_factory=list)


class TagCreate(BaseModel):
    name: str


class TagUpdate(BaseModel):
    name: str


class LinkResponse(LinkRecord):
    short_url: str

    @classmethod
    def from_record(cls, record: LinkRecord, base_url: str) -> "LinkResponse":
        return cls(**record.model_dump(), short_url=f"{base_url.rstrip('/')}/{record.shortcode}")


class LinkPageResponse(BaseModel):
    items: list[LinkResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus


class ErrorDetail(BaseModel):
    code: ErrorKind
    detail: str


class ErrorResponse(BaseModel):
    error: ErrorDetail
