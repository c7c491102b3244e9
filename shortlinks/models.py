"""SQLAlchemy ORM models for the link-shortening service.

Data Model Layout
=================
::
    links table
    ├─ id (UUID PRIMARY KEY)
    ├─ shortcode (VARCHAR(20) NOT NULL)
    ├─ original_url (TEXT NOT NULL)
    ├─ owner_id (TEXT NOT NULL, INDEXED)
    ├─ is_active (BOOLEAN DEFAULT TRUE)
    ├─ expires_at (TIMESTAMPTZ NULL)
    ├─ created_at / updated_at (TIMESTAMPTZ)
    └─ deleted_at (TIMESTAMPTZ NULL, soft delete)

    UNIQUE (shortcode) WHERE deleted_at IS NULL

    tags table
    ├─ id (UUID PRIMARY KEY)
    ├─ name (VARCHAR(30) NOT NULL)
    ├─ owner_id (TEXT NOT NULL)
    └─ created_at / updated_at

    UNIQUE (owner_id, name)

    link_tags table
    └─ (link_id, tag_id) PRIMARY KEY, both ON DELETE CASCADE

Key Behaviours
===============
- Shortcode uniqueness covers live rows only; soft-deleted rows free their
  code for reuse.
- owner_id is an opaque identity-provider subject, not a local foreign key.
- Timestamps are assigned by the application in UTC.
"""

import datetime
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, Table, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shortlinks.database import Base

__all__ = ["Link", "Tag", "link_tags", "utcnow"]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


link_tags = Table(
    "link_tags",
    Base.metadata,
    Column("link_id", ForeignKey("links.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True, index=True),
)


class Tag(Base):
    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("owner_id", "name", name="uq_tags_owner_name"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(30), nullable=False)
    owner_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Tag(id={self.id}, name='{self.name}')>"


class Link(Base):
    __tablename__ = "links"
    __table_args__ = (
        Index(
            "uq_links_shortcode_live",
            "shortcode",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    shortcode: Mapped[str] = mapped_column(String(20), nullable=False)
    original_url: Mapped[str] = mapped_column(Text, nullable=False)
    owner_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    expires_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    deleted_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    tags: Mapped[list[Tag]] = relationship(secondary=link_tags, lazy="selectin", order_by=Tag.name)

    def __repr__(self) -> str:
        return f"<Link(id={self.id}, shortcode='{self.shortcode}', active={self.is_active})>"
