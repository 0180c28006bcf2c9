"""
Database Models for the Link Shortener Service

This module defines the SQLModel database schemas for:
- Link: Maps a generated token (and optional alias) to a destination URL
- VisitEvent: Append-only record of one successful resolution
- SeenVisitor: Existence record deciding the first visit per (link, visitor)

Design Decisions:
- Separate VisitEvent table so analytics can be pruned/partitioned independently
- click_count and unique_visitor_count denormalized on Link for lifetime stats
- SeenVisitor carries the uniqueness constraint; VisitEvent never can, since
  every visit appends a row
- All timestamps are stored as UTC and read back timezone-aware
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Index, Integer, String, Text, TypeDecorator, UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """DateTime that always hands back aware UTC values (SQLite drops tzinfo)."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
            if dialect.name == "sqlite":
                value = value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class Link(SQLModel, table=True):
    """
    Main table storing short link mappings.

    Fields:
    - token: Generated base62 handle, always present, globally unique
    - alias: Optional user-chosen handle, shares the token namespace
    - destination: Absolute http(s) URL to redirect to
    - owner_id: Opaque identity issued by the authentication layer
    - password_hash: Salted hash, set iff password_protected
    - click_count / unique_visitor_count: Lifetime counters, updated atomically
    - last_accessed_at: Last successful resolution

    Indexes:
    - token, alias: Unique indexes for handle lookups (most critical path)
    - owner_id: Dashboard and listing queries
    - expires_at: Active/expired rollups
    """
    __tablename__ = "links"
    __table_args__ = (
        CheckConstraint(
            "unique_visitor_count >= 0 AND click_count >= unique_visitor_count",
            name="ck_links_counters",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    token: str = Field(sa_column=Column(String(16), nullable=False, unique=True, index=True))
    alias: Optional[str] = Field(
        default=None,
        sa_column=Column(String(64), nullable=True, unique=True, index=True)
    )
    destination: str = Field(sa_column=Column(Text, nullable=False))
    owner_id: Optional[str] = Field(
        default=None,
        sa_column=Column(String(64), nullable=True, index=True)
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(UTCDateTime, nullable=False, index=True)
    )
    expires_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(UTCDateTime, nullable=True, index=True)
    )
    password_protected: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    password_hash: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True, index=True))
    click_count: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    unique_visitor_count: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    last_accessed_at: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime, nullable=True))

    @property
    def short_handle(self) -> str:
        """Public handle: the alias if present, else the token."""
        return self.alias or self.token

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Expiry is evaluated against wall-clock time at the moment of the check."""
        if self.expires_at is None:
            return False
        return (now or utcnow()) > self.expires_at


class VisitEvent(SQLModel, table=True):
    """
    One row per successful resolution.

    is_unique_for_link is decided at write time from the SeenVisitor insert
    and never changes afterwards. Rows are append-only.
    """
    __tablename__ = "visit_events"
    __table_args__ = (
        Index("ix_visit_events_link_id_timestamp", "link_id", "timestamp"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    link_id: int = Field(sa_column=Column(Integer, nullable=False, index=True))
    visitor_key: str = Field(sa_column=Column(String(32), nullable=False))
    timestamp: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(UTCDateTime, nullable=False, index=True)
    )
    ip_address: Optional[str] = Field(default=None, sa_column=Column(String(45), nullable=True))  # IPv6 max length
    user_agent: Optional[str] = Field(default=None, sa_column=Column(String(500), nullable=True))
    browser_name: Optional[str] = Field(default=None, sa_column=Column(String(50), nullable=True))
    browser_version: Optional[str] = Field(default=None, sa_column=Column(String(50), nullable=True))
    os_name: Optional[str] = Field(default=None, sa_column=Column(String(50), nullable=True))
    os_version: Optional[str] = Field(default=None, sa_column=Column(String(50), nullable=True))
    device_type: Optional[str] = Field(default=None, sa_column=Column(String(20), nullable=True))
    country: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))
    region: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))
    city: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True))
    time_zone: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))
    referrer: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    is_unique_for_link: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))


class SeenVisitor(SQLModel, table=True):
    """
    Existence record per (link, visitor key).

    Inserted with insert-if-absent semantics; whichever writer's insert lands
    first owns the unique visit for that pair.
    """
    __tablename__ = "seen_visitors"
    __table_args__ = (
        UniqueConstraint("link_id", "visitor_key", name="uq_seen_visitors_link_visitor"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    link_id: int = Field(sa_column=Column(Integer, nullable=False))
    visitor_key: str = Field(sa_column=Column(String(32), nullable=False))
    first_seen_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(UTCDateTime, nullable=False)
    )
