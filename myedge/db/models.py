"""ORM models backing the database persistence mode."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin

JSONType = JSON


class UserRecordModel(TimestampMixin, Base):
    """One row per identity; nested document parts are stored as JSON columns."""

    __tablename__ = "user_records"
    __table_args__ = (
        Index("ix_user_records_username", "username", unique=True),
        Index("ix_user_records_slug", "slug", unique=True),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    username: Mapped[str] = mapped_column(String(64), nullable=False)
    slug: Mapped[str] = mapped_column(String(80), nullable=False)
    city: Mapped[str] = mapped_column(String(128), default="", nullable=False)
    interests: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    user_bio: Mapped[str] = mapped_column(Text, default="", nullable=False)
    github: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    repos: Mapped[list[dict]] = mapped_column(JSONType, default=list, nullable=False)
    ai_bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_project_descriptions: Mapped[dict[str, str]] = mapped_column(JSONType, default=dict, nullable=False)
    ai_quote: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    ai_background_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    ai_card_image_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    skills: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    bookmarks: Mapped[list[dict]] = mapped_column(JSONType, default=list, nullable=False)
    cached_news: Mapped[list[dict] | None] = mapped_column(JSONType, nullable=True)
    cached_weather: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    text_generated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    image_generated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    news_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    weather_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class PersistenceAuditEventModel(Base):
    __tablename__ = "persistence_audit_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    record_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("user_records.id", ondelete="SET NULL"), nullable=True
    )
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    actor: Mapped[str | None] = mapped_column(String(128))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    record: Mapped[UserRecordModel | None] = relationship()


__all__ = [
    "PersistenceAuditEventModel",
    "UserRecordModel",
]
