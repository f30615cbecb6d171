"""Activity model - polymorphic audit/feed record with a tag set."""

from __future__ import annotations

import uuid

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, UUIDMixin, TimestampMixin


class ActivityTag(Base):
    """Tag set membership for activities."""

    __tablename__ = "activity_tag"

    activity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("activity.id", ondelete="CASCADE"), primary_key=True
    )
    tag: Mapped[str] = mapped_column(String(50), primary_key=True, index=True)


class Activity(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "activity"
    __table_args__ = (
        Index("ix_activity_agent_created", "agent_id", "created_at"),
        Index("ix_activity_visible_status", "is_visible", "status"),
    )

    activity_id: Mapped[str] = mapped_column(String(32), unique=True)  # ACT-YYYYMM-NNNNNN
    type: Mapped[str] = mapped_column(String(20), index=True)
    action: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(Text)
    details: Mapped[str | None] = mapped_column(Text, default=None)

    entity_type: Mapped[str] = mapped_column(String(20), index=True)
    entity_id: Mapped[str] = mapped_column(String(64), index=True)
    entity_name: Mapped[str] = mapped_column(String(100))

    agent_id: Mapped[str] = mapped_column(String(64), index=True)
    agent_name: Mapped[str] = mapped_column(String(200))
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    user_name: Mapped[str] = mapped_column(String(200))
    client_id: Mapped[str | None] = mapped_column(String(64), default=None, index=True)
    client_name: Mapped[str | None] = mapped_column(String(100), default=None)

    metadata_json: Mapped[dict | None] = mapped_column("metadata", JSON, default=None)

    priority: Mapped[str] = mapped_column(String(10), default="medium", index=True)
    status: Mapped[str] = mapped_column(String(10), default="active", index=True)
    is_visible: Mapped[bool] = mapped_column(Boolean, default=True)
    is_system_generated: Mapped[bool] = mapped_column(Boolean, default=False)

    created_by: Mapped[str] = mapped_column(String(64))
    updated_by: Mapped[str] = mapped_column(String(64))

    tag_links: Mapped[list[ActivityTag]] = relationship(
        cascade="all, delete-orphan", lazy="selectin", order_by=ActivityTag.tag
    )

    @property
    def tags(self) -> list[str]:
        return [link.tag for link in self.tag_links]

    def set_tags(self, tags: list[str]) -> None:
        """Replace the tag set, keeping the first occurrence of duplicates."""
        wanted = list(dict.fromkeys(t.strip() for t in tags if t and t.strip()))
        existing = {link.tag: link for link in self.tag_links}
        self.tag_links = [existing.get(t) or ActivityTag(tag=t) for t in wanted]

    def is_owned_by(self, actor_id: str) -> bool:
        return actor_id in (self.agent_id, self.user_id)

    def __repr__(self) -> str:
        return f"<Activity {self.activity_id} {self.type}:{self.action!r}>"
