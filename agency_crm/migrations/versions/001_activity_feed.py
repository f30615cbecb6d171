"""Activity feed schema.

Revision ID: 001_activity_feed
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_activity_feed"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _has_table(bind, name: str) -> bool:
    return sa.inspect(bind).has_table(name)


def _has_index(bind, table_name: str, index_name: str) -> bool:
    indexes = sa.inspect(bind).get_indexes(table_name)
    return any(idx.get("name") == index_name for idx in indexes)


def _person_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=True),
        sa.Column("last_name", sa.String(length=100), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
    ]


ACTIVITY_INDEXES = (
    ("ix_activity_type", ["type"]),
    ("ix_activity_entity_type", ["entity_type"]),
    ("ix_activity_entity_id", ["entity_id"]),
    ("ix_activity_agent_id", ["agent_id"]),
    ("ix_activity_user_id", ["user_id"]),
    ("ix_activity_client_id", ["client_id"]),
    ("ix_activity_priority", ["priority"]),
    ("ix_activity_status", ["status"]),
    ("ix_activity_created_at", ["created_at"]),
    ("ix_activity_agent_created", ["agent_id", "created_at"]),
    ("ix_activity_visible_status", ["is_visible", "status"]),
)


def upgrade() -> None:
    bind = op.get_bind()

    if not _has_table(bind, "activity"):
        op.create_table(
            "activity",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("activity_id", sa.String(length=32), nullable=False),
            sa.Column("type", sa.String(length=20), nullable=False),
            sa.Column("action", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("details", sa.Text(), nullable=True),
            sa.Column("entity_type", sa.String(length=20), nullable=False),
            sa.Column("entity_id", sa.String(length=64), nullable=False),
            sa.Column("entity_name", sa.String(length=100), nullable=False),
            sa.Column("agent_id", sa.String(length=64), nullable=False),
            sa.Column("agent_name", sa.String(length=200), nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=False),
            sa.Column("user_name", sa.String(length=200), nullable=False),
            sa.Column("client_id", sa.String(length=64), nullable=True),
            sa.Column("client_name", sa.String(length=100), nullable=True),
            sa.Column("metadata", sa.JSON(), nullable=True),
            sa.Column("priority", sa.String(length=10), nullable=False),
            sa.Column("status", sa.String(length=10), nullable=False),
            sa.Column("is_visible", sa.Boolean(), nullable=False),
            sa.Column("is_system_generated", sa.Boolean(), nullable=False),
            sa.Column("created_by", sa.String(length=64), nullable=False),
            sa.Column("updated_by", sa.String(length=64), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("activity_id", name="uq_activity_activity_id"),
        )
    for name, columns in ACTIVITY_INDEXES:
        if not _has_index(bind, "activity", name):
            op.create_index(name, "activity", columns, unique=False)

    if not _has_table(bind, "activity_tag"):
        op.create_table(
            "activity_tag",
            sa.Column("activity_id", sa.Uuid(), nullable=False),
            sa.Column("tag", sa.String(length=50), nullable=False),
            sa.ForeignKeyConstraint(["activity_id"], ["activity.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("activity_id", "tag"),
        )
    if not _has_index(bind, "activity_tag", "ix_activity_tag_tag"):
        op.create_index("ix_activity_tag_tag", "activity_tag", ["tag"], unique=False)

    if not _has_table(bind, "agent"):
        op.create_table(
            "agent",
            *_person_columns(),
            sa.Column("phone", sa.String(length=30), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
    if not _has_table(bind, "client"):
        op.create_table(
            "client",
            *_person_columns(),
            sa.Column("phone", sa.String(length=30), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
    if not _has_table(bind, "app_user"):
        op.create_table(
            "app_user",
            *_person_columns(),
            sa.Column("role", sa.String(length=20), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )


def downgrade() -> None:
    for table in ("app_user", "client", "agent"):
        op.drop_table(table)
    op.drop_index("ix_activity_tag_tag", table_name="activity_tag")
    op.drop_table("activity_tag")
    for name, _columns in reversed(ACTIVITY_INDEXES):
        op.drop_index(name, table_name="activity")
    op.drop_table("activity")
