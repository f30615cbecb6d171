"""Runtime activity settings.

Revision ID: 002_app_settings
Revises: 001_activity_feed
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "002_app_settings"
down_revision: Union[str, Sequence[str], None] = "001_activity_feed"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _has_table(bind, name: str) -> bool:
    return sa.inspect(bind).has_table(name)


def _has_index(bind, table_name: str, index_name: str) -> bool:
    indexes = sa.inspect(bind).get_indexes(table_name)
    return any(idx.get("name") == index_name for idx in indexes)


def upgrade() -> None:
    bind = op.get_bind()

    if not _has_table(bind, "app_setting"):
        op.create_table(
            "app_setting",
            sa.Column("key", sa.String(length=100), nullable=False),
            sa.Column("value", sa.JSON(), nullable=True),
            sa.Column("value_type", sa.String(length=10), nullable=False),
            sa.Column("category", sa.String(length=20), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("is_editable", sa.Boolean(), nullable=False),
            sa.Column("validation_rules", sa.JSON(), nullable=True),
            sa.Column("default_value", sa.JSON(), nullable=True),
            sa.Column("last_modified_by", sa.String(length=64), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.PrimaryKeyConstraint("key"),
        )

    for name, columns in (
        ("ix_app_setting_category", ["category"]),
        ("ix_app_setting_created_at", ["created_at"]),
    ):
        if not _has_index(bind, "app_setting", name):
            op.create_index(name, "app_setting", columns, unique=False)


def downgrade() -> None:
    op.drop_index("ix_app_setting_created_at", table_name="app_setting")
    op.drop_index("ix_app_setting_category", table_name="app_setting")
    op.drop_table("app_setting")
