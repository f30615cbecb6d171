"""Runtime-editable settings, grouped by category."""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class Setting(TimestampMixin, Base):
    __tablename__ = "app_setting"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    value_type: Mapped[str] = mapped_column(String(10))  # number | boolean | string
    category: Mapped[str] = mapped_column(String(20), index=True)
    description: Mapped[str] = mapped_column(Text)
    is_editable: Mapped[bool] = mapped_column(Boolean, default=True)
    validation_rules: Mapped[dict | None] = mapped_column(JSON, default=None)
    default_value: Mapped[Any] = mapped_column(JSON, nullable=True, default=None)
    last_modified_by: Mapped[str | None] = mapped_column(String(64), default=None)

    def __repr__(self) -> str:
        return f"<Setting {self.key}={self.value!r}>"
