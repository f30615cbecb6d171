"""Read-side reference records for agents, clients and users."""

from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, PersonMixin


class Agent(PersonMixin, Base):
    __tablename__ = "agent"

    phone: Mapped[str | None] = mapped_column(String(30), default=None)

    def __repr__(self) -> str:
        return f"<Agent {self.full_name!r}>"


class Client(PersonMixin, Base):
    __tablename__ = "client"

    phone: Mapped[str | None] = mapped_column(String(30), default=None)

    def __repr__(self) -> str:
        return f"<Client {self.full_name!r}>"


class User(PersonMixin, Base):
    __tablename__ = "app_user"

    role: Mapped[str] = mapped_column(String(20), default="agent")

    def __repr__(self) -> str:
        return f"<User {self.full_name!r} ({self.role})>"
