"""Agency CRM models - re-exports all models and Base.metadata."""

from .base import Base, UUIDMixin, TimestampMixin, PersonMixin
from .activity import Activity, ActivityTag
from .directory import Agent, Client, User
from .setting import Setting

__all__ = [
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    "PersonMixin",
    "Activity",
    "ActivityTag",
    "Agent",
    "Client",
    "User",
    "Setting",
]
