"""Pydantic models for the activity API (camelCase on the wire)."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator, model_validator
from pydantic.alias_generators import to_camel

ActivityType = Literal[
    "client", "policy", "claim", "quotation", "lead",
    "payment", "document", "commission", "reminder", "system",
]
EntityType = Literal["client", "policy", "claim", "quotation", "lead", "agent", "user"]
Priority = Literal["low", "medium", "high", "critical"]
Status = Literal["active", "archived", "hidden"]
SortField = Literal["createdAt", "updatedAt", "action", "type", "priority", "entityName"]
DateFilter = Literal["today", "yesterday", "last7days", "last30days", "last90days"]
StatsPeriod = Literal["today", "yesterday", "last7days", "last30days", "last90days", "custom"]
GroupBy = Literal["type", "agent", "client", "day", "week", "month"]
BulkActionName = Literal["archive", "hide", "show", "delete", "addTag", "removeTag", "changePriority"]

PRIORITIES: tuple[str, ...] = ("low", "medium", "high", "critical")
MAX_PAGE = 1_000_000_000
IMMUTABLE_FIELDS = frozenset({"activityId", "entityType", "entityId", "createdBy", "createdAt"})

ActionText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=200)]
DescriptionText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=1000)]
DetailsText = Annotated[str, StringConstraints(strip_whitespace=True, max_length=2000)]
TagText = Annotated[str, StringConstraints(max_length=50)]
RequiredId = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


def _parse_datetime(value):
    """Accept date-only strings and treat naive datetimes as UTC."""
    if isinstance(value, str) and len(value.strip()) == 10:
        value = value.strip() + "T00:00:00"
    return value


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class ActivityMetadata(_CamelModel):
    policy_id: str | None = None
    policy_number: Annotated[str, StringConstraints(max_length=50)] | None = None
    claim_id: str | None = None
    claim_number: Annotated[str, StringConstraints(max_length=50)] | None = None
    quotation_id: str | None = None
    quote_id: Annotated[str, StringConstraints(max_length=50)] | None = None
    lead_id: str | None = None
    amount: Annotated[float, Field(ge=0)] | None = None
    old_value: Annotated[str, StringConstraints(max_length=500)] | None = None
    new_value: Annotated[str, StringConstraints(max_length=500)] | None = None
    ip_address: Annotated[str, StringConstraints(max_length=45)] | None = None
    user_agent: Annotated[str, StringConstraints(max_length=500)] | None = None


class ActivityCreate(_CamelModel):
    action: ActionText
    type: ActivityType
    description: DescriptionText
    details: DetailsText | None = None
    entity_type: EntityType
    entity_id: RequiredId
    entity_name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
    client_id: str | None = None
    client_name: Annotated[str, StringConstraints(strip_whitespace=True, max_length=100)] | None = None
    agent_id: RequiredId
    agent_name: RequiredId
    user_id: RequiredId | None = None
    user_name: RequiredId | None = None
    metadata: ActivityMetadata | None = None
    priority: Priority = "medium"
    tags: list[TagText] | None = None
    is_system_generated: bool = False
    is_visible: bool = True


class ActivityUpdate(_CamelModel):
    action: ActionText | None = None
    description: DescriptionText | None = None
    details: DetailsText | None = None
    priority: Priority | None = None
    status: Status | None = None
    tags: list[TagText] | None = None
    is_visible: bool | None = None
    metadata: ActivityMetadata | None = None


def strip_immutable(body: dict) -> dict:
    """Drop fields that may never change after creation (both wire and attribute names)."""
    snake = {"activity_id", "entity_type", "entity_id", "created_by", "created_at"}
    return {k: v for k, v in body.items() if k not in IMMUTABLE_FIELDS and k not in snake}


class ActivityListQuery(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    page: Annotated[int, Field(ge=1, le=MAX_PAGE)] = 1
    limit: Annotated[int, Field(ge=1, le=100)] = 20
    type: ActivityType | None = None
    entity_type: EntityType | None = None
    agent_id: str | None = None
    client_id: str | None = None
    user_id: str | None = None
    entity_id: str | None = None
    priority: Priority | None = None
    status: Status | None = "active"
    search: Annotated[str, StringConstraints(strip_whitespace=True, max_length=100)] | None = None
    sort_by: SortField = "createdAt"
    sort_order: Literal["asc", "desc"] = "desc"
    date_filter: DateFilter | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    is_recent: bool | None = None
    tags: list[str] | None = None

    @field_validator(
        "type", "entity_type", "agent_id", "client_id", "user_id", "priority", "status", "date_filter",
        mode="before",
    )
    @classmethod
    def _all_means_unfiltered(cls, value):
        if value == "all" or value == "":
            return None
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, value):
        if isinstance(value, str):
            value = value.split(",")
        if value is None:
            return None
        tags = [str(t).strip() for t in value if str(t).strip()]
        return tags or None

    @field_validator("search", mode="before")
    @classmethod
    def _blank_search(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _date_only(cls, value):
        return _parse_datetime(value)

    @field_validator("start_date", "end_date")
    @classmethod
    def _utc(cls, value):
        return _as_utc(value)


class StatsQuery(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    agent_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    period: StatsPeriod = "last30days"
    group_by: GroupBy | None = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _date_only(cls, value):
        return _parse_datetime(value)

    @field_validator("start_date", "end_date")
    @classmethod
    def _utc(cls, value):
        return _as_utc(value)


class SearchQuery(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    query: Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=100)]
    limit: Annotated[int, Field(ge=1, le=100)] = 10
    type: ActivityType | None = None
    agent_id: str | None = None

    @field_validator("type", "agent_id", mode="before")
    @classmethod
    def _all_means_unfiltered(cls, value):
        if value == "all" or value == "":
            return None
        return value


class BulkActionRequest(_CamelModel):
    activity_ids: Annotated[list[RequiredId], Field(min_length=1)]
    action: BulkActionName
    value: str | None = None

    @model_validator(mode="after")
    def _value_matches_action(self):
        if self.action in ("addTag", "removeTag"):
            if not self.value or not self.value.strip():
                raise ValueError(f"value is required for action '{self.action}'")
            if len(self.value) > 50:
                raise ValueError("Tag cannot exceed 50 characters")
            self.value = self.value.strip()
        elif self.action == "changePriority":
            if self.value not in PRIORITIES:
                raise ValueError(f"value must be one of: {', '.join(PRIORITIES)}")
        elif self.value is not None:
            raise ValueError(f"value is not allowed for action '{self.action}'")
        return self


class ArchiveExpiredRequest(_CamelModel):
    older_than_days: Annotated[int, Field(ge=1)] | None = None


class ActivitySettingUpdate(_CamelModel):
    key: RequiredId
    value: Any
