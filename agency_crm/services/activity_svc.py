"""Activity service - role-aware listing, stats, search and bulk mutation."""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, case, delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..errors import AccessDenied, NotFound, ValidationFailed, validate_input
from ..models.activity import Activity, ActivityTag
from ..models.base import utcnow
from ..schemas.activity import (
    ActivityCreate,
    ActivityListQuery,
    ActivityUpdate,
    BulkActionRequest,
    SearchQuery,
    StatsQuery,
    strip_immutable,
)
from ..security.actor import Actor
from .activity_filters import (
    combine,
    list_filter_clauses,
    named_window,
    recent_window,
    relevance_score,
    text_match_clause,
    visibility_clause,
)
from .directory_svc import References, load_references
from . import settings_svc
from .persistence import guarded

log = logging.getLogger(__name__)

SORT_COLUMNS = {
    "createdAt": Activity.created_at,
    "updatedAt": Activity.updated_at,
    "action": Activity.action,
    "type": Activity.type,
    "priority": Activity.priority,
    "entityName": Activity.entity_name,
}
HIGH_PRIORITIES = ("high", "critical")
GROUP_LIMIT = 10

# strftime / to_char patterns per dialect for day and month buckets.
# Week buckets are keyed by the date of their Monday on every dialect.
BUCKET_FORMATS = {
    "sqlite": {"day": "%Y-%m-%d", "month": "%Y-%m"},
    "postgresql": {"day": "YYYY-MM-DD", "month": "YYYY-MM"},
    "mysql": {"day": "%Y-%m-%d", "month": "%Y-%m"},
}

OWN_ONLY_MESSAGE = "Access denied. You can only access your own activities."
DELETE_MANAGER_ONLY = "Access denied. Only managers can delete activities."
ARCHIVE_MANAGER_ONLY = "Access denied. Only managers can archive expired activities."


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def activity_to_dict(activity: Activity, refs: References | None = None) -> dict:
    refs = refs or References()
    return {
        "id": str(activity.id),
        "activityId": activity.activity_id,
        "type": activity.type,
        "action": activity.action,
        "description": activity.description,
        "details": activity.details,
        "entityType": activity.entity_type,
        "entityId": activity.entity_id,
        "entityName": activity.entity_name,
        "agentId": activity.agent_id,
        "agentName": activity.agent_name,
        "agent": refs.agents.get(activity.agent_id),
        "userId": activity.user_id,
        "userName": activity.user_name,
        "user": refs.users.get(activity.user_id),
        "clientId": activity.client_id,
        "clientName": activity.client_name,
        "client": refs.clients.get(activity.client_id) if activity.client_id else None,
        "metadata": activity.metadata_json or {},
        "priority": activity.priority,
        "status": activity.status,
        "isVisible": activity.is_visible,
        "isSystemGenerated": activity.is_system_generated,
        "tags": activity.tags,
        "createdBy": activity.created_by,
        "updatedBy": activity.updated_by,
        "createdAt": _iso(activity.created_at),
        "updatedAt": _iso(activity.updated_at),
    }


async def _expanded(db: AsyncSession, activity: Activity) -> dict:
    refs = await load_references(db, [activity])
    return activity_to_dict(activity, refs)


async def _load(db: AsyncSession, ref: str) -> Activity | None:
    """Fetch by UUID, or by the ACT-YYYYMM-NNNNNN reference."""
    try:
        stmt = select(Activity).where(Activity.id == uuid.UUID(str(ref)))
    except ValueError:
        stmt = select(Activity).where(Activity.activity_id == ref)
    result = await db.execute(stmt.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


def _ensure_owner(activity: Activity, actor: Actor) -> None:
    if actor.is_agent and not activity.is_owned_by(actor.id):
        log.warning("Agent %s denied access to activity %s", actor.id, activity.id)
        raise AccessDenied(OWN_ONLY_MESSAGE)


def _ensure_manager(actor: Actor, message: str = DELETE_MANAGER_ONLY) -> None:
    if not actor.is_manager:
        log.warning("User %s (%s) denied manager-only activity operation", actor.id, actor.role)
        raise AccessDenied(message)


async def _next_activity_ref(db: AsyncSession, now: datetime) -> str:
    count = (await db.execute(select(func.count()).select_from(Activity))).scalar() or 0
    return f"ACT-{now:%Y%m}-{count + 1:06d}"


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@guarded("fetch activities")
async def list_activities(
    db: AsyncSession,
    query: ActivityListQuery,
    actor: Actor,
    *,
    now: datetime | None = None,
) -> dict:
    """Filtered, sorted, paginated listing. Count and page are separate reads."""
    where = combine(list_filter_clauses(query, actor, now))

    count_stmt = select(func.count()).select_from(Activity).where(where)
    total = (await db.execute(count_stmt)).scalar() or 0

    column = SORT_COLUMNS[query.sort_by]
    if query.sort_order == "asc":
        ordering = (column.asc(), Activity.id.asc())
    else:
        ordering = (column.desc(), Activity.id.desc())
    stmt = (
        select(Activity)
        .where(where)
        .order_by(*ordering)
        .offset((query.page - 1) * query.limit)
        .limit(query.limit)
    )
    activities = list((await db.execute(stmt)).scalars().all())
    refs = await load_references(db, activities)

    total_pages = math.ceil(total / query.limit)
    return {
        "activities": [activity_to_dict(a, refs) for a in activities],
        "pagination": {
            "currentPage": query.page,
            "totalPages": total_pages,
            "totalCount": total,
            "hasNextPage": query.page < total_pages,
            "hasPrevPage": query.page > 1,
            "limit": query.limit,
        },
    }


@guarded("fetch activity")
async def get_activity(db: AsyncSession, ref: str, actor: Actor) -> dict:
    """Single activity by id. Hidden activities are still returned."""
    activity = await _load(db, ref)
    if activity is None:
        raise NotFound("Activity not found")
    _ensure_owner(activity, actor)
    return await _expanded(db, activity)


@guarded("fetch activity statistics")
async def get_stats(
    db: AsyncSession,
    query: StatsQuery,
    actor: Actor,
    *,
    now: datetime | None = None,
) -> dict:
    now = now or utcnow()
    base = [Activity.status == "active", Activity.is_visible.is_(True)]
    restriction = visibility_clause(actor)
    if restriction is not None:
        base.append(restriction)
    elif query.agent_id:
        base.append(Activity.agent_id == query.agent_id)

    in_period = list(base)
    if query.period == "custom":
        if query.start_date:
            in_period.append(Activity.created_at >= query.start_date)
        if query.end_date:
            in_period.append(Activity.created_at <= query.end_date)
    else:
        in_period.extend(named_window(query.period, now).clauses())
    where = combine(in_period)

    total = (await db.execute(select(func.count()).select_from(Activity).where(where))).scalar() or 0

    high = func.sum(case((Activity.priority.in_(HIGH_PRIORITIES), 1), else_=0))
    type_rows = await db.execute(
        select(Activity.type, func.count(Activity.id), high).where(where).group_by(Activity.type)
    )
    by_type = sorted(
        (
            {"type": type_, "count": count, "highPriority": int(high_count or 0)}
            for type_, count, high_count in type_rows.all()
        ),
        key=lambda row: (-row["count"], row["type"]),
    )

    recent_where = combine(base + recent_window(now).clauses())
    recent = (await db.execute(select(func.count()).select_from(Activity).where(recent_where))).scalar() or 0

    grouped = None
    if query.group_by:
        grouped = {"field": query.group_by, "data": await _grouped_counts(db, where, query.group_by)}

    return {
        "total": total,
        "recent": recent,
        "byType": by_type,
        "period": query.period,
        "groupedBy": grouped,
    }


def _group_key(db: AsyncSession, group_by: str):
    if group_by == "type":
        return Activity.type
    if group_by == "agent":
        return Activity.agent_id
    if group_by == "client":
        return Activity.client_id

    dialect = db.get_bind().dialect.name
    if group_by == "week":
        return _week_start(dialect)
    formats = BUCKET_FORMATS.get(dialect, BUCKET_FORMATS["postgresql"])
    fmt = formats[group_by]
    if dialect == "sqlite":
        return func.strftime(fmt, Activity.created_at)
    if dialect == "mysql":
        return func.date_format(Activity.created_at, fmt)
    return func.to_char(Activity.created_at, fmt)


def _week_start(dialect: str):
    """ISO week bucket, labelled YYYY-MM-DD of the week's Monday."""
    if dialect == "sqlite":
        return func.date(Activity.created_at, "weekday 0", "-6 days")
    if dialect == "mysql":
        return func.date_format(
            func.subdate(Activity.created_at, func.weekday(Activity.created_at)), "%Y-%m-%d"
        )
    return func.to_char(func.date_trunc("week", Activity.created_at), "YYYY-MM-DD")


async def _grouped_counts(db: AsyncSession, where, group_by: str) -> list[dict]:
    """Top groups by count, each with the distinct activity types it contains."""
    key = _group_key(db, group_by).label("group_key")
    rows = await db.execute(
        select(key, Activity.type, func.count(Activity.id))
        .where(where)
        .group_by(key, Activity.type)
    )
    groups: dict = {}
    for group_key, type_, count in rows.all():
        group = groups.setdefault(group_key, {"key": group_key, "count": 0, "types": set()})
        group["count"] += count
        group["types"].add(type_)

    top = sorted(groups.values(), key=lambda g: (-g["count"], str(g["key"])))[:GROUP_LIMIT]
    return [{"key": g["key"], "count": g["count"], "types": sorted(g["types"])} for g in top]


@guarded("search activities")
async def search_activities(db: AsyncSession, query: SearchQuery, actor: Actor) -> list[dict]:
    """Relevance-ranked text search over active, visible activities."""
    clauses = [
        Activity.status == "active",
        Activity.is_visible.is_(True),
        text_match_clause(query.query),
    ]
    if query.type:
        clauses.append(Activity.type == query.type)
    if query.agent_id:
        clauses.append(Activity.agent_id == query.agent_id)
    restriction = visibility_clause(actor)
    if restriction is not None:
        clauses.append(restriction)

    score = relevance_score(query.query).label("score")
    stmt = (
        select(Activity, score)
        .where(and_(*clauses))
        .order_by(score.desc(), Activity.created_at.desc())
        .limit(query.limit)
    )
    rows = (await db.execute(stmt)).all()
    refs = await load_references(db, [row[0] for row in rows])
    results = []
    for activity, row_score in rows:
        item = activity_to_dict(activity, refs)
        item["score"] = int(row_score or 0)
        results.append(item)
    return results


@guarded("fetch filter values")
async def get_filter_values(db: AsyncSession, actor: Actor) -> dict:
    """Distinct values present in the visible feed, for filter dropdowns."""
    where = [Activity.is_visible.is_(True)]
    restriction = visibility_clause(actor)
    if restriction is not None:
        where.append(restriction)

    async def distinct(column) -> list[str]:
        result = await db.execute(select(column).where(*where).distinct().order_by(column))
        return [value for value in result.scalars().all() if value is not None]

    tag_rows = await db.execute(
        select(ActivityTag.tag)
        .join(Activity, Activity.id == ActivityTag.activity_id)
        .where(*where)
        .distinct()
        .order_by(ActivityTag.tag)
    )
    user_rows = await db.execute(
        select(Activity.user_id, func.max(Activity.user_name)).where(*where).group_by(Activity.user_id)
    )
    users = sorted(
        ({"userId": user_id, "userName": user_name} for user_id, user_name in user_rows.all()),
        key=lambda u: (u["userName"] or "").lower(),
    )

    return {
        "types": await distinct(Activity.type),
        "entityTypes": await distinct(Activity.entity_type),
        "priorities": await distinct(Activity.priority),
        "statuses": await distinct(Activity.status),
        "tags": list(tag_rows.scalars().all()),
        "users": users,
    }


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


@guarded("create activity")
async def create_activity(
    db: AsyncSession,
    payload: ActivityCreate,
    actor: Actor,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
    now: datetime | None = None,
) -> dict:
    user_id = payload.user_id or actor.id
    user_name = payload.user_name
    if not user_name:
        if user_id != actor.id:
            raise ValidationFailed([{"field": "userName", "message": "User name is required"}])
        user_name = actor.display_name

    metadata = payload.metadata.model_dump(by_alias=True, exclude_none=True) if payload.metadata else {}
    if ip_address:
        metadata["ipAddress"] = ip_address[:45]
    if user_agent:
        metadata["userAgent"] = user_agent[:500]

    now = now or utcnow()
    fields = payload.model_dump(exclude={"metadata", "tags", "user_id", "user_name"})
    activity = Activity(
        **fields,
        activity_id=await _next_activity_ref(db, now),
        user_id=user_id,
        user_name=user_name,
        metadata_json=metadata or None,
        created_by=actor.id,
        updated_by=actor.id,
        created_at=now,
        updated_at=now,
    )
    activity.set_tags(payload.tags or [])
    db.add(activity)
    await db.commit()
    log.info("Activity %s created by %s", activity.activity_id, actor.id)

    activity = await _load(db, str(activity.id))
    return await _expanded(db, activity)


@guarded("update activity")
async def update_activity(db: AsyncSession, ref: str, patch: dict, actor: Actor) -> dict:
    """Apply a partial update. Immutable fields in ``patch`` are silently dropped."""
    changes = validate_input(ActivityUpdate, strip_immutable(patch))

    activity = await _load(db, ref)
    if activity is None:
        raise NotFound("Activity not found")
    _ensure_owner(activity, actor)

    provided = changes.model_fields_set
    for name in ("action", "description", "details", "priority", "status", "is_visible"):
        value = getattr(changes, name)
        # only details may be cleared
        if name in provided and (value is not None or name == "details"):
            setattr(activity, name, value)
    if "tags" in provided:
        activity.set_tags(changes.tags or [])
    if "metadata" in provided:
        activity.metadata_json = (
            changes.metadata.model_dump(by_alias=True, exclude_none=True) if changes.metadata else None
        )
    activity.updated_by = actor.id

    await db.commit()
    activity = await _load(db, ref)
    return await _expanded(db, activity)


@guarded("delete activity")
async def delete_activity(db: AsyncSession, ref: str, actor: Actor) -> None:
    """Soft delete: hide and mark invisible. Repeating it is harmless."""
    activity = await _load(db, ref)
    if activity is None:
        raise NotFound("Activity not found")
    _ensure_manager(actor)

    activity.is_visible = False
    activity.status = "hidden"
    activity.updated_by = actor.id
    await db.commit()
    log.info("Activity %s hidden by %s", activity.activity_id, actor.id)


BULK_UPDATES = {
    "archive": {"status": "archived"},
    "hide": {"is_visible": False},
    "show": {"is_visible": True},
    "delete": {"status": "hidden", "is_visible": False},
}


@guarded("perform bulk action")
async def bulk_action(db: AsyncSession, request: BulkActionRequest, actor: Actor) -> dict:
    """Apply one mutation to every requested activity, or to none of them."""
    if request.action == "delete":
        _ensure_manager(actor)

    requested = list(dict.fromkeys(request.activity_ids))
    try:
        ids = [uuid.UUID(ref) for ref in requested]
    except ValueError:
        raise AccessDenied("Access denied. Some activities not found or not accessible.") from None

    eligible = [Activity.id.in_(ids)]
    restriction = visibility_clause(actor)
    if restriction is not None:
        eligible.append(restriction)
    matched = (
        await db.execute(select(func.count()).select_from(Activity).where(and_(*eligible)))
    ).scalar() or 0
    if matched != len(ids):
        log.warning(
            "Bulk %s by %s rejected: %d of %d activities accessible",
            request.action, actor.id, matched, len(ids),
        )
        raise AccessDenied("Access denied. Some activities not found or not accessible.")

    targets = Activity.id.in_(ids)
    if request.action in BULK_UPDATES or request.action == "changePriority":
        values = dict(BULK_UPDATES.get(request.action, {"priority": request.value}))
        values["updated_by"] = actor.id
        await db.execute(
            update(Activity).where(targets).values(**values).execution_options(synchronize_session=False)
        )
    elif request.action == "addTag":
        existing = set(
            (
                await db.execute(
                    select(ActivityTag.activity_id).where(
                        ActivityTag.tag == request.value, ActivityTag.activity_id.in_(ids)
                    )
                )
            ).scalars().all()
        )
        missing = [{"activity_id": i, "tag": request.value} for i in ids if i not in existing]
        if missing:
            await db.execute(insert(ActivityTag), missing)
    elif request.action == "removeTag":
        await db.execute(
            delete(ActivityTag)
            .where(ActivityTag.tag == request.value, ActivityTag.activity_id.in_(ids))
            .execution_options(synchronize_session=False)
        )

    await db.commit()
    log.info("Bulk %s applied to %d activities by %s", request.action, len(ids), actor.id)
    return {"affected": len(request.activity_ids), "action": request.action, "value": request.value}


@guarded("archive expired activities")
async def archive_expired(
    db: AsyncSession,
    actor: Actor,
    *,
    older_than_days: int | None = None,
    scheduled: bool = False,
    now: datetime | None = None,
) -> dict:
    """Archive active activities older than the retention window.

    Without an explicit ``older_than_days`` the stored retention setting is
    used. Scheduled runs are skipped while auto-archiving is switched off.
    """
    _ensure_manager(actor, ARCHIVE_MANAGER_ONLY)
    now = now or utcnow()
    days = older_than_days or int(
        await settings_svc.get_value(db, settings_svc.RETENTION_DAYS, settings.activity_retention_days)
    )
    if scheduled and not await settings_svc.get_value(db, settings_svc.AUTO_ARCHIVE, True):
        log.info("Auto-archive is disabled; skipping scheduled retention run")
        return {"archivedCount": 0, "olderThanDays": days, "cutoff": None, "skipped": True}
    cutoff = now - timedelta(days=days)

    result = await db.execute(
        update(Activity)
        .where(Activity.status == "active", Activity.created_at < cutoff)
        .values(status="archived", updated_by=actor.id)
        .execution_options(synchronize_session=False)
    )
    archived = result.rowcount or 0
    await db.commit()

    if archived:
        await log_system_activity(
            db,
            action="Archived expired activities",
            description=f"{archived} activities older than {days} days were archived",
            entity_type="user",
            entity_id=actor.id,
            entity_name=actor.display_name,
            tags=["retention"],
            now=now,
        )
    log.info("Archived %d activities older than %s", archived, cutoff.isoformat())
    return {"archivedCount": archived, "olderThanDays": days, "cutoff": _iso(cutoff), "skipped": False}


async def log_system_activity(
    db: AsyncSession,
    *,
    action: str,
    description: str,
    entity_type: str,
    entity_id: str,
    entity_name: str,
    type: str = "system",
    agent_id: str = "system",
    agent_name: str = "System",
    user_id: str = "system",
    user_name: str = "System",
    priority: str = "low",
    details: str | None = None,
    client_id: str | None = None,
    tags: list[str] | None = None,
    metadata: dict | None = None,
    now: datetime | None = None,
) -> Activity | None:
    """Record an activity produced as a side effect of another operation.

    Returns ``None`` when ``priority`` is below the configured log level.
    """
    level = await settings_svc.get_value(db, settings_svc.LOG_LEVEL, "all")
    if not settings_svc.meets_log_level(priority, level):
        log.debug("Skipping %s system activity below log level %s", priority, level)
        return None
    now = now or utcnow()
    activity = Activity(
        activity_id=await _next_activity_ref(db, now),
        type=type,
        action=action,
        description=description,
        details=details,
        entity_type=entity_type,
        entity_id=entity_id,
        entity_name=entity_name,
        agent_id=agent_id,
        agent_name=agent_name,
        user_id=user_id,
        user_name=user_name,
        client_id=client_id,
        metadata_json=metadata,
        priority=priority,
        is_system_generated=True,
        created_by="system",
        updated_by="system",
        created_at=now,
        updated_at=now,
    )
    activity.set_tags(tags or [])
    db.add(activity)
    await db.commit()
    return await _load(db, str(activity.id))
