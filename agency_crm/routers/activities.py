"""JSON API for the activity feed."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..errors import validate_input
from ..responses import success_response
from ..schemas.activity import (
    ActivityCreate,
    ActivityListQuery,
    ActivitySettingUpdate,
    ArchiveExpiredRequest,
    BulkActionRequest,
    SearchQuery,
    StatsQuery,
)
from ..security.actor import Actor, get_current_actor
from ..services import activity_svc, settings_svc

router = APIRouter(prefix="/activities", tags=["activities"])


def _query_params(model_cls):
    """Dependency validating the raw query string against ``model_cls``."""

    async def _dep(request: Request):
        return validate_input(model_cls, dict(request.query_params))

    return _dep


def _client_addr(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
    if forwarded:
        return forwarded
    return request.client.host if request.client else None


@router.get("")
async def list_activities(
    actor: Actor = Depends(get_current_actor),
    query: ActivityListQuery = Depends(_query_params(ActivityListQuery)),
    db: AsyncSession = Depends(get_db),
):
    data = await activity_svc.list_activities(db, query, actor)
    return success_response(data, "Activities retrieved successfully")


@router.get("/stats")
async def activity_stats(
    actor: Actor = Depends(get_current_actor),
    query: StatsQuery = Depends(_query_params(StatsQuery)),
    db: AsyncSession = Depends(get_db),
):
    data = await activity_svc.get_stats(db, query, actor)
    return success_response(data, "Activity statistics retrieved successfully")


@router.get("/filters")
async def activity_filter_values(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    data = await activity_svc.get_filter_values(db, actor)
    return success_response(data, "Filter values retrieved successfully")


@router.get("/search/{query}")
async def search_activities(
    query: str,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    params = validate_input(
        SearchQuery,
        {"limit": settings.search_default_limit, **dict(request.query_params), "query": query},
    )
    data = await activity_svc.search_activities(db, params, actor)
    return success_response(data, "Search completed successfully")


@router.post("")
async def create_activity(
    request: Request,
    payload: ActivityCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    data = await activity_svc.create_activity(
        db,
        payload,
        actor,
        ip_address=_client_addr(request),
        user_agent=request.headers.get("user-agent"),
    )
    return success_response(data, "Activity created successfully", status_code=201)


@router.post("/bulk")
async def bulk_activity_action(
    payload: BulkActionRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    data = await activity_svc.bulk_action(db, payload, actor)
    return success_response(data, f"Bulk {payload.action} completed successfully")


@router.post("/archive-expired")
async def archive_expired_activities(
    payload: ArchiveExpiredRequest | None = Body(None),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    older_than = payload.older_than_days if payload else None
    data = await activity_svc.archive_expired(db, actor, older_than_days=older_than)
    return success_response(data, f"{data['archivedCount']} activities archived successfully")


@router.get("/settings")
async def activity_settings(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    data = await settings_svc.list_activity_settings(db, actor)
    return success_response(data, "Activity settings retrieved successfully")


@router.put("/settings")
async def update_activity_setting(
    payload: ActivitySettingUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    data = await settings_svc.update_activity_setting(db, payload, actor)
    return success_response(data, "Activity setting updated successfully")


@router.get("/{activity_id}")
async def get_activity(
    activity_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    data = await activity_svc.get_activity(db, activity_id, actor)
    return success_response(data, "Activity retrieved successfully")


@router.put("/{activity_id}")
async def update_activity(
    activity_id: str,
    body: dict[str, Any] = Body(...),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    data = await activity_svc.update_activity(db, activity_id, body, actor)
    return success_response(data, "Activity updated successfully")


@router.delete("/{activity_id}")
async def delete_activity(
    activity_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    await activity_svc.delete_activity(db, activity_id, actor)
    return success_response(None, "Activity deleted successfully")
