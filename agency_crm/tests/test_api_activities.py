"""HTTP API tests for the activity routes."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agency_crm.database import get_db
from agency_crm.security.actor import Actor
from agency_crm.services import activity_svc

CREATE_BODY = {
    "action": "Policy issued",
    "type": "policy",
    "description": "Auto policy issued to client",
    "entityType": "policy",
    "entityId": "p-1",
    "entityName": "POL-0001",
    "agentId": "agent-a",
    "agentName": "Amit Shah",
    "clientId": "c-1",
    "clientName": "Jane Doe",
    "tags": ["auto"],
}


@pytest.mark.asyncio
async def test_requires_authentication(client: AsyncClient):
    resp = await client.get("/activities")
    assert resp.status_code == 401
    assert resp.json() == {"success": False, "message": "Authentication required"}


@pytest.mark.asyncio
async def test_rejects_tampered_token(client: AsyncClient, auth_headers, agent_a):
    headers = auth_headers(agent_a)
    headers["Authorization"] += "0"
    resp = await client.get("/activities", headers=headers)
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_authentication_checked_before_validation(client: AsyncClient):
    resp = await client.get("/activities", params={"page": 0})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_list_envelope(client: AsyncClient, auth_headers, agent_a, make_activity):
    await make_activity(action="Mine")
    await make_activity(action="Theirs", agent_id="agent-b")

    resp = await client.get("/activities", params={"type": "all"}, headers=auth_headers(agent_a))

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "Activities retrieved successfully"
    assert [a["action"] for a in body["data"]["activities"]] == ["Mine"]
    assert body["data"]["pagination"]["totalCount"] == 1


@pytest.mark.asyncio
async def test_list_rejects_bad_query(client: AsyncClient, auth_headers, manager):
    resp = await client.get("/activities", params={"page": 0, "sortBy": "bogus"}, headers=auth_headers(manager))

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["message"] == "Validation failed"
    assert {e["field"] for e in body["errors"]} == {"page", "sortBy"}


@pytest.mark.asyncio
async def test_create_activity(client: AsyncClient, auth_headers, agent_a):
    resp = await client.post(
        "/activities",
        json=CREATE_BODY,
        headers={**auth_headers(agent_a), "X-Forwarded-For": "203.0.113.9, 10.0.0.1"},
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["message"] == "Activity created successfully"
    data = body["data"]
    assert data["userId"] == "agent-a"
    assert data["userName"] == "Amit Shah"
    assert data["status"] == "active"
    assert data["tags"] == ["auto"]
    assert data["metadata"]["ipAddress"] == "203.0.113.9"
    assert data["metadata"]["userAgent"].startswith("python-httpx")
    assert data["activityId"].startswith("ACT-")


@pytest.mark.asyncio
async def test_create_validation_errors(client: AsyncClient, auth_headers, agent_a):
    body = {k: v for k, v in CREATE_BODY.items() if k != "action"}
    body["priority"] = "urgent"

    resp = await client.post("/activities", json=body, headers=auth_headers(agent_a))

    assert resp.status_code == 400
    fields = {e["field"] for e in resp.json()["errors"]}
    assert fields == {"action", "priority"}


@pytest.mark.asyncio
async def test_create_rejects_unknown_fields(client: AsyncClient, auth_headers, agent_a):
    resp = await client.post(
        "/activities", json={**CREATE_BODY, "status": "archived"}, headers=auth_headers(agent_a)
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_get_activity_access(client: AsyncClient, auth_headers, agent_a, agent_b, make_activity):
    activity = await make_activity(agent_id="agent-a")

    own = await client.get(f"/activities/{activity.id}", headers=auth_headers(agent_a))
    assert own.status_code == 200
    assert own.json()["data"]["activityId"] == activity.activity_id

    other = await client.get(f"/activities/{activity.id}", headers=auth_headers(agent_b))
    assert other.status_code == 403
    assert other.json()["message"] == "Access denied. You can only access your own activities."

    missing = await client.get("/activities/ACT-209901-000001", headers=auth_headers(agent_a))
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "message": "Activity not found"}


@pytest.mark.asyncio
async def test_update_activity(client: AsyncClient, auth_headers, agent_a, make_activity):
    activity = await make_activity(agent_id="agent-a", entity_id="c-1")

    resp = await client.put(
        f"/activities/{activity.id}",
        json={"description": "Updated notes", "entityId": "c-999", "tags": ["vip"]},
        headers=auth_headers(agent_a),
    )

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["description"] == "Updated notes"
    assert data["entityId"] == "c-1"
    assert data["tags"] == ["vip"]


@pytest.mark.asyncio
async def test_update_validation_error(client: AsyncClient, auth_headers, manager, make_activity):
    activity = await make_activity()
    resp = await client.put(
        f"/activities/{activity.id}", json={"action": "x"}, headers=auth_headers(manager)
    )
    assert resp.status_code == 400
    assert resp.json()["errors"][0]["field"] == "action"


@pytest.mark.asyncio
async def test_delete_is_manager_only(client: AsyncClient, auth_headers, agent_a, manager, make_activity):
    activity = await make_activity(agent_id="agent-a")

    denied = await client.delete(f"/activities/{activity.id}", headers=auth_headers(agent_a))
    assert denied.status_code == 403
    assert denied.json()["message"] == "Access denied. Only managers can delete activities."

    resp = await client.delete(f"/activities/{activity.id}", headers=auth_headers(manager))
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "data": None, "message": "Activity deleted successfully"}

    again = await client.delete(f"/activities/{activity.id}", headers=auth_headers(manager))
    assert again.status_code == 200

    fetched = await client.get(f"/activities/{activity.id}", headers=auth_headers(manager))
    assert fetched.json()["data"]["status"] == "hidden"

    listed = await client.get("/activities", params={"status": "all"}, headers=auth_headers(manager))
    assert listed.json()["data"]["activities"] == []


@pytest.mark.asyncio
async def test_bulk_action(client: AsyncClient, auth_headers, agent_a, manager, make_activity):
    own = await make_activity(agent_id="agent-a")
    foreign = await make_activity(agent_id="agent-b")
    ids = [str(own.id), str(foreign.id)]

    denied = await client.post(
        "/activities/bulk", json={"activityIds": ids, "action": "archive"}, headers=auth_headers(agent_a)
    )
    assert denied.status_code == 403

    resp = await client.post(
        "/activities/bulk",
        json={"activityIds": ids, "action": "changePriority", "value": "high"},
        headers=auth_headers(manager),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Bulk changePriority completed successfully"
    assert body["data"] == {"affected": 2, "action": "changePriority", "value": "high"}


@pytest.mark.asyncio
async def test_bulk_validation(client: AsyncClient, auth_headers, manager):
    empty = await client.post(
        "/activities/bulk", json={"activityIds": [], "action": "archive"}, headers=auth_headers(manager)
    )
    assert empty.status_code == 400

    missing_tag = await client.post(
        "/activities/bulk", json={"activityIds": ["x"], "action": "addTag"}, headers=auth_headers(manager)
    )
    assert missing_tag.status_code == 400
    assert "value is required" in missing_tag.json()["errors"][0]["message"]


@pytest.mark.asyncio
async def test_search_endpoint(client: AsyncClient, auth_headers, manager, make_activity):
    await make_activity(action="Claim approved")
    await make_activity(action="Lead captured")

    short = await client.get("/activities/search/a", headers=auth_headers(manager))
    assert short.status_code == 400
    assert short.json()["errors"][0]["field"] == "query"

    resp = await client.get("/activities/search/claim", params={"limit": 5}, headers=auth_headers(manager))
    assert resp.status_code == 200
    results = resp.json()["data"]
    assert [r["action"] for r in results] == ["Claim approved"]
    assert results[0]["score"] == 3


@pytest.mark.asyncio
async def test_stats_endpoint(client: AsyncClient, auth_headers, manager, make_activity):
    await make_activity(type="claim", priority="critical")

    resp = await client.get(
        "/activities/stats", params={"period": "today", "groupBy": "type"}, headers=auth_headers(manager)
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["total"] == 1
    assert data["byType"] == [{"type": "claim", "count": 1, "highPriority": 1}]
    assert data["groupedBy"]["data"][0]["key"] == "claim"

    bad = await client.get("/activities/stats", params={"period": "forever"}, headers=auth_headers(manager))
    assert bad.status_code == 400


@pytest.mark.asyncio
async def test_filters_endpoint(client: AsyncClient, auth_headers, manager, make_activity):
    await make_activity(type="lead", tags=["walk-in"])

    resp = await client.get("/activities/filters", headers=auth_headers(manager))

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["types"] == ["lead"]
    assert data["tags"] == ["walk-in"]


@pytest.mark.asyncio
async def test_archive_expired_endpoint(client: AsyncClient, auth_headers, agent_a, manager, make_activity):
    old = datetime.now(timezone.utc) - timedelta(days=120)
    await make_activity(action="Old", created_at=old)

    denied = await client.post("/activities/archive-expired", headers=auth_headers(agent_a))
    assert denied.status_code == 403

    invalid = await client.post(
        "/activities/archive-expired", json={"olderThanDays": 0}, headers=auth_headers(manager)
    )
    assert invalid.status_code == 400

    resp = await client.post(
        "/activities/archive-expired", json={"olderThanDays": 90}, headers=auth_headers(manager)
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["data"]["archivedCount"] == 1
    assert body["message"] == "1 activities archived successfully"


@pytest.mark.asyncio
async def test_list_rejects_oversized_page(client: AsyncClient, auth_headers, manager):
    resp = await client.get("/activities", params={"page": "10000000000000000000"}, headers=auth_headers(manager))

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert [e["field"] for e in body["errors"]] == ["page"]


@pytest_asyncio.fixture
async def lenient_client(engine, auth_secret):
    """Client that lets the app render its own 500 instead of re-raising."""
    from agency_crm.app import app

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_unexpected_errors_use_the_envelope(lenient_client: AsyncClient, auth_headers, manager, monkeypatch):
    async def boom(*args, **kwargs):
        raise RuntimeError("integer overflow")

    monkeypatch.setattr(activity_svc, "list_activities", boom)

    resp = await lenient_client.get("/activities", headers=auth_headers(manager))

    assert resp.status_code == 500
    assert resp.json() == {"success": False, "message": "Internal server error"}


@pytest.fixture
def super_admin() -> Actor:
    return Actor(id="root-1", role="super_admin", first_name="Sam", last_name="Root")


@pytest.mark.asyncio
async def test_activity_settings_routes(client: AsyncClient, auth_headers, manager, super_admin):
    denied = await client.get("/activities/settings", headers=auth_headers(manager))
    assert denied.status_code == 403
    assert denied.json() == {"success": False, "message": "Access denied. Super admin only."}

    listed = await client.get("/activities/settings", headers=auth_headers(super_admin))
    assert listed.status_code == 200
    body = listed.json()
    assert body["message"] == "Activity settings retrieved successfully"
    assert {row["key"] for row in body["data"]} == {
        "activity_auto_archive",
        "activity_log_level",
        "activity_retention_days",
    }

    updated = await client.put(
        "/activities/settings",
        json={"key": "activity_retention_days", "value": 30},
        headers=auth_headers(super_admin),
    )
    assert updated.status_code == 200
    assert updated.json()["message"] == "Activity setting updated successfully"
    assert updated.json()["data"]["value"] == 30

    unknown = await client.put(
        "/activities/settings", json={"key": "nope", "value": 1}, headers=auth_headers(super_admin)
    )
    assert unknown.status_code == 404
    assert unknown.json()["message"] == "Setting not found or not editable"

    invalid = await client.put(
        "/activities/settings",
        json={"key": "activity_retention_days", "value": 0},
        headers=auth_headers(super_admin),
    )
    assert invalid.status_code == 400
    assert invalid.json()["errors"][0]["field"] == "value"


@pytest.mark.asyncio
async def test_archive_expired_endpoint_reads_stored_retention(
    client: AsyncClient, auth_headers, manager, super_admin, make_activity
):
    await client.put(
        "/activities/settings",
        json={"key": "activity_retention_days", "value": 10},
        headers=auth_headers(super_admin),
    )
    await make_activity(created_at=datetime.now(timezone.utc) - timedelta(days=11))

    resp = await client.post("/activities/archive-expired", headers=auth_headers(manager))

    assert resp.status_code == 200
    assert resp.json()["data"]["olderThanDays"] == 10
    assert resp.json()["data"]["archivedCount"] == 1
