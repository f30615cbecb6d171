"""Async test fixtures for activity feed tests using SQLite."""

from __future__ import annotations

import itertools
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from agency_crm.config import settings
from agency_crm.database import get_db
from agency_crm.models.activity import Activity
from agency_crm.models.base import Base
from agency_crm.security.actor import Actor, issue_actor_token

TEST_SECRET = "test-secret-for-activity-tokens"

_refs = itertools.count(1)


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def db(engine):
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def agent_a() -> Actor:
    return Actor(id="agent-a", role="agent", first_name="Amit", last_name="Shah")


@pytest.fixture
def agent_b() -> Actor:
    return Actor(id="agent-b", role="agent", first_name="Bea", last_name="Lopez")


@pytest.fixture
def manager() -> Actor:
    return Actor(id="mgr-1", role="manager", first_name="Mona", last_name="Grant")


@pytest.fixture
def make_activity(db: AsyncSession):
    """Insert an activity directly, bypassing the service layer."""

    async def _make(
        *,
        agent_id: str = "agent-a",
        user_id: str | None = None,
        created_at: datetime | None = None,
        tags: list[str] | None = None,
        **fields,
    ) -> Activity:
        created_at = created_at or datetime.now(timezone.utc)
        values = {
            "type": "client",
            "action": "Client created",
            "description": "New client record",
            "entity_type": "client",
            "entity_id": "c-1",
            "entity_name": "Jane Doe",
            "agent_name": agent_id,
            "user_name": user_id or agent_id,
            "created_by": user_id or agent_id,
            "updated_by": user_id or agent_id,
        }
        values.update(fields)
        activity = Activity(
            activity_id=f"ACT-{created_at:%Y%m}-{900000 + next(_refs):06d}",
            agent_id=agent_id,
            user_id=user_id or agent_id,
            created_at=created_at,
            updated_at=created_at,
            **values,
        )
        activity.set_tags(tags or [])
        db.add(activity)
        await db.commit()
        return activity

    return _make


@pytest.fixture
def auth_secret(monkeypatch) -> str:
    monkeypatch.setattr(settings, "auth_secret", TEST_SECRET)
    return TEST_SECRET


@pytest.fixture
def auth_headers(auth_secret):
    """Build an Authorization header carrying ``actor``."""

    def _headers(actor: Actor) -> dict[str, str]:
        return {"Authorization": f"Bearer {issue_actor_token(actor)}"}

    return _headers


@pytest_asyncio.fixture
async def client(engine, auth_secret):
    """HTTPX async test client against the activity app."""
    from agency_crm.app import app

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
