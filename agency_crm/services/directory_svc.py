"""Display-expansion lookups for agent, client and user references."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.activity import Activity
from ..models.directory import Agent, Client, User


@dataclass
class References:
    agents: dict[str, dict] = field(default_factory=dict)
    clients: dict[str, dict] = field(default_factory=dict)
    users: dict[str, dict] = field(default_factory=dict)


def _agent_view(agent: Agent) -> dict:
    return {
        "id": agent.id,
        "firstName": agent.first_name,
        "lastName": agent.last_name,
        "email": agent.email,
        "phone": agent.phone,
    }


def _client_view(client: Client) -> dict:
    return {
        "id": client.id,
        "firstName": client.first_name,
        "lastName": client.last_name,
        "email": client.email,
        "phone": client.phone,
    }


def _user_view(user: User) -> dict:
    return {
        "id": user.id,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "email": user.email,
    }


async def _lookup(db: AsyncSession, model, ids: set[str], view) -> dict[str, dict]:
    if not ids:
        return {}
    result = await db.execute(select(model).where(model.id.in_(ids)))
    return {row.id: view(row) for row in result.scalars().all()}


async def load_references(db: AsyncSession, activities: Iterable[Activity]) -> References:
    """Batch-load display projections for every reference in ``activities``.

    Missing records are simply absent from the maps; references are never
    validated for existence.
    """
    agent_ids: set[str] = set()
    client_ids: set[str] = set()
    user_ids: set[str] = set()
    for activity in activities:
        if activity.agent_id:
            agent_ids.add(activity.agent_id)
        if activity.client_id:
            client_ids.add(activity.client_id)
        if activity.user_id:
            user_ids.add(activity.user_id)

    return References(
        agents=await _lookup(db, Agent, agent_ids, _agent_view),
        clients=await _lookup(db, Client, client_ids, _client_view),
        users=await _lookup(db, User, user_ids, _user_view),
    )
