"""Acting-user resolution from HMAC-signed bearer tokens."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from dataclasses import dataclass

from fastapi import Request

from ..config import settings
from ..errors import NotAuthenticated

ROLES = ("agent", "manager", "super_admin")
MANAGER_ROLES = frozenset({"manager", "super_admin"})


@dataclass(frozen=True)
class Actor:
    id: str
    role: str
    first_name: str = ""
    last_name: str = ""

    @property
    def is_agent(self) -> bool:
        return self.role == "agent"

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES

    @property
    def is_super_admin(self) -> bool:
        return self.role == "super_admin"

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p) or self.id


def normalize_role(role: str | None) -> str:
    role_norm = (role or "").strip().lower()
    return role_norm if role_norm in ROLES else "agent"


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * ((4 - (len(data) % 4)) % 4)
    return base64.urlsafe_b64decode((data + padding).encode("utf-8"))


def _sign(secret: str, body: str) -> str:
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


def issue_actor_token(actor: Actor, settings_obj=settings, ttl_seconds: int | None = None) -> str:
    secret = settings_obj.auth_secret.strip()
    if not secret:
        raise RuntimeError("auth_secret is required to issue tokens")

    now = int(time.time())
    payload = {
        "sub": actor.id,
        "role": normalize_role(actor.role),
        "firstName": actor.first_name,
        "lastName": actor.last_name,
        "iat": now,
        "exp": now + (ttl_seconds or settings_obj.auth_token_ttl_seconds),
    }
    body = _b64url_encode(json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8"))
    return f"{body}.{_sign(secret, body)}"


def decode_actor_token(token: str, settings_obj=settings) -> Actor | None:
    secret = settings_obj.auth_secret.strip()
    if not secret or not token:
        return None

    try:
        body, provided_sig = token.split(".", 1)
    except ValueError:
        return None

    if not hmac.compare_digest(provided_sig, _sign(secret, body)):
        return None

    try:
        payload = json.loads(_b64url_decode(body))
    except (ValueError, UnicodeDecodeError):
        return None

    if not isinstance(payload, dict):
        return None

    exp = payload.get("exp")
    sub = payload.get("sub")
    if not isinstance(exp, int) or exp <= int(time.time()):
        return None
    if not isinstance(sub, str) or not sub.strip():
        return None
    return Actor(
        id=sub.strip(),
        role=normalize_role(str(payload.get("role", ""))),
        first_name=str(payload.get("firstName") or ""),
        last_name=str(payload.get("lastName") or ""),
    )


def _token_from_request(request: Request) -> str:
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return ""


async def get_current_actor(request: Request) -> Actor:
    """FastAPI dependency resolving the acting user. Raises 401 when absent."""
    actor = decode_actor_token(_token_from_request(request))
    if actor is None:
        raise NotAuthenticated()
    request.state.actor = actor
    return actor
