"""Tests for actor token issue/decode."""

from __future__ import annotations

import time

import pytest

from agency_crm.config import AgencyCRMSettings
from agency_crm.security.actor import Actor, decode_actor_token, issue_actor_token, normalize_role


def _settings(secret: str = "unit-secret") -> AgencyCRMSettings:
    return AgencyCRMSettings(auth_secret=secret, auth_token_ttl_seconds=60)


def test_round_trip():
    cfg = _settings()
    actor = Actor(id="agent-a", role="agent", first_name="Amit", last_name="Shah")

    decoded = decode_actor_token(issue_actor_token(actor, cfg), cfg)

    assert decoded == actor
    assert decoded.display_name == "Amit Shah"


def test_wrong_secret_is_rejected():
    token = issue_actor_token(Actor(id="mgr-1", role="manager"), _settings("one"))
    assert decode_actor_token(token, _settings("two")) is None


def test_tampered_payload_is_rejected():
    cfg = _settings()
    token = issue_actor_token(Actor(id="agent-a", role="agent"), cfg)
    body, sig = token.split(".", 1)
    forged = issue_actor_token(Actor(id="agent-a", role="super_admin"), cfg).split(".", 1)[0]
    assert decode_actor_token(f"{forged}.{sig}", cfg) is None
    assert decode_actor_token(body, cfg) is None


def test_expired_token_is_rejected(monkeypatch):
    cfg = _settings()
    token = issue_actor_token(Actor(id="agent-a", role="agent"), cfg, ttl_seconds=5)
    real_time = time.time()
    monkeypatch.setattr(time, "time", lambda: real_time + 10)
    assert decode_actor_token(token, cfg) is None


def test_issue_requires_secret():
    with pytest.raises(RuntimeError):
        issue_actor_token(Actor(id="agent-a", role="agent"), _settings(""))


def test_decode_without_secret_returns_none():
    token = issue_actor_token(Actor(id="agent-a", role="agent"), _settings())
    assert decode_actor_token(token, _settings("")) is None


@pytest.mark.parametrize(
    "raw,expected",
    [("manager", "manager"), (" Super_Admin ", "super_admin"), ("owner", "agent"), (None, "agent")],
)
def test_normalize_role(raw, expected):
    assert normalize_role(raw) == expected


def test_display_name_falls_back_to_id():
    assert Actor(id="u-7", role="agent").display_name == "u-7"
