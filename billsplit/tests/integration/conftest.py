"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing"), which
    points at in-memory SQLite unless TEST_DATABASE_URL is set.
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.
  - Bearer tokens are minted locally with the testing secret; there is no
    login endpoint, identity comes from the token's `sub` claim.

Helper functions (not fixtures) are provided for common operations:
  - token_for(uid)                 → signed access token for uid
  - auth_headers(uid)              → {"Authorization": "Bearer <token>"}
  - make_group(client, uid, ...)   → group dict
  - add_member(client, ...)        → HTTP response
  - make_expense(client, ...)      → HTTP response
  - make_settlement(client, ...)   → HTTP response
  - get_balances(client, ...)      → HTTP response

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import text

from billsplit.app import create_app
from billsplit.app.extensions import db as _db


TEST_SECRET = "testing-secret"


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows after every test. Children before parents, so the
    RESTRICT foreign keys hold on PostgreSQL too.
    """
    yield

    with app.app_context():
        _db.session.rollback()
        for table in ("splits", "settlements", "expenses", "memberships", "groups"):
            _db.session.execute(text(f"DELETE FROM {table}"))
        _db.session.commit()


@pytest.fixture
def client(app):
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def token_for(uid, expires_in: timedelta = timedelta(hours=1), secret: str = TEST_SECRET) -> str:
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {"sub": uid, "iat": now, "exp": now + expires_in},
        secret,
        algorithm="HS256",
    )


def auth_headers(uid: str) -> dict:
    return {"Authorization": f"Bearer {token_for(uid)}"}


def make_group(client, uid: str, name: str = "Test Group", currency: str | None = None) -> dict:
    """
    Creates a group and returns the group data dict.
    The caller becomes the group owner and first member.
    """
    payload: dict = {"name": name}
    if currency is not None:
        payload["currency"] = currency
    resp = client.post("/api/v1/groups", json=payload, headers=auth_headers(uid))
    assert resp.status_code == 201, f"make_group failed: {resp.get_json()}"
    return resp.get_json()["data"]


def add_member(client, owner_uid: str, group_id: int, user_id: str):
    return client.post(
        f"/api/v1/groups/{group_id}/members",
        json={"user_id": user_id},
        headers=auth_headers(owner_uid),
    )


def make_trip(client, members=("alice", "bob", "carol"), currency: str | None = None) -> dict:
    """Group owned by members[0] with every other member added."""
    owner = members[0]
    group = make_group(client, owner, name="Trip", currency=currency)
    for uid in members[1:]:
        resp = add_member(client, owner, group["id"], uid)
        assert resp.status_code == 201, f"add_member failed: {resp.get_json()}"
    return group


def make_expense(client, uid: str, group_id: int, amount: str = "90.00", description: str = "Dinner", **fields):
    """
    Creates an expense and returns the HTTP response.
    Extra keyword arguments (paid_by, participants, split_type, splits,
    currency, category, date) are sent as-is.
    """
    payload = {"description": description, "amount": amount, **fields}
    return client.post(
        f"/api/v1/groups/{group_id}/expenses",
        json=payload,
        headers=auth_headers(uid),
    )


def make_settlement(client, uid: str, group_id: int, payee_id: str, amount: str, **fields):
    payload = {"payee_id": payee_id, "amount": amount, **fields}
    return client.post(
        f"/api/v1/groups/{group_id}/settlements",
        json=payload,
        headers=auth_headers(uid),
    )


def get_balances(client, uid: str, group_id: int):
    return client.get(f"/api/v1/groups/{group_id}/balances", headers=auth_headers(uid))
