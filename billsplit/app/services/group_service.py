"""
services/group_service.py — Group and membership business logic.

Authorization rules:
  - Reading group data:  members only (FORBIDDEN 403, not 404)
  - Adding a member:     group owner only
  - Removing a member:   group owner may remove anyone; member may remove self,
                         and only while that member is settled up in every
                         currency (MEMBER_HAS_OUTSTANDING_BALANCE, 422)

Members are identified by the caller's token subject. There is no local users
table, so adding a member never checks that the user "exists".

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Only flush here; the route commits.

get_group_or_404() and require_member() are shared with the expense and
settlement services.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from billsplit.app.errors import AppError, ErrorCode
from billsplit.app.models.group import Group
from billsplit.app.models.membership import Membership
from billsplit.app.services.balance_service import compute_group_balances


logger = logging.getLogger(__name__)


# ── Shared helpers ─────────────────────────────────────────────────────────

def get_group_or_404(group_id: int, session: Session) -> Group:
    """Returns the Group or raises GROUP_NOT_FOUND (404)."""
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def get_membership(group_id: int, user_id: str, session: Session) -> Membership | None:
    return session.execute(
        select(Membership).where(
            Membership.group_id == group_id,
            Membership.user_id == user_id,
        )
    ).scalar_one_or_none()


def require_member(group_id: int, user_id: str, session: Session) -> None:
    """Raises FORBIDDEN (403) if user_id is not a member of group_id."""
    if get_membership(group_id, user_id, session) is None:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )


def _build_group_dict(group: Group, memberships: list[Membership]) -> dict:
    return {
        "id": group.id,
        "name": group.name,
        "owner_id": group.owner_id,
        "currency": group.currency,
        "created_at": group.created_at.isoformat(),
        "members": [
            {
                "user_id": m.user_id,
                "joined_at": m.joined_at.isoformat() if m.joined_at else None,
            }
            for m in memberships
        ],
    }


# ── Public service functions ───────────────────────────────────────────────

def create_group(name: str, owner_id: str, currency: str, session: Session) -> dict:
    """
    Creates a new group. The creator becomes the owner and the first member.

    Args:
        name:     Group name (validated upstream: non-empty, max 100 chars).
        owner_id: The authenticated caller (flask.g.user_id).
        currency: Default currency for the group, already validated.
    """
    group = Group(name=name, owner_id=owner_id, currency=currency)
    session.add(group)
    session.flush()  # populate group.id before creating membership

    membership = Membership(user_id=owner_id, group_id=group.id)
    session.add(membership)
    session.flush()

    logger.info("Group %s created by %s", group.id, owner_id)
    return _build_group_dict(group, [membership])


def list_groups(user_id: str, session: Session) -> list[dict]:
    """
    Returns all groups the user is a member of, oldest first.

    Lightweight dicts without the member list; use get_group() for that.
    """
    stmt = (
        select(Group)
        .join(Membership, Group.id == Membership.group_id)
        .where(Membership.user_id == user_id)
        .order_by(Group.created_at.asc(), Group.id.asc())
    )
    groups = session.execute(stmt).scalars().all()

    return [
        {
            "id": g.id,
            "name": g.name,
            "owner_id": g.owner_id,
            "currency": g.currency,
            "created_at": g.created_at.isoformat(),
        }
        for g in groups
    ]


def get_group(group_id: int, caller_id: str, session: Session) -> dict:
    """Returns group details including the current member list."""
    group = get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)

    stmt = (
        select(Membership)
        .where(Membership.group_id == group_id)
        .order_by(Membership.id.asc())
    )
    memberships = list(session.execute(stmt).scalars().all())

    return _build_group_dict(group, memberships)


def add_member(
        group_id: int,
        caller_id: str,
        target_user_id: str,
        session: Session,
) -> dict:
    """
    Adds a user to a group. Only the group owner may call this.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)  — group does not exist
      AppError(FORBIDDEN, 403)        — caller is not the group owner
      AppError(ALREADY_MEMBER, 409)   — user is already in the group
    """
    group = get_group_or_404(group_id, session)

    if caller_id != group.owner_id:
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Only the group owner may add members.",
            403,
        )

    if get_membership(group_id, target_user_id, session) is not None:
        raise AppError(
            ErrorCode.ALREADY_MEMBER,
            f"User {target_user_id} is already a member of group {group_id}.",
            409,
            field="user_id",
        )

    membership = Membership(user_id=target_user_id, group_id=group_id)
    session.add(membership)
    session.flush()

    logger.info("User %s added to group %s by %s", target_user_id, group_id, caller_id)
    return {
        "group_id": group_id,
        "user_id": target_user_id,
        "joined_at": membership.joined_at.isoformat() if membership.joined_at else None,
    }


def remove_member(
        group_id: int,
        caller_id: str,
        target_user_id: str,
        session: Session,
) -> None:
    """
    Removes a user from a group.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)                 — group does not exist
      AppError(FORBIDDEN, 403)                       — caller not allowed
      AppError(USER_NOT_FOUND, 404)                  — target is not a member
      AppError(MEMBER_HAS_OUTSTANDING_BALANCE, 422)  — target not settled up
    """
    group = get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)

    is_owner = caller_id == group.owner_id
    is_self = caller_id == target_user_id

    if not (is_owner or is_self):
        raise AppError(
            ErrorCode.FORBIDDEN,
            "You may only remove yourself from a group unless you are the owner.",
            403,
        )

    membership = get_membership(group_id, target_user_id, session)
    if membership is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {target_user_id} is not a member of group {group_id}.",
            404,
        )

    balances = compute_group_balances(group_id, session)["balances_by_currency"]
    outstanding = sorted(
        currency
        for currency, bucket in balances.items()
        if bucket.get(target_user_id, 0) != 0
    )
    if outstanding:
        raise AppError(
            ErrorCode.MEMBER_HAS_OUTSTANDING_BALANCE,
            f"User {target_user_id} still has an outstanding balance in "
            f"{', '.join(outstanding)}. Settle up before leaving the group.",
            422,
        )

    session.delete(membership)
    session.flush()
    logger.info("User %s removed from group %s by %s", target_user_id, group_id, caller_id)
