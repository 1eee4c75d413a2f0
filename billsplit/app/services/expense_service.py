"""
services/expense_service.py — Expense business logic.

Rules enforced here:
  FORBIDDEN (403)                — caller must be a group member; edit/delete
                                   restricted to payer, creator or group owner
  USER_NOT_IN_GROUP (422)        — payer and every participant must be members
  PAYER_NOT_PARTICIPANT (422)    — the payer must share the expense
  EXPENSE_DELETED (422)          — soft-deleted expenses cannot be edited
  INVALID_AMOUNT_PRECISION (400) — amount has more digits than the currency allows

Split amounts are never computed here: every create and every edit that
touches amount, currency, payer, split_type, participants or splits goes
through split_service.compute_splits() with the merged values, before
anything is written.

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - Receives plain values and dicts; returns ORM objects or raises AppError.
  - Only flush here; the route commits.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from billsplit.app.currency import has_valid_precision
from billsplit.app.errors import AppError, ErrorCode
from billsplit.app.models.expense import DEFAULT_CATEGORY, Expense, SplitType
from billsplit.app.models.split import Split
from billsplit.app.services.balance_service import get_member_ids
from billsplit.app.services.group_service import get_group_or_404, require_member
from billsplit.app.services.split_service import compute_splits


logger = logging.getLogger(__name__)

# PATCH fields that force the split set to be recomputed.
_SPLIT_FIELDS = ("amount", "currency", "paid_by", "split_type", "participants", "splits")


# ── Private helpers ────────────────────────────────────────────────────────

def _get_expense_or_404(expense_id: int, session: Session) -> Expense:
    """Returns the Expense (active or deleted) or raises EXPENSE_NOT_FOUND (404)."""
    expense = session.get(Expense, expense_id)
    if expense is None:
        raise AppError(
            ErrorCode.EXPENSE_NOT_FOUND,
            f"Expense {expense_id} does not exist.",
            404,
        )
    return expense


def _require_precision(amount: Decimal, currency: str) -> None:
    if not has_valid_precision(amount, currency):
        raise AppError(
            ErrorCode.INVALID_AMOUNT_PRECISION,
            f"Amount {amount} has more decimal places than {currency} allows.",
            400,
            field="amount",
        )


def _require_members(
        user_ids: list[str],
        group_id: int,
        member_ids: list[str],
        field: str,
) -> None:
    """Raises USER_NOT_IN_GROUP (422) for the first user not in the group."""
    member_set = set(member_ids)
    for user_id in user_ids:
        if user_id not in member_set:
            raise AppError(
                ErrorCode.USER_NOT_IN_GROUP,
                f"User {user_id} is not a member of group {group_id}.",
                422,
                field=field,
            )


def _require_payer_participates(paid_by: str, participants: list[str]) -> None:
    if paid_by not in participants:
        raise AppError(
            ErrorCode.PAYER_NOT_PARTICIPANT,
            "The payer must be one of the participants.",
            422,
            field="paid_by",
        )


def _resolve_participants(
        participants: list[str] | None,
        splits: list[dict] | None,
        fallback: list[str],
) -> list[str]:
    """Explicit participants win, then the split user ids, then `fallback`."""
    if participants is not None:
        return list(participants)
    if splits:
        return [s["user_id"] for s in splits]
    return list(fallback)


def _stored_splits(expense: Expense) -> list[dict]:
    """The expense's current splits in validator input form."""
    return [
        {"user_id": s.user_id, "amount": s.amount, "percentage": s.percentage}
        for s in expense.splits
    ]


def _build_split_rows(computed: list[dict]) -> list[Split]:
    return [
        Split(
            user_id=s["user_id"],
            amount=s["amount"],
            percentage=s["percentage"],
        )
        for s in computed
    ]


def _can_modify(expense: Expense, caller_id: str, owner_id: str) -> bool:
    return caller_id in (expense.paid_by, expense.created_by, owner_id)


# ── Public service functions ───────────────────────────────────────────────

def create_expense(
        group_id: int,
        caller_id: str,
        data: dict,
        session: Session,
) -> Expense:
    """
    Records a new expense for a group.

    Args:
        group_id:  The group this expense belongs to.
        caller_id: The authenticated user creating the expense (from flask.g).
        data:      Validated dict from CreateExpenseSchema.

    Order of checks:
      GROUP_NOT_FOUND → FORBIDDEN → INVALID_AMOUNT_PRECISION →
      USER_NOT_IN_GROUP (payer, then participants) → split validator →
      PAYER_NOT_PARTICIPANT

    Returns:
        The newly created Expense ORM object with its splits.
    """
    group = get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)

    amount: Decimal = data["amount"]
    currency: str = data.get("currency") or group.currency
    paid_by: str = data.get("paid_by") or caller_id
    split_type: SplitType = data.get("split_type") or SplitType.EQUAL
    raw_splits = data.get("splits")

    _require_precision(amount, currency)

    member_ids = get_member_ids(group_id, session)
    participants = _resolve_participants(data.get("participants"), raw_splits, member_ids)

    _require_members([paid_by], group_id, member_ids, field="paid_by")
    _require_members(participants, group_id, member_ids, field="participants")

    computed = compute_splits(split_type, amount, participants, currency, raw_splits)
    _require_payer_participates(paid_by, participants)

    expense = Expense(
        group_id=group_id,
        created_by=caller_id,
        paid_by=paid_by,
        description=data["description"].strip(),
        amount=amount,
        currency=currency,
        category=data.get("category") or DEFAULT_CATEGORY,
        split_type=split_type,
        splits=_build_split_rows(computed),
    )
    if data.get("date") is not None:
        expense.date = data["date"]

    session.add(expense)
    session.flush()
    session.refresh(expense)

    logger.info(
        "Expense %s created in group %s: %s %s paid by %s",
        expense.id,
        group_id,
        amount,
        currency,
        paid_by,
    )
    return expense


def list_expenses(
        group_id: int,
        caller_id: str,
        session: Session,
) -> list[Expense]:
    """Returns all active (non-deleted) expenses for a group, newest first."""
    get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)

    stmt = (
        select(Expense)
        .options(selectinload(Expense.splits))
        .where(
            Expense.group_id == group_id,
            Expense.deleted_at.is_(None),
        )
        .order_by(Expense.date.desc(), Expense.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def get_expense(
        expense_id: int,
        caller_id: str,
        session: Session,
) -> Expense:
    """
    Returns a single expense including its splits.

    Soft-deleted expenses are returned too; deleted_at in the response lets
    the client show the deletion state.
    """
    expense = _get_expense_or_404(expense_id, session)
    require_member(expense.group_id, caller_id, session)
    return expense


def edit_expense(
        expense_id: int,
        caller_id: str,
        data: dict,
        session: Session,
) -> Expense:
    """
    Partially updates an expense.

    Rules:
      - Only the payer, the creator or the group owner may edit (FORBIDDEN).
      - Soft-deleted expenses cannot be edited (EXPENSE_DELETED).
      - If any split-relevant field is present, the split set is recomputed
        from the merged values and fully re-validated before any write.
        Missing splits fall back to the stored ones only while split_type
        and participants are unchanged (so a percentage expense can change
        its amount alone).
      - updated_at is set on every successful PATCH.
    """
    expense = _get_expense_or_404(expense_id, session)
    require_member(expense.group_id, caller_id, session)

    if expense.is_deleted:
        raise AppError(
            ErrorCode.EXPENSE_DELETED,
            f"Expense {expense_id} has been deleted and cannot be edited.",
            422,
        )

    group = get_group_or_404(expense.group_id, session)
    if not _can_modify(expense, caller_id, group.owner_id):
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Only the payer, the creator or the group owner may edit this expense.",
            403,
        )

    if any(field in data for field in _SPLIT_FIELDS):
        amount = data.get("amount", expense.amount)
        currency = data.get("currency", expense.currency)
        paid_by = data.get("paid_by", expense.paid_by)
        split_type = data.get("split_type", expense.split_type)
        raw_splits = data.get("splits")

        _require_precision(amount, currency)

        participants = _resolve_participants(
            data.get("participants"),
            raw_splits,
            expense.participants,
        )
        if (
                raw_splits is None
                and split_type == expense.split_type
                and participants == expense.participants
        ):
            raw_splits = _stored_splits(expense)

        member_ids = get_member_ids(expense.group_id, session)
        _require_members([paid_by], expense.group_id, member_ids, field="paid_by")
        _require_members(participants, expense.group_id, member_ids, field="participants")

        computed = compute_splits(split_type, amount, participants, currency, raw_splits)
        _require_payer_participates(paid_by, participants)

        expense.amount = amount
        expense.currency = currency
        expense.paid_by = paid_by
        expense.split_type = split_type

        # Flush the removals first so UNIQUE(expense_id, user_id) holds.
        expense.splits.clear()
        session.flush()
        expense.splits.extend(_build_split_rows(computed))

    if "description" in data:
        expense.description = data["description"].strip()

    if "category" in data:
        expense.category = data["category"]

    if "date" in data:
        expense.date = data["date"]

    expense.updated_at = datetime.now(timezone.utc)
    session.flush()
    session.refresh(expense)
    return expense


def delete_expense(
        expense_id: int,
        caller_id: str,
        session: Session,
) -> None:
    """
    Soft-deletes an expense by setting deleted_at = NOW().

    The row and its splits stay in the database; balance computation
    excludes it. Re-deleting is a no-op.

    Raises:
        AppError(EXPENSE_NOT_FOUND, 404) — expense does not exist.
        AppError(FORBIDDEN, 403)         — caller is not payer, creator or owner.
    """
    expense = _get_expense_or_404(expense_id, session)
    require_member(expense.group_id, caller_id, session)

    group = get_group_or_404(expense.group_id, session)
    if not _can_modify(expense, caller_id, group.owner_id):
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Only the payer, the creator or the group owner may delete this expense.",
            403,
        )

    if not expense.is_deleted:
        expense.deleted_at = datetime.now(timezone.utc)
        expense.deleted_by = caller_id
        session.flush()
        logger.info("Expense %s deleted by %s", expense_id, caller_id)
