"""
services/settlement_service.py — Settlement business logic.

Rules enforced here:
  FORBIDDEN (403)                — caller must be a group member; edit/delete
                                   restricted to the creator or group owner
  SELF_SETTLEMENT (422)          — payer and payee must differ
  USER_NOT_IN_GROUP (422)        — payer and payee must both be members
  SETTLEMENT_DELETED (422)       — soft-deleted settlements cannot be edited
  INVALID_AMOUNT_PRECISION (400) — amount has more digits than the currency allows
  OVERPAYMENT (warning)          — amount exceeds what the payer currently owes
                                   the payee in that currency; still recorded

Notes on OVERPAYMENT:
  The comparison is against the pairwise debt from payer to payee (before
  debt simplification), from balance_service.compute_pairwise_debts(), in
  the settlement's currency only. Pre-payment is valid business logic, so
  the settlement is written and the route returns the warning alongside 201:
  {"data": {...}, "warnings": [{"code": "OVERPAYMENT", "message": "..."}]}.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Only flush here; the route commits.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from billsplit.app.currency import from_minor_units, has_valid_precision, to_minor_units
from billsplit.app.errors import AppError, ErrorCode, WarningCode
from billsplit.app.models.settlement import Settlement
from billsplit.app.services.balance_service import (
    compute_pairwise_debts,
    get_active_expenses,
    get_active_settlements,
    get_member_ids,
)
from billsplit.app.services.group_service import get_group_or_404, require_member


logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _get_settlement_or_404(settlement_id: int, session: Session) -> Settlement:
    settlement = session.get(Settlement, settlement_id)
    if settlement is None:
        raise AppError(
            ErrorCode.SETTLEMENT_NOT_FOUND,
            f"Settlement {settlement_id} does not exist.",
            404,
        )
    return settlement


def _require_precision(amount: Decimal, currency: str) -> None:
    if not has_valid_precision(amount, currency):
        raise AppError(
            ErrorCode.INVALID_AMOUNT_PRECISION,
            f"Amount {amount} has more decimal places than {currency} allows.",
            400,
            field="amount",
        )


def _require_can_modify(settlement: Settlement, caller_id: str, session: Session) -> None:
    group = get_group_or_404(settlement.group_id, session)
    if caller_id not in (settlement.created_by, group.owner_id):
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Only the creator or the group owner may change this settlement.",
            403,
        )


def _outstanding_debt(
        group_id: int,
        debtor_id: str,
        creditor_id: str,
        currency: str,
        session: Session,
) -> Decimal:
    """
    What debtor_id currently owes creditor_id in `currency`, never negative.
    """
    pairwise = compute_pairwise_debts(
        get_active_expenses(group_id, session),
        get_active_settlements(group_id, session),
    )
    units = pairwise.get(currency, {}).get(debtor_id, {}).get(creditor_id, 0)
    return from_minor_units(units, currency)


def _overpayment_warnings(
        group_id: int,
        payer_id: str,
        payee_id: str,
        amount: Decimal,
        currency: str,
        session: Session,
) -> list[dict]:
    current_debt = _outstanding_debt(group_id, payer_id, payee_id, currency, session)
    if to_minor_units(amount, currency) <= to_minor_units(current_debt, currency):
        return []

    return [{
        "code": WarningCode.OVERPAYMENT,
        "message": (
            f"Settlement of {from_minor_units(to_minor_units(amount, currency), currency)} "
            f"{currency} exceeds the current debt of {current_debt} {currency} from "
            f"user {payer_id} to user {payee_id}. Recording anyway."
        ),
    }]


# ── Public service functions ───────────────────────────────────────────────

def create_settlement(
        group_id: int,
        caller_id: str,
        data: dict,
        session: Session,
) -> tuple[Settlement, list[dict]]:
    """
    Records a payment from payer_id (default: the caller) to payee_id.

    Args:
        group_id:  The group this settlement belongs to.
        caller_id: The authenticated user recording it (from flask.g).
        data:      Validated dict from CreateSettlementSchema.

    Returns:
        (Settlement, warnings). An empty warnings list means no warnings.
    """
    group = get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)

    payer_id: str = data.get("payer_id") or caller_id
    payee_id: str = data["payee_id"]
    amount: Decimal = data["amount"]
    currency: str = data.get("currency") or group.currency

    if payer_id == payee_id:
        raise AppError(
            ErrorCode.SELF_SETTLEMENT,
            "A settlement cannot be made to yourself.",
            422,
            field="payee_id",
        )

    _require_precision(amount, currency)

    member_ids = set(get_member_ids(group_id, session))
    for field, user_id in (("payer_id", payer_id), ("payee_id", payee_id)):
        if user_id not in member_ids:
            raise AppError(
                ErrorCode.USER_NOT_IN_GROUP,
                f"User {user_id} is not a member of group {group_id}.",
                422,
                field=field,
            )

    # Computed before the new row exists, so it reflects the debt being paid.
    warnings = _overpayment_warnings(group_id, payer_id, payee_id, amount, currency, session)

    settlement = Settlement(
        group_id=group_id,
        created_by=caller_id,
        payer_id=payer_id,
        payee_id=payee_id,
        amount=amount,
        currency=currency,
        note=data.get("note"),
    )
    if data.get("date") is not None:
        settlement.date = data["date"]

    session.add(settlement)
    session.flush()

    logger.info(
        "Settlement %s recorded in group %s: %s %s from %s to %s",
        settlement.id,
        group_id,
        amount,
        currency,
        payer_id,
        payee_id,
    )
    return settlement, warnings


def list_settlements(
        group_id: int,
        caller_id: str,
        session: Session,
) -> list[Settlement]:
    """Returns active settlements for a group, newest first."""
    get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)

    stmt = (
        select(Settlement)
        .where(
            Settlement.group_id == group_id,
            Settlement.deleted_at.is_(None),
        )
        .order_by(Settlement.date.desc(), Settlement.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def edit_settlement(
        settlement_id: int,
        caller_id: str,
        data: dict,
        session: Session,
) -> Settlement:
    """
    Updates amount, currency, note and/or date of a settlement.

    Payer and payee are fixed; record a new settlement to change them.
    """
    settlement = _get_settlement_or_404(settlement_id, session)
    require_member(settlement.group_id, caller_id, session)

    if settlement.is_deleted:
        raise AppError(
            ErrorCode.SETTLEMENT_DELETED,
            f"Settlement {settlement_id} has been deleted and cannot be edited.",
            422,
        )

    _require_can_modify(settlement, caller_id, session)

    amount = data.get("amount", settlement.amount)
    currency = data.get("currency", settlement.currency)
    _require_precision(amount, currency)

    settlement.amount = amount
    settlement.currency = currency
    if "note" in data:
        settlement.note = data["note"]
    if "date" in data:
        settlement.date = data["date"]

    settlement.updated_at = datetime.now(timezone.utc)
    session.flush()
    session.refresh(settlement)
    return settlement


def delete_settlement(
        settlement_id: int,
        caller_id: str,
        session: Session,
) -> None:
    """Soft-deletes a settlement. Re-deleting is a no-op."""
    settlement = _get_settlement_or_404(settlement_id, session)
    require_member(settlement.group_id, caller_id, session)
    _require_can_modify(settlement, caller_id, session)

    if not settlement.is_deleted:
        settlement.deleted_at = datetime.now(timezone.utc)
        settlement.deleted_by = caller_id
        session.flush()
        logger.info("Settlement %s deleted by %s", settlement_id, caller_id)
