"""
services/balance_service.py — Balance aggregation and debt simplification.

This file is the SINGLE SOURCE OF TRUTH for how balances are computed.
Settlement overpayment warnings, member removal checks and the balances
endpoint all go through the functions below; do not re-derive balances
anywhere else.

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - The core (aggregate_balances, compute_pairwise_debts, simplify_debts,
    calculate_group_balances) is pure: it takes lists of expense and
    settlement records and returns plain dicts. Records are duck-typed, so
    ORM rows and simple test objects both work.
  - The data-access helpers at the bottom take a SQLAlchemy session.

Numeric rules:
  - All arithmetic is done in integer minor units per currency
    (see app/currency.py). Decimal appears only in the returned payloads.
  - Balances in different currencies are never netted against each other.
  - Sign convention: positive = the group owes this member,
                     negative = this member owes the group.

Integrity:
  Data reaching the aggregator has already passed the split validator, so
  any inconsistency here means corruption upstream. A record without a
  supported currency, splits that miss their expense total by more than
  SPLIT_TOLERANCE, or a currency that does not sum to zero raise
  BalanceIntegrityError (500, generic message). A residual within tolerance
  is folded into the payer (credited the split sum) and logged.
"""

from __future__ import annotations

import heapq
import logging
from collections import defaultdict
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from billsplit.app.currency import from_minor_units, is_supported, to_minor_units
from billsplit.app.errors import AppError, BalanceIntegrityError, ErrorCode
from billsplit.app.models.expense import Expense
from billsplit.app.models.group import Group
from billsplit.app.models.membership import Membership
from billsplit.app.models.settlement import Settlement
from billsplit.app.services.split_service import SPLIT_TOLERANCE


logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _is_active(record) -> bool:
    return getattr(record, "deleted_at", None) is None


def _record_currency(record, kind: str) -> str:
    currency = getattr(record, "currency", None)
    if not is_supported(currency):
        raise BalanceIntegrityError(
            f"{kind} {getattr(record, 'id', None)} has missing or unsupported "
            f"currency {currency!r}."
        )
    return currency


def _expense_shares(expense) -> tuple[str, int, list[tuple[str, int]]]:
    """
    Returns (currency, payer_credit_units, [(user_id, owed_units), ...]).

    payer_credit_units is the split sum, which equals the expense total
    unless a within-tolerance residual was folded into the payer.
    """
    currency = _record_currency(expense, "Expense")
    total_units = to_minor_units(expense.amount, currency)
    shares = [
        (split.user_id, to_minor_units(split.amount, currency))
        for split in expense.splits
    ]
    split_units = sum(units for _, units in shares)

    residual_units = total_units - split_units
    if residual_units:
        residual = from_minor_units(residual_units, currency)
        if abs(residual) > SPLIT_TOLERANCE:
            raise BalanceIntegrityError(
                f"Expense {expense.id} splits sum to "
                f"{from_minor_units(split_units, currency)} {currency}, "
                f"expected {from_minor_units(total_units, currency)}."
            )
        logger.warning(
            "Expense %s: split residual of %s %s folded into payer %s",
            expense.id,
            residual,
            currency,
            expense.paid_by,
        )

    return currency, split_units, shares


def _adjust_pair(
        pairs: dict[str, dict[str, int]],
        debtor: str,
        creditor: str,
        units: int,
) -> None:
    """
    Records that `debtor` owes `creditor` another `units`, netting against
    any debt in the opposite direction first. At most one direction per pair
    is ever non-zero.
    """
    if units <= 0 or debtor == creditor:
        return

    reverse = pairs[creditor].get(debtor, 0)
    if reverse >= units:
        remaining = reverse - units
        if remaining:
            pairs[creditor][debtor] = remaining
        else:
            pairs[creditor].pop(debtor, None)
        return

    pairs[creditor].pop(debtor, None)
    pairs[debtor][creditor] = pairs[debtor].get(creditor, 0) + units - reverse


# ── Core algorithms ────────────────────────────────────────────────────────

def aggregate_balances(
        expenses: Iterable,
        settlements: Iterable,
        member_ids: Iterable[str] | None = None,
) -> dict[str, dict[str, int]]:
    """
    Net balance of every member per currency, in minor units.

    Returns {currency: {member_id: units}} with currencies in sorted order.

    Algorithm:
      1. Each expense credits its payer with the split sum and debits every
         participant with their split amount (a payer who is also a
         participant gets both).
      2. Each settlement credits the payer and debits the payee.
      3. `member_ids`, when given, are seeded with zero in every currency
         that appears in the history.

    Soft-deleted records are skipped even if passed in.

    Raises:
        BalanceIntegrityError -- see module docstring.
    """
    balances: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))

    for expense in expenses:
        if not _is_active(expense):
            continue
        currency, credit_units, shares = _expense_shares(expense)
        bucket = balances[currency]
        bucket[expense.paid_by] += credit_units
        for user_id, units in shares:
            bucket[user_id] -= units

    for settlement in settlements:
        if not _is_active(settlement):
            continue
        currency = _record_currency(settlement, "Settlement")
        units = to_minor_units(settlement.amount, currency)
        bucket = balances[currency]
        bucket[settlement.payer_id] += units
        bucket[settlement.payee_id] -= units

    if member_ids is not None:
        members = list(member_ids)
        for bucket in balances.values():
            for member_id in members:
                bucket.setdefault(member_id, 0)

    for currency, bucket in balances.items():
        currency_sum = sum(bucket.values())
        if currency_sum != 0:
            raise BalanceIntegrityError(
                f"{currency} balances sum to "
                f"{from_minor_units(currency_sum, currency)}, expected zero."
            )

    return {currency: dict(balances[currency]) for currency in sorted(balances)}


def compute_pairwise_debts(
        expenses: Iterable,
        settlements: Iterable,
) -> dict[str, dict[str, dict[str, int]]]:
    """
    Who owes whom, before simplification, in minor units.

    Returns {currency: {debtor_id: {creditor_id: units}}}. Opposite
    directions between the same two members are netted, so a pair appears
    at most once. A settlement from A to B reduces A's debt to B and, past
    zero, leaves B owing A.
    """
    pairs: dict[str, dict[str, dict[str, int]]] = defaultdict(
        lambda: defaultdict(dict)
    )

    for expense in expenses:
        if not _is_active(expense):
            continue
        currency, _, shares = _expense_shares(expense)
        for user_id, units in shares:
            _adjust_pair(pairs[currency], user_id, expense.paid_by, units)

    for settlement in settlements:
        if not _is_active(settlement):
            continue
        currency = _record_currency(settlement, "Settlement")
        units = to_minor_units(settlement.amount, currency)
        _adjust_pair(pairs[currency], settlement.payee_id, settlement.payer_id, units)

    return {
        currency: {
            debtor: dict(creditors)
            for debtor, creditors in sorted(pairs[currency].items())
            if creditors
        }
        for currency in sorted(pairs)
    }


def simplify_debts(balances: dict[str, int], currency: str) -> list[dict]:
    """
    Greedy largest-first debt simplification for one currency.

    Repeatedly matches the largest debtor with the largest creditor and
    transfers min(debt, credit) until every balance is zero. Equal
    magnitudes are taken in lexical member-id order, so output is
    deterministic. At most N-1 edges for N non-zero members; not guaranteed
    globally minimal.

    Args:
        balances: {member_id: units} for one currency. Must sum to zero.

    Returns:
        [{"from_user_id", "to_user_id", "amount": Decimal, "currency"}, ...]
        An empty list means everyone is settled up.
    """
    # heapq is a min-heap: negate magnitudes so the largest pops first,
    # and the member id breaks ties in ascending order.
    creditors = [(-units, member) for member, units in balances.items() if units > 0]
    debtors = [(units, member) for member, units in balances.items() if units < 0]
    heapq.heapify(creditors)
    heapq.heapify(debtors)

    transactions: list[dict] = []

    while creditors and debtors:
        neg_credit, creditor = heapq.heappop(creditors)
        neg_debt, debtor = heapq.heappop(debtors)
        credit, debt = -neg_credit, -neg_debt

        transfer = min(credit, debt)
        transactions.append({
            "from_user_id": debtor,
            "to_user_id": creditor,
            "amount": from_minor_units(transfer, currency),
            "currency": currency,
        })

        if credit > transfer:
            heapq.heappush(creditors, (-(credit - transfer), creditor))
        if debt > transfer:
            heapq.heappush(debtors, (-(debt - transfer), debtor))

    return transactions


def simplify_debts_for_all_currencies(
        balances_by_currency: dict[str, dict[str, int]],
) -> list[dict]:
    """Runs simplify_debts per currency, currencies in sorted order."""
    transactions: list[dict] = []
    for currency in sorted(balances_by_currency):
        transactions.extend(simplify_debts(balances_by_currency[currency], currency))
    return transactions


def calculate_group_balances(
        expenses: Iterable,
        settlements: Iterable,
        member_ids: Iterable[str] | None = None,
) -> dict:
    """
    Full balance picture for one group's history.

    Returns:
        {
          "balances_by_currency":      {currency: {member_id: Decimal}},
          "user_balances_by_currency": {currency: {member_id: {
              "net_balance": Decimal,
              "owes":        {creditor_id: Decimal},
              "owed_by":     {debtor_id: Decimal},
          }}},
          "simplified_debts": [{"from_user_id", "to_user_id", "amount", "currency"}],
        }

    Idempotent: the same input always produces the same output.
    """
    expense_list = list(expenses)
    settlement_list = list(settlements)

    balances = aggregate_balances(expense_list, settlement_list, member_ids)
    pairwise = compute_pairwise_debts(expense_list, settlement_list)

    balances_by_currency: dict[str, dict[str, Decimal]] = {}
    user_balances_by_currency: dict[str, dict[str, dict]] = {}

    for currency, bucket in balances.items():
        debts = pairwise.get(currency, {})
        balances_by_currency[currency] = {
            member: from_minor_units(units, currency)
            for member, units in sorted(bucket.items())
        }
        user_balances_by_currency[currency] = {
            member: {
                "net_balance": from_minor_units(units, currency),
                "owes": {
                    creditor: from_minor_units(owed, currency)
                    for creditor, owed in sorted(debts.get(member, {}).items())
                },
                "owed_by": {
                    debtor: from_minor_units(creditors[member], currency)
                    for debtor, creditors in sorted(debts.items())
                    if member in creditors
                },
            }
            for member, units in sorted(bucket.items())
        }

    return {
        "balances_by_currency": balances_by_currency,
        "user_balances_by_currency": user_balances_by_currency,
        "simplified_debts": simplify_debts_for_all_currencies(balances),
    }


# ── Data access helpers ────────────────────────────────────────────────────
# The only sanctioned way to load balance inputs. Both filter
# deleted_at IS NULL at the query level.

def get_active_expenses(group_id: int, session: Session) -> list[Expense]:
    stmt = (
        select(Expense)
        .options(selectinload(Expense.splits))
        .where(
            Expense.group_id == group_id,
            Expense.deleted_at.is_(None),
        )
        .order_by(Expense.id)
    )
    return list(session.execute(stmt).scalars().all())


def get_active_settlements(group_id: int, session: Session) -> list[Settlement]:
    stmt = (
        select(Settlement)
        .where(
            Settlement.group_id == group_id,
            Settlement.deleted_at.is_(None),
        )
        .order_by(Settlement.id)
    )
    return list(session.execute(stmt).scalars().all())


def get_member_ids(group_id: int, session: Session) -> list[str]:
    """Returns the user ids of all current members, in join order."""
    stmt = (
        select(Membership.user_id)
        .where(Membership.group_id == group_id)
        .order_by(Membership.id)
    )
    return list(session.execute(stmt).scalars().all())


def compute_group_balances(group_id: int, session: Session) -> dict:
    """
    calculate_group_balances() over the group's active history, with every
    current member seeded.

    BalanceIntegrityError is re-raised tagged with the group id so the
    error handler can log it.
    """
    try:
        return calculate_group_balances(
            get_active_expenses(group_id, session),
            get_active_settlements(group_id, session),
            get_member_ids(group_id, session),
        )
    except BalanceIntegrityError as exc:
        exc.group_id = group_id
        raise


def get_balance_response(group_id: int, caller_id: str, session: Session) -> dict:
    """
    Builds the payload for GET /groups/:id/balances.

    Raises:
        AppError(GROUP_NOT_FOUND, 404)            -- group does not exist.
        AppError(FORBIDDEN, 403)                  -- caller not a member.
        BalanceIntegrityError(BALANCE_CALCULATION_FAILED, 500)
    """
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )

    if caller_id not in get_member_ids(group_id, session):
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )

    result = compute_group_balances(group_id, session)

    return {
        "group_id": group_id,
        "balances_by_currency": result["balances_by_currency"],
        "user_balances_by_currency": result["user_balances_by_currency"],
        "simplified_debts": result["simplified_debts"],
    }
