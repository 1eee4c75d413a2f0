"""
services/split_service.py — Split validation and derivation.

Turns (total amount, participants, split type, client splits) into the
canonical list of per-participant owed amounts, or raises an AppError naming
the rule that failed. Called by expense_service before anything is written.

Layer rules:
  - No Flask imports, no DB access, no side effects.
  - All arithmetic on derived amounts is done in integer minor units
    (see app/currency.py). Decimal only at the boundary.

Split types:
  equal       Server derives every amount. Floor share per participant; the
              leftover minor units go one each to participants in input order.
              Sum is exact.
  exact       Client supplies every amount, each within the currency's
              precision. Sum must match the total within SPLIT_TOLERANCE.
  percentage  Client supplies every percentage (sum 100 within tolerance).
              Amounts are floored in minor units and reconciled in input order
              so the sum is exact.

Each returned split is {"user_id": str, "amount": Decimal, "percentage": Decimal | None}.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence

from billsplit.app.currency import (
    AmountPrecisionError,
    as_decimal,
    from_minor_units,
    to_minor_units,
)
from billsplit.app.errors import AppError, ErrorCode
from billsplit.app.models.expense import SplitType


# Absolute tolerance in major units for split sums and percentage totals.
# Fixed on purpose; never read from config.
SPLIT_TOLERANCE = Decimal("0.01")

_HUNDRED = Decimal("100")


# ── Private helpers ────────────────────────────────────────────────────────

def _invalid(code: str, message: str) -> AppError:
    return AppError(code, message, 400, field="splits")


def _require_participants(participants: Sequence[str]) -> list[str]:
    """Raises INVALID_PARTICIPANTS for an empty or duplicated participant list."""
    participant_list = list(participants or [])
    if not participant_list:
        raise AppError(
            ErrorCode.INVALID_PARTICIPANTS,
            "At least one participant is required.",
            400,
            field="participants",
        )
    if len(participant_list) != len(set(participant_list)):
        raise AppError(
            ErrorCode.INVALID_PARTICIPANTS,
            "Each participant may only be listed once.",
            400,
            field="participants",
        )
    return participant_list


def _require_split_count(participants: list[str], splits) -> list[dict]:
    """INVALID_SPLITS when splits are missing, empty, or the wrong length."""
    if not splits or len(splits) != len(participants):
        raise _invalid(
            ErrorCode.INVALID_SPLITS,
            "Splits must be provided for all participants.",
        )
    return list(splits)


def _require_split_users(participants: list[str], splits: list[dict]) -> None:
    """DUPLICATE_SPLIT_USERS, then INVALID_SPLIT_USER."""
    user_ids = [s.get("user_id") for s in splits]
    if len(user_ids) != len(set(user_ids)):
        raise _invalid(
            ErrorCode.DUPLICATE_SPLIT_USERS,
            "Each participant can only appear once in splits.",
        )

    participant_set = set(participants)
    for user_id in user_ids:
        if user_id not in participant_set:
            raise _invalid(
                ErrorCode.INVALID_SPLIT_USER,
                f"Split user {user_id} is not a participant.",
            )


def _distribute(total_units: int, base_units: list[int]) -> list[int]:
    """
    Reconciles floored shares so they sum to total_units exactly.

    Surplus units are handed out one at a time from the front of the list;
    a shortfall (percentages summing slightly over 100) is taken back one
    unit at a time from the back, skipping shares already at zero.
    """
    result = list(base_units)
    leftover = total_units - sum(result)
    i = 0
    while leftover > 0:
        result[i % len(result)] += 1
        leftover -= 1
        i += 1

    i = len(result) - 1
    while leftover < 0:
        if result[i % len(result)] > 0:
            result[i % len(result)] -= 1
            leftover += 1
        i -= 1
    return result


# ── Public validators ──────────────────────────────────────────────────────

def validate_equal_split(
        total_amount: Decimal,
        participants: Sequence[str],
        currency: str,
) -> list[dict]:
    """
    Divides total_amount evenly across participants.

    $100.00 / 3 → [33.34, 33.33, 33.33]; JPY 1000 / 3 → [334, 333, 333].
    Guarantees sum(result amounts) == total_amount exactly.
    """
    participant_list = _require_participants(participants)

    total_units = to_minor_units(total_amount, currency)
    share, _ = divmod(total_units, len(participant_list))
    units = _distribute(total_units, [share] * len(participant_list))

    return [
        {"user_id": uid, "amount": from_minor_units(u, currency), "percentage": None}
        for uid, u in zip(participant_list, units)
    ]


def validate_exact_split(
        total_amount: Decimal,
        participants: Sequence[str],
        splits: Sequence[dict] | None,
        currency: str,
) -> list[dict]:
    """
    Validates client-supplied amounts.

    Rules, in order:
      INVALID_SPLITS            missing, empty, or count != participants
      MISSING_SPLIT_AMOUNT      any amount is None
      INVALID_AMOUNT_PRECISION  an amount has more digits than the currency allows
      INVALID_SPLIT_TOTAL       |sum - total| > SPLIT_TOLERANCE
      DUPLICATE_SPLIT_USERS     same user twice
      INVALID_SPLIT_USER        user not in participants

    The total is compared in minor units, so the returned amounts reconcile
    with the expense exactly as the balance aggregator will see them.
    Amounts keep the client's order.
    """
    participant_list = _require_participants(participants)
    split_list = _require_split_count(participant_list, splits)

    for split in split_list:
        if split.get("amount") is None:
            raise _invalid(
                ErrorCode.MISSING_SPLIT_AMOUNT,
                "Split amount is required for exact splits.",
            )

    units: list[int] = []
    for split in split_list:
        try:
            units.append(to_minor_units(split["amount"], currency, strict=True))
        except AmountPrecisionError:
            raise _invalid(
                ErrorCode.INVALID_AMOUNT_PRECISION,
                f"Split amount {split['amount']} has more decimal places "
                f"than {currency} allows.",
            )

    split_units = sum(units)
    total_units = to_minor_units(total_amount, currency)
    if abs(from_minor_units(split_units - total_units, currency)) > SPLIT_TOLERANCE:
        raise _invalid(
            ErrorCode.INVALID_SPLIT_TOTAL,
            f"Split amounts ({from_minor_units(split_units, currency)}) must equal "
            f"total amount ({as_decimal(total_amount)}).",
        )

    _require_split_users(participant_list, split_list)

    return [
        {"user_id": s["user_id"], "amount": from_minor_units(u, currency), "percentage": None}
        for s, u in zip(split_list, units)
    ]


def validate_percentage_split(
        total_amount: Decimal,
        participants: Sequence[str],
        splits: Sequence[dict] | None,
        currency: str,
) -> list[dict]:
    """
    Derives amounts from client-supplied percentages.

    Rules, in order:
      INVALID_SPLITS            missing, empty, or count != participants
      MISSING_SPLIT_PERCENTAGE  any percentage is None
      INVALID_PERCENTAGE_TOTAL  |sum(percentages) - 100| > SPLIT_TOLERANCE
      DUPLICATE_SPLIT_USERS     same user twice
      INVALID_SPLIT_USER        user not in participants

    Each amount is floor(total_units * pct / 100); leftover units are handed
    out in input order so the amounts sum to total_amount exactly.
    """
    participant_list = _require_participants(participants)
    split_list = _require_split_count(participant_list, splits)

    percentages: list[Decimal] = []
    for split in split_list:
        pct = split.get("percentage")
        if pct is None:
            raise _invalid(
                ErrorCode.MISSING_SPLIT_PERCENTAGE,
                "Split percentage is required for percentage splits.",
            )
        percentages.append(as_decimal(pct))

    pct_total = sum(percentages, Decimal("0"))
    if abs(pct_total - _HUNDRED) > SPLIT_TOLERANCE:
        raise _invalid(
            ErrorCode.INVALID_PERCENTAGE_TOTAL,
            f"Percentages must add up to 100 (got {pct_total}).",
        )

    _require_split_users(participant_list, split_list)

    total_units = to_minor_units(total_amount, currency)
    base = [int(total_units * pct // _HUNDRED) for pct in percentages]
    units = _distribute(total_units, base)

    return [
        {
            "user_id": s["user_id"],
            "amount": from_minor_units(u, currency),
            "percentage": pct,
        }
        for s, pct, u in zip(split_list, percentages, units)
    ]


def compute_splits(
        split_type: SplitType,
        total_amount: Decimal,
        participants: Sequence[str],
        currency: str,
        splits: Sequence[dict] | None = None,
) -> list[dict]:
    """Dispatches to the validator for `split_type`."""
    if split_type == SplitType.EQUAL:
        return validate_equal_split(total_amount, participants, currency)
    if split_type == SplitType.EXACT:
        return validate_exact_split(total_amount, participants, splits, currency)
    if split_type == SplitType.PERCENTAGE:
        return validate_percentage_split(total_amount, participants, splits, currency)

    raise AppError(
        ErrorCode.INVALID_SPLIT_TYPE,
        "Split type must be equal, exact, or percentage.",
        400,
        field="split_type",
    )
