"""
tests/unit/test_debt_simplification.py — Unit tests for balance_service.simplify_debts.

What this file proves:
  - Two-person debt → single transaction
  - All-zero or empty balances → empty transaction list
  - Any group → at most N-1 transactions for N non-zero members
  - Transactions always run debtor → creditor
  - Applying the transactions reproduces the starting net positions
  - Ties are broken by member id, so output is deterministic
  - Multi-currency simplification never crosses currencies

Pre-condition for simplify_debts: the balances of one currency sum to zero.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal

import pytest

from billsplit.app.currency import to_minor_units
from billsplit.app.services.balance_service import (
    simplify_debts,
    simplify_debts_for_all_currencies,
)


# ── Helpers ────────────────────────────────────────────────────────────────

def _verify_correctness(balances: dict[str, int], transactions: list[dict], currency: str) -> None:
    """
    Applies the transactions to zeroed positions and asserts that the result
    matches the input balances exactly.
    """
    net: dict[str, int] = defaultdict(int)
    for txn in transactions:
        units = to_minor_units(txn["amount"], currency)
        assert units > 0
        net[txn["from_user_id"]] -= units
        net[txn["to_user_id"]] += units

    for member, expected in balances.items():
        assert net[member] == expected, (
            f"Simplification incorrect for {member}: expected {expected}, got {net[member]}"
        )


def _non_zero(balances: dict[str, int]) -> int:
    return sum(1 for units in balances.values() if units)


# ── Tests ──────────────────────────────────────────────────────────────────

def test_all_zero_returns_empty_list():
    assert simplify_debts({"alice": 0, "bob": 0, "carol": 0}, "USD") == []


def test_empty_dict_returns_empty_list():
    assert simplify_debts({}, "USD") == []


def test_two_people_single_transaction():
    result = simplify_debts({"alice": 2500, "bob": -2500}, "USD")
    assert result == [
        {"from_user_id": "bob", "to_user_id": "alice", "amount": Decimal("25.00"), "currency": "USD"},
    ]


def test_one_creditor_two_debtors_tie_broken_by_id():
    result = simplify_debts({"alice": 6000, "carol": -3000, "bob": -3000}, "USD")
    assert [(t["from_user_id"], t["to_user_id"], t["amount"]) for t in result] == [
        ("bob", "alice", Decimal("30.00")),
        ("carol", "alice", Decimal("30.00")),
    ]


def test_largest_debtor_pays_largest_creditor_first():
    balances = {"a": 7000, "b": 3000, "c": -8000, "d": -2000}
    result = simplify_debts(balances, "USD")

    first = result[0]
    assert (first["from_user_id"], first["to_user_id"]) == ("c", "a")
    assert first["amount"] == Decimal("70.00")
    _verify_correctness(balances, result, "USD")


def test_chain_collapses_to_one_transaction():
    # a owes b 10, b owes c 10 → a pays c directly.
    balances = {"a": -1000, "b": 0, "c": 1000}
    result = simplify_debts(balances, "USD")
    assert len(result) == 1
    assert (result[0]["from_user_id"], result[0]["to_user_id"]) == ("a", "c")


def test_zero_decimal_currency_amounts():
    result = simplify_debts({"alice": 500, "bob": -500}, "JPY")
    assert str(result[0]["amount"]) == "500"
    assert result[0]["currency"] == "JPY"


def test_amounts_are_decimal_not_float():
    result = simplify_debts({"alice": 1, "bob": -1}, "USD")
    assert isinstance(result[0]["amount"], Decimal)
    assert result[0]["amount"] == Decimal("0.01")


@pytest.mark.parametrize(
    "balances",
    [
        {"a": 100, "b": -100},
        {"a": 6000, "b": -3000, "c": -3000},
        {"a": 1234, "b": 5678, "c": -4321, "d": -2591},
        {"a": 1, "b": 1, "c": 1, "d": 1, "e": -4},
        {"a": -9999, "b": 3333, "c": 3333, "d": 3333, "e": 0},
        {f"m{i:02d}": (i - 5) * 137 for i in range(11)},
    ],
)
def test_at_most_n_minus_one_and_correct(balances):
    assert sum(balances.values()) == 0

    result = simplify_debts(balances, "USD")

    assert len(result) <= max(_non_zero(balances) - 1, 0)
    _verify_correctness(balances, result, "USD")


def test_deterministic_for_same_input():
    balances = {"d": -500, "a": 250, "c": 250, "b": -500, "e": 500}
    assert simplify_debts(dict(balances), "EUR") == simplify_debts(dict(balances), "EUR")


def test_input_order_does_not_matter():
    forward = {"a": 300, "b": 300, "c": -300, "d": -300}
    backward = dict(reversed(list(forward.items())))
    assert simplify_debts(forward, "USD") == simplify_debts(backward, "USD")


def test_all_currencies_simplified_in_sorted_order():
    balances_by_currency = {
        "USD": {"alice": 1000, "bob": -1000},
        "EUR": {"alice": -500, "bob": 500},
        "JPY": {"alice": 0, "bob": 0},
    }
    result = simplify_debts_for_all_currencies(balances_by_currency)

    assert [t["currency"] for t in result] == ["EUR", "USD"]
    assert (result[0]["from_user_id"], result[0]["to_user_id"]) == ("alice", "bob")
    assert (result[1]["from_user_id"], result[1]["to_user_id"]) == ("bob", "alice")
