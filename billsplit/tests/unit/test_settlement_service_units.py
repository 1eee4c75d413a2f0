"""
Unit tests for settlement_service rules and the OVERPAYMENT warning.

DB-free: group lookups and the balance loaders are patched on the module.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from billsplit.app.errors import AppError, ErrorCode, WarningCode
from billsplit.app.models.settlement import Settlement
from billsplit.app.services import settlement_service


def _group(currency: str = "USD", owner_id: str = "alice") -> SimpleNamespace:
    return SimpleNamespace(id=1, owner_id=owner_id, currency=currency)


def _dinner() -> SimpleNamespace:
    """alice paid 90.00 USD for alice, bob and carol."""
    return SimpleNamespace(
        id=1,
        paid_by="alice",
        amount=Decimal("90.00"),
        currency="USD",
        deleted_at=None,
        splits=[
            SimpleNamespace(user_id=u, amount=Decimal("30.00"))
            for u in ("alice", "bob", "carol")
        ],
    )


@contextmanager
def _group_context(group=None, expenses=None, settlements=None):
    with patch.object(settlement_service, "get_group_or_404", return_value=group or _group()), \
            patch.object(settlement_service, "require_member"), \
            patch.object(settlement_service, "get_member_ids", return_value=["alice", "bob", "carol"]), \
            patch.object(settlement_service, "get_active_expenses", return_value=expenses or []), \
            patch.object(settlement_service, "get_active_settlements", return_value=settlements or []):
        yield


def _data(**overrides) -> dict:
    data = {
        "payee_id": "alice",
        "payer_id": None,
        "amount": Decimal("30.00"),
        "currency": None,
        "note": None,
        "date": None,
    }
    data.update(overrides)
    return data


# ── create_settlement ──────────────────────────────────────────────────────

def test_payer_defaults_to_caller_and_currency_to_group():
    session = MagicMock()
    with _group_context(expenses=[_dinner()]):
        settlement, warnings = settlement_service.create_settlement(1, "bob", _data(), session)

    assert settlement.payer_id == "bob"
    assert settlement.payee_id == "alice"
    assert settlement.created_by == "bob"
    assert settlement.currency == "USD"
    assert warnings == []
    session.add.assert_called_once_with(settlement)


def test_recording_on_behalf_of_another_member():
    session = MagicMock()
    with _group_context(expenses=[_dinner()]):
        settlement, _ = settlement_service.create_settlement(
            1, "alice", _data(payer_id="carol", note="cash"), session,
        )

    assert settlement.payer_id == "carol"
    assert settlement.created_by == "alice"
    assert settlement.note == "cash"


def test_self_settlement_rejected():
    session = MagicMock()
    with _group_context():
        with pytest.raises(AppError) as exc_info:
            settlement_service.create_settlement(1, "alice", _data(payee_id="alice"), session)

    err = exc_info.value
    assert err.code == ErrorCode.SELF_SETTLEMENT
    assert err.http_status == 422
    session.add.assert_not_called()


def test_precision_checked_against_resolved_currency():
    session = MagicMock()
    with _group_context(group=_group(currency="JPY")):
        with pytest.raises(AppError) as exc_info:
            settlement_service.create_settlement(1, "bob", _data(amount=Decimal("1.50")), session)

    assert exc_info.value.code == ErrorCode.INVALID_AMOUNT_PRECISION


def test_payee_must_be_member():
    session = MagicMock()
    with _group_context():
        with pytest.raises(AppError) as exc_info:
            settlement_service.create_settlement(1, "bob", _data(payee_id="zed"), session)

    err = exc_info.value
    assert err.code == ErrorCode.USER_NOT_IN_GROUP
    assert err.field == "payee_id"


def test_payer_must_be_member():
    session = MagicMock()
    with _group_context():
        with pytest.raises(AppError) as exc_info:
            settlement_service.create_settlement(1, "bob", _data(payer_id="zed"), session)

    assert exc_info.value.field == "payer_id"


def test_overpayment_produces_warning_but_still_records():
    session = MagicMock()
    with _group_context(expenses=[_dinner()]):
        settlement, warnings = settlement_service.create_settlement(
            1, "bob", _data(amount=Decimal("50.00")), session,
        )

    assert len(warnings) == 1
    assert warnings[0]["code"] == WarningCode.OVERPAYMENT
    assert "30.00" in warnings[0]["message"]
    session.add.assert_called_once_with(settlement)


def test_settlement_with_no_debt_is_overpayment():
    session = MagicMock()
    with _group_context():
        _, warnings = settlement_service.create_settlement(1, "bob", _data(), session)

    assert [w["code"] for w in warnings] == [WarningCode.OVERPAYMENT]


def test_debt_in_other_currency_does_not_count():
    session = MagicMock()
    with _group_context(expenses=[_dinner()]):
        _, warnings = settlement_service.create_settlement(
            1, "bob", _data(currency="EUR"), session,
        )

    assert [w["code"] for w in warnings] == [WarningCode.OVERPAYMENT]


def test_prior_settlements_reduce_outstanding_debt():
    session = MagicMock()
    earlier = SimpleNamespace(
        id=1, payer_id="bob", payee_id="alice",
        amount=Decimal("20.00"), currency="USD", deleted_at=None,
    )
    with _group_context(expenses=[_dinner()], settlements=[earlier]):
        _, warnings = settlement_service.create_settlement(
            1, "bob", _data(amount=Decimal("10.01")), session,
        )

    assert len(warnings) == 1


# ── edit / delete ──────────────────────────────────────────────────────────

def _stored(**overrides) -> Settlement:
    fields = dict(
        id=9,
        group_id=1,
        created_by="bob",
        payer_id="bob",
        payee_id="alice",
        amount=Decimal("30.00"),
        currency="USD",
    )
    fields.update(overrides)
    return Settlement(**fields)


def test_edit_deleted_settlement_rejected():
    session = MagicMock()
    settlement = _stored(deleted_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
    with patch.object(settlement_service, "_get_settlement_or_404", return_value=settlement), \
            _group_context():
        with pytest.raises(AppError) as exc_info:
            settlement_service.edit_settlement(9, "bob", {"amount": Decimal("1.00")}, session)

    assert exc_info.value.code == ErrorCode.SETTLEMENT_DELETED
    assert exc_info.value.http_status == 422


def test_edit_forbidden_for_non_creator_non_owner():
    session = MagicMock()
    with patch.object(settlement_service, "_get_settlement_or_404", return_value=_stored()), \
            _group_context():
        with pytest.raises(AppError) as exc_info:
            settlement_service.edit_settlement(9, "carol", {"note": "x"}, session)

    assert exc_info.value.code == ErrorCode.FORBIDDEN


def test_owner_can_edit_amount_and_note():
    session = MagicMock()
    settlement = _stored()
    with patch.object(settlement_service, "_get_settlement_or_404", return_value=settlement), \
            _group_context():
        result = settlement_service.edit_settlement(
            9, "alice", {"amount": Decimal("25.00"), "note": "corrected"}, session,
        )

    assert result.amount == Decimal("25.00")
    assert result.note == "corrected"
    assert result.updated_at is not None


def test_edit_precision_checked_against_new_currency():
    session = MagicMock()
    with patch.object(settlement_service, "_get_settlement_or_404", return_value=_stored(amount=Decimal("30.50"))), \
            _group_context():
        with pytest.raises(AppError) as exc_info:
            settlement_service.edit_settlement(9, "bob", {"currency": "JPY"}, session)

    assert exc_info.value.code == ErrorCode.INVALID_AMOUNT_PRECISION


def test_delete_marks_settlement():
    session = MagicMock()
    settlement = _stored()
    with patch.object(settlement_service, "_get_settlement_or_404", return_value=settlement), \
            _group_context():
        settlement_service.delete_settlement(9, "bob", session)

    assert settlement.is_deleted
    assert settlement.deleted_by == "bob"


def test_get_settlement_or_404_raises_when_missing():
    session = MagicMock()
    session.get.return_value = None

    with pytest.raises(AppError) as exc_info:
        settlement_service._get_settlement_or_404(404, session)

    assert exc_info.value.code == ErrorCode.SETTLEMENT_NOT_FOUND
