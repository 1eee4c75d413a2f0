"""
tests/unit/test_validation_schemas.py — Unit tests for the marshmallow schemas.

What this file proves:
  - Required fields, lengths and blank-string checks per schema
  - Amounts: positive, bounded, at most 3 fractional digits
  - Unknown currencies and split types fail with their registered codes
  - PATCH schemas reject an empty payload with NO_UPDATE_FIELDS
  - Defaults (split_type, category) are applied at load time

Schemas are loaded directly; no Flask app is needed.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from marshmallow import ValidationError

from billsplit.app.errors import ErrorCode
from billsplit.app.models.expense import SplitType
from billsplit.app.schemas.expense_schema import CreateExpenseSchema, PatchExpenseSchema
from billsplit.app.schemas.group_schema import AddMemberSchema, CreateGroupSchema
from billsplit.app.schemas.settlement_schema import (
    CreateSettlementSchema,
    PatchSettlementSchema,
)


def _errors(schema, payload: dict) -> dict:
    with pytest.raises(ValidationError) as exc_info:
        schema.load(payload)
    return exc_info.value.messages


# ═══════════════════════════════════════════════════════════════════════════
# CreateExpenseSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateExpenseSchema:

    def test_minimal_payload_gets_defaults(self):
        data = CreateExpenseSchema().load({"description": "Dinner", "amount": "90.00"})

        assert data["amount"] == Decimal("90.00")
        assert data["split_type"] is SplitType.EQUAL
        assert data["category"] == "general"
        assert data["currency"] is None
        assert data["paid_by"] is None
        assert data["participants"] is None
        assert data["splits"] is None
        assert data["date"] is None

    def test_full_payload(self):
        data = CreateExpenseSchema().load({
            "description": "Hotel",
            "amount": "300.000",
            "currency": "KWD",
            "paid_by": "alice",
            "participants": ["alice", "bob"],
            "split_type": "percentage",
            "splits": [
                {"user_id": "alice", "percentage": "60"},
                {"user_id": "bob", "percentage": "40"},
            ],
            "category": "travel",
            "date": "2026-03-01T12:00:00+00:00",
        })

        assert data["split_type"] is SplitType.PERCENTAGE
        assert data["splits"][0] == {"user_id": "alice", "amount": None, "percentage": Decimal("60")}
        assert data["date"].year == 2026

    def test_description_required(self):
        errors = _errors(CreateExpenseSchema(), {"amount": "10.00"})
        assert "description" in errors

    def test_blank_description_rejected(self):
        errors = _errors(CreateExpenseSchema(), {"description": "   ", "amount": "10.00"})
        assert "description" in errors

    @pytest.mark.parametrize("amount", ["0", "-5.00"])
    def test_non_positive_amount_rejected(self, amount):
        errors = _errors(CreateExpenseSchema(), {"description": "x", "amount": amount})
        assert errors["amount"] == ["Amount must be greater than zero."]

    def test_amount_above_max_rejected(self):
        errors = _errors(CreateExpenseSchema(), {"description": "x", "amount": "1000000.00"})
        assert "amount" in errors

    def test_four_fraction_digits_rejected_with_precision_code(self):
        errors = _errors(CreateExpenseSchema(), {"description": "x", "amount": "10.0001"})
        assert errors["amount"] == [ErrorCode.INVALID_AMOUNT_PRECISION]

    def test_lowercase_currency_rejected(self):
        errors = _errors(CreateExpenseSchema(), {"description": "x", "amount": "1.00", "currency": "usd"})
        assert errors["currency"] == [ErrorCode.INVALID_CURRENCY]

    def test_unknown_split_type(self):
        errors = _errors(
            CreateExpenseSchema(),
            {"description": "x", "amount": "1.00", "split_type": "shares"},
        )
        assert errors["split_type"] == [ErrorCode.INVALID_SPLIT_TYPE]

    def test_empty_participants(self):
        errors = _errors(
            CreateExpenseSchema(),
            {"description": "x", "amount": "1.00", "participants": []},
        )
        assert errors["participants"] == [ErrorCode.INVALID_PARTICIPANTS]

    def test_negative_split_amount_rejected(self):
        errors = _errors(
            CreateExpenseSchema(),
            {
                "description": "x",
                "amount": "1.00",
                "split_type": "exact",
                "splits": [{"user_id": "alice", "amount": "-1.00"}],
            },
        )
        assert "splits" in errors

    def test_percentage_over_hundred_rejected(self):
        errors = _errors(
            CreateExpenseSchema(),
            {
                "description": "x",
                "amount": "1.00",
                "split_type": "percentage",
                "splits": [{"user_id": "alice", "percentage": "150"}],
            },
        )
        assert "splits" in errors

    def test_overlong_user_id_rejected(self):
        errors = _errors(
            CreateExpenseSchema(),
            {"description": "x", "amount": "1.00", "paid_by": "u" * 129},
        )
        assert "paid_by" in errors


# ═══════════════════════════════════════════════════════════════════════════
# PatchExpenseSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestPatchExpenseSchema:

    def test_empty_payload_rejected(self):
        errors = _errors(PatchExpenseSchema(), {})
        assert errors == {"_schema": [ErrorCode.NO_UPDATE_FIELDS]}

    def test_only_given_fields_are_loaded(self):
        data = PatchExpenseSchema().load({"amount": "12.50"})
        assert data == {"amount": Decimal("12.50")}

    def test_unknown_field_rejected(self):
        errors = _errors(PatchExpenseSchema(), {"group_id": 3})
        assert "group_id" in errors


# ═══════════════════════════════════════════════════════════════════════════
# Settlement schemas
# ═══════════════════════════════════════════════════════════════════════════

class TestSettlementSchemas:

    def test_minimal_create(self):
        data = CreateSettlementSchema().load({"payee_id": "alice", "amount": "30.00"})
        assert data["payee_id"] == "alice"
        assert data["payer_id"] is None
        assert data["currency"] is None
        assert data["note"] is None

    def test_payee_required(self):
        errors = _errors(CreateSettlementSchema(), {"amount": "30.00"})
        assert "payee_id" in errors

    def test_note_too_long(self):
        errors = _errors(
            CreateSettlementSchema(),
            {"payee_id": "alice", "amount": "1.00", "note": "n" * 501},
        )
        assert "note" in errors

    def test_precision_code(self):
        errors = _errors(CreateSettlementSchema(), {"payee_id": "alice", "amount": "0.0001"})
        assert errors["amount"] == [ErrorCode.INVALID_AMOUNT_PRECISION]

    def test_patch_empty_rejected(self):
        errors = _errors(PatchSettlementSchema(), {})
        assert errors == {"_schema": [ErrorCode.NO_UPDATE_FIELDS]}

    def test_patch_cannot_change_parties(self):
        errors = _errors(PatchSettlementSchema(), {"payer_id": "bob"})
        assert "payer_id" in errors


# ═══════════════════════════════════════════════════════════════════════════
# Group schemas
# ═══════════════════════════════════════════════════════════════════════════

class TestGroupSchemas:

    def test_create_group_defaults_currency_to_none(self):
        data = CreateGroupSchema().load({"name": "Trip"})
        assert data == {"name": "Trip", "currency": None}

    def test_blank_name_rejected(self):
        errors = _errors(CreateGroupSchema(), {"name": "  "})
        assert "name" in errors

    def test_name_too_long(self):
        errors = _errors(CreateGroupSchema(), {"name": "g" * 101})
        assert "name" in errors

    def test_invalid_currency(self):
        errors = _errors(CreateGroupSchema(), {"name": "Trip", "currency": "EURO"})
        assert errors["currency"] == [ErrorCode.INVALID_CURRENCY]

    def test_add_member_requires_user_id(self):
        errors = _errors(AddMemberSchema(), {})
        assert "user_id" in errors

    def test_add_member_rejects_non_string(self):
        errors = _errors(AddMemberSchema(), {"user_id": 42})
        assert "user_id" in errors
