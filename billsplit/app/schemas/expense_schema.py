"""
schemas/expense_schema.py — Marshmallow schemas for expense endpoints.

Validation responsibility:
  - This file (400, request shape only):
      - Field types and lengths, split_type enum (INVALID_SPLIT_TYPE)
      - currency is a supported ISO 4217 code (INVALID_CURRENCY)
      - amounts positive, at most MAX_AMOUNT, at most 3 fractional digits
      - PATCH must carry at least one field (NO_UPDATE_FIELDS)
  - services/split_service.py (400):
      - every split rule (counts, totals, percentages, duplicates, membership
        of the participant list)
  - services/expense_service.py:
      - per-currency precision (INVALID_AMOUNT_PRECISION), since the currency
        may come from the group default
      - PAYER_NOT_PARTICIPANT, USER_NOT_IN_GROUP, EXPENSE_DELETED (422)
      - edit permission (FORBIDDEN, 403)

Split entries deliberately allow a null amount or percentage: whether one is
required depends on split_type, and the split validator reports it with the
right code (MISSING_SPLIT_AMOUNT / MISSING_SPLIT_PERCENTAGE).

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, validate, validates_schema

from billsplit.app.currency import is_supported
from billsplit.app.errors import ErrorCode
from billsplit.app.models.expense import DEFAULT_CATEGORY, SplitType


MAX_AMOUNT = Decimal("999999.99")

# Storage scale of the money columns (Numeric(15, 3)).
_MAX_FRACTION_DIGITS = 3


# ── Field validators ───────────────────────────────────────────────────────

def _validate_monetary_amount(value: Decimal) -> None:
    """Strictly positive, at most MAX_AMOUNT, at most 3 fractional digits."""
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")
    if value > MAX_AMOUNT:
        raise ValidationError(f"Amount must not exceed {MAX_AMOUNT}.")
    if value.as_tuple().exponent < -_MAX_FRACTION_DIGITS:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_split_amount(value: Decimal) -> None:
    # A participant may owe nothing in an exact split.
    if value < Decimal("0"):
        raise ValidationError("Split amount must not be negative.")
    if value.as_tuple().exponent < -_MAX_FRACTION_DIGITS:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_currency(value: str) -> None:
    if not is_supported(value):
        raise ValidationError(ErrorCode.INVALID_CURRENCY)


def _validate_non_empty_after_trim(value: str) -> None:
    """Rejects whitespace-only strings that validate.Length would accept."""
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _user_id_field(**kwargs) -> fields.Str:
    return fields.Str(
        validate=[
            validate.Length(min=1, max=128, error="user_id must be 1-128 characters."),
            _validate_non_empty_after_trim,
        ],
        **kwargs,
    )


# ── Sub-schema: one entry in the `splits` array ───────────────────────────

class SplitInputSchema(Schema):

    user_id = _user_id_field(required=True)

    amount = fields.Decimal(
        load_default=None,
        allow_none=True,
        validate=_validate_split_amount,
    )

    percentage = fields.Decimal(
        load_default=None,
        allow_none=True,
        validate=validate.Range(
            min=Decimal("0"),
            max=Decimal("100"),
            error="percentage must be between 0 and 100.",
        ),
    )


# ── Create expense ─────────────────────────────────────────────────────────

class CreateExpenseSchema(Schema):
    """
    POST /groups/:id/expenses

    Defaults resolved by the service, not here:
      paid_by       → the caller
      currency      → the group's currency
      participants  → the split user ids when splits are sent, otherwise
                      every current group member
      date          → now
    """

    description = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=255,
                error="Description must be between 1 and 255 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    amount = fields.Decimal(
        required=True,
        validate=_validate_monetary_amount,
    )

    currency = fields.Str(
        load_default=None,
        validate=_validate_currency,
    )

    paid_by = _user_id_field(load_default=None)

    participants = fields.List(
        _user_id_field(),
        load_default=None,
        validate=validate.Length(min=1, error=ErrorCode.INVALID_PARTICIPANTS),
    )

    split_type = fields.Enum(
        SplitType,
        load_default=SplitType.EQUAL,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_TYPE},
    )

    splits = fields.List(
        fields.Nested(SplitInputSchema),
        load_default=None,
    )

    category = fields.Str(
        load_default=DEFAULT_CATEGORY,
        validate=[
            validate.Length(
                min=1,
                max=50,
                error="Category must be between 1 and 50 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    date = fields.DateTime(load_default=None)


# ── Patch expense ──────────────────────────────────────────────────────────

class PatchExpenseSchema(Schema):
    """
    PATCH /expenses/:id

    All fields optional; only provided fields change. Any of amount,
    currency, paid_by, split_type, participants or splits makes the service
    recompute and re-validate the whole split set against the merged values.
    """

    description = fields.Str(
        validate=[
            validate.Length(
                min=1,
                max=255,
                error="Description must be between 1 and 255 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    amount = fields.Decimal(validate=_validate_monetary_amount)

    currency = fields.Str(validate=_validate_currency)

    paid_by = _user_id_field()

    participants = fields.List(
        _user_id_field(),
        validate=validate.Length(min=1, error=ErrorCode.INVALID_PARTICIPANTS),
    )

    split_type = fields.Enum(
        SplitType,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_TYPE},
    )

    splits = fields.List(fields.Nested(SplitInputSchema))

    category = fields.Str(
        validate=[
            validate.Length(
                min=1,
                max=50,
                error="Category must be between 1 and 50 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    date = fields.DateTime()

    @validates_schema
    def validate_not_empty(self, data: dict, **kwargs) -> None:
        if not data:
            raise ValidationError(ErrorCode.NO_UPDATE_FIELDS)
