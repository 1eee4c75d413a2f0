"""
schemas/settlement_schema.py — Marshmallow schemas for settlement endpoints.

Validation responsibility:
  - This file: field types, supported currency, positive amount with at most
    3 fractional digits, note length, NO_UPDATE_FIELDS for PATCH.
  - services/settlement_service.py:
      - per-currency precision (INVALID_AMOUNT_PRECISION)
      - SELF_SETTLEMENT (422)     — payer and payee resolved, caller included
      - USER_NOT_IN_GROUP (422)   — requires DB membership lookup
      - OVERPAYMENT warning (201) — requires the current pairwise debt

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, validate, validates_schema

from billsplit.app.currency import is_supported
from billsplit.app.errors import ErrorCode


# Same bounds as expense amounts. Kept local so each schema file stands alone.
MAX_AMOUNT = Decimal("999999.99")


def _validate_monetary_amount(value: Decimal) -> None:
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")
    if value > MAX_AMOUNT:
        raise ValidationError(f"Amount must not exceed {MAX_AMOUNT}.")
    if value.as_tuple().exponent < -3:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_currency(value: str) -> None:
    if not is_supported(value):
        raise ValidationError(ErrorCode.INVALID_CURRENCY)


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


_USER_ID_RULES = [
    validate.Length(min=1, max=128, error="User ids must be 1-128 characters."),
    _validate_non_empty_after_trim,
]


class CreateSettlementSchema(Schema):
    """
    POST /groups/:id/settlements

    Records a payment from payer_id to payee_id. payer_id defaults to the
    caller; currency defaults to the group's currency (both resolved in the
    service). Overpayment is allowed and only produces a warning.
    """

    payee_id = fields.Str(required=True, validate=_USER_ID_RULES)

    payer_id = fields.Str(load_default=None, validate=_USER_ID_RULES)

    amount = fields.Decimal(
        required=True,
        validate=_validate_monetary_amount,
    )

    currency = fields.Str(load_default=None, validate=_validate_currency)

    note = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=500, error="Note must be at most 500 characters."),
    )

    date = fields.DateTime(load_default=None)


class PatchSettlementSchema(Schema):
    """PATCH /settlements/:id — amount, currency, note and date only."""

    amount = fields.Decimal(validate=_validate_monetary_amount)

    currency = fields.Str(validate=_validate_currency)

    note = fields.Str(
        allow_none=True,
        validate=validate.Length(max=500, error="Note must be at most 500 characters."),
    )

    date = fields.DateTime()

    @validates_schema
    def validate_not_empty(self, data: dict, **kwargs) -> None:
        if not data:
            raise ValidationError(ErrorCode.NO_UPDATE_FIELDS)
