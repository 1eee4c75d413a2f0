"""
schemas/group_schema.py — Marshmallow schemas for group and membership endpoints.

Validation responsibility:
  - This file: field types, string lengths, non-empty checks (including trim),
    supported currency.
  - services/group_service.py: GROUP_NOT_FOUND, FORBIDDEN, ALREADY_MEMBER,
    MEMBER_HAS_OUTSTANDING_BALANCE.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate

from billsplit.app.currency import is_supported
from billsplit.app.errors import ErrorCode


def _validate_non_empty_after_trim(value: str) -> None:
    """
    Raises ValidationError if the string is blank or contains only whitespace.
    Mirrors the DB CHECK(LENGTH(TRIM(...)) > 0) constraint at the API layer.
    """
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _validate_currency(value: str) -> None:
    if not is_supported(value):
        raise ValidationError(ErrorCode.INVALID_CURRENCY)


class CreateGroupSchema(Schema):
    """
    POST /groups

    currency is the group's default for new expenses and settlements; when
    omitted the route falls back to the DEFAULT_CURRENCY setting.
    """

    name = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=100,
                error="Group name must be between 1 and 100 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    currency = fields.Str(load_default=None, validate=_validate_currency)


class AddMemberSchema(Schema):
    """POST /groups/:id/members — the identity-provider user id to add."""

    user_id = fields.Str(
        required=True,
        validate=[
            validate.Length(min=1, max=128, error="user_id must be 1-128 characters."),
            _validate_non_empty_after_trim,
        ],
    )
