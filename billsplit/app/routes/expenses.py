"""
routes/expenses.py — Expense route handlers.

Registered at url_prefix=/api/v1 (not /api/v1/expenses) because this blueprint
owns BOTH the group-scoped paths (/groups/:id/expenses) and the
expense-ID paths (/expenses/:id).

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.
  - _serialize_expense() is a pure data-shape helper.

Endpoints:
  POST   /groups/:id/expenses   → 201  create expense
  GET    /groups/:id/expenses   → 200  list active expenses
  GET    /expenses/:id          → 200  get expense + splits
  PATCH  /expenses/:id          → 200  partial update
  DELETE /expenses/:id          → 200  soft-delete
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from billsplit.app.currency import format_amount
from billsplit.app.extensions import db
from billsplit.app.middleware.auth_middleware import require_auth
from billsplit.app.models.expense import Expense
from billsplit.app.schemas.expense_schema import CreateExpenseSchema, PatchExpenseSchema
from billsplit.app.services import expense_service

expenses_bp = Blueprint("expenses", __name__)


# ── Serialization helper ───────────────────────────────────────────────────
# Amounts are strings with exactly the currency's fractional digits.

def _isoformat(value):
    return value.isoformat() if value else None


def _serialize_expense(expense: Expense) -> dict:
    currency = expense.currency
    return {
        "id": expense.id,
        "group_id": expense.group_id,
        "created_by": expense.created_by,
        "paid_by": expense.paid_by,
        "description": expense.description,
        "amount": format_amount(expense.amount, currency),
        "currency": currency,
        "category": expense.category,
        "split_type": expense.split_type.value,
        "participants": expense.participants,
        "date": _isoformat(expense.date),
        "created_at": _isoformat(expense.created_at),
        "updated_at": _isoformat(expense.updated_at),
        "deleted_at": _isoformat(expense.deleted_at),
        "deleted_by": expense.deleted_by,
        "splits": [
            {
                "user_id": s.user_id,
                "amount": format_amount(s.amount, currency),
                "percentage": format(s.percentage.normalize(), "f") if s.percentage is not None else None,
            }
            for s in expense.splits
        ],
    }


# ── Group-scoped expense routes ────────────────────────────────────────────

@expenses_bp.route("/groups/<int:group_id>/expenses", methods=["POST"])
@require_auth
def create_expense(group_id: int):
    """POST /groups/:id/expenses — Record a new expense; splits are validated first."""
    data = CreateExpenseSchema().load(request.get_json(force=True) or {})
    expense = expense_service.create_expense(
        group_id=group_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 201


@expenses_bp.route("/groups/<int:group_id>/expenses", methods=["GET"])
@require_auth
def list_expenses(group_id: int):
    expenses = expense_service.list_expenses(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({
        "data": [_serialize_expense(e) for e in expenses],
        "warnings": [],
    }), 200


# ── Expense-ID routes ──────────────────────────────────────────────────────

@expenses_bp.route("/expenses/<int:expense_id>", methods=["GET"])
@require_auth
def get_expense(expense_id: int):
    expense = expense_service.get_expense(
        expense_id=expense_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 200


@expenses_bp.route("/expenses/<int:expense_id>", methods=["PATCH"])
@require_auth
def edit_expense(expense_id: int):
    """
    PATCH /expenses/:id — Partial update. Payer, creator or group owner only.
    Split-relevant changes are re-validated together.
    """
    data = PatchExpenseSchema().load(request.get_json(force=True) or {})
    expense = expense_service.edit_expense(
        expense_id=expense_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 200


@expenses_bp.route("/expenses/<int:expense_id>", methods=["DELETE"])
@require_auth
def delete_expense(expense_id: int):
    """DELETE /expenses/:id — Soft-delete. The expense stops counting toward balances."""
    expense_service.delete_expense(
        expense_id=expense_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({
        "data": {
            "deleted": True,
            "expense_id": expense_id,
        },
        "warnings": [],
    }), 200
