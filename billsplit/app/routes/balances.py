"""
routes/balances.py — Balance route handler.

Endpoint (url_prefix=/api/v1/groups):
  GET /groups/:id/balances  → 200  per-currency balances, pairwise view,
                                   simplified debts

Membership is enforced inside balance_service.get_balance_response().
A BalanceIntegrityError surfaces as 500 BALANCE_CALCULATION_FAILED with a
generic message; the detail only goes to the server log.
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from billsplit.app.extensions import db
from billsplit.app.middleware.auth_middleware import require_auth
from billsplit.app.services import balance_service

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("/<int:group_id>/balances", methods=["GET"])
@require_auth
def get_balances(group_id: int):
    result = balance_service.get_balance_response(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
