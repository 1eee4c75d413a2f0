"""
routes/settlements.py — Settlement route handlers.

Registered at url_prefix=/api/v1: owns both /groups/:id/settlements and
/settlements/:id.

Special: create_settlement returns (Settlement, warnings[]).
  OVERPAYMENT warnings go into the response envelope; the status is still
  201 because overpayment does not block the request.

Endpoints:
  POST   /groups/:id/settlements  → 201  record a payment
  GET    /groups/:id/settlements  → 200  list active settlements
  PATCH  /settlements/:id         → 200  edit amount/currency/note/date
  DELETE /settlements/:id         → 200  soft-delete
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from billsplit.app.currency import format_amount
from billsplit.app.extensions import db
from billsplit.app.middleware.auth_middleware import require_auth
from billsplit.app.models.settlement import Settlement
from billsplit.app.schemas.settlement_schema import (
    CreateSettlementSchema,
    PatchSettlementSchema,
)
from billsplit.app.services import settlement_service

settlements_bp = Blueprint("settlements", __name__)


def _isoformat(value):
    return value.isoformat() if value else None


def _serialize_settlement(s: Settlement) -> dict:
    return {
        "id": s.id,
        "group_id": s.group_id,
        "created_by": s.created_by,
        "payer_id": s.payer_id,
        "payee_id": s.payee_id,
        "amount": format_amount(s.amount, s.currency),
        "currency": s.currency,
        "note": s.note,
        "date": _isoformat(s.date),
        "created_at": _isoformat(s.created_at),
        "updated_at": _isoformat(s.updated_at),
        "deleted_at": _isoformat(s.deleted_at),
        "deleted_by": s.deleted_by,
    }


@settlements_bp.route("/groups/<int:group_id>/settlements", methods=["POST"])
@require_auth
def create_settlement(group_id: int):
    """
    POST /groups/:id/settlements — Record a payment between two members.

    payer_id defaults to the caller. An OVERPAYMENT warning is returned when
    the amount exceeds the payer's current debt to the payee.
    """
    data = CreateSettlementSchema().load(request.get_json(force=True) or {})
    settlement, warnings = settlement_service.create_settlement(
        group_id=group_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_settlement(settlement), "warnings": warnings}), 201


@settlements_bp.route("/groups/<int:group_id>/settlements", methods=["GET"])
@require_auth
def list_settlements(group_id: int):
    settlements = settlement_service.list_settlements(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({
        "data": [_serialize_settlement(s) for s in settlements],
        "warnings": [],
    }), 200


@settlements_bp.route("/settlements/<int:settlement_id>", methods=["PATCH"])
@require_auth
def edit_settlement(settlement_id: int):
    data = PatchSettlementSchema().load(request.get_json(force=True) or {})
    settlement = settlement_service.edit_settlement(
        settlement_id=settlement_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_settlement(settlement), "warnings": []}), 200


@settlements_bp.route("/settlements/<int:settlement_id>", methods=["DELETE"])
@require_auth
def delete_settlement(settlement_id: int):
    settlement_service.delete_settlement(
        settlement_id=settlement_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({
        "data": {
            "deleted": True,
            "settlement_id": settlement_id,
        },
        "warnings": [],
    }), 200
