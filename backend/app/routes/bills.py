"""
routes/bills.py — Bill and payment route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Bill-level rules (totals, shares, split checks) live in
services/bill_builder.py; settlement rules in services/settlement_processor.py.
The config values they depend on (AMOUNT_QUANTUM, ALLOW_ZERO_PRICE_ITEMS,
REQUIRE_PAYMENT_PASSWORD) are read here and passed in as arguments.

Endpoints (url_prefix=/api/v1/bills):
  POST   /bills                                  → 201  build + persist a bill
  POST   /bills/preview                          → 200  build without persisting
  GET    /bills                                  → 200  bills created by / shared with the caller
  GET    /bills/:id                              → 200  bill detail
  POST   /bills/:id/pay                          → 200  pay own share from balance
  POST   /bills/:id/participants/:index/pay      → 200  creator marks external participant paid
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.models.bill import Bill
from backend.app.schemas.bill_schema import CreateBillSchema, PayBillSchema
from backend.app.services import bill_service, payment_service
from backend.app.services.bill_builder import ComputedBill, RegisteredRef

bills_bp = Blueprint("bills", __name__)


# ── Serialization helpers ──────────────────────────────────────────────────

def _serialize_bill(bill: Bill) -> dict:
    """Converts a Bill ORM object (with items and participants) to a plain dict."""
    return {
        "id": bill.id,
        "bill_name": bill.bill_name,
        "split_method": bill.split_method.value,
        "total_amount": str(bill.total_amount),  # Decimal → string, never a JS number
        "currency": current_app.config["CURRENCY_CODE"],
        "created_by_user_id": bill.created_by_user_id,
        "created_at": bill.created_at.isoformat() if bill.created_at else None,
        "updated_at": bill.updated_at.isoformat() if bill.updated_at else None,
        "items": [
            {
                "name": item.name,
                "price_per_unit": str(item.price_per_unit),
                "quantity": item.quantity,
                "line_total": str(item.line_total),
                "split": [
                    {
                        "participant_index": s.participant.position,
                        "participant_name": s.participant.external_name,
                        "quantity": s.quantity,
                    }
                    for s in item.splits
                ],
            }
            for item in bill.items
        ],
        "participants": [
            {
                "index": p.position,
                "user_id": p.user_id,
                "registered": p.is_registered,
                "external_name": p.external_name,
                "amount_due": str(p.amount_due),
                "status": p.status.value,
                "paid_at": p.paid_at.isoformat() if p.paid_at else None,
            }
            for p in bill.participants
        ],
    }


def _serialize_preview(computed: ComputedBill) -> dict:
    """Same shape as _serialize_bill, minus everything that only exists once stored."""
    names = [p.display_name for p in computed.participants]
    return {
        "bill_name": computed.name,
        "split_method": computed.split_method.value,
        "total_amount": str(computed.total_amount),
        "currency": current_app.config["CURRENCY_CODE"],
        "items": [
            {
                "name": item.name,
                "price_per_unit": str(item.price_per_unit),
                "quantity": item.quantity,
                "line_total": str(item.line_total),
                "split": [
                    {
                        "participant_index": s.participant_index,
                        "participant_name": names[s.participant_index],
                        "quantity": s.quantity,
                    }
                    for s in item.splits
                ],
            }
            for item in computed.items
        ],
        "participants": [
            {
                "index": index,
                "user_id": p.ref.user_id if isinstance(p.ref, RegisteredRef) else None,
                "registered": p.ref.is_registered,
                "external_name": p.display_name,
                "amount_due": str(p.amount_due),
                "status": p.status.value,
            }
            for index, p in enumerate(computed.participants)
        ],
    }


def _builder_options() -> dict:
    return {
        "quantum": current_app.config["AMOUNT_QUANTUM"],
        "allow_zero_price": current_app.config["ALLOW_ZERO_PRICE_ITEMS"],
    }


# ── Route handlers ─────────────────────────────────────────────────────────

@bills_bp.route("", methods=["POST"])
@require_auth
def create_bill():
    """POST /bills — Build and persist a bill. total_amount and amount_due are derived."""
    data = CreateBillSchema().load(request.get_json(force=True) or {})
    bill = bill_service.create_bill(
        caller_id=g.user_id,
        data=data,
        session=db.session,
        **_builder_options(),
    )
    db.session.commit()
    current_app.logger.info(
        "bill created id=%s by user=%s total=%s participants=%d",
        bill.id, g.user_id, bill.total_amount, len(bill.participants),
    )
    return jsonify({"data": _serialize_bill(bill), "warnings": []}), 201


@bills_bp.route("/preview", methods=["POST"])
@require_auth
def preview_bill():
    """POST /bills/preview — Compute the amounts due without saving anything."""
    data = CreateBillSchema().load(request.get_json(force=True) or {})
    computed = bill_service.preview_bill(
        caller_id=g.user_id,
        data=data,
        session=db.session,
        **_builder_options(),
    )
    return jsonify({"data": _serialize_preview(computed), "warnings": []}), 200


@bills_bp.route("", methods=["GET"])
@require_auth
def list_bills():
    """GET /bills — Bills the caller created or participates in, newest first."""
    bills = bill_service.list_bills(caller_id=g.user_id, session=db.session)
    return jsonify({
        "data": [_serialize_bill(b) for b in bills],
        "warnings": [],
    }), 200


@bills_bp.route("/<int:bill_id>", methods=["GET"])
@require_auth
def get_bill(bill_id: int):
    """GET /bills/:id — Creator or registered participant only (403 otherwise)."""
    bill = bill_service.get_bill(bill_id=bill_id, caller_id=g.user_id, session=db.session)
    return jsonify({"data": _serialize_bill(bill), "warnings": []}), 200


@bills_bp.route("/<int:bill_id>/pay", methods=["POST"])
@require_auth
def pay_bill(bill_id: int):
    """POST /bills/:id/pay — Pay the caller's own share from their balance."""
    data = PayBillSchema().load(request.get_json(silent=True) or {})
    result = payment_service.pay_own_share(
        bill_id=bill_id,
        caller_id=g.user_id,
        password=data["password"],
        session=db.session,
        require_password=current_app.config["REQUIRE_PAYMENT_PASSWORD"],
    )
    db.session.commit()
    current_app.logger.info(
        "self-pay bill=%s user=%s amount=%s",
        bill_id, g.user_id, result["amount_paid"],
    )
    return jsonify({"data": result, "warnings": []}), 200


@bills_bp.route("/<int:bill_id>/participants/<int:participant_index>/pay", methods=["POST"])
@require_auth
def mark_participant_paid(bill_id: int, participant_index: int):
    """POST /bills/:id/participants/:index/pay — Creator marks an external participant paid."""
    result = payment_service.mark_participant_paid(
        bill_id=bill_id,
        participant_index=participant_index,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    current_app.logger.info(
        "proxy-pay bill=%s participant=%s by user=%s amount=%s",
        bill_id, participant_index, g.user_id, result["amount_paid"],
    )
    return jsonify({"data": result, "warnings": []}), 200
