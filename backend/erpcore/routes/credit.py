# Overview: Flask API routes for customer credit; parses input and returns JSON responses.

# backend/erpcore/routes/credit.py
"""
Credit routes: customers, notes, evaluation and payments.

POST /payments applies each row independently and answers 200 with
{"applied": [...], "rejected": [...]} even when some rows are rejected.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import credit_service
from ..validation import CoreError, parse_date, parse_id
from ..decorators import require_actor


credit_bp = Blueprint("credit", __name__, url_prefix="/api/credit")


@credit_bp.get("/customers")
def list_customers_route():
    try:
        branch_id = parse_id(request.args.get("branch_id"), "branch_id")
        include_inactive = request.args.get("include_inactive") in ("1", "true", "yes")
        customers = credit_service.list_customers_by_branch(branch_id, include_inactive=include_inactive)
        return jsonify({"customers": [c.to_dict() for c in customers]}), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status


@credit_bp.post("/customers")
@require_actor
def create_customer_route():
    try:
        data = dict(request.get_json(silent=True) or {})
        branch_id = parse_id(data.pop("branch_id", None), "branch_id")
        customer = credit_service.create_customer(branch_id, data)
        return jsonify({"customer": customer.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create credit customer")
        return jsonify({"error": "Internal server error"}), 500


@credit_bp.patch("/customers/<int:customer_id>")
@require_actor
def update_customer_route(customer_id: int):
    try:
        customer = credit_service.update_customer(customer_id, request.get_json(silent=True) or {})
        return jsonify({"customer": customer.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update credit customer")
        return jsonify({"error": "Internal server error"}), 500


@credit_bp.get("/customers/<int:customer_id>/summary")
def customer_summary_route(customer_id: int):
    try:
        today = parse_date(request.args.get("today"), "today")
        return jsonify(credit_service.get_customer_summary(customer_id, today=today)), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status


@credit_bp.get("/customers/<int:customer_id>/notes")
def list_notes_route(customer_id: int):
    """?open=1 returns only notes with balance > 0, oldest due first."""
    try:
        credit_service.require_customer(customer_id)
        if request.args.get("open") in ("1", "true", "yes"):
            notes = credit_service.get_open_notes(customer_id)
        else:
            notes = credit_service.list_notes_by_customer(customer_id)
        return jsonify({"notes": [n.to_dict() for n in notes]}), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status


@credit_bp.get("/notes/<int:note_id>/payments")
def list_note_payments_route(note_id: int):
    try:
        payments = credit_service.list_note_payments(note_id)
        return jsonify({"payments": [p.to_dict() for p in payments]}), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status


@credit_bp.post("/evaluate")
def evaluate_route():
    """Body: {customer_id, sale_total_cents, today?}. Read-only."""
    try:
        data = request.get_json(silent=True) or {}
        decision = credit_service.evaluate(
            parse_id(data.get("customer_id"), "customer_id"),
            data.get("sale_total_cents"),
            today=parse_date(data.get("today"), "today"),
        )
        return jsonify({"decision": decision.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to evaluate credit")
        return jsonify({"error": "Internal server error"}), 500


@credit_bp.post("/payments")
@require_actor
def apply_payments_route():
    """Body: {payments: [{note_id, amount_cents, method, reference?, notes?}]}."""
    try:
        data = request.get_json(silent=True) or {}
        result = credit_service.apply_payments(data.get("payments"), actor_id=g.actor_id)
        return jsonify(result.to_dict()), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to apply credit payments")
        return jsonify({"error": "Internal server error"}), 500
