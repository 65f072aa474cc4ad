# Overview: Flask API routes for checkout; parses input and returns JSON responses.

# backend/erpcore/routes/checkout.py
"""
Checkout routes.

POST /credit answers 409 CREDIT_BLOCKED with the full decision when the
customer may not buy on credit; details.decision.allow_cash tells the
cashier whether to fall back to POST /cash.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import checkout_service
from ..validation import CoreError, ValidationError, parse_date, parse_id
from ..decorators import require_actor


checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")


@checkout_bp.post("/cash")
@require_actor
def cash_sale_route():
    try:
        data = request.get_json(silent=True) or {}
        tx = checkout_service.record_cash_sale(
            parse_id(data.get("branch_id"), "branch_id"),
            data.get("items"),
            actor_id=g.actor_id,
            customer_name=data.get("customer_name"),
            reference=data.get("reference"),
            notes=data.get("notes"),
        )
        return jsonify({"transaction": tx.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record cash sale")
        return jsonify({"error": "Internal server error"}), 500


@checkout_bp.post("/credit")
@require_actor
def credit_sale_route():
    """Body: {customer_id, items, credit_days?, reference?, notes?}."""
    try:
        data = request.get_json(silent=True) or {}
        credit_days = data.get("credit_days")
        if credit_days is not None and (isinstance(credit_days, bool) or not isinstance(credit_days, int)):
            raise ValidationError("credit_days must be an integer")

        tx, note = checkout_service.record_credit_sale(
            parse_id(data.get("customer_id"), "customer_id"),
            data.get("items"),
            actor_id=g.actor_id,
            credit_days=credit_days,
            reference=data.get("reference"),
            notes=data.get("notes"),
            today=parse_date(data.get("today"), "today"),
        )
        return jsonify({"transaction": tx.to_dict(), "note": note.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record credit sale")
        return jsonify({"error": "Internal server error"}), 500
