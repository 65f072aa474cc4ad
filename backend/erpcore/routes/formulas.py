# Overview: Flask API routes for concrete formulas; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import formula_service
from ..validation import CoreError, parse_id
from ..decorators import require_actor


formulas_bp = Blueprint("formulas", __name__, url_prefix="/api/formulas")


@formulas_bp.get("/")
def list_formulas_route():
    try:
        branch_id = parse_id(request.args.get("branch_id"), "branch_id")
        formulas = formula_service.list_formulas(branch_id)
        return jsonify({"formulas": [f.to_dict() for f in formulas]}), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status


@formulas_bp.post("/")
@require_actor
def create_formula_route():
    """Body: {branch_id, name, description?, components: [{product_id, qty_base_per_m3}]}."""
    try:
        data = request.get_json(silent=True) or {}
        formula = formula_service.create_formula(
            parse_id(data.get("branch_id"), "branch_id"),
            data.get("name"),
            data.get("components"),
            description=data.get("description"),
        )
        return jsonify({"formula": formula.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create formula")
        return jsonify({"error": "Internal server error"}), 500


@formulas_bp.post("/<int:formula_id>/consume")
@require_actor
def consume_formula_route(formula_id: int):
    """Body: {branch_id, volume_m3, reference?}. Posts one ADJUST/OUT."""
    try:
        data = request.get_json(silent=True) or {}
        tx = formula_service.consume_formula(
            parse_id(data.get("branch_id"), "branch_id"),
            formula_id,
            data.get("volume_m3"),
            actor_id=g.actor_id,
            reference=data.get("reference"),
        )
        return jsonify({"transaction": tx.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to consume formula")
        return jsonify({"error": "Internal server error"}), 500
