# Overview: Flask API routes for the inventory ledger; parses input and returns JSON responses.

# backend/erpcore/routes/inventory.py
"""
Inventory ledger routes.

Postings (purchases, sales, adjustments, transfers) require X-Actor-Id.
Stock reads come straight from the database, never from a cache.

Body shape for postings:
    {"branch_id": 1, "items": [{"product_id", "product_uom_id", "qty",
     "unit_price_cents"?, "barcode_scanned"?}], "reference"?, "notes"?}
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..services import inventory_service
from ..validation import CoreError, parse_id
from ..decorators import require_actor


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _stock_dict(branch_id: int, product_id: int) -> dict:
    qty = inventory_service.get_stock_balance(branch_id, product_id)
    return {"branch_id": branch_id, "product_id": product_id, "qty_base": str(qty)}


def _posting_response(tx):
    return jsonify({
        "transaction": tx.to_dict(),
        "stock": [_stock_dict(tx.branch_id, pid) for pid in sorted({i.product_id for i in tx.items})],
    }), 201


@inventory_bp.post("/transactions")
@require_actor
def post_transaction_route():
    """Generic posting: type PURCHASE|SALE|ADJUST, direction required for ADJUST."""
    try:
        data = request.get_json(silent=True) or {}
        tx = inventory_service.post_transaction(
            (data.get("type") or "").upper(),
            parse_id(data.get("branch_id"), "branch_id"),
            data.get("items"),
            actor_id=g.actor_id,
            direction=data.get("direction"),
            reference=data.get("reference"),
            notes=data.get("notes"),
            supplier_id=parse_id(data["supplier_id"], "supplier_id") if data.get("supplier_id") is not None else None,
            customer_name=data.get("customer_name"),
        )
        return _posting_response(tx)

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to post inventory transaction")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/purchases")
@require_actor
def post_purchase_route():
    try:
        data = request.get_json(silent=True) or {}
        tx = inventory_service.post_purchase(
            parse_id(data.get("branch_id"), "branch_id"),
            data.get("items"),
            actor_id=g.actor_id,
            supplier_id=parse_id(data["supplier_id"], "supplier_id") if data.get("supplier_id") is not None else None,
            reference=data.get("reference"),
            notes=data.get("notes"),
        )
        return _posting_response(tx)

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to post purchase")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/sales")
@require_actor
def post_sale_route():
    try:
        data = request.get_json(silent=True) or {}
        tx = inventory_service.post_sale(
            parse_id(data.get("branch_id"), "branch_id"),
            data.get("items"),
            actor_id=g.actor_id,
            customer_name=data.get("customer_name"),
            reference=data.get("reference"),
            notes=data.get("notes"),
        )
        return _posting_response(tx)

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to post sale")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/adjustments")
@require_actor
def post_adjustment_route():
    try:
        data = request.get_json(silent=True) or {}
        tx = inventory_service.adjust_inventory(
            parse_id(data.get("branch_id"), "branch_id"),
            data.get("items"),
            direction=(data.get("direction") or "").upper() or None,
            actor_id=g.actor_id,
            reference=data.get("reference"),
            notes=data.get("notes"),
        )
        return _posting_response(tx)

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to post adjustment")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/transfers")
@require_actor
def post_transfer_route():
    """Body: from_branch_id, to_branch_id, items (in source branch products/units)."""
    try:
        data = request.get_json(silent=True) or {}
        out_tx, in_tx = inventory_service.transfer_inventory(
            parse_id(data.get("from_branch_id"), "from_branch_id"),
            parse_id(data.get("to_branch_id"), "to_branch_id"),
            data.get("items"),
            actor_id=g.actor_id,
            reference=data.get("reference"),
            notes=data.get("notes"),
        )
        return jsonify({"out": out_tx.to_dict(), "in": in_tx.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to post transfer")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/transactions")
def list_transactions_route():
    try:
        branch_id = parse_id(request.args.get("branch_id"), "branch_id")
        product_id = request.args.get("product_id")
        limit = min(parse_id(request.args.get("limit", "200"), "limit"), 1000)
        txs = inventory_service.list_transactions(
            branch_id=branch_id,
            tx_type=(request.args.get("type") or "").upper() or None,
            product_id=parse_id(product_id, "product_id") if product_id else None,
            limit=limit,
        )
        return jsonify({"transactions": [t.to_dict() for t in txs]}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status


@inventory_bp.get("/transactions/<int:transaction_id>")
def get_transaction_route(transaction_id: int):
    try:
        tx = inventory_service.get_transaction(transaction_id)
        return jsonify({"transaction": tx.to_dict()}), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status


@inventory_bp.get("/stock/<int:branch_id>/<int:product_id>")
def get_stock_route(branch_id: int, product_id: int):
    return jsonify(_stock_dict(branch_id, product_id)), 200


@inventory_bp.get("/stock/<int:branch_id>")
def list_stock_route(branch_id: int):
    """?low=1 returns only products below their min_stock."""
    if request.args.get("low") in ("1", "true", "yes"):
        return jsonify({"branch_id": branch_id, "low_stock": inventory_service.list_low_stock(branch_id)}), 200
    balances = inventory_service.list_stock_by_branch(branch_id)
    return jsonify({"branch_id": branch_id, "stock": [b.to_dict() for b in balances]}), 200


@inventory_bp.get("/verify/<int:branch_id>")
def verify_stock_route(branch_id: int):
    """Replay the ledger of every product and compare with the stored balances."""
    report = inventory_service.verify_stock_balances(branch_id)
    rows = [
        {k: (str(v) if k.endswith("_qty") else v) for k, v in row.items()}
        for row in report
    ]
    return jsonify({
        "branch_id": branch_id,
        "ok": all(r["ok"] for r in report),
        "products": rows,
    }), 200
