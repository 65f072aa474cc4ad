# Overview: Flask API routes for units and products; parses input and returns JSON responses.

# backend/erpcore/routes/catalog.py
"""
Catalog routes: units of measure, products, unit mappings, defaults and prices.

Mutating routes require the X-Actor-Id header.
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import catalog_service
from ..validation import CoreError, ValidationError, parse_cents, parse_id, enforce_rules_product, to_decimal
from ..decorators import require_actor


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


def _bool_arg(name: str, default: bool) -> bool:
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes")


@catalog_bp.get("/uoms")
def list_uoms_route():
    return jsonify({"uoms": [u.to_dict() for u in catalog_service.list_uoms()]}), 200


@catalog_bp.post("/uoms")
@require_actor
def create_uom_route():
    try:
        data = request.get_json(silent=True) or {}
        uom = catalog_service.create_uom(data.get("code"), data.get("name"))
        return jsonify({"uom": uom.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create unit")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/categories")
def list_categories_route():
    return jsonify({"categories": [c.to_dict() for c in catalog_service.list_categories()]}), 200


@catalog_bp.post("/categories")
@require_actor
def create_category_route():
    try:
        data = request.get_json(silent=True) or {}
        category = catalog_service.create_category(data.get("name"))
        return jsonify({"category": category.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/brands")
def list_brands_route():
    return jsonify({"brands": [b.to_dict() for b in catalog_service.list_brands()]}), 200


@catalog_bp.post("/brands")
@require_actor
def create_brand_route():
    try:
        data = request.get_json(silent=True) or {}
        brand = catalog_service.create_brand(data.get("name"))
        return jsonify({"brand": brand.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create brand")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/products")
def list_products_route():
    try:
        branch_id = parse_id(request.args.get("branch_id"), "branch_id")
        products = catalog_service.list_products_by_branch(
            branch_id, include_inactive=_bool_arg("include_inactive", True)
        )
        return jsonify({"products": [p.to_dict() for p in products]}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status


@catalog_bp.get("/products/by-barcode")
def find_by_barcode_route():
    try:
        branch_id = parse_id(request.args.get("branch_id"), "branch_id")
        product = catalog_service.find_product_by_barcode(branch_id, request.args.get("barcode") or "")
        if product is None:
            return jsonify({"error": "Product not found", "code": "NOT_FOUND", "details": {}}), 404
        return jsonify({"product": product.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status


@catalog_bp.post("/products")
@require_actor
def create_product_route():
    """
    Create a product with its base, purchase and sale units.

    Body: branch_id, barcode, name, base_uom_id, [sku, description,
    is_divisible, *_price_cents, min_stock, category_id, brand_id,
    purchase_uom {uom_id, factor_to_base},
    sale_uoms [{uom_id, factor_to_base, is_default_sale}]]
    """
    try:
        data = request.get_json(silent=True) or {}
        prices = {
            key: parse_cents(data.get(key, 0), key)
            for key in ("purchase_price_cents", "wholesale_price_cents", "retail_price_cents")
        }
        min_stock = to_decimal(data.get("min_stock", 0), "min_stock")
        enforce_rules_product({"min_stock": min_stock})

        sale_uoms = data.get("sale_uoms") or []
        if not isinstance(sale_uoms, list):
            raise ValidationError("sale_uoms must be a list")

        product = catalog_service.create_product(
            branch_id=parse_id(data.get("branch_id"), "branch_id"),
            barcode=data.get("barcode"),
            name=data.get("name"),
            base_uom_id=parse_id(data.get("base_uom_id"), "base_uom_id"),
            sku=data.get("sku"),
            description=data.get("description"),
            is_divisible=bool(data.get("is_divisible", False)),
            min_stock=min_stock,
            category_id=parse_id(data["category_id"], "category_id") if data.get("category_id") is not None else None,
            brand_id=parse_id(data["brand_id"], "brand_id") if data.get("brand_id") is not None else None,
            purchase_uom=data.get("purchase_uom"),
            sale_uoms=sale_uoms,
            **prices,
        )
        return jsonify({
            "product": product.to_dict(),
            "uoms": [m.to_dict() for m in catalog_service.list_product_uoms(product.id)],
        }), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/products/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = catalog_service.require_product(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status


@catalog_bp.patch("/products/<int:product_id>")
@require_actor
def update_product_route(product_id: int):
    """Partial update; purchase_uom / sale_uoms use the create shape."""
    try:
        data = request.get_json(silent=True) or {}
        product = catalog_service.update_product(product_id, data)
        return jsonify({
            "product": product.to_dict(),
            "uoms": [m.to_dict() for m in catalog_service.list_product_uoms(product.id)],
        }), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/products/<int:product_id>/uoms")
def list_product_uoms_route(product_id: int):
    """?purpose=PURCHASE|SALE narrows the list to units usable for that purpose."""
    try:
        catalog_service.require_product(product_id)
        purpose = (request.args.get("purpose") or "").upper()
        if purpose == "PURCHASE":
            mappings = catalog_service.list_purchase_uoms(product_id)
        elif purpose == "SALE":
            mappings = catalog_service.list_sale_uoms(product_id)
        elif purpose:
            raise ValidationError("purpose must be PURCHASE or SALE")
        else:
            mappings = catalog_service.list_product_uoms(product_id)
        return jsonify({"uoms": [m.to_dict() for m in mappings]}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status


@catalog_bp.post("/products/<int:product_id>/uoms")
@require_actor
def add_product_uom_route(product_id: int):
    try:
        data = request.get_json(silent=True) or {}
        mapping = catalog_service.add_product_uom(
            product_id,
            parse_id(data.get("uom_id"), "uom_id"),
            data.get("factor_to_base"),
            data.get("purpose"),
        )
        return jsonify({"uom": mapping.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to add product unit")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.patch("/products/<int:product_id>/uoms/<int:product_uom_id>")
@require_actor
def update_product_uom_route(product_id: int, product_uom_id: int):
    try:
        data = request.get_json(silent=True) or {}
        mapping = catalog_service.update_product_uom_factor(product_id, product_uom_id, data.get("factor_to_base"))
        return jsonify({"uom": mapping.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update product unit")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.put("/products/<int:product_id>/defaults")
@require_actor
def set_defaults_route(product_id: int):
    """Body: {sale_uom_id?, purchase_uom_id?} (product_uom ids)."""
    try:
        data = request.get_json(silent=True) or {}
        if data.get("sale_uom_id") is None and data.get("purchase_uom_id") is None:
            raise ValidationError("sale_uom_id or purchase_uom_id is required")

        if data.get("sale_uom_id") is not None:
            catalog_service.set_default_sale_uom(product_id, parse_id(data["sale_uom_id"], "sale_uom_id"))
        if data.get("purchase_uom_id") is not None:
            catalog_service.set_default_purchase_uom(product_id, parse_id(data["purchase_uom_id"], "purchase_uom_id"))

        sale = catalog_service.default_sale_uom(product_id)
        purchase = catalog_service.default_purchase_uom(product_id)
        return jsonify({
            "default_sale_uom": sale.to_dict() if sale else None,
            "default_purchase_uom": purchase.to_dict() if purchase else None,
        }), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to set default units")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.patch("/products/<int:product_id>/prices")
@require_actor
def update_prices_route(product_id: int):
    try:
        data = request.get_json(silent=True) or {}
        prices = {
            key: parse_cents(data[key], key)
            for key in ("purchase_price_cents", "wholesale_price_cents", "retail_price_cents")
            if data.get(key) is not None
        }
        if not prices:
            raise ValidationError("No prices provided")
        product = catalog_service.update_product_prices(product_id, **prices)
        return jsonify({"product": product.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update prices")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.delete("/products/<int:product_id>")
@require_actor
def delete_product_route(product_id: int):
    """Deletes unused products; products with history are deactivated instead."""
    try:
        outcome = catalog_service.delete_product(product_id)
        return jsonify({"product_id": product_id, "result": outcome}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/products/<int:product_id>/convert")
def convert_route(product_id: int):
    try:
        qty = catalog_service.convert_qty(
            product_id,
            request.args.get("qty"),
            parse_id(request.args.get("from_uom_id"), "from_uom_id"),
            parse_id(request.args.get("to_uom_id"), "to_uom_id"),
        )
        return jsonify({"qty": str(qty)}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status


@catalog_bp.get("/products/<int:product_id>/price")
def price_route(product_id: int):
    try:
        cents = catalog_service.price_for_uom(
            product_id,
            parse_id(request.args.get("product_uom_id"), "product_uom_id"),
            (request.args.get("tier") or catalog_service.PRICE_TIER_RETAIL).upper(),
        )
        return jsonify({"unit_price_cents": cents}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
