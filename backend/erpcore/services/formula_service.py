# Overview: Service-layer operations for concrete formulas; encapsulates business logic and database work.

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Formula, FormulaComponent, InventoryTransaction, ProductUom
from ..models.inventory import DIRECTION_OUT
from ..validation import ConflictError, NotFoundError, ValidationError, QTY_QUANT, parse_id, parse_quantity
from .branch_service import require_branch
from .catalog_service import require_product
from .concurrency import run_with_retry
from .inventory_service import adjust_inventory


def get_formula(formula_id: int) -> Formula:
    formula = db.session.query(Formula).filter_by(id=formula_id).first()
    if formula is None:
        raise NotFoundError(f"Formula {formula_id} not found", details={"formula_id": formula_id})
    return formula


def list_formulas(branch_id: int, include_inactive: bool = False) -> list[Formula]:
    q = db.session.query(Formula).filter_by(branch_id=branch_id)
    if not include_inactive:
        q = q.filter_by(is_active=True)
    return q.order_by(Formula.name.asc()).all()


def create_formula(branch_id: int, name: str, components, *, description: str | None = None) -> Formula:
    """components: [{product_id, qty_base_per_m3}], quantities in each product's base unit."""
    if not name or not name.strip():
        raise ValidationError("Formula name is required")
    if not isinstance(components, (list, tuple)) or not components:
        raise ValidationError("components must be a non-empty list")

    parsed = []
    seen = set()
    for index, raw in enumerate(components):
        if not isinstance(raw, dict):
            raise ValidationError(f"components[{index}] must be an object")
        product_id = parse_id(raw.get("product_id"), f"components[{index}].product_id")
        if product_id in seen:
            raise ValidationError(f"Product {product_id} appears twice in the formula")
        seen.add(product_id)
        qty = parse_quantity(raw.get("qty_base_per_m3"), f"components[{index}].qty_base_per_m3")
        parsed.append((product_id, qty))

    def _op():
        require_branch(branch_id)
        formula = Formula(branch_id=branch_id, name=name.strip(), description=description)
        for product_id, qty in parsed:
            require_product(product_id, branch_id=branch_id, require_active=True)
            formula.components.append(FormulaComponent(product_id=product_id, qty_base_per_m3=qty))
        db.session.add(formula)
        try:
            db.session.flush()
        except IntegrityError:
            raise ConflictError(f"Formula {name!r} already exists in branch {branch_id}")
        db.session.commit()
        return formula

    return run_with_retry(_op)


def build_formula_items(formula_id: int, volume_m3) -> list[dict]:
    """Ledger line items (base unit mapping of each component) for volume_m3."""
    volume = parse_quantity(volume_m3, "volume_m3")
    formula = get_formula(formula_id)
    if not formula.is_active:
        raise ValidationError(f"Formula {formula_id} is inactive")

    items = []
    for component in formula.components:
        product = require_product(component.product_id)
        base_mapping = (
            db.session.query(ProductUom)
            .filter_by(product_id=product.id, uom_id=product.base_uom_id)
            .first()
        )
        if base_mapping is None:
            raise NotFoundError(f"Product {product.id} has no base unit mapping")
        qty = (Decimal(component.qty_base_per_m3) * volume).quantize(QTY_QUANT, rounding=ROUND_HALF_UP)
        items.append({
            "product_id": product.id,
            "product_uom_id": base_mapping.id,
            "qty": qty,
        })
    return items


def consume_formula(
    branch_id: int,
    formula_id: int,
    volume_m3,
    *,
    actor_id,
    reference: str | None = None,
) -> InventoryTransaction:
    """Batch volume_m3 of a formula: one ADJUST/OUT with a line per component."""
    formula = get_formula(formula_id)
    if formula.branch_id != branch_id:
        raise NotFoundError(f"Formula {formula_id} not found in branch {branch_id}")
    items = build_formula_items(formula_id, volume_m3)
    return adjust_inventory(
        branch_id,
        items,
        direction=DIRECTION_OUT,
        actor_id=actor_id,
        reference=reference,
        notes=f"Formula {formula.name} x {volume_m3} m3",
    )
