# Overview: Service-layer operations for the product/UOM catalog; encapsulates business logic and database work.

"""
Catalog Service

WHY: Stock is always counted in the product's base unit, but products are
bought in bags/boxes/tonnes and sold in pieces/kg/m3. Every unit other than
the base unit is a ProductUom row carrying factor_to_base.

DESIGN:
- The base unit is materialized as a ProductUom (factor 1, purpose BOTH),
  so resolving a factor is the same lookup for every line item.
- Defaults are single FKs on Product; setting one replaces the previous.
- Products referenced by ledger history are deactivated, never deleted.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    Uom,
    Category,
    Brand,
    Product,
    ProductUom,
    StockBalance,
    InventoryTransactionItem,
    FormulaComponent,
)
from ..models.catalog import UOM_PURPOSES, UOM_PURPOSE_PURCHASE, UOM_PURPOSE_SALE, UOM_PURPOSE_BOTH
from ..validation import (
    CoreError,
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_product,
    parse_id,
    to_decimal,
    validate_payload,
)
from .branch_service import require_branch
from .concurrency import lock_for_update, run_with_retry


class InvalidPurposeError(CoreError):
    """Raised when a unit mapping is used for a purpose it does not allow."""
    code = "INVALID_PURPOSE"


PRICE_TIER_PURCHASE = "PURCHASE"
PRICE_TIER_WHOLESALE = "WHOLESALE"
PRICE_TIER_RETAIL = "RETAIL"

_PRICE_TIER_FIELDS = {
    PRICE_TIER_PURCHASE: "purchase_price_cents",
    PRICE_TIER_WHOLESALE: "wholesale_price_cents",
    PRICE_TIER_RETAIL: "retail_price_cents",
}

# base_uom_id and branch_id are not editable: posted quantities are in that base unit
PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku",
        "barcode",
        "name",
        "description",
        "is_divisible",
        "category_id",
        "brand_id",
        "purchase_price_cents",
        "wholesale_price_cents",
        "retail_price_cents",
        "min_stock",
        "is_active",
    },
    required_on_create={"barcode", "name"},
)


def to_cents(value: Decimal) -> int:
    """Nearest-cent rounding (half-up)."""
    return int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# =============================================================================
# UNITS
# =============================================================================

def list_uoms() -> list[Uom]:
    return db.session.query(Uom).order_by(Uom.name.asc()).all()


def create_uom(code: str, name: str) -> Uom:
    def _op():
        if not code or not code.strip():
            raise ValidationError("Unit code is required")
        if not name or not name.strip():
            raise ValidationError("Unit name is required")
        if db.session.query(Uom).filter_by(code=code.strip()).first():
            raise ConflictError(f"Unit code {code!r} already exists")

        uom = Uom(code=code.strip(), name=name.strip())
        db.session.add(uom)
        db.session.commit()
        return uom

    return run_with_retry(_op)


def _require_uom(uom_id: int) -> Uom:
    uom = db.session.query(Uom).filter_by(id=uom_id).first()
    if uom is None:
        raise NotFoundError(f"Unit {uom_id} not found", details={"uom_id": uom_id})
    return uom


# =============================================================================
# CATEGORIES & BRANDS
# =============================================================================

def _create_named(model, label: str, name: str):
    def _op():
        if not name or not str(name).strip():
            raise ValidationError(f"{label} name is required")
        clean = str(name).strip()
        if len(clean) > 120:
            raise ValidationError(f"{label} name exceeds max length 120")
        if db.session.query(model).filter_by(name=clean).first():
            raise ConflictError(f"{label} {clean!r} already exists", details={"name": clean})

        row = model(name=clean)
        db.session.add(row)
        db.session.commit()
        return row

    return run_with_retry(_op)


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name.asc()).all()


def create_category(name: str) -> Category:
    return _create_named(Category, "Category", name)


def list_brands() -> list[Brand]:
    return db.session.query(Brand).order_by(Brand.name.asc()).all()


def create_brand(name: str) -> Brand:
    return _create_named(Brand, "Brand", name)


def _require_classification(category_id: int | None, brand_id: int | None) -> None:
    if category_id is not None and db.session.get(Category, category_id) is None:
        raise NotFoundError(f"Category {category_id} not found", details={"category_id": category_id})
    if brand_id is not None and db.session.get(Brand, brand_id) is None:
        raise NotFoundError(f"Brand {brand_id} not found", details={"brand_id": brand_id})


# =============================================================================
# PRODUCT READS
# =============================================================================

def get_product(product_id: int) -> Product | None:
    return db.session.query(Product).filter_by(id=product_id).first()


def require_product(
    product_id: int,
    *,
    branch_id: int | None = None,
    require_active: bool = False,
    lock: bool = False,
) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    if branch_id is not None and product.branch_id != branch_id:
        raise ValidationError(
            f"Product {product_id} does not belong to branch {branch_id}",
            details={"product_id": product_id, "branch_id": branch_id},
        )
    if require_active and not product.is_active:
        raise ValidationError(f"Product {product_id} is inactive", details={"product_id": product_id})
    return product


def list_products_by_branch(branch_id: int, include_inactive: bool = True) -> list[Product]:
    q = db.session.query(Product).filter_by(branch_id=branch_id)
    if not include_inactive:
        q = q.filter_by(is_active=True)
    return q.order_by(Product.name.asc()).all()


def find_product_by_barcode(branch_id: int, barcode: str) -> Product | None:
    if not barcode:
        return None
    return (
        db.session.query(Product)
        .filter_by(branch_id=branch_id, barcode=barcode.strip())
        .first()
    )


def list_product_uoms(product_id: int) -> list[ProductUom]:
    return (
        db.session.query(ProductUom)
        .filter_by(product_id=product_id)
        .order_by(ProductUom.id.asc())
        .all()
    )


def list_purchase_uoms(product_id: int) -> list[ProductUom]:
    return [pu for pu in list_product_uoms(product_id) if pu.allows(UOM_PURPOSE_PURCHASE)]


def list_sale_uoms(product_id: int) -> list[ProductUom]:
    return [pu for pu in list_product_uoms(product_id) if pu.allows(UOM_PURPOSE_SALE)]


def resolve_uom(product_id: int, product_uom_id: int) -> ProductUom:
    """
    Return the product's unit mapping; its factor_to_base converts to base.

    Raises NotFoundError when the mapping does not exist or belongs to
    another product.
    """
    mapping = db.session.query(ProductUom).filter_by(id=product_uom_id).first()
    if mapping is None or mapping.product_id != product_id:
        raise NotFoundError(
            f"Unit mapping {product_uom_id} not found for product {product_id}",
            details={"product_id": product_id, "product_uom_id": product_uom_id},
        )
    return mapping


def _default_for(product_id: int, purpose: str) -> ProductUom | None:
    product = require_product(product_id)
    default_id = (
        product.default_sale_uom_id if purpose == UOM_PURPOSE_SALE else product.default_purchase_uom_id
    )
    if default_id is not None:
        return resolve_uom(product_id, default_id)

    candidates = [pu for pu in list_product_uoms(product_id) if pu.allows(purpose)]
    if len(candidates) == 1:
        return candidates[0]
    # Several candidates and none designated: the caller has to choose
    return None


def default_sale_uom(product_id: int) -> ProductUom | None:
    return _default_for(product_id, UOM_PURPOSE_SALE)


def default_purchase_uom(product_id: int) -> ProductUom | None:
    return _default_for(product_id, UOM_PURPOSE_PURCHASE)


# =============================================================================
# PRODUCT WRITES
# =============================================================================

def _parse_factor(value, field: str = "factor_to_base") -> Decimal:
    factor = to_decimal(value, field)
    if factor <= 0:
        raise ValidationError(f"{field} must be > 0")
    return factor


def _build_uom_rows(
    base_uom_id: int,
    purchase_uom: dict | None,
    sale_uoms: list[dict],
) -> tuple[list[dict], int | None, int | None]:
    """
    Merge the base unit, the purchase unit and the sale units into one row per unit.

    Returns (rows, default_purchase_uom_id, default_sale_uom_id) where the
    defaults are expressed as uom ids, resolved to mapping ids after insert.
    A unit listed both as purchase and sale unit becomes purpose BOTH.
    """
    rows: dict[int, dict] = {
        base_uom_id: {"uom_id": base_uom_id, "purpose": UOM_PURPOSE_BOTH, "factor_to_base": Decimal("1")},
    }

    default_purchase = base_uom_id
    if purchase_uom:
        if not isinstance(purchase_uom, dict):
            raise ValidationError("purchase_uom must be an object")
        if purchase_uom.get("uom_id") is None:
            raise ValidationError("purchase_uom.uom_id is required")
        uom_id = parse_id(purchase_uom["uom_id"], "purchase_uom.uom_id")
        if uom_id != base_uom_id:
            rows[uom_id] = {
                "uom_id": uom_id,
                "purpose": UOM_PURPOSE_PURCHASE,
                "factor_to_base": _parse_factor(purchase_uom.get("factor_to_base"), "purchase_uom.factor_to_base"),
            }
        default_purchase = uom_id

    default_sale = None
    if not isinstance(sale_uoms, list):
        raise ValidationError("sale_uoms must be a list")
    for index, entry in enumerate(sale_uoms):
        if not isinstance(entry, dict):
            raise ValidationError(f"sale_uoms[{index}] must be an object")
        if entry.get("uom_id") is None:
            raise ValidationError(f"sale_uoms[{index}].uom_id is required")
        uom_id = parse_id(entry["uom_id"], f"sale_uoms[{index}].uom_id")
        if entry.get("is_default_sale"):
            if default_sale is not None and default_sale != uom_id:
                raise ValidationError("Only one sale unit can be the default")
            default_sale = uom_id

        if uom_id == base_uom_id:
            continue
        existing = rows.get(uom_id)
        if existing is not None:
            if existing["purpose"] == UOM_PURPOSE_PURCHASE:
                existing["purpose"] = UOM_PURPOSE_BOTH
            continue
        rows[uom_id] = {
            "uom_id": uom_id,
            "purpose": UOM_PURPOSE_SALE,
            "factor_to_base": _parse_factor(entry.get("factor_to_base"), f"sale_uoms[{index}].factor_to_base"),
        }

    return list(rows.values()), default_purchase, default_sale


def create_product(
    *,
    branch_id: int,
    barcode: str,
    name: str,
    base_uom_id: int,
    sku: str | None = None,
    description: str | None = None,
    is_divisible: bool = False,
    purchase_price_cents: int = 0,
    wholesale_price_cents: int = 0,
    retail_price_cents: int = 0,
    min_stock=0,
    category_id: int | None = None,
    brand_id: int | None = None,
    purchase_uom: dict | None = None,
    sale_uoms: list[dict] | None = None,
) -> Product:
    """
    Create a product with its unit mappings and an empty stock row.

    All of it is one unit of work: a failure leaves no half-built product.
    """
    def _op():
        require_branch(branch_id)
        _require_uom(base_uom_id)
        _require_classification(category_id, brand_id)
        if not barcode or not barcode.strip():
            raise ValidationError("barcode is required")
        if not name or not name.strip():
            raise ValidationError("name is required")

        if find_product_by_barcode(branch_id, barcode) is not None:
            raise ConflictError(
                f"Barcode {barcode!r} already exists in branch {branch_id}",
                details={"barcode": barcode, "branch_id": branch_id},
            )

        rows, default_purchase, default_sale = _build_uom_rows(base_uom_id, purchase_uom, sale_uoms or [])
        for row in rows:
            _require_uom(row["uom_id"])

        product = Product(
            branch_id=branch_id,
            sku=sku,
            barcode=barcode.strip(),
            name=name.strip(),
            description=description,
            base_uom_id=base_uom_id,
            is_divisible=bool(is_divisible),
            purchase_price_cents=purchase_price_cents,
            wholesale_price_cents=wholesale_price_cents,
            retail_price_cents=retail_price_cents,
            min_stock=to_decimal(min_stock, "min_stock"),
            category_id=category_id,
            brand_id=brand_id,
            is_active=True,
        )
        db.session.add(product)
        try:
            db.session.flush()
        except IntegrityError:
            raise ConflictError(f"Barcode {barcode!r} already exists in branch {branch_id}")

        by_uom: dict[int, ProductUom] = {}
        for row in rows:
            mapping = ProductUom(product_id=product.id, **row)
            db.session.add(mapping)
            by_uom[row["uom_id"]] = mapping
        db.session.flush()

        product.default_purchase_uom_id = by_uom[default_purchase].id
        product.default_sale_uom_id = by_uom[default_sale].id if default_sale is not None else None

        db.session.add(StockBalance(branch_id=branch_id, product_id=product.id, qty_base=Decimal("0")))
        db.session.commit()
        return product

    return run_with_retry(_op)


def add_product_uom(product_id: int, uom_id: int, factor_to_base, purpose: str) -> ProductUom:
    def _op():
        require_product(product_id)
        _require_uom(uom_id)
        if purpose not in UOM_PURPOSES:
            raise ValidationError(f"purpose must be one of {', '.join(UOM_PURPOSES)}")

        mapping = ProductUom(
            product_id=product_id,
            uom_id=uom_id,
            purpose=purpose,
            factor_to_base=_parse_factor(factor_to_base),
        )
        db.session.add(mapping)
        try:
            db.session.flush()
        except IntegrityError:
            raise ConflictError(f"Product {product_id} already has unit {uom_id}")
        db.session.commit()
        return mapping

    return run_with_retry(_op)


def update_product_uom_factor(product_id: int, product_uom_id: int, factor_to_base) -> ProductUom:
    """
    Change a conversion factor for future postings.

    Already-posted items keep their factor_used; nothing historical is rewritten.
    """
    def _op():
        product = require_product(product_id)
        mapping = resolve_uom(product_id, product_uom_id)
        if mapping.uom_id == product.base_uom_id:
            raise ValidationError("The base unit factor is always 1")
        mapping.factor_to_base = _parse_factor(factor_to_base)
        db.session.commit()
        return mapping

    return run_with_retry(_op)


def _set_default(product_id: int, product_uom_id: int, purpose: str) -> ProductUom:
    def _op():
        product = require_product(product_id, lock=True)
        mapping = resolve_uom(product_id, product_uom_id)
        if not mapping.allows(purpose):
            raise InvalidPurposeError(
                f"Unit mapping {product_uom_id} is {mapping.purpose}; it cannot be a {purpose} default",
                details={"product_uom_id": product_uom_id, "purpose": mapping.purpose},
            )
        if purpose == UOM_PURPOSE_SALE:
            product.default_sale_uom_id = mapping.id
        else:
            product.default_purchase_uom_id = mapping.id
        db.session.commit()
        return mapping

    return run_with_retry(_op)


def set_default_sale_uom(product_id: int, product_uom_id: int) -> ProductUom:
    return _set_default(product_id, product_uom_id, UOM_PURPOSE_SALE)


def set_default_purchase_uom(product_id: int, product_uom_id: int) -> ProductUom:
    return _set_default(product_id, product_uom_id, UOM_PURPOSE_PURCHASE)


def update_product_prices(
    product_id: int,
    *,
    purchase_price_cents: int | None = None,
    wholesale_price_cents: int | None = None,
    retail_price_cents: int | None = None,
) -> Product:
    def _op():
        product = require_product(product_id, lock=True)
        if purchase_price_cents is not None:
            product.purchase_price_cents = purchase_price_cents
        if wholesale_price_cents is not None:
            product.wholesale_price_cents = wholesale_price_cents
        if retail_price_cents is not None:
            product.retail_price_cents = retail_price_cents
        db.session.commit()
        return product

    return run_with_retry(_op)


def _merge_uom_rows(product: Product, rows: list[dict]) -> dict[int, ProductUom]:
    """
    Upsert unit mappings by uom_id. Returns every mapping of the product keyed by uom_id.

    Mappings absent from rows are kept since posted items reference them.
    """
    existing = {m.uom_id: m for m in list_product_uoms(product.id)}
    for row in rows:
        _require_uom(row["uom_id"])
        mapping = existing.get(row["uom_id"])
        if mapping is None:
            mapping = ProductUom(product_id=product.id, **row)
            db.session.add(mapping)
            existing[row["uom_id"]] = mapping
        elif row["uom_id"] != product.base_uom_id:
            # Purposes only widen so a current default stays valid
            if mapping.purpose != row["purpose"]:
                mapping.purpose = UOM_PURPOSE_BOTH
            mapping.factor_to_base = row["factor_to_base"]
    db.session.flush()
    return existing


def update_product(product_id: int, payload: dict) -> Product:
    """
    Edit product master data and, optionally, its units.

    payload holds any PRODUCT_POLICY field plus purchase_uom / sale_uoms in
    the create_product shape. Units are merged, never dropped, and factor
    changes only affect future postings.
    """
    payload = dict(payload or {})
    purchase_uom = payload.pop("purchase_uom", None)
    sale_uoms = payload.pop("sale_uoms", None)

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)
    if purchase_uom is None and sale_uoms is None and not patch:
        raise ValidationError("Nothing to update")

    def _op():
        product = require_product(product_id, lock=True)
        _require_classification(patch.get("category_id"), patch.get("brand_id"))

        barcode = patch.get("barcode")
        if barcode is not None and barcode != product.barcode:
            clash = find_product_by_barcode(product.branch_id, barcode)
            if clash is not None and clash.id != product.id:
                raise ConflictError(
                    f"Barcode {barcode!r} already exists in branch {product.branch_id}",
                    details={"barcode": barcode, "branch_id": product.branch_id},
                )

        for key, value in patch.items():
            setattr(product, key, value)

        if purchase_uom is not None or sale_uoms is not None:
            rows, default_purchase, default_sale = _build_uom_rows(
                product.base_uom_id, purchase_uom, sale_uoms or []
            )
            by_uom = _merge_uom_rows(product, rows)
            if purchase_uom is not None:
                product.default_purchase_uom_id = by_uom[default_purchase].id
            if default_sale is not None:
                product.default_sale_uom_id = by_uom[default_sale].id

        try:
            db.session.commit()
        except IntegrityError:
            raise ConflictError(f"Product {product_id} conflicts with an existing product or unit")
        return product

    return run_with_retry(_op)


def deactivate_product(product_id: int) -> Product:
    def _op():
        product = require_product(product_id, lock=True)
        product.is_active = False
        db.session.commit()
        return product

    return run_with_retry(_op)


def product_has_history(product_id: int) -> bool:
    used_in_ledger = db.session.query(InventoryTransactionItem.id).filter_by(product_id=product_id).first()
    used_in_formula = db.session.query(FormulaComponent.id).filter_by(product_id=product_id).first()
    return used_in_ledger is not None or used_in_formula is not None


def delete_product(product_id: int) -> str:
    """
    Remove a product.

    Returns "deleted" when nothing references it, "deactivated" when
    ledger or formula history does (that history must stay resolvable).
    """
    def _op():
        product = require_product(product_id, lock=True)

        if product_has_history(product_id):
            product.is_active = False
            db.session.commit()
            return "deactivated"

        product.default_sale_uom_id = None
        product.default_purchase_uom_id = None
        db.session.flush()

        db.session.query(StockBalance).filter_by(product_id=product_id).delete()
        db.session.query(ProductUom).filter_by(product_id=product_id).delete()
        db.session.delete(product)
        db.session.commit()
        return "deleted"

    return run_with_retry(_op)


# =============================================================================
# CONVERSION & PRICING
# =============================================================================

def convert_qty(product_id: int, qty, from_product_uom_id: int, to_product_uom_id: int) -> Decimal:
    """Convert qty between two units of the same product, through the base unit."""
    qty = to_decimal(qty, "qty")
    if from_product_uom_id == to_product_uom_id:
        return qty
    source = resolve_uom(product_id, from_product_uom_id)
    target = resolve_uom(product_id, to_product_uom_id)
    return qty * Decimal(source.factor_to_base) / Decimal(target.factor_to_base)


def price_for_uom(product_id: int, product_uom_id: int, tier: str = PRICE_TIER_RETAIL) -> int:
    """
    Price of one unit of product_uom_id, in cents.

    Tier prices are per base unit, so a 50 kg bag costs 50x the kg price.
    """
    field = _PRICE_TIER_FIELDS.get(tier)
    if field is None:
        raise ValidationError(f"tier must be one of {', '.join(_PRICE_TIER_FIELDS)}")
    product = require_product(product_id)
    mapping = resolve_uom(product_id, product_uom_id)
    return to_cents(Decimal(getattr(product, field) or 0) * Decimal(mapping.factor_to_base))
