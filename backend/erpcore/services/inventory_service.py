# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/erpcore/services/inventory_service.py

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    Product,
    ProductUom,
    StockBalance,
    Supplier,
    InventoryTransaction,
    InventoryTransactionItem,
)
from ..models.catalog import UOM_PURPOSE_PURCHASE, UOM_PURPOSE_SALE
from ..models.inventory import (
    TRANSACTION_TYPES,
    TX_PURCHASE,
    TX_SALE,
    TX_ADJUST,
    TX_TRANSFER,
    DIRECTION_IN,
    DIRECTION_OUT,
)
from ..validation import (
    CoreError,
    ConflictError,
    NotFoundError,
    ValidationError,
    QTY_QUANT,
    parse_cents,
    parse_id,
    parse_quantity,
)
from erpcore.time_utils import utcnow
from .audit_service import append_audit_event, require_actor
from .branch_service import require_branch
from .catalog_service import InvalidPurposeError, require_product, resolve_uom, to_cents
from .concurrency import run_with_retry
"""
Inventory Ledger Invariants (authoritative)

Ledger model:
- InventoryTransaction + InventoryTransactionItem rows are append-only.
- StockBalance.qty_base is a materialized aggregate, always in base units, and
  always equals SUM(sign * item.qty_base) over the branch/product history.
- item.factor_used is copied from ProductUom.factor_to_base at posting time and
  never recomputed.

Posting:
- Header, items and balance changes of one posting are a single unit of work.
  Any failure rolls all of it back.
- Outbound postings check every affected product before touching any balance
  and fail with InsufficientStockError listing every shortage.
- Balances are changed with conditional UPDATEs
  (qty_base = qty_base - :q WHERE qty_base >= :q), never read/compute/write,
  so concurrent sales on the same product cannot both overdraw it. Keys are
  touched in product id order.

Audit:
- Each posting appends an AuditEvent in the same DB transaction.
"""


class InsufficientStockError(CoreError):
    """Raised when an outbound posting would take a balance below zero."""
    code = "INSUFFICIENT_STOCK"
    http_status = 409

    def __init__(self, product_id: int, available: Decimal, requested: Decimal, shortages: list[dict] | None = None):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for product {product_id}: available {available}, requested {requested}",
            details={
                "product_id": product_id,
                "available": str(available),
                "requested": str(requested),
                "items": shortages or [],
            },
        )


@dataclass(frozen=True)
class LineItem:
    """One requested line: qty is expressed in the chosen product_uom_id."""
    product_id: int
    product_uom_id: int
    qty: Decimal
    unit_price_cents: int | None = None
    barcode_scanned: str | None = None


@dataclass
class _ResolvedLine:
    product: Product
    mapping: ProductUom
    qty: Decimal
    factor_used: Decimal
    qty_base: Decimal
    unit_price_cents: int
    line_total_cents: int
    barcode_scanned: str | None


_DEFAULT_DIRECTION = {TX_PURCHASE: DIRECTION_IN, TX_SALE: DIRECTION_OUT}
_REQUIRED_PURPOSE = {TX_PURCHASE: UOM_PURPOSE_PURCHASE, TX_SALE: UOM_PURPOSE_SALE}
_PRICE_FIELD = {TX_SALE: "retail_price_cents"}


def _coerce_item(raw, index: int) -> LineItem:
    if isinstance(raw, LineItem):
        return LineItem(
            product_id=raw.product_id,
            product_uom_id=raw.product_uom_id,
            qty=parse_quantity(raw.qty, f"items[{index}].qty"),
            unit_price_cents=raw.unit_price_cents,
            barcode_scanned=raw.barcode_scanned,
        )
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{index}] must be an object")

    for key in ("product_id", "product_uom_id", "qty"):
        if raw.get(key) is None:
            raise ValidationError(f"items[{index}].{key} is required")

    price = raw.get("unit_price_cents")
    return LineItem(
        product_id=parse_id(raw["product_id"], f"items[{index}].product_id"),
        product_uom_id=parse_id(raw["product_uom_id"], f"items[{index}].product_uom_id"),
        qty=parse_quantity(raw["qty"], f"items[{index}].qty"),
        unit_price_cents=parse_cents(price, f"items[{index}].unit_price_cents") if price is not None else None,
        barcode_scanned=raw.get("barcode_scanned"),
    )


def _resolve_lines(tx_type: str, branch_id: int, items: Iterable) -> list[_ResolvedLine]:
    """
    Validate every requested line and snapshot its conversion factor.

    Runs before any write. Raises ValidationError / NotFoundError /
    InvalidPurposeError on the first malformed line.
    """
    raw_items = list(items or [])
    if not raw_items:
        raise ValidationError("At least one item is required")

    resolved = []
    for index, raw in enumerate(raw_items):
        item = _coerce_item(raw, index)
        product = require_product(item.product_id, branch_id=branch_id, require_active=True)
        mapping = resolve_uom(product.id, item.product_uom_id)

        purpose = _REQUIRED_PURPOSE.get(tx_type)
        if purpose and not mapping.allows(purpose):
            raise InvalidPurposeError(
                f"Unit mapping {mapping.id} ({mapping.purpose}) cannot be used for a {tx_type}",
                details={"index": index, "product_uom_id": mapping.id, "purpose": mapping.purpose},
            )

        if not product.is_divisible and item.qty != item.qty.to_integral_value():
            raise ValidationError(
                f"items[{index}].qty must be a whole number: product {product.id} is not divisible",
                details={"index": index, "product_id": product.id, "qty": str(item.qty)},
            )

        factor = Decimal(mapping.factor_to_base)
        exact = item.qty * factor
        qty_base = exact.quantize(QTY_QUANT)
        # qty_base must equal qty * factor_used exactly at the balance precision
        if qty_base != exact:
            raise ValidationError(
                f"items[{index}].qty x factor {factor} = {exact} needs more than 4 decimals in the base unit",
                details={"index": index, "product_uom_id": mapping.id, "qty": str(item.qty), "qty_base": str(exact)},
            )

        unit_price = item.unit_price_cents
        if unit_price is None:
            base_price = getattr(product, _PRICE_FIELD.get(tx_type, "purchase_price_cents")) or 0
            unit_price = to_cents(Decimal(base_price) * factor)

        resolved.append(_ResolvedLine(
            product=product,
            mapping=mapping,
            qty=item.qty,
            factor_used=factor,
            qty_base=qty_base,
            unit_price_cents=unit_price,
            line_total_cents=to_cents(item.qty * unit_price),
            barcode_scanned=item.barcode_scanned,
        ))
    return resolved


def _totals_by_product(lines: list[_ResolvedLine]) -> dict[int, Decimal]:
    totals: dict[int, Decimal] = {}
    for line in lines:
        totals[line.product.id] = totals.get(line.product.id, Decimal("0")) + line.qty_base
    return totals


def _current_qty(branch_id: int, product_id: int) -> Decimal:
    value = (
        db.session.query(StockBalance.qty_base)
        .filter_by(branch_id=branch_id, product_id=product_id)
        .scalar()
    )
    return Decimal(value) if value is not None else Decimal("0")


def _increment_stock(branch_id: int, product_id: int, qty_base: Decimal) -> None:
    stmt = (
        update(StockBalance)
        .where(StockBalance.branch_id == branch_id, StockBalance.product_id == product_id)
        .values(qty_base=StockBalance.qty_base + qty_base, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount:
        return

    # First movement for this key: create the row lazily
    try:
        with db.session.begin_nested():
            db.session.add(StockBalance(branch_id=branch_id, product_id=product_id, qty_base=qty_base))
    except IntegrityError:
        # Lost the insert race; the row exists now
        if not db.session.execute(stmt).rowcount:
            raise ConflictError(
                "Stock balance row could not be created",
                details={"branch_id": branch_id, "product_id": product_id},
            )


def _decrement_stock(branch_id: int, product_id: int, qty_base: Decimal) -> None:
    stmt = (
        update(StockBalance)
        .where(
            StockBalance.branch_id == branch_id,
            StockBalance.product_id == product_id,
            StockBalance.qty_base >= qty_base,
        )
        .values(qty_base=StockBalance.qty_base - qty_base, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if not db.session.execute(stmt).rowcount:
        available = _current_qty(branch_id, product_id)
        raise InsufficientStockError(
            product_id,
            available,
            qty_base,
            shortages=[{"product_id": product_id, "available": str(available), "requested": str(qty_base)}],
        )


def _check_availability(branch_id: int, totals: dict[int, Decimal]) -> None:
    shortages = []
    for product_id in sorted(totals):
        available = _current_qty(branch_id, product_id)
        if available < totals[product_id]:
            shortages.append({
                "product_id": product_id,
                "available": available,
                "requested": totals[product_id],
            })

    if shortages:
        first = shortages[0]
        raise InsufficientStockError(
            first["product_id"],
            first["available"],
            first["requested"],
            shortages=[
                {k: (str(v) if isinstance(v, Decimal) else v) for k, v in s.items()}
                for s in shortages
            ],
        )


def _write_posting(
    *,
    tx_type: str,
    direction: str,
    branch_id: int,
    lines: list[_ResolvedLine],
    actor: str,
    reference: str | None = None,
    notes: str | None = None,
    supplier_id: int | None = None,
    customer_name: str | None = None,
    transfer_group: str | None = None,
) -> InventoryTransaction:
    """Header + items + balances + audit, flushed but not committed."""
    totals = _totals_by_product(lines)
    if direction == DIRECTION_OUT:
        _check_availability(branch_id, totals)

    tx = InventoryTransaction(
        type=tx_type,
        direction=direction,
        branch_id=branch_id,
        created_by=actor,
        created_at=utcnow(),
        reference=reference or None,
        notes=notes or None,
        supplier_id=supplier_id,
        customer_name=customer_name or None,
        transfer_group=transfer_group,
    )
    db.session.add(tx)
    db.session.flush()

    for line in lines:
        db.session.add(InventoryTransactionItem(
            transaction_id=tx.id,
            product_id=line.product.id,
            product_uom_id=line.mapping.id,
            qty=line.qty,
            factor_used=line.factor_used,
            qty_base=line.qty_base,
            unit_price_cents=line.unit_price_cents,
            line_total_cents=line.line_total_cents,
            barcode_scanned=line.barcode_scanned,
        ))

    for product_id in sorted(totals):
        if direction == DIRECTION_IN:
            _increment_stock(branch_id, product_id, totals[product_id])
        else:
            _decrement_stock(branch_id, product_id, totals[product_id])

    append_audit_event(
        branch_id=branch_id,
        event_type=f"inventory.{tx_type.lower()}_posted",
        entity_type="inventory_transaction",
        entity_id=tx.id,
        actor_id=actor,
        note=reference,
    )
    db.session.flush()
    return tx


def _resolve_direction(tx_type: str, direction: str | None) -> str:
    if tx_type not in TRANSACTION_TYPES:
        raise ValidationError(f"type must be one of {', '.join(TRANSACTION_TYPES)}")
    fixed = _DEFAULT_DIRECTION.get(tx_type)
    if fixed is not None:
        if direction is not None and direction != fixed:
            raise ValidationError(f"{tx_type} is always {fixed}")
        return fixed
    if direction not in (DIRECTION_IN, DIRECTION_OUT):
        raise ValidationError(f"direction must be IN or OUT for {tx_type}")
    return direction


def post_transaction(
    tx_type: str,
    branch_id: int,
    items,
    *,
    actor_id,
    direction: str | None = None,
    reference: str | None = None,
    notes: str | None = None,
    supplier_id: int | None = None,
    customer_name: str | None = None,
    commit: bool = True,
) -> InventoryTransaction:
    """
    Post one ledger transaction with its items and balance changes.

    All-or-nothing: on InsufficientStockError, a validation error or any
    database error, no header, item or balance change is persisted.

    commit=False lets a caller (credit sales) run the posting inside its own
    unit of work; the caller then owns commit, rollback and retry.
    """
    direction = _resolve_direction(tx_type, direction)
    actor = require_actor(actor_id)

    def _op():
        require_branch(branch_id)
        if supplier_id is not None:
            if tx_type != TX_PURCHASE:
                raise ValidationError("supplier_id is only valid on PURCHASE")
            supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
            if supplier is None or supplier.branch_id != branch_id:
                raise NotFoundError(f"Supplier {supplier_id} not found in branch {branch_id}")

        lines = _resolve_lines(tx_type, branch_id, items)
        tx = _write_posting(
            tx_type=tx_type,
            direction=direction,
            branch_id=branch_id,
            lines=lines,
            actor=actor,
            reference=reference,
            notes=notes,
            supplier_id=supplier_id,
            customer_name=customer_name,
        )

        if commit:
            db.session.commit()
        return tx

    if not commit:
        return _op()
    return run_with_retry(_op)


def post_purchase(branch_id: int, items, *, actor_id, supplier_id: int | None = None,
                  reference: str | None = None, notes: str | None = None) -> InventoryTransaction:
    return post_transaction(
        TX_PURCHASE, branch_id, items,
        actor_id=actor_id, supplier_id=supplier_id, reference=reference, notes=notes,
    )


def post_sale(branch_id: int, items, *, actor_id, customer_name: str | None = None,
              reference: str | None = None, notes: str | None = None,
              commit: bool = True) -> InventoryTransaction:
    return post_transaction(
        TX_SALE, branch_id, items,
        actor_id=actor_id, customer_name=customer_name, reference=reference, notes=notes, commit=commit,
    )


def adjust_inventory(branch_id: int, items, *, direction: str, actor_id,
                     reference: str | None = None, notes: str | None = None) -> InventoryTransaction:
    """Manual correction (shrink, count differences, batching consumption)."""
    return post_transaction(
        TX_ADJUST, branch_id, items,
        actor_id=actor_id, direction=direction, reference=reference, notes=notes,
    )


def transfer_inventory(
    from_branch_id: int,
    to_branch_id: int,
    items,
    *,
    actor_id,
    reference: str | None = None,
    notes: str | None = None,
) -> tuple[InventoryTransaction, InventoryTransaction]:
    """
    Move stock between branches as one unit of work.

    Products are branch-scoped, so the destination product is the one with
    the same barcode in the destination branch. Both must share a base unit;
    the IN half is posted in the destination's base unit.
    """
    actor = require_actor(actor_id)
    if from_branch_id == to_branch_id:
        raise ValidationError("Source and destination branch must differ")

    def _op():
        require_branch(from_branch_id)
        require_branch(to_branch_id)

        out_lines = _resolve_lines(TX_TRANSFER, from_branch_id, items)
        in_lines = []
        for line in out_lines:
            target = (
                db.session.query(Product)
                .filter_by(branch_id=to_branch_id, barcode=line.product.barcode, is_active=True)
                .first()
            )
            if target is None:
                raise NotFoundError(
                    f"No active product with barcode {line.product.barcode!r} in branch {to_branch_id}",
                    details={"barcode": line.product.barcode, "branch_id": to_branch_id},
                )
            if target.base_uom_id != line.product.base_uom_id:
                raise ValidationError(
                    f"Product {line.product.id} and {target.id} do not share a base unit",
                    details={"product_id": line.product.id, "target_product_id": target.id},
                )
            base_mapping = (
                db.session.query(ProductUom)
                .filter_by(product_id=target.id, uom_id=target.base_uom_id)
                .first()
            )
            if base_mapping is None:
                raise NotFoundError(f"Product {target.id} has no base unit mapping")
            in_lines.append(_ResolvedLine(
                product=target,
                mapping=base_mapping,
                qty=line.qty_base,
                factor_used=Decimal("1"),
                qty_base=line.qty_base,
                unit_price_cents=to_cents(Decimal(line.unit_price_cents) / line.factor_used),
                line_total_cents=line.line_total_cents,
                barcode_scanned=line.barcode_scanned,
            ))

        group = uuid.uuid4().hex
        out_tx = _write_posting(
            tx_type=TX_TRANSFER, direction=DIRECTION_OUT, branch_id=from_branch_id,
            lines=out_lines, actor=actor, reference=reference, notes=notes, transfer_group=group,
        )
        in_tx = _write_posting(
            tx_type=TX_TRANSFER, direction=DIRECTION_IN, branch_id=to_branch_id,
            lines=in_lines, actor=actor, reference=reference, notes=notes, transfer_group=group,
        )
        db.session.commit()
        return out_tx, in_tx

    return run_with_retry(_op)


# =============================================================================
# READ PROJECTIONS (always straight from the database)
# =============================================================================

def get_stock_balance(branch_id: int, product_id: int) -> Decimal:
    return _current_qty(branch_id, product_id)


def list_stock_by_branch(branch_id: int) -> list[StockBalance]:
    return (
        db.session.query(StockBalance)
        .filter_by(branch_id=branch_id)
        .order_by(StockBalance.product_id.asc())
        .all()
    )


def list_low_stock(branch_id: int) -> list[dict]:
    rows = (
        db.session.query(Product, StockBalance.qty_base)
        .outerjoin(
            StockBalance,
            (StockBalance.product_id == Product.id) & (StockBalance.branch_id == Product.branch_id),
        )
        .filter(Product.branch_id == branch_id, Product.is_active.is_(True))
        .order_by(Product.name.asc())
        .all()
    )
    low = []
    for product, qty in rows:
        qty = Decimal(qty) if qty is not None else Decimal("0")
        if qty < Decimal(product.min_stock or 0):
            low.append({
                "product_id": product.id,
                "name": product.name,
                "qty_base": str(qty),
                "min_stock": str(product.min_stock),
            })
    return low


def get_transaction(transaction_id: int) -> InventoryTransaction:
    tx = db.session.query(InventoryTransaction).filter_by(id=transaction_id).first()
    if tx is None:
        raise NotFoundError(f"Transaction {transaction_id} not found", details={"transaction_id": transaction_id})
    return tx


def list_transactions(
    *,
    branch_id: int,
    tx_type: str | None = None,
    product_id: int | None = None,
    limit: int = 200,
) -> list[InventoryTransaction]:
    q = db.session.query(InventoryTransaction).filter_by(branch_id=branch_id)
    if tx_type:
        q = q.filter_by(type=tx_type)
    if product_id:
        q = q.filter(
            InventoryTransaction.id.in_(
                db.session.query(InventoryTransactionItem.transaction_id).filter_by(product_id=product_id)
            )
        )
    return q.order_by(InventoryTransaction.id.desc()).limit(limit).all()


def replay_stock(branch_id: int, product_id: int) -> list[dict]:
    """
    Rebuild the running balance of one key from its ledger, oldest first.

    Each entry is the net movement of one transaction and the balance right
    after it.
    """
    rows = (
        db.session.query(
            InventoryTransaction.id,
            InventoryTransaction.direction,
            InventoryTransactionItem.qty_base,
        )
        .join(InventoryTransactionItem, InventoryTransactionItem.transaction_id == InventoryTransaction.id)
        .filter(
            InventoryTransaction.branch_id == branch_id,
            InventoryTransactionItem.product_id == product_id,
        )
        .order_by(InventoryTransaction.id.asc(), InventoryTransactionItem.id.asc())
        .all()
    )

    deltas: dict[int, Decimal] = {}
    for tx_id, direction, qty_base in rows:
        sign = 1 if direction == DIRECTION_IN else -1
        deltas[tx_id] = deltas.get(tx_id, Decimal("0")) + sign * Decimal(qty_base)

    running = Decimal("0")
    history = []
    for tx_id in sorted(deltas):
        running += deltas[tx_id]
        history.append({"transaction_id": tx_id, "delta": deltas[tx_id], "balance": running})
    return history


def verify_stock_balances(branch_id: int) -> list[dict]:
    """
    Compare every stored balance of a branch with its ledger replay.

    Returns one entry per product with the replayed and stored quantities,
    the lowest running balance, and ok=False on drift or a negative point.
    """
    product_ids = {
        pid for (pid,) in db.session.query(StockBalance.product_id).filter_by(branch_id=branch_id)
    }
    product_ids |= {
        pid for (pid,) in (
            db.session.query(InventoryTransactionItem.product_id)
            .join(InventoryTransaction, InventoryTransaction.id == InventoryTransactionItem.transaction_id)
            .filter(InventoryTransaction.branch_id == branch_id)
            .distinct()
        )
    }

    report = []
    for product_id in sorted(product_ids):
        history = replay_stock(branch_id, product_id)
        ledger_qty = history[-1]["balance"] if history else Decimal("0")
        lowest = min((h["balance"] for h in history), default=Decimal("0"))
        stored = _current_qty(branch_id, product_id)
        report.append({
            "product_id": product_id,
            "ledger_qty": ledger_qty,
            "stored_qty": stored,
            "lowest_running_qty": lowest,
            "ok": ledger_qty == stored and lowest >= 0,
        })
    return report


def clear_purchase_history(branch_id: int, *, actor_id) -> dict:
    """
    Maintenance: purge a branch's PURCHASE transactions and the stock they added.

    The stock reversal uses the same conditional decrement as a sale, so the
    purge fails with InsufficientStockError if that stock was already sold.
    """
    actor = require_actor(actor_id)

    def _op():
        require_branch(branch_id)
        tx_ids = [
            tx_id for (tx_id,) in db.session.query(InventoryTransaction.id).filter_by(
                branch_id=branch_id, type=TX_PURCHASE
            )
        ]
        if not tx_ids:
            return {"deleted": 0}

        totals: dict[int, Decimal] = {}
        for product_id, qty_base in (
            db.session.query(InventoryTransactionItem.product_id, InventoryTransactionItem.qty_base)
            .filter(InventoryTransactionItem.transaction_id.in_(tx_ids))
        ):
            totals[product_id] = totals.get(product_id, Decimal("0")) + Decimal(qty_base)

        for product_id in sorted(totals):
            _decrement_stock(branch_id, product_id, totals[product_id])

        db.session.query(InventoryTransactionItem).filter(
            InventoryTransactionItem.transaction_id.in_(tx_ids)
        ).delete(synchronize_session=False)
        db.session.query(InventoryTransaction).filter(
            InventoryTransaction.id.in_(tx_ids)
        ).delete(synchronize_session=False)

        append_audit_event(
            branch_id=branch_id,
            event_type="inventory.purchase_history_cleared",
            entity_type="branch",
            entity_id=branch_id,
            actor_id=actor,
            note=f"{len(tx_ids)} purchase transactions removed",
        )
        db.session.commit()
        return {"deleted": len(tx_ids)}

    return run_with_retry(_op)
