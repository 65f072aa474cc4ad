from __future__ import annotations

from ..extensions import db
from erpcore.time_utils import to_utc_z


TX_PURCHASE = "PURCHASE"
TX_SALE = "SALE"
TX_ADJUST = "ADJUST"
TX_TRANSFER = "TRANSFER"

TRANSACTION_TYPES = (TX_PURCHASE, TX_SALE, TX_ADJUST, TX_TRANSFER)

DIRECTION_IN = "IN"
DIRECTION_OUT = "OUT"


class Supplier(db.Model):
    """Branch-scoped supplier; counterpart of PURCHASE transactions."""
    __tablename__ = "suppliers"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "name", name="uq_suppliers_branch_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class StockBalance(db.Model):
    """
    Materialized on-hand quantity per (branch, product), in base units.

    Only inventory_service writes here, through conditional UPDATEs.
    The CHECK constraint is the last line: a balance can never be stored
    below zero even if a caller bypasses the service.
    """
    __tablename__ = "stock_balances"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "product_id", name="uq_stock_balances_branch_product"),
        db.CheckConstraint("qty_base >= 0", name="ck_stock_balances_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    qty_base = db.Column(db.Numeric(18, 4), nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "branch_id": self.branch_id,
            "product_id": self.product_id,
            "qty_base": str(self.qty_base),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryTransaction(db.Model):
    """
    Append-only ledger header.

    PURCHASE is always IN and SALE always OUT; ADJUST and TRANSFER carry
    their direction explicitly. Rows are never updated after posting.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_invtx_branch_type_created", "branch_id", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    direction = db.Column(db.String(8), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    # Shared by the OUT and IN halves of an inter-branch transfer
    transfer_group = db.Column(db.String(64), nullable=True, index=True)

    items = db.relationship(
        "InventoryTransactionItem",
        back_populates="transaction",
        lazy=True,
        order_by="InventoryTransactionItem.id",
    )
    supplier = db.relationship("Supplier")

    @property
    def sign(self) -> int:
        return 1 if self.direction == DIRECTION_IN else -1

    @property
    def total_cents(self) -> int:
        return sum(item.line_total_cents for item in self.items)

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "type": self.type,
            "direction": self.direction,
            "branch_id": self.branch_id,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "reference": self.reference,
            "notes": self.notes,
            "supplier_id": self.supplier_id,
            "customer_name": self.customer_name,
            "transfer_group": self.transfer_group,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["total_cents"] = self.total_cents
        return data


class InventoryTransactionItem(db.Model):
    """
    Immutable ledger line.

    factor_used is a snapshot of ProductUom.factor_to_base at posting time;
    qty_base = qty * factor_used is what moved the balance and is never
    recomputed later.
    """
    __tablename__ = "inventory_transaction_items"
    __table_args__ = (
        db.Index("ix_invtx_items_product", "product_id", "transaction_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("inventory_transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    product_uom_id = db.Column(db.Integer, db.ForeignKey("product_uoms.id"), nullable=False)

    qty = db.Column(db.Numeric(18, 4), nullable=False)
    factor_used = db.Column(db.Numeric(18, 6), nullable=False)
    qty_base = db.Column(db.Numeric(18, 4), nullable=False)

    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False, default=0)
    barcode_scanned = db.Column(db.String(64), nullable=True)

    transaction = db.relationship("InventoryTransaction", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "product_uom_id": self.product_uom_id,
            "qty": str(self.qty),
            "factor_used": str(self.factor_used),
            "qty_base": str(self.qty_base),
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "barcode_scanned": self.barcode_scanned,
        }
