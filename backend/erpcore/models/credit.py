from __future__ import annotations

from ..extensions import db
from erpcore.time_utils import to_utc_z, to_iso_date


# Overdue notes block new credit outright; only paying them unblocks the customer
POLICY_BLOQUEO_TOTAL = "BLOQUEO_TOTAL"
# Same block, but the cashier may collect payments on overdue notes and re-evaluate
POLICY_BLOQUEO_PARCIAL = "BLOQUEO_PARCIAL"

CREDIT_POLICIES = (POLICY_BLOQUEO_TOTAL, POLICY_BLOQUEO_PARCIAL)

PAYMENT_METHODS = ("EFECTIVO", "TRANSFERENCIA", "TARJETA", "YAPE", "PLIN", "OTRO")

NOTE_STATUS_PAID = "PAGADA"
NOTE_STATUS_OVERDUE = "VENCIDA"
NOTE_STATUS_OPEN = "ABIERTA"


class CreditCustomer(db.Model):
    """
    Customer allowed to buy on credit at a branch.

    allow_cash_if_blocked is the cash carve-out: when credit is blocked the
    sale may still go through as a cash sale.
    """
    __tablename__ = "credit_customers"
    __table_args__ = (
        db.Index("ix_credit_customers_branch_name", "branch_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)

    credit_limit_cents = db.Column(db.Integer, nullable=False, default=0)
    default_credit_days = db.Column(db.Integer, nullable=False, default=0)
    policy = db.Column(db.String(32), nullable=False, default=POLICY_BLOQUEO_TOTAL)
    allow_cash_if_blocked = db.Column(db.Boolean, nullable=False, default=True)
    late_tolerance_days = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "phone": self.phone,
            "credit_limit_cents": self.credit_limit_cents,
            "default_credit_days": self.default_credit_days,
            "policy": self.policy,
            "allow_cash_if_blocked": self.allow_cash_if_blocked,
            "late_tolerance_days": self.late_tolerance_days,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class CreditNote(db.Model):
    """
    Receivable generated by a credit sale.

    balance_cents is the only mutable field and always equals
    total_cents - SUM(payments.amount_cents). It is changed only by a
    conditional UPDATE in credit_service.apply_payment.
    """
    __tablename__ = "credit_notes"
    __table_args__ = (
        db.CheckConstraint("balance_cents >= 0", name="ck_credit_notes_balance_non_negative"),
        db.CheckConstraint("balance_cents <= total_cents", name="ck_credit_notes_balance_le_total"),
        db.Index("ix_credit_notes_customer_due", "customer_id", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("credit_customers.id"), nullable=False, index=True)

    folio = db.Column(db.String(64), nullable=False, unique=True)
    issue_date = db.Column(db.Date, nullable=False)
    credit_days_applied = db.Column(db.Integer, nullable=False, default=0)
    due_date = db.Column(db.Date, nullable=False)

    total_cents = db.Column(db.Integer, nullable=False)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_cents = db.Column(db.Integer, nullable=False)

    notes = db.Column(db.String(255), nullable=True)
    inventory_transaction_id = db.Column(
        db.Integer, db.ForeignKey("inventory_transactions.id"), nullable=True, index=True
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("CreditCustomer", backref=db.backref("notes", lazy=True))
    payments = db.relationship("CreditPayment", back_populates="note", lazy=True, order_by="CreditPayment.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "customer_id": self.customer_id,
            "folio": self.folio,
            "issue_date": to_iso_date(self.issue_date),
            "credit_days_applied": self.credit_days_applied,
            "due_date": to_iso_date(self.due_date),
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "balance_cents": self.balance_cents,
            "notes": self.notes,
            "inventory_transaction_id": self.inventory_transaction_id,
            "created_at": to_utc_z(self.created_at),
        }


class CreditPayment(db.Model):
    """Append-only payment against one credit note."""
    __tablename__ = "credit_payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_credit_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    note_id = db.Column(db.Integer, db.ForeignKey("credit_notes.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(16), nullable=False)
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    created_by = db.Column(db.String(64), nullable=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    note = db.relationship("CreditNote", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "note_id": self.note_id,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "reference": self.reference,
            "notes": self.notes,
            "created_by": self.created_by,
            "paid_at": to_utc_z(self.paid_at),
        }
