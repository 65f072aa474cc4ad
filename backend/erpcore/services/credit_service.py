# Overview: Service-layer operations for customer credit; encapsulates business logic and database work.

"""
Credit Service

WHY: A credit sale is only allowed when the customer has no blocking overdue
notes and the sale fits in the remaining limit. Receivables are paid down
note by note.

DESIGN:
- assess_credit() is pure: (customer, open notes, sale total, today) -> decision.
  evaluate() only loads the open notes and delegates to it.
- A note is overdue when balance > 0 and it is more than
  late_tolerance_days past its due date.
- balance_cents changes only through a conditional UPDATE
  (balance = balance - :amount WHERE balance >= :amount).
- Payments in a batch are atomic per note, not per batch: a rejected row
  never undoes payments already committed to other notes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import CreditCustomer, CreditNote, CreditPayment
from ..models.credit import (
    PAYMENT_METHODS,
    POLICY_BLOQUEO_PARCIAL,
    NOTE_STATUS_PAID,
    NOTE_STATUS_OVERDUE,
    NOTE_STATUS_OPEN,
)
from ..validation import (
    CoreError,
    NotFoundError,
    ValidationError,
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_credit_customer,
    parse_cents,
    parse_id,
)
from erpcore.time_utils import today_utc, to_iso_date, utcnow
from .audit_service import append_audit_event, require_actor
from .branch_service import require_branch
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number


REASON_OVERDUE = "VENCIDAS"
REASON_LIMIT = "LIMITE"

CREDIT_NOTE_DOCUMENT = "CREDIT_NOTE"


class CreditBlockedError(CoreError):
    """A credit sale was refused; decision carries the full evaluation."""
    code = "CREDIT_BLOCKED"
    http_status = 409

    def __init__(self, reason: str, decision: "CreditDecision"):
        self.reason = reason
        self.decision = decision
        super().__init__(f"Credit blocked: {reason}", details={"reason": reason, "decision": decision.to_dict()})


class ExceedsBalanceError(CoreError):
    code = "EXCEEDS_BALANCE"

    def __init__(self, note_id: int, balance_cents: int, amount_cents: int):
        self.note_id = note_id
        self.balance_cents = balance_cents
        self.amount_cents = amount_cents
        super().__init__(
            f"Payment {amount_cents} exceeds balance {balance_cents} of note {note_id}",
            details={"note_id": note_id, "balance_cents": balance_cents, "amount_cents": amount_cents},
        )


CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "phone",
        "credit_limit_cents",
        "default_credit_days",
        "policy",
        "allow_cash_if_blocked",
        "late_tolerance_days",
        "is_active",
    },
    required_on_create={"name"},
)


@dataclass(frozen=True)
class CreditDecision:
    allowed: bool
    reason: str | None
    limit_cents: int
    balance_cents: int
    available_cents: int
    policy: str
    allow_cash: bool
    can_pay_down: bool
    overdue_notes: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "limit_cents": self.limit_cents,
            "balance_cents": self.balance_cents,
            "available_cents": self.available_cents,
            "policy": self.policy,
            "allow_cash": self.allow_cash,
            "can_pay_down": self.can_pay_down,
            "overdue_notes": list(self.overdue_notes),
        }


@dataclass
class PaymentBatchResult:
    applied: list = field(default_factory=list)
    rejected: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "applied": [p.to_dict() for p in self.applied],
            "rejected": list(self.rejected),
        }


# =============================================================================
# EVALUATION
# =============================================================================

def days_overdue(due_date: date, today: date) -> int:
    return max((today - due_date).days, 0)


def is_overdue(note, today: date, late_tolerance_days: int = 0) -> bool:
    if note.balance_cents <= 0:
        return False
    return (today - note.due_date).days > (late_tolerance_days or 0)


def assess_credit(customer, open_notes, sale_total_cents: int, today: date) -> CreditDecision:
    """
    Decide whether sale_total_cents may be sold on credit.

    Pure: reads only its arguments. open_notes are the customer's notes with
    balance > 0; anything else is ignored.
    """
    if sale_total_cents < 0:
        raise ValidationError("sale_total_cents must be >= 0")

    open_notes = [n for n in open_notes if n.balance_cents > 0]
    limit = customer.credit_limit_cents or 0
    balance = sum(n.balance_cents for n in open_notes)
    available = limit - balance
    tolerance = customer.late_tolerance_days or 0

    overdue = [
        {
            "id": n.id,
            "folio": n.folio,
            "balance_cents": n.balance_cents,
            "due_date": to_iso_date(n.due_date),
            "days_overdue": days_overdue(n.due_date, today),
        }
        for n in sorted(open_notes, key=lambda n: (n.due_date, n.id or 0))
        if is_overdue(n, today, tolerance)
    ]

    common = dict(
        limit_cents=limit,
        balance_cents=balance,
        available_cents=available,
        policy=customer.policy,
        allow_cash=bool(customer.allow_cash_if_blocked),
        overdue_notes=overdue,
    )

    if overdue:
        return CreditDecision(
            allowed=False,
            reason=REASON_OVERDUE,
            can_pay_down=customer.policy == POLICY_BLOQUEO_PARCIAL,
            **common,
        )
    if sale_total_cents > available:
        return CreditDecision(allowed=False, reason=REASON_LIMIT, can_pay_down=False, **common)
    return CreditDecision(allowed=True, reason=None, can_pay_down=False, **common)


def evaluate(customer, sale_total_cents: int, today: date | None = None) -> CreditDecision:
    if not isinstance(customer, CreditCustomer):
        customer = require_customer(parse_id(customer, "customer_id"))
    sale_total_cents = parse_cents(sale_total_cents, "sale_total_cents")
    return assess_credit(customer, get_open_notes(customer.id), sale_total_cents, today or today_utc())


# =============================================================================
# CUSTOMERS
# =============================================================================

def get_customer(customer_id: int) -> CreditCustomer | None:
    return db.session.query(CreditCustomer).filter_by(id=customer_id).first()


def require_customer(customer_id: int, *, require_active: bool = False, lock: bool = False) -> CreditCustomer:
    q = db.session.query(CreditCustomer).filter_by(id=customer_id)
    if lock:
        q = lock_for_update(q)
    customer = q.first()
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    if require_active and not customer.is_active:
        raise ValidationError(f"Customer {customer_id} is inactive", details={"customer_id": customer_id})
    return customer


def list_customers_by_branch(branch_id: int, include_inactive: bool = False) -> list[CreditCustomer]:
    q = db.session.query(CreditCustomer).filter_by(branch_id=branch_id)
    if not include_inactive:
        q = q.filter_by(is_active=True)
    return q.order_by(CreditCustomer.name.asc()).all()


def create_customer(branch_id: int, payload: dict) -> CreditCustomer:
    patch = validate_payload(model=CreditCustomer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    enforce_rules_credit_customer(patch)

    def _op():
        require_branch(branch_id)
        customer = CreditCustomer(branch_id=branch_id, **patch)
        db.session.add(customer)
        db.session.commit()
        return customer

    return run_with_retry(_op)


def update_customer(customer_id: int, payload: dict) -> CreditCustomer:
    patch = validate_payload(model=CreditCustomer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    enforce_rules_credit_customer(patch)

    def _op():
        customer = require_customer(customer_id, lock=True)
        for key, value in patch.items():
            setattr(customer, key, value)
        db.session.commit()
        return customer

    return run_with_retry(_op)


# =============================================================================
# NOTES
# =============================================================================

def get_note(note_id: int) -> CreditNote:
    note = db.session.query(CreditNote).filter_by(id=note_id).first()
    if note is None:
        raise NotFoundError(f"Credit note {note_id} not found", details={"note_id": note_id})
    return note


def get_open_notes(customer_id: int) -> list[CreditNote]:
    return (
        db.session.query(CreditNote)
        .filter(CreditNote.customer_id == customer_id, CreditNote.balance_cents > 0)
        .order_by(CreditNote.due_date.asc(), CreditNote.id.asc())
        .all()
    )


def list_notes_by_customer(customer_id: int) -> list[CreditNote]:
    return (
        db.session.query(CreditNote)
        .filter_by(customer_id=customer_id)
        .order_by(CreditNote.issue_date.desc(), CreditNote.id.desc())
        .all()
    )


def list_note_payments(note_id: int) -> list[CreditPayment]:
    get_note(note_id)
    return (
        db.session.query(CreditPayment)
        .filter_by(note_id=note_id)
        .order_by(CreditPayment.id.asc())
        .all()
    )


def note_status(note: CreditNote, today: date, late_tolerance_days: int = 0) -> str:
    if note.balance_cents <= 0:
        return NOTE_STATUS_PAID
    if is_overdue(note, today, late_tolerance_days):
        return NOTE_STATUS_OVERDUE
    return NOTE_STATUS_OPEN


def get_customer_summary(customer_id: int, today: date | None = None) -> dict:
    today = today or today_utc()
    customer = require_customer(customer_id)
    notes = list_notes_by_customer(customer_id)
    tolerance = customer.late_tolerance_days or 0

    rows = []
    overdue_cents = 0
    for note in notes:
        status = note_status(note, today, tolerance)
        if status == NOTE_STATUS_OVERDUE:
            overdue_cents += note.balance_cents
        row = note.to_dict()
        row["status"] = status
        row["days_overdue"] = days_overdue(note.due_date, today) if note.balance_cents > 0 else 0
        rows.append(row)

    balance = sum(n.balance_cents for n in notes)
    return {
        "customer": customer.to_dict(),
        "total_cents": sum(n.total_cents for n in notes),
        "paid_cents": sum(n.paid_cents for n in notes),
        "balance_cents": balance,
        "overdue_cents": overdue_cents,
        "available_cents": (customer.credit_limit_cents or 0) - balance,
        "notes": rows,
    }


def _make_folio(branch_id: int, issue_date: date, seq: int) -> str:
    prefix = current_app.config.get("CREDIT_FOLIO_PREFIX", "CR")
    return f"{prefix}-{branch_id}-{issue_date.strftime('%Y%m%d')}-{seq:04d}"


def create_credit_note(
    customer_id: int,
    total_cents: int,
    credit_days: int | None = None,
    inventory_transaction_id: int | None = None,
    *,
    actor_id,
    issue_date: date | None = None,
    notes: str | None = None,
    commit: bool = True,
) -> CreditNote:
    """
    Open a receivable: due_date = issue_date + credit_days, balance = total.

    credit_days defaults to the customer's default_credit_days.
    commit=False runs inside the caller's unit of work (credit sales).
    """
    actor = require_actor(actor_id)
    total_cents = parse_cents(total_cents, "total_cents", allow_zero=False)
    if credit_days is not None and (isinstance(credit_days, bool) or not isinstance(credit_days, int) or credit_days < 0):
        raise ValidationError("credit_days must be an integer >= 0")

    def _op():
        customer = require_customer(customer_id, require_active=True)
        days = customer.default_credit_days if credit_days is None else credit_days
        issued = issue_date or today_utc()

        seq = next_document_number(branch_id=customer.branch_id, document_type=CREDIT_NOTE_DOCUMENT)
        note = CreditNote(
            branch_id=customer.branch_id,
            customer_id=customer.id,
            folio=_make_folio(customer.branch_id, issued, seq),
            issue_date=issued,
            credit_days_applied=days,
            due_date=issued + timedelta(days=days),
            total_cents=total_cents,
            paid_cents=0,
            balance_cents=total_cents,
            notes=notes or None,
            inventory_transaction_id=inventory_transaction_id,
            created_at=utcnow(),
        )
        db.session.add(note)
        db.session.flush()

        append_audit_event(
            branch_id=customer.branch_id,
            event_type="credit.note_created",
            entity_type="credit_note",
            entity_id=note.id,
            actor_id=actor,
            note=note.folio,
        )

        if commit:
            db.session.commit()
        return note

    if not commit:
        return _op()
    return run_with_retry(_op)


# =============================================================================
# PAYMENTS
# =============================================================================

def apply_payment(
    note_id: int,
    amount_cents: int,
    method: str,
    *,
    actor_id,
    reference: str | None = None,
    notes: str | None = None,
) -> CreditPayment:
    """
    Pay down one note. Raises ExceedsBalanceError when amount > balance.

    Balance and paid totals move in one conditional UPDATE, so two
    concurrent payments can never take the balance below zero.
    """
    actor = require_actor(actor_id)
    amount_cents = parse_cents(amount_cents, "amount_cents", allow_zero=False)
    method = (method or "").strip().upper()
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"method must be one of {', '.join(PAYMENT_METHODS)}")

    def _op():
        note = get_note(note_id)
        if amount_cents > note.balance_cents:
            raise ExceedsBalanceError(note.id, note.balance_cents, amount_cents)

        stmt = (
            update(CreditNote)
            .where(CreditNote.id == note.id, CreditNote.balance_cents >= amount_cents)
            .values(
                balance_cents=CreditNote.balance_cents - amount_cents,
                paid_cents=CreditNote.paid_cents + amount_cents,
            )
            .execution_options(synchronize_session=False)
        )
        if not db.session.execute(stmt).rowcount:
            # Another payment landed between the read and the update
            current = db.session.query(CreditNote.balance_cents).filter_by(id=note.id).scalar()
            raise ExceedsBalanceError(note.id, current, amount_cents)

        payment = CreditPayment(
            note_id=note.id,
            amount_cents=amount_cents,
            method=method,
            reference=reference or None,
            notes=notes or None,
            created_by=actor,
            paid_at=utcnow(),
        )
        db.session.add(payment)
        db.session.flush()

        append_audit_event(
            branch_id=note.branch_id,
            event_type="credit.payment_applied",
            entity_type="credit_note",
            entity_id=note.id,
            actor_id=actor,
            note=f"{method} {amount_cents}",
        )
        db.session.commit()
        return payment

    return run_with_retry(_op)


def apply_payments(payments, *, actor_id) -> PaymentBatchResult:
    """
    Apply a batch of {note_id, amount_cents, method, reference?, notes?}.

    Each row commits on its own. Rows that fail are reported in
    result.rejected with their error and do not affect the others.
    """
    require_actor(actor_id)
    if not isinstance(payments, (list, tuple)) or not payments:
        raise ValidationError("payments must be a non-empty list")

    result = PaymentBatchResult()
    for index, row in enumerate(payments):
        try:
            if not isinstance(row, dict):
                raise ValidationError(f"payments[{index}] must be an object")
            if row.get("note_id") is None:
                raise ValidationError(f"payments[{index}].note_id is required")
            payment = apply_payment(
                parse_id(row["note_id"], f"payments[{index}].note_id"),
                row.get("amount_cents"),
                row.get("method"),
                actor_id=actor_id,
                reference=row.get("reference"),
                notes=row.get("notes"),
            )
        except CoreError as e:
            result.rejected.append({"index": index, "note_id": row.get("note_id") if isinstance(row, dict) else None, **e.to_dict()})
            continue
        result.applied.append(payment)
    return result
