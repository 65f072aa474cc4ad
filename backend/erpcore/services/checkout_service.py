# Overview: Service-layer operations for checkout; encapsulates business logic and database work.

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..models import CreditNote, InventoryTransaction
from ..models.inventory import TX_SALE
from erpcore.time_utils import utcnow
from .audit_service import require_actor
from .concurrency import run_with_retry
from .credit_service import CreditBlockedError, create_credit_note, evaluate, require_customer
from .inventory_service import post_sale, post_transaction


def record_cash_sale(
    branch_id: int,
    items,
    *,
    actor_id,
    customer_name: str | None = None,
    reference: str | None = None,
    notes: str | None = None,
) -> InventoryTransaction:
    return post_sale(
        branch_id,
        items,
        actor_id=actor_id,
        customer_name=customer_name,
        reference=reference,
        notes=notes,
    )


def record_credit_sale(
    customer_id: int,
    items,
    *,
    actor_id,
    credit_days: int | None = None,
    reference: str | None = None,
    notes: str | None = None,
    today: date | None = None,
) -> tuple[InventoryTransaction, CreditNote]:
    """
    Post a SALE on credit and open its receivable in one DB transaction.

    Overdue notes block before any stock is touched. The limit is checked
    after posting, against the priced total; a CreditBlockedError (or a
    stock shortage) rolls both back. Touching the customer row bumps its
    version, so two credit sales for the same customer cannot both spend
    the same available credit.
    """
    actor = require_actor(actor_id)

    def _op():
        customer = require_customer(customer_id, require_active=True, lock=True)
        customer.updated_at = utcnow()

        # A zero total only trips VENCIDAS, or LIMITE when already over the limit
        standing = evaluate(customer, 0, today)
        if not standing.allowed:
            raise CreditBlockedError(standing.reason, standing)

        tx = post_transaction(
            TX_SALE,
            customer.branch_id,
            items,
            actor_id=actor,
            customer_name=customer.name,
            reference=reference,
            notes=notes,
            commit=False,
        )

        decision = evaluate(customer, tx.total_cents, today)
        if not decision.allowed:
            raise CreditBlockedError(decision.reason, decision)

        note = create_credit_note(
            customer.id,
            tx.total_cents,
            credit_days,
            tx.id,
            actor_id=actor,
            issue_date=today,
            notes=reference,
            commit=False,
        )
        db.session.commit()
        return tx, note

    return run_with_retry(_op)
