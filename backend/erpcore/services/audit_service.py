# Overview: Service-layer operations for the audit trail; encapsulates business logic and database work.

from __future__ import annotations

from typing import Optional

from ..extensions import db
from ..models import AuditEvent
from ..validation import ValidationError
from erpcore.time_utils import utcnow
"""
Audit Trail Invariants (authoritative)

- Append-only log of who changed the ledger or the receivables.
- No domain/business logic in the audit trail itself.
- Events are written inside the same DB transaction as the change they record.
- actor_id is opaque; authentication and authorization live outside this core.
"""


def require_actor(actor_id) -> str:
    """Every mutating call carries an actor id; reject blanks before any write."""
    if actor_id is None or str(actor_id).strip() == "":
        raise ValidationError("actor_id is required")
    actor = str(actor_id).strip()
    if len(actor) > 64:
        raise ValidationError("actor_id exceeds max length 64")
    return actor


def append_audit_event(
    *,
    branch_id: int,
    event_type: str,
    entity_type: str,
    entity_id: int,
    actor_id: str,
    note: Optional[str] = None,
) -> AuditEvent:
    """
    Append-only audit event.

    - No domain logic here.
    - No deletes/updates of existing events.
    - Does not commit; the caller's unit of work does.
    """
    ev = AuditEvent(
        branch_id=branch_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
        note=note[:255] if note else None,
        occurred_at=utcnow(),
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_audit_events(*, branch_id: int, entity_type: str | None = None, limit: int = 200) -> list[AuditEvent]:
    q = db.session.query(AuditEvent).filter_by(branch_id=branch_id)
    if entity_type:
        q = q.filter_by(entity_type=entity_type)
    return q.order_by(AuditEvent.id.desc()).limit(limit).all()
