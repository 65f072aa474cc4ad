from __future__ import annotations

from ..extensions import db
from erpcore.time_utils import to_utc_z


class Branch(db.Model):
    """
    Branch (sucursal) that owns products, stock, suppliers and credit customers.

    WHY: Every ledger row is branch-scoped. The general-merchandise and the
    concrete-batching businesses are just different branches running the
    same ledger code.
    """
    __tablename__ = "branches"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)
    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Branch id={self.id} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "address": self.address,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-branch document sequences.

    WHY: Prevent race conditions when generating document numbers
    (credit note folios).
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "document_type", name="uq_doc_sequences_branch_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())


class AuditEvent(db.Model):
    """
    Append-only audit trail of ledger and credit mutations.

    Written in the same DB transaction as the change it records, so a
    rolled-back posting leaves no audit row behind. actor_id is opaque:
    no authorization happens here.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_branch_occurred", "branch_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g. inventory.sale_posted
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    actor_id = db.Column(db.String(64), nullable=False)
    note = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_id": self.actor_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
