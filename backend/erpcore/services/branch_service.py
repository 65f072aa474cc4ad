from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from erpcore.extensions import db
from erpcore.models import Branch, Supplier
from erpcore.services.concurrency import run_with_retry
from erpcore.validation import ConflictError, NotFoundError, ValidationError


def create_branch(code: str, name: str, address: str | None = None) -> Branch:
    def _op():
        if not code or not code.strip():
            raise ValidationError("Branch code is required")
        if not name or not name.strip():
            raise ValidationError("Branch name is required")

        if db.session.query(Branch).filter_by(code=code.strip()).first():
            raise ConflictError(f"Branch code {code!r} already exists")

        branch = Branch(code=code.strip(), name=name.strip(), address=address)
        db.session.add(branch)
        db.session.commit()
        return branch

    return run_with_retry(_op)


def get_branch(branch_id: int) -> Branch | None:
    return db.session.query(Branch).filter_by(id=branch_id).first()


def require_branch(branch_id: int, *, require_active: bool = True) -> Branch:
    branch = get_branch(branch_id)
    if branch is None:
        raise NotFoundError(f"Branch {branch_id} not found", details={"branch_id": branch_id})
    if require_active and not branch.is_active:
        raise ValidationError(f"Branch {branch_id} is inactive", details={"branch_id": branch_id})
    return branch


def list_branches(include_inactive: bool = False) -> list[Branch]:
    q = db.session.query(Branch)
    if not include_inactive:
        q = q.filter_by(is_active=True)
    return q.order_by(Branch.name.asc()).all()


def create_supplier(
    branch_id: int,
    name: str,
    *,
    phone: str | None = None,
    email: str | None = None,
) -> Supplier:
    def _op():
        require_branch(branch_id)
        if not name or not name.strip():
            raise ValidationError("Supplier name is required")

        supplier = Supplier(branch_id=branch_id, name=name.strip(), phone=phone, email=email)
        db.session.add(supplier)
        try:
            db.session.flush()
        except IntegrityError:
            raise ConflictError(f"Supplier {name!r} already exists in branch {branch_id}")
        db.session.commit()
        return supplier

    return run_with_retry(_op)


def list_suppliers(branch_id: int) -> list[Supplier]:
    return (
        db.session.query(Supplier)
        .filter_by(branch_id=branch_id, is_active=True)
        .order_by(Supplier.name.asc())
        .all()
    )
