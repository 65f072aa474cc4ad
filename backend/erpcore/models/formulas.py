from __future__ import annotations

from ..extensions import db
from erpcore.time_utils import to_utc_z


class Formula(db.Model):
    """
    Concrete mix design: which materials one cubic metre consumes.

    Batching a formula is an ordinary multi-item ledger posting; there is
    no separate stock path for concrete.
    """
    __tablename__ = "formulas"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "name", name="uq_formulas_branch_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    components = db.relationship(
        "FormulaComponent",
        back_populates="formula",
        lazy=True,
        order_by="FormulaComponent.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "components": [c.to_dict() for c in self.components],
            "created_at": to_utc_z(self.created_at),
        }


class FormulaComponent(db.Model):
    __tablename__ = "formula_components"
    __table_args__ = (
        db.UniqueConstraint("formula_id", "product_id", name="uq_formula_components_product"),
        db.CheckConstraint("qty_base_per_m3 > 0", name="ck_formula_components_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    formula_id = db.Column(db.Integer, db.ForeignKey("formulas.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    qty_base_per_m3 = db.Column(db.Numeric(18, 4), nullable=False)

    formula = db.relationship("Formula", back_populates="components")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "formula_id": self.formula_id,
            "product_id": self.product_id,
            "qty_base_per_m3": str(self.qty_base_per_m3),
        }
