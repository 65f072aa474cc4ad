from __future__ import annotations

from ..extensions import db
from erpcore.time_utils import to_utc_z


UOM_PURPOSE_PURCHASE = "PURCHASE"
UOM_PURPOSE_SALE = "SALE"
UOM_PURPOSE_BOTH = "BOTH"

UOM_PURPOSES = (UOM_PURPOSE_PURCHASE, UOM_PURPOSE_SALE, UOM_PURPOSE_BOTH)


class Uom(db.Model):
    """Measurement unit (kg, bulto, m3, pieza...). Immutable reference data."""
    __tablename__ = "uoms"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(16), nullable=False, unique=True, index=True)
    name = db.Column(db.String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<Uom id={self.id} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {"id": self.id, "code": self.code, "name": self.name}


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True, index=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class Brand(db.Model):
    __tablename__ = "brands"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True, index=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class Product(db.Model):
    """
    Product master data, owned by a branch.

    Stock is always counted in base_uom_id. Every other unit the product is
    bought or sold in is a ProductUom row with its factor_to_base.

    DEFAULT UNITS:
    default_sale_uom_id / default_purchase_uom_id are plain nullable FKs.
    There is exactly one place that says "this is the default", so two
    defaults for the same purpose cannot exist.

    Prices are per base unit, in cents.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "barcode", name="uq_products_branch_barcode"),
        db.Index("ix_products_branch_name", "branch_id", "name"),
        db.Index("ix_products_branch_active", "branch_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=True)
    barcode = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    base_uom_id = db.Column(db.Integer, db.ForeignKey("uoms.id"), nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=True)
    is_divisible = db.Column(db.Boolean, nullable=False, default=False)

    purchase_price_cents = db.Column(db.Integer, nullable=False, default=0)
    wholesale_price_cents = db.Column(db.Integer, nullable=False, default=0)
    retail_price_cents = db.Column(db.Integer, nullable=False, default=0)

    min_stock = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    default_sale_uom_id = db.Column(
        db.Integer,
        db.ForeignKey("product_uoms.id", use_alter=True, name="fk_products_default_sale_uom"),
        nullable=True,
    )
    default_purchase_uom_id = db.Column(
        db.Integer,
        db.ForeignKey("product_uoms.id", use_alter=True, name="fk_products_default_purchase_uom"),
        nullable=True,
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    branch = db.relationship("Branch", backref=db.backref("products", lazy=True))
    base_uom = db.relationship("Uom", foreign_keys=[base_uom_id])
    category = db.relationship("Category")
    brand = db.relationship("Brand")
    uoms = db.relationship(
        "ProductUom",
        foreign_keys="ProductUom.product_id",
        back_populates="product",
        lazy=True,
        order_by="ProductUom.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} barcode={self.barcode!r} name={self.name!r} branch_id={self.branch_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "base_uom_id": self.base_uom_id,
            "category_id": self.category_id,
            "brand_id": self.brand_id,
            "is_divisible": self.is_divisible,
            "purchase_price_cents": self.purchase_price_cents,
            "wholesale_price_cents": self.wholesale_price_cents,
            "retail_price_cents": self.retail_price_cents,
            "min_stock": str(self.min_stock) if self.min_stock is not None else None,
            "is_active": self.is_active,
            "default_sale_uom_id": self.default_sale_uom_id,
            "default_purchase_uom_id": self.default_purchase_uom_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductUom(db.Model):
    """
    Unit a product is bought and/or sold in, with its conversion to base.

    The base unit itself is stored as a row with factor_to_base = 1 and
    purpose BOTH, so every posting resolves its factor the same way.

    Editing factor_to_base never touches history: posted items carry
    their own factor_used copy.
    """
    __tablename__ = "product_uoms"
    __table_args__ = (
        db.UniqueConstraint("product_id", "uom_id", name="uq_product_uoms_product_uom"),
        db.CheckConstraint("factor_to_base > 0", name="ck_product_uoms_factor_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    uom_id = db.Column(db.Integer, db.ForeignKey("uoms.id"), nullable=False)

    purpose = db.Column(db.String(16), nullable=False, default=UOM_PURPOSE_BOTH)
    factor_to_base = db.Column(db.Numeric(18, 6), nullable=False)

    product = db.relationship("Product", foreign_keys=[product_id], back_populates="uoms")
    uom = db.relationship("Uom")

    def allows(self, purpose: str) -> bool:
        return self.purpose == UOM_PURPOSE_BOTH or self.purpose == purpose

    @property
    def is_default_sale(self) -> bool:
        return self.product is not None and self.product.default_sale_uom_id == self.id

    @property
    def is_default_purchase(self) -> bool:
        return self.product is not None and self.product.default_purchase_uom_id == self.id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "uom_id": self.uom_id,
            "uom": self.uom.to_dict() if self.uom else None,
            "purpose": self.purpose,
            "factor_to_base": str(self.factor_to_base),
            "is_default_sale": self.is_default_sale,
            "is_default_purchase": self.is_default_purchase,
        }
