"""Branch-scoped inventory ledger and customer credit schema

Revision ID: 20261019_initial_ledger
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial_ledger"
down_revision = None
branch_labels = None
depends_on = None


NOW = sa.text("(CURRENT_TIMESTAMP)")


def upgrade():
    op.create_table(
        "branches",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("branches", schema=None) as batch_op:
        batch_op.create_index("ix_branches_code", ["code"], unique=True)
        batch_op.create_index("ix_branches_is_active", ["is_active"], unique=False)

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("branch_id", "document_type", name="uq_doc_sequences_branch_type"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("document_sequences", schema=None) as batch_op:
        batch_op.create_index("ix_document_sequences_branch_id", ["branch_id"], unique=False)
        batch_op.create_index("ix_document_sequences_document_type", ["document_type"], unique=False)

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("actor_id", sa.String(64), nullable=False),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("audit_events", schema=None) as batch_op:
        batch_op.create_index("ix_audit_events_branch_id", ["branch_id"], unique=False)
        batch_op.create_index("ix_audit_events_event_type", ["event_type"], unique=False)
        batch_op.create_index("ix_audit_events_occurred_at", ["occurred_at"], unique=False)
        batch_op.create_index("ix_audit_branch_occurred", ["branch_id", "occurred_at"], unique=False)

    op.create_table(
        "uoms",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(16), nullable=False),
        sa.Column("name", sa.String(64), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("uoms", schema=None) as batch_op:
        batch_op.create_index("ix_uoms_code", ["code"], unique=True)

    # Default unit FKs point at product_uoms; they are added once that table exists
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(64), nullable=True),
        sa.Column("barcode", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("base_uom_id", sa.Integer(), nullable=False),
        sa.Column("is_divisible", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("purchase_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("wholesale_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("retail_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("min_stock", sa.Numeric(18, 4), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("default_sale_uom_id", sa.Integer(), nullable=True),
        sa.Column("default_purchase_uom_id", sa.Integer(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.ForeignKeyConstraint(["base_uom_id"], ["uoms.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("branch_id", "barcode", name="uq_products_branch_barcode"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_branch_id", ["branch_id"], unique=False)
        batch_op.create_index("ix_products_branch_name", ["branch_id", "name"], unique=False)
        batch_op.create_index("ix_products_branch_active", ["branch_id", "is_active"], unique=False)

    op.create_table(
        "product_uoms",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("uom_id", sa.Integer(), nullable=False),
        sa.Column("purpose", sa.String(16), nullable=False, server_default="BOTH"),
        sa.Column("factor_to_base", sa.Numeric(18, 6), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["uom_id"], ["uoms.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "uom_id", name="uq_product_uoms_product_uom"),
        sa.CheckConstraint("factor_to_base > 0", name="ck_product_uoms_factor_positive"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("product_uoms", schema=None) as batch_op:
        batch_op.create_index("ix_product_uoms_product_id", ["product_id"], unique=False)

    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_foreign_key(
            "fk_products_default_sale_uom", "product_uoms", ["default_sale_uom_id"], ["id"]
        )
        batch_op.create_foreign_key(
            "fk_products_default_purchase_uom", "product_uoms", ["default_purchase_uom_id"], ["id"]
        )

    op.create_table(
        "suppliers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("branch_id", "name", name="uq_suppliers_branch_name"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("suppliers", schema=None) as batch_op:
        batch_op.create_index("ix_suppliers_branch_id", ["branch_id"], unique=False)

    op.create_table(
        "stock_balances",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("qty_base", sa.Numeric(18, 4), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("branch_id", "product_id", name="uq_stock_balances_branch_product"),
        sa.CheckConstraint("qty_base >= 0", name="ck_stock_balances_non_negative"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_balances", schema=None) as batch_op:
        batch_op.create_index("ix_stock_balances_branch_id", ["branch_id"], unique=False)
        batch_op.create_index("ix_stock_balances_product_id", ["product_id"], unique=False)

    op.create_table(
        "inventory_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("direction", sa.String(8), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("reference", sa.String(128), nullable=True),
        sa.Column("notes", sa.String(255), nullable=True),
        sa.Column("supplier_id", sa.Integer(), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("transfer_group", sa.String(64), nullable=True),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_transactions_type", ["type"], unique=False)
        batch_op.create_index("ix_inventory_transactions_branch_id", ["branch_id"], unique=False)
        batch_op.create_index("ix_inventory_transactions_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_inventory_transactions_supplier_id", ["supplier_id"], unique=False)
        batch_op.create_index("ix_inventory_transactions_transfer_group", ["transfer_group"], unique=False)
        batch_op.create_index("ix_invtx_branch_type_created", ["branch_id", "type", "created_at"], unique=False)

    op.create_table(
        "inventory_transaction_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("transaction_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("product_uom_id", sa.Integer(), nullable=False),
        sa.Column("qty", sa.Numeric(18, 4), nullable=False),
        sa.Column("factor_used", sa.Numeric(18, 6), nullable=False),
        sa.Column("qty_base", sa.Numeric(18, 4), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("line_total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("barcode_scanned", sa.String(64), nullable=True),
        sa.ForeignKeyConstraint(["transaction_id"], ["inventory_transactions.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["product_uom_id"], ["product_uoms.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_transaction_items", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_transaction_items_transaction_id", ["transaction_id"], unique=False)
        batch_op.create_index("ix_invtx_items_product", ["product_id", "transaction_id"], unique=False)

    op.create_table(
        "credit_customers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("credit_limit_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("default_credit_days", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("policy", sa.String(32), nullable=False, server_default="BLOQUEO_TOTAL"),
        sa.Column("allow_cash_if_blocked", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("late_tolerance_days", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("credit_customers", schema=None) as batch_op:
        batch_op.create_index("ix_credit_customers_branch_id", ["branch_id"], unique=False)
        batch_op.create_index("ix_credit_customers_is_active", ["is_active"], unique=False)
        batch_op.create_index("ix_credit_customers_branch_name", ["branch_id", "name"], unique=False)

    op.create_table(
        "credit_notes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("folio", sa.String(64), nullable=False),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("credit_days_applied", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        sa.Column("paid_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("balance_cents", sa.Integer(), nullable=False),
        sa.Column("notes", sa.String(255), nullable=True),
        sa.Column("inventory_transaction_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.ForeignKeyConstraint(["customer_id"], ["credit_customers.id"]),
        sa.ForeignKeyConstraint(["inventory_transaction_id"], ["inventory_transactions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("folio"),
        sa.CheckConstraint("balance_cents >= 0", name="ck_credit_notes_balance_non_negative"),
        sa.CheckConstraint("balance_cents <= total_cents", name="ck_credit_notes_balance_le_total"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("credit_notes", schema=None) as batch_op:
        batch_op.create_index("ix_credit_notes_branch_id", ["branch_id"], unique=False)
        batch_op.create_index("ix_credit_notes_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_credit_notes_inventory_transaction_id", ["inventory_transaction_id"], unique=False)
        batch_op.create_index("ix_credit_notes_customer_due", ["customer_id", "due_date"], unique=False)

    op.create_table(
        "credit_payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("note_id", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("method", sa.String(16), nullable=False),
        sa.Column("reference", sa.String(128), nullable=True),
        sa.Column("notes", sa.String(255), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["note_id"], ["credit_notes.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("amount_cents > 0", name="ck_credit_payments_amount_positive"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("credit_payments", schema=None) as batch_op:
        batch_op.create_index("ix_credit_payments_note_id", ["note_id"], unique=False)

    op.create_table(
        "formulas",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("branch_id", "name", name="uq_formulas_branch_name"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("formulas", schema=None) as batch_op:
        batch_op.create_index("ix_formulas_branch_id", ["branch_id"], unique=False)

    op.create_table(
        "formula_components",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("formula_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("qty_base_per_m3", sa.Numeric(18, 4), nullable=False),
        sa.ForeignKeyConstraint(["formula_id"], ["formulas.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("formula_id", "product_id", name="uq_formula_components_product"),
        sa.CheckConstraint("qty_base_per_m3 > 0", name="ck_formula_components_qty_positive"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("formula_components", schema=None) as batch_op:
        batch_op.create_index("ix_formula_components_formula_id", ["formula_id"], unique=False)


def downgrade():
    op.drop_table("formula_components")
    op.drop_table("formulas")
    op.drop_table("credit_payments")
    op.drop_table("credit_notes")
    op.drop_table("credit_customers")
    op.drop_table("inventory_transaction_items")
    op.drop_table("inventory_transactions")
    op.drop_table("stock_balances")
    op.drop_table("suppliers")
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.drop_constraint("fk_products_default_purchase_uom", type_="foreignkey")
        batch_op.drop_constraint("fk_products_default_sale_uom", type_="foreignkey")
    op.drop_table("product_uoms")
    op.drop_table("products")
    op.drop_table("uoms")
    op.drop_table("audit_events")
    op.drop_table("document_sequences")
    op.drop_table("branches")
