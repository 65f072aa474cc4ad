"""Add categories and brands, with optional product references

Revision ID: 20261020_categories_brands
Revises: 20261019_initial_ledger
Create Date: 2026-10-20
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261020_categories_brands"
down_revision = "20261019_initial_ledger"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("categories", schema=None) as batch_op:
        batch_op.create_index("ix_categories_name", ["name"], unique=True)

    op.create_table(
        "brands",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("brands", schema=None) as batch_op:
        batch_op.create_index("ix_brands_name", ["name"], unique=True)

    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.add_column(sa.Column("category_id", sa.Integer(), nullable=True))
        batch_op.add_column(sa.Column("brand_id", sa.Integer(), nullable=True))
        batch_op.create_foreign_key("fk_products_category", "categories", ["category_id"], ["id"])
        batch_op.create_foreign_key("fk_products_brand", "brands", ["brand_id"], ["id"])


def downgrade():
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.drop_constraint("fk_products_brand", type_="foreignkey")
        batch_op.drop_constraint("fk_products_category", type_="foreignkey")
        batch_op.drop_column("brand_id")
        batch_op.drop_column("category_id")

    with op.batch_alter_table("brands", schema=None) as batch_op:
        batch_op.drop_index("ix_brands_name")
    op.drop_table("brands")

    with op.batch_alter_table("categories", schema=None) as batch_op:
        batch_op.drop_index("ix_categories_name")
    op.drop_table("categories")
