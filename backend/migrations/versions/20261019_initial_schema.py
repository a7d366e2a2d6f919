"""Initial schema: catalog, stock ledger, sales, document sequences

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("category_name", sa.String(100), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("category_name", name="uq_categories_name"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("type", sa.String(255), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=True),
        sa.Column("supplier", sa.String(255), nullable=True),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("weight_grams", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("stock_alert_grams", sa.Integer(), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="fresh"),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("weight_grams >= 0", name="ck_products_weight_non_negative"),
        sa.CheckConstraint("price_cents > 0", name="ck_products_price_positive"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_products_category_id", "products", ["category_id"])
    op.create_index("ix_products_expiry_date", "products", ["expiry_date"])
    op.create_index("ix_products_status", "products", ["status"])
    op.create_index("ix_products_deleted_type", "products", ["is_deleted", "type"])

    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("receipt_no", sa.String(64), nullable=False),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        sa.Column("discount_bps", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("discount_amount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("amount_paid_cents", sa.Integer(), nullable=False),
        sa.Column("change_amount_cents", sa.Integer(), nullable=False),
        sa.Column("sale_date", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("receipt_no", name="uq_sales_receipt_no"),
        sa.CheckConstraint("change_amount_cents >= 0", name="ck_sales_change_non_negative"),
        sa.CheckConstraint("discount_bps >= 0 AND discount_bps <= 10000", name="ck_sales_discount_range"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sales_sale_date", "sales", ["sale_date"])

    op.create_table(
        "stock_adjustments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("reason", sa.String(16), nullable=False),
        sa.Column("quantity_change_grams", sa.Integer(), nullable=False),
        sa.Column("balance_after_grams", sa.Integer(), nullable=False),
        sa.Column("notes", sa.String(255), nullable=True),
        sa.Column("sale_id", sa.Integer(), sa.ForeignKey("sales.id"), nullable=True),
        sa.Column("adjustment_date", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("quantity_change_grams <> 0", name="ck_stock_adj_nonzero"),
        sa.CheckConstraint("balance_after_grams >= 0", name="ck_stock_adj_balance_non_negative"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_stock_adjustments_product_id", "stock_adjustments", ["product_id"])
    op.create_index("ix_stock_adjustments_reason", "stock_adjustments", ["reason"])
    op.create_index("ix_stock_adjustments_sale_id", "stock_adjustments", ["sale_id"])
    op.create_index("ix_stock_adjustments_adjustment_date", "stock_adjustments", ["adjustment_date"])
    op.create_index("ix_stock_adj_product_date", "stock_adjustments", ["product_id", "adjustment_date"])

    op.create_table(
        "sale_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sale_id", sa.Integer(), sa.ForeignKey("sales.id"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("quantity_grams", sa.Integer(), nullable=False),
        sa.Column("price_per_kg_cents", sa.Integer(), nullable=False),
        sa.Column("line_total_cents", sa.Integer(), nullable=False),
        sa.Column("adjustment_id", sa.Integer(), sa.ForeignKey("stock_adjustments.id"), nullable=False),
        sa.CheckConstraint("quantity_grams > 0", name="ck_sale_items_quantity_positive"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sale_items_sale_id", "sale_items", ["sale_id"])
    op.create_index("ix_sale_items_product_id", "sale_items", ["product_id"])

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_type", sa.String(32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("document_type", name="uq_doc_sequences_type"),
        sqlite_autoincrement=True,
    )


def downgrade():
    op.drop_table("document_sequences")
    op.drop_index("ix_sale_items_product_id", table_name="sale_items")
    op.drop_index("ix_sale_items_sale_id", table_name="sale_items")
    op.drop_table("sale_items")
    op.drop_index("ix_stock_adj_product_date", table_name="stock_adjustments")
    op.drop_index("ix_stock_adjustments_adjustment_date", table_name="stock_adjustments")
    op.drop_index("ix_stock_adjustments_sale_id", table_name="stock_adjustments")
    op.drop_index("ix_stock_adjustments_reason", table_name="stock_adjustments")
    op.drop_index("ix_stock_adjustments_product_id", table_name="stock_adjustments")
    op.drop_table("stock_adjustments")
    op.drop_index("ix_sales_sale_date", table_name="sales")
    op.drop_table("sales")
    op.drop_index("ix_products_deleted_type", table_name="products")
    op.drop_index("ix_products_status", table_name="products")
    op.drop_index("ix_products_expiry_date", table_name="products")
    op.drop_index("ix_products_category_id", table_name="products")
    op.drop_table("products")
    op.drop_table("categories")
