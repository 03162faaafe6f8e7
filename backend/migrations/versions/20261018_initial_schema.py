"""Initial schema: units, inventory valuation, product recipes, audit log

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
    ]


def upgrade():
    op.create_table(
        "units",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("abbreviation", sa.String(10), nullable=False),
        sa.Column("measurement_type", sa.String(20), nullable=False),
        sa.Column("base_unit_name", sa.String(100), nullable=True),
        sa.Column("conversion_factor", sa.Numeric(18, 6), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("conversion_factor > 0", name="ck_units_factor_positive"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    with op.batch_alter_table("units", schema=None) as batch_op:
        batch_op.create_index("ix_units_type_active", ["measurement_type", "is_active"], unique=False)

    op.create_table(
        "unit_conversions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("from_unit_id", sa.Integer(), nullable=False),
        sa.Column("to_unit_id", sa.Integer(), nullable=False),
        sa.Column("conversion_factor", sa.Numeric(18, 6), nullable=False),
        sa.Column("formula", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("conversion_factor > 0", name="ck_unit_conversions_factor_positive"),
        sa.ForeignKeyConstraint(["from_unit_id"], ["units.id"]),
        sa.ForeignKeyConstraint(["to_unit_id"], ["units.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("unit_conversions", schema=None) as batch_op:
        batch_op.create_index("ix_unit_conversions_from_unit_id", ["from_unit_id"], unique=False)
        batch_op.create_index("ix_unit_conversions_to_unit_id", ["to_unit_id"], unique=False)
        batch_op.create_index("ix_unit_conversions_pair", ["from_unit_id", "to_unit_id"], unique=False)

    op.create_table(
        "inventory_categories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "inventory_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(50), nullable=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("current_stock", sa.Numeric(18, 6), nullable=False, server_default=sa.text("0")),
        sa.Column("opening_stock", sa.Numeric(18, 6), nullable=False, server_default=sa.text("0")),
        sa.Column("purchased_quantity", sa.Numeric(18, 6), nullable=False, server_default=sa.text("0")),
        sa.Column("consumed_quantity", sa.Numeric(18, 6), nullable=False, server_default=sa.text("0")),
        sa.Column("closing_stock", sa.Numeric(18, 6), nullable=False, server_default=sa.text("0")),
        sa.Column("min_level", sa.Numeric(18, 6), nullable=False, server_default=sa.text("0")),
        sa.Column("primary_unit_id", sa.Integer(), nullable=False),
        sa.Column("secondary_unit_id", sa.Integer(), nullable=True),
        sa.Column("conversion_rate", sa.Numeric(18, 6), nullable=False, server_default=sa.text("1")),
        sa.Column("cost_per_unit", sa.Numeric(18, 6), nullable=False, server_default=sa.text("0")),
        sa.Column("supplier", sa.String(200), nullable=True),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("is_ingredient", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("last_restocked", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("current_stock >= 0", name="ck_inventory_items_stock_nonnegative"),
        sa.CheckConstraint("cost_per_unit >= 0", name="ck_inventory_items_cost_nonnegative"),
        sa.ForeignKeyConstraint(["primary_unit_id"], ["units.id"]),
        sa.ForeignKeyConstraint(["secondary_unit_id"], ["units.id"]),
        sa.ForeignKeyConstraint(["category_id"], ["inventory_categories.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
    )
    with op.batch_alter_table("inventory_items", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_items_name", ["name"], unique=False)
        batch_op.create_index("ix_inventory_items_primary_unit_id", ["primary_unit_id"], unique=False)
        batch_op.create_index("ix_inventory_items_category_id", ["category_id"], unique=False)

    op.create_table(
        "inventory_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("inventory_item_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("quantity", sa.Numeric(18, 6), nullable=False),
        sa.Column("unit_cost", sa.Numeric(18, 6), nullable=True),
        sa.Column("reason", sa.String(200), nullable=True),
        sa.Column("reference", sa.String(100), nullable=True),
        sa.Column("created_by", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["inventory_item_id"], ["inventory_items.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("inventory_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_transactions_inventory_item_id", ["inventory_item_id"], unique=False)
        batch_op.create_index("ix_inventory_transactions_type", ["type"], unique=False)
        batch_op.create_index("ix_invtx_item_created", ["inventory_item_id", "created_at"], unique=False)

    op.create_table(
        "stock_batches",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("inventory_item_id", sa.Integer(), nullable=False),
        sa.Column("inventory_transaction_id", sa.Integer(), nullable=True),
        sa.Column("batch_number", sa.String(100), nullable=True),
        sa.Column("quantity_received", sa.Numeric(18, 6), nullable=False),
        sa.Column("remaining_quantity", sa.Numeric(18, 6), nullable=False),
        sa.Column("unit_cost", sa.Numeric(18, 6), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("received_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("supplier", sa.String(200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["inventory_item_id"], ["inventory_items.id"]),
        sa.ForeignKeyConstraint(["inventory_transaction_id"], ["inventory_transactions.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("stock_batches", schema=None) as batch_op:
        batch_op.create_index("ix_stock_batches_inventory_item_id", ["inventory_item_id"], unique=False)
        batch_op.create_index("ix_stock_batches_is_active", ["is_active"], unique=False)
        batch_op.create_index("ix_stock_batches_item_received", ["inventory_item_id", "received_date"], unique=False)

    op.create_table(
        "stock_batch_consumptions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("stock_batch_id", sa.Integer(), nullable=False),
        sa.Column("inventory_transaction_id", sa.Integer(), nullable=True),
        sa.Column("quantity_consumed", sa.Numeric(18, 6), nullable=False),
        sa.Column("unit_cost_at_consumption", sa.Numeric(18, 6), nullable=False),
        sa.Column("total_cost", sa.Numeric(18, 4), nullable=False),
        sa.Column("reason", sa.String(100), nullable=True),
        sa.Column("consumed_by", sa.String(100), nullable=True),
        sa.Column("consumed_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["stock_batch_id"], ["stock_batches.id"]),
        sa.ForeignKeyConstraint(["inventory_transaction_id"], ["inventory_transactions.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("stock_batch_consumptions", schema=None) as batch_op:
        batch_op.create_index("ix_stock_batch_consumptions_stock_batch_id", ["stock_batch_id"], unique=False)

    op.create_table(
        "inventory_cost_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("inventory_item_id", sa.Integer(), nullable=False),
        sa.Column("previous_cost", sa.Numeric(18, 6), nullable=True),
        sa.Column("new_cost", sa.Numeric(18, 6), nullable=False),
        sa.Column("previous_average_cost", sa.Numeric(18, 6), nullable=True),
        sa.Column("new_average_cost", sa.Numeric(18, 6), nullable=False),
        sa.Column("change_reason", sa.String(100), nullable=False),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("reference_type", sa.String(50), nullable=True),
        sa.Column("changed_by", sa.String(100), nullable=True),
        sa.Column("change_date", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["inventory_item_id"], ["inventory_items.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("inventory_cost_history", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_cost_history_inventory_item_id", ["inventory_item_id"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("sku", sa.String(50), nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("cost", sa.Numeric(18, 4), nullable=False, server_default=sa.text("0")),
        sa.Column("margin", sa.Numeric(18, 4), nullable=False, server_default=sa.text("0")),
        sa.Column("cost_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("unit_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["unit_id"], ["units.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sku"),
    )

    op.create_table(
        "product_ingredients",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("inventory_item_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Numeric(18, 6), nullable=False),
        sa.Column("unit_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["inventory_item_id"], ["inventory_items.id"]),
        sa.ForeignKeyConstraint(["unit_id"], ["units.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("product_ingredients", schema=None) as batch_op:
        batch_op.create_index("ix_product_ingredients_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_product_ingredients_item", ["inventory_item_id"], unique=False)

    # Append-only; the ORM rejects UPDATE/DELETE on this table
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(100), nullable=True),
        sa.Column("user_email", sa.String(255), nullable=True),
        sa.Column("user_name", sa.String(200), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("resource", sa.String(100), nullable=False),
        sa.Column("resource_id", sa.String(100), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("old_values", sa.JSON(), nullable=True),
        sa.Column("new_values", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="success"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("audit_logs", schema=None) as batch_op:
        batch_op.create_index("ix_audit_logs_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_audit_logs_action", ["action"], unique=False)
        batch_op.create_index("ix_audit_logs_ip_address", ["ip_address"], unique=False)
        batch_op.create_index("ix_audit_logs_timestamp", ["timestamp"], unique=False)
        batch_op.create_index("ix_audit_logs_status", ["status"], unique=False)
        batch_op.create_index("ix_audit_logs_user_action", ["user_id", "action"], unique=False)
        batch_op.create_index("ix_audit_logs_resource", ["resource", "resource_id"], unique=False)

    op.create_table(
        "login_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(100), nullable=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("login_time", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("location", sa.String(200), nullable=True),
        sa.Column("device_type", sa.String(50), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("login_logs", schema=None) as batch_op:
        batch_op.create_index("ix_login_logs_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_login_logs_email_status_time", ["email", "status", "login_time"], unique=False)
        batch_op.create_index("ix_login_logs_ip_status_time", ["ip_address", "status", "login_time"], unique=False)


def downgrade():
    op.drop_table("login_logs")
    op.drop_table("audit_logs")
    op.drop_table("product_ingredients")
    op.drop_table("products")
    op.drop_table("inventory_cost_history")
    op.drop_table("stock_batch_consumptions")
    op.drop_table("stock_batches")
    op.drop_table("inventory_transactions")
    op.drop_table("inventory_items")
    op.drop_table("inventory_categories")
    op.drop_table("unit_conversions")
    op.drop_table("units")
