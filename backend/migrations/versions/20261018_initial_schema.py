"""Initial clinic commerce and fulfillment schema

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


def _created_at():
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False)


def _version_id():
    return sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1"))


def _money(name, nullable=False, default=None):
    kwargs = {"server_default": sa.text(default)} if default is not None else {}
    return sa.Column(name, sa.Numeric(12, 2), nullable=nullable, **kwargs)


def _line_columns():
    return [
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("item_type", sa.String(16), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        _money("price"),
        sa.Column("discount_percentage", sa.Numeric(7, 4), nullable=False, server_default=sa.text("0")),
        _money("discount_amount", default="0"),
        _money("total"),
        sa.Column("discount_request_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
    ]


def _payment_columns():
    return [
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(32), nullable=False),
        _money("amount"),
        sa.Column("reference_number", sa.String(128), nullable=True),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    ]


def upgrade():
    # ------------------------------------------------------------------
    # Collaborator tables
    # ------------------------------------------------------------------
    op.create_table(
        "patients",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("first_name", sa.String(128), nullable=False),
        sa.Column("last_name", sa.String(128), nullable=False),
        sa.Column("identification", sa.String(64), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("identification"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _money("price"),
        _money("cost", nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "lenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("lens_type", sa.String(64), nullable=True),
        sa.Column("material", sa.String(64), nullable=True),
        _money("price"),
        _money("cost", nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "laboratories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("contact_email", sa.String(255), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "warehouses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "warehouse_locations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("code", sa.String(32), nullable=False),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("warehouse_id", "code", name="uq_locations_warehouse_code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("warehouse_locations", schema=None) as batch_op:
        batch_op.create_index("ix_warehouse_locations_warehouse_id", ["warehouse_id"], unique=False)

    # ------------------------------------------------------------------
    # Document numbering
    # ------------------------------------------------------------------
    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("prefix", sa.String(16), nullable=False),
        sa.Column("scope_date", sa.Date(), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("prefix", "scope_date", name="uq_doc_sequences_prefix_date"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("document_sequences", schema=None) as batch_op:
        batch_op.create_index("ix_document_sequences_prefix", ["prefix"], unique=False)

    # ------------------------------------------------------------------
    # Discounts
    # ------------------------------------------------------------------
    op.create_table(
        "discount_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("requested_by_user_id", sa.Integer(), nullable=False),
        sa.Column("item_type", sa.String(16), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("patient_id", sa.Integer(), nullable=True),
        sa.Column("is_global", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("discount_percentage", sa.Numeric(5, 2), nullable=False),
        _money("original_price"),
        _money("discounted_price"),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("approval_notes", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("approved_by_user_id", sa.Integer(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_by_user_id", sa.Integer(), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _version_id(),
        sa.ForeignKeyConstraint(["patient_id"], ["patients.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("discount_requests", schema=None) as batch_op:
        batch_op.create_index("ix_discount_requests_item", ["item_type", "item_id", "status"], unique=False)
        batch_op.create_index("ix_discount_requests_patient_id", ["patient_id"], unique=False)
        batch_op.create_index("ix_discount_requests_requested_by_user_id", ["requested_by_user_id"], unique=False)
        batch_op.create_index("ix_discount_requests_status", ["status"], unique=False)

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------
    op.create_table(
        "quotes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("quote_number", sa.String(32), nullable=False),
        sa.Column("patient_id", sa.Integer(), nullable=False),
        _money("subtotal", default="0"),
        _money("discount_amount", default="0"),
        _money("tax_amount", default="0"),
        _money("total", default="0"),
        sa.Column("tax_percentage", sa.Numeric(5, 2), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("expiration_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("converted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("converted_by_user_id", sa.Integer(), nullable=True),
        _version_id(),
        sa.ForeignKeyConstraint(["patient_id"], ["patients.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("quote_number", name="uq_quotes_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("quotes", schema=None) as batch_op:
        batch_op.create_index("ix_quotes_patient_id", ["patient_id"], unique=False)
        batch_op.create_index("ix_quotes_status", ["status"], unique=False)
        batch_op.create_index("ix_quotes_status_created", ["status", "created_at"], unique=False)

    op.create_table(
        "quote_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("quote_id", sa.Integer(), nullable=False),
        *_line_columns(),
        _money("original_price"),
        sa.ForeignKeyConstraint(["quote_id"], ["quotes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["discount_request_id"], ["discount_requests.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("quote_items", schema=None) as batch_op:
        batch_op.create_index("ix_quote_items_quote_id", ["quote_id"], unique=False)
        batch_op.create_index("ix_quote_items_discount_request_id", ["discount_request_id"], unique=False)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.String(32), nullable=False),
        sa.Column("patient_id", sa.Integer(), nullable=False),
        sa.Column("laboratory_id", sa.Integer(), nullable=True),
        sa.Column("appointment_id", sa.Integer(), nullable=True),
        _money("subtotal", default="0"),
        _money("discount_amount", default="0"),
        _money("tax_amount", default="0"),
        _money("total", default="0"),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("payment_status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=False),
        _created_at(),
        _version_id(),
        sa.ForeignKeyConstraint(["patient_id"], ["patients.id"]),
        sa.ForeignKeyConstraint(["laboratory_id"], ["laboratories.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_number", name="uq_orders_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.create_index("ix_orders_patient_id", ["patient_id"], unique=False)
        batch_op.create_index("ix_orders_laboratory_id", ["laboratory_id"], unique=False)
        batch_op.create_index("ix_orders_status", ["status"], unique=False)
        batch_op.create_index("ix_orders_payment_status", ["payment_status"], unique=False)

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        *_line_columns(),
        _money("original_price"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["discount_request_id"], ["discount_requests.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("order_items", schema=None) as batch_op:
        batch_op.create_index("ix_order_items_order_id", ["order_id"], unique=False)

    # ------------------------------------------------------------------
    # Sales and payments
    # ------------------------------------------------------------------
    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_number", sa.String(32), nullable=False),
        sa.Column("patient_id", sa.Integer(), nullable=False),
        sa.Column("quote_id", sa.Integer(), nullable=True),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("appointment_id", sa.Integer(), nullable=True),
        _money("subtotal", default="0"),
        _money("discount_amount", default="0"),
        _money("tax_amount", default="0"),
        _money("total", default="0"),
        _money("amount_paid", default="0"),
        _money("balance", default="0"),
        sa.Column("payment_status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=False),
        _created_at(),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by_user_id", sa.Integer(), nullable=True),
        _version_id(),
        sa.ForeignKeyConstraint(["patient_id"], ["patients.id"]),
        sa.ForeignKeyConstraint(["quote_id"], ["quotes.id"]),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sale_number", name="uq_sales_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sales", schema=None) as batch_op:
        batch_op.create_index("ix_sales_patient_id", ["patient_id"], unique=False)
        batch_op.create_index("ix_sales_quote_id", ["quote_id"], unique=False)
        batch_op.create_index("ix_sales_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_sales_payment_status", ["payment_status"], unique=False)
        batch_op.create_index("ix_sales_status", ["status"], unique=False)
        batch_op.create_index("ix_sales_status_created", ["status", "created_at"], unique=False)

    op.create_table(
        "sale_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        *_line_columns(),
        _money("original_price", nullable=True),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["discount_request_id"], ["discount_requests.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sale_items", schema=None) as batch_op:
        batch_op.create_index("ix_sale_items_sale_id", ["sale_id"], unique=False)

    for table in ("sale_payments", "partial_payments"):
        op.create_table(table, *_payment_columns(), sqlite_autoincrement=True)
        with op.batch_alter_table(table, schema=None) as batch_op:
            batch_op.create_index(f"ix_{table}_sale_id", ["sale_id"], unique=False)
            batch_op.create_index(f"ix_{table}_payment_method", ["payment_method"], unique=False)
            batch_op.create_index(f"ix_{table}_created_by_user_id", ["created_by_user_id"], unique=False)
            batch_op.create_index(f"ix_{table}_created_at", ["created_at"], unique=False)

    op.create_table(
        "sale_lens_price_adjustments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("lens_id", sa.Integer(), nullable=False),
        _money("base_price"),
        _money("adjusted_price"),
        _money("adjustment_amount"),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("adjusted_by_user_id", sa.Integer(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["lens_id"], ["lenses.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sale_id", "lens_id", name="uq_sale_lens_adjustment"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sale_lens_price_adjustments", schema=None) as batch_op:
        batch_op.create_index("ix_sale_lens_price_adjustments_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_sale_lens_price_adjustments_lens_id", ["lens_id"], unique=False)

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------
    op.create_table(
        "inventory_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("item_type", sa.String(16), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False, server_default="available"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        _version_id(),
        sa.CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_non_negative"),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"]),
        sa.ForeignKeyConstraint(["location_id"], ["warehouse_locations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("item_type", "item_id", "location_id", "status", name="uq_inventory_item_location_status"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_items", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_items_warehouse_id", ["warehouse_id"], unique=False)
        batch_op.create_index("ix_inventory_items_location_id", ["location_id"], unique=False)
        batch_op.create_index("ix_inventory_items_status", ["status"], unique=False)

    op.create_table(
        "inventory_transfers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("item_type", sa.String(16), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("source_location_id", sa.Integer(), nullable=False),
        sa.Column("destination_location_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("transferred_by_user_id", sa.Integer(), nullable=False),
        _created_at(),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_by_user_id", sa.Integer(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by_user_id", sa.Integer(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        _version_id(),
        sa.ForeignKeyConstraint(["source_location_id"], ["warehouse_locations.id"]),
        sa.ForeignKeyConstraint(["destination_location_id"], ["warehouse_locations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_transfers", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_transfers_source_location_id", ["source_location_id"], unique=False)
        batch_op.create_index("ix_inventory_transfers_destination_location_id", ["destination_location_id"], unique=False)
        batch_op.create_index("ix_inventory_transfers_status", ["status"], unique=False)
        batch_op.create_index("ix_inventory_transfers_status_created", ["status", "created_at"], unique=False)

    # ------------------------------------------------------------------
    # Laboratory fulfillment
    # ------------------------------------------------------------------
    op.create_table(
        "laboratory_orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.String(32), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("sale_id", sa.Integer(), nullable=True),
        sa.Column("laboratory_id", sa.Integer(), nullable=False),
        sa.Column("patient_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(24), nullable=False, server_default="pending"),
        sa.Column("priority", sa.String(16), nullable=False, server_default="normal"),
        sa.Column("estimated_completion_date", sa.Date(), nullable=True),
        sa.Column("completion_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=False),
        _created_at(),
        _version_id(),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.ForeignKeyConstraint(["laboratory_id"], ["laboratories.id"]),
        sa.ForeignKeyConstraint(["patient_id"], ["patients.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_number", name="uq_laboratory_orders_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("laboratory_orders", schema=None) as batch_op:
        batch_op.create_index("ix_laboratory_orders_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_laboratory_orders_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_laboratory_orders_laboratory_id", ["laboratory_id"], unique=False)
        batch_op.create_index("ix_laboratory_orders_patient_id", ["patient_id"], unique=False)
        batch_op.create_index("ix_laboratory_orders_status", ["status"], unique=False)

    op.create_table(
        "laboratory_order_statuses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("laboratory_order_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(24), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["laboratory_order_id"], ["laboratory_orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("laboratory_order_statuses", schema=None) as batch_op:
        batch_op.create_index("ix_laboratory_order_statuses_laboratory_order_id", ["laboratory_order_id"], unique=False)


def downgrade():
    for table in (
        "laboratory_order_statuses",
        "laboratory_orders",
        "inventory_transfers",
        "inventory_items",
        "sale_lens_price_adjustments",
        "partial_payments",
        "sale_payments",
        "sale_items",
        "sales",
        "order_items",
        "orders",
        "quote_items",
        "quotes",
        "discount_requests",
        "document_sequences",
        "warehouse_locations",
        "warehouses",
        "laboratories",
        "lenses",
        "products",
        "patients",
    ):
        op.drop_table(table)
