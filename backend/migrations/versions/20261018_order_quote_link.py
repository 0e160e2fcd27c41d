"""Link orders to the quote they were created from

Revision ID: 20261018_order_quote
Revises: 20261018_initial
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_order_quote"
down_revision = "20261018_initial"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.add_column(sa.Column("quote_id", sa.Integer(), nullable=True))
        batch_op.create_foreign_key("fk_orders_quote_id_quotes", "quotes", ["quote_id"], ["id"])
        batch_op.create_index("ix_orders_quote_id", ["quote_id"], unique=False)


def downgrade():
    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.drop_index("ix_orders_quote_id")
        batch_op.drop_constraint("fk_orders_quote_id_quotes", type_="foreignkey")
        batch_op.drop_column("quote_id")
