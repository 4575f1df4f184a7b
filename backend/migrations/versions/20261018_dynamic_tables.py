"""Dynamic user tables, inventory ledger, sales and rentals

Revision ID: 20261018_dynamic_tables
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_dynamic_tables"
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
        "user_tables",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=False),
        sa.Column("visibility", sa.String(16), nullable=False, server_default="private"),
        sa.Column("table_type", sa.String(16), nullable=False, server_default="default"),
        sa.Column("product_id_column", sa.String(255), nullable=True),
        sa.Column("rental_period", sa.String(16), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("user_tables", schema=None) as batch_op:
        batch_op.create_index("ix_user_tables_created_by", ["created_by"], unique=False)
        batch_op.create_index("ix_user_tables_table_type", ["table_type"], unique=False)

    op.create_table(
        "table_columns",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("table_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("name_key", sa.String(255), nullable=False),
        sa.Column("type", sa.String(128), nullable=False, server_default="text"),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("allow_duplicates", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("default_value", sa.Text(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["table_id"], ["user_tables.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("table_id", "name_key", name="uq_table_columns_table_name"),
    )
    with op.batch_alter_table("table_columns", schema=None) as batch_op:
        batch_op.create_index("ix_table_columns_table_id", ["table_id"], unique=False)
        batch_op.create_index("ix_table_columns_table_position", ["table_id", "position"], unique=False)

    op.create_table(
        "table_rows",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("table_id", sa.Integer(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["table_id"], ["user_tables.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("table_rows", schema=None) as batch_op:
        batch_op.create_index("ix_table_rows_table_id", ["table_id"], unique=False)
        batch_op.create_index("ix_table_rows_table_created", ["table_id", "created_at"], unique=False)

    op.create_table(
        "inventory_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("table_id", sa.Integer(), nullable=False),
        sa.Column("table_name", sa.String(255), nullable=True),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(16), nullable=False),
        sa.Column("quantity_change", sa.Float(), nullable=True),
        sa.Column("previous_data", sa.JSON(), nullable=True),
        sa.Column("new_data", sa.JSON(), nullable=True),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("inventory_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_transactions_table_id", ["table_id"], unique=False)
        batch_op.create_index("ix_inventory_transactions_item_id", ["item_id"], unique=False)
        batch_op.create_index("ix_inventory_transactions_transaction_type", ["transaction_type"], unique=False)
        batch_op.create_index("ix_inventory_transactions_reference_id", ["reference_id"], unique=False)
        batch_op.create_index("ix_inventory_transactions_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_inventory_tx_table_item", ["table_id", "item_id"], unique=False)
        batch_op.create_index("ix_inventory_tx_type_created", ["transaction_type", "created_at"], unique=False)

    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_number", sa.String(32), nullable=False),
        sa.Column("table_id", sa.Integer(), nullable=False),
        sa.Column("table_name", sa.String(255), nullable=True),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("item_snapshot", sa.JSON(), nullable=True),
        sa.Column("customer_id", sa.String(255), nullable=True),
        sa.Column("quantity_sold", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("unit_price", sa.Float(), nullable=False),
        sa.Column("total_amount", sa.Float(), nullable=False),
        sa.Column("sale_status", sa.String(16), nullable=False, server_default="completed"),
        sa.Column("payment_method", sa.String(64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sale_number", name="uq_sales_sale_number"),
    )
    with op.batch_alter_table("sales", schema=None) as batch_op:
        batch_op.create_index("ix_sales_table_id", ["table_id"], unique=False)
        batch_op.create_index("ix_sales_item_id", ["item_id"], unique=False)
        batch_op.create_index("ix_sales_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_sales_sale_status", ["sale_status"], unique=False)
        batch_op.create_index("ix_sales_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_sales_table_item", ["table_id", "item_id"], unique=False)

    op.create_table(
        "rentals",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("rental_number", sa.String(32), nullable=False),
        sa.Column("table_id", sa.Integer(), nullable=False),
        sa.Column("table_name", sa.String(255), nullable=True),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("item_snapshot", sa.JSON(), nullable=True),
        sa.Column("customer_id", sa.String(255), nullable=True),
        sa.Column("rental_price", sa.Float(), nullable=True),
        sa.Column("fee", sa.Float(), nullable=True),
        sa.Column("rental_period", sa.String(16), nullable=True),
        sa.Column("rental_status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("rented_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("rental_number", name="uq_rentals_rental_number"),
    )
    with op.batch_alter_table("rentals", schema=None) as batch_op:
        batch_op.create_index("ix_rentals_table_id", ["table_id"], unique=False)
        batch_op.create_index("ix_rentals_item_id", ["item_id"], unique=False)
        batch_op.create_index("ix_rentals_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_rentals_rental_status", ["rental_status"], unique=False)
        batch_op.create_index("ix_rentals_table_item_status", ["table_id", "item_id", "rental_status"], unique=False)

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(32), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_type", "year", name="uq_doc_sequences_type_year"),
    )
    with op.batch_alter_table("document_sequences", schema=None) as batch_op:
        batch_op.create_index("ix_document_sequences_document_type", ["document_type"], unique=False)


def downgrade():
    op.drop_table("document_sequences")
    op.drop_table("rentals")
    op.drop_table("sales")
    op.drop_table("inventory_transactions")
    op.drop_table("table_rows")
    op.drop_table("table_columns")
    op.drop_table("user_tables")
