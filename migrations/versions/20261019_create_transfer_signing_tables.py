"""Create stock ledger, movement, signing token and movement file tables.

Revision ID: 20261019_create_transfer_signing_tables
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_create_transfer_signing_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "inventory_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sku", sa.String(), nullable=True, unique=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("unit", sa.String(), nullable=True),
    )
    op.create_table(
        "sectors",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
    )
    op.create_table(
        "inventory_stock",
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("inventory_items.id"), primary_key=True),
        sa.Column("sector_id", sa.Integer(), sa.ForeignKey("sectors.id"), primary_key=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("quantity >= 0", name="ck_inventory_stock_quantity_non_negative"),
    )
    op.create_table(
        "inventory_movements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("inventory_items.id"), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("direction", sa.String(length=16), nullable=False),
        sa.Column("source_sector_id", sa.Integer(), sa.ForeignKey("sectors.id"), nullable=True),
        sa.Column("target_sector_id", sa.Integer(), sa.ForeignKey("sectors.id"), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("ts", sa.DateTime(), nullable=False),
        sa.Column(
            "transfer_status", sa.String(length=16), nullable=False, server_default="pending"
        ),
        sa.Column("transfer_form_key", sa.String(), nullable=True),
        sa.Column("transfer_form_url", sa.String(), nullable=True),
    )
    op.create_index("ix_inventory_movements_item_id", "inventory_movements", ["item_id"])
    op.create_index("ix_inventory_movements_ts", "inventory_movements", ["ts"])

    op.create_table(
        "inventory_public_tokens",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "movement_id", sa.Integer(), sa.ForeignKey("inventory_movements.id"), nullable=False
        ),
        sa.Column("token", sa.String(length=64), nullable=False, unique=True),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_inventory_public_tokens_movement_id", "inventory_public_tokens", ["movement_id"]
    )
    op.create_index(
        "ix_inventory_public_tokens_expires_at", "inventory_public_tokens", ["expires_at"]
    )

    op.create_table(
        "inventory_movement_files",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "movement_id", sa.Integer(), sa.ForeignKey("inventory_movements.id"), nullable=False
        ),
        sa.Column("file_key", sa.String(), nullable=False),
        sa.Column("file_url", sa.String(), nullable=False),
        sa.Column("mime", sa.String(length=120), nullable=True),
        sa.Column("label", sa.String(), nullable=True),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("uploaded_by", sa.Integer(), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_inventory_movement_files_movement_id", "inventory_movement_files", ["movement_id"]
    )
    op.create_index(
        "ix_inventory_movement_files_uploaded_at", "inventory_movement_files", ["uploaded_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_inventory_movement_files_uploaded_at", table_name="inventory_movement_files")
    op.drop_index("ix_inventory_movement_files_movement_id", table_name="inventory_movement_files")
    op.drop_table("inventory_movement_files")
    op.drop_index("ix_inventory_public_tokens_expires_at", table_name="inventory_public_tokens")
    op.drop_index("ix_inventory_public_tokens_movement_id", table_name="inventory_public_tokens")
    op.drop_table("inventory_public_tokens")
    op.drop_index("ix_inventory_movements_ts", table_name="inventory_movements")
    op.drop_index("ix_inventory_movements_item_id", table_name="inventory_movements")
    op.drop_table("inventory_movements")
    op.drop_table("inventory_stock")
    op.drop_table("sectors")
    op.drop_table("inventory_items")
