"""initial schema

Revision ID: 0001
Revises: 
Create Date: 2026-10-18 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("display_name", sa.Text(), nullable=False),
    )

    op.create_table(
        "group_members",
        sa.Column("group_id", sa.Text(), primary_key=True),
        sa.Column("user_id", sa.Text(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("group_id", sa.Text(), nullable=False),
        sa.Column("split_mode", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default="DRAFT"),
        sa.Column("created_by", sa.Text(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("tip_minor_units", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("allocation_deadline_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("finalized_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint("split_mode in ('EVEN_SPLIT','FULL_CONTROL')", name="transactions_split_mode_check"),
        sa.CheckConstraint(
            "status in ('DRAFT','PENDING_ALLOCATION','FINALIZED','CANCELLED')",
            name="transactions_status_check",
        ),
        sa.CheckConstraint("tip_minor_units >= 0", name="transactions_tip_check"),
    )

    op.create_table(
        "receipt_items",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("transaction_id", sa.Text(), sa.ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("price_minor_units", sa.BigInteger(), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("price_minor_units >= 0", name="receipt_items_price_check"),
    )

    op.create_table(
        "item_claims",
        sa.Column("item_id", sa.Text(), sa.ForeignKey("receipt_items.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("member_id", sa.Text(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "allocations",
        sa.Column("transaction_id", sa.Text(), sa.ForeignKey("transactions.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("member_id", sa.Text(), sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("amount_minor_units", sa.BigInteger(), nullable=False),
        sa.CheckConstraint("amount_minor_units >= 0", name="allocations_amount_check"),
    )

    op.create_index("idx_group_members_user", "group_members", ["user_id"])
    op.create_index("idx_transactions_group", "transactions", ["group_id"])
    op.create_index(
        "uq_transactions_active_mode",
        "transactions",
        ["group_id", "split_mode"],
        unique=True,
        postgresql_where=sa.text("status in ('DRAFT','PENDING_ALLOCATION')"),
    )
    op.create_index("idx_receipt_items_transaction", "receipt_items", ["transaction_id"])
    op.create_index("idx_allocations_member", "allocations", ["member_id"])


def downgrade() -> None:
    op.drop_index("idx_allocations_member", table_name="allocations")
    op.drop_index("idx_receipt_items_transaction", table_name="receipt_items")
    op.drop_index("uq_transactions_active_mode", table_name="transactions")
    op.drop_index("idx_transactions_group", table_name="transactions")
    op.drop_index("idx_group_members_user", table_name="group_members")

    op.drop_table("allocations")
    op.drop_table("item_claims")
    op.drop_table("receipt_items")
    op.drop_table("transactions")
    op.drop_table("group_members")
    op.drop_table("users")
