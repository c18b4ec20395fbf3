# ruff: noqa: I001
"""Transactions and learned category patterns.

Revision ID: 0001_core
Revises: None
Create Date: 2026-10-17
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "transactions",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("txn_date", sa.Date(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("direction", sa.String(6), nullable=False),
        sa.Column("main_category", sa.String(), nullable=False),
        sa.Column("sub_category", sa.String(), nullable=False),
        sa.Column("original_main_category", sa.String(), nullable=True),
        sa.Column("original_sub_category", sa.String(), nullable=True),
        sa.Column("account", sa.String(), nullable=False, server_default=sa.text("'Unknown'")),
        sa.Column("counterparty", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("direction in ('credit','debit')", name="ck_transactions_direction"),
        sa.CheckConstraint("amount >= 0", name="ck_transactions_amount_unsigned"),
        sa.UniqueConstraint(
            "txn_date", "description", "amount", "direction", name="uq_transactions_identity"
        ),
    )
    op.create_index("ix_transactions_txn_date", "transactions", ["txn_date"])
    op.create_index(
        "ix_transactions_category", "transactions", ["main_category", "sub_category"]
    )

    op.create_table(
        "category_patterns",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("pattern", sa.String(), nullable=False, unique=True),
        sa.Column("main_category", sa.String(), nullable=False),
        sa.Column("sub_category", sa.String(), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False, server_default=sa.text("1.0")),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.CheckConstraint(
            "confidence >= 0.1 AND confidence <= 1.0", name="ck_category_patterns_confidence"
        ),
        sa.CheckConstraint("usage_count >= 0", name="ck_category_patterns_usage"),
    )
    op.create_index("ix_category_patterns_usage", "category_patterns", ["usage_count"])


def downgrade() -> None:
    op.drop_index("ix_category_patterns_usage", table_name="category_patterns")
    op.drop_table("category_patterns")
    op.drop_index("ix_transactions_category", table_name="transactions")
    op.drop_index("ix_transactions_txn_date", table_name="transactions")
    op.drop_table("transactions")
