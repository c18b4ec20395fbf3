from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------
# Core: transactions
# ---------------------------


class Transaction(Base):
    __tablename__ = "transactions"

    # Opaque identifier (uuid4 hex) assigned by the importer.
    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    txn_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    # Always the unsigned magnitude; the sign lives in ``direction``.
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    direction: Mapped[str] = mapped_column(String(6), nullable=False)
    # Storage spellings (e.g. ``FoodAndGroceries`` / ``Groceries``). Pair
    # validity is enforced by the taxonomy layer before any write.
    main_category: Mapped[str] = mapped_column(String, nullable=False)
    sub_category: Mapped[str] = mapped_column(String, nullable=False)
    # First classifier verdict; user corrections compare against it.
    original_main_category: Mapped[str | None] = mapped_column(String, nullable=True)
    original_sub_category: Mapped[str | None] = mapped_column(String, nullable=True)
    account: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'Unknown'"), default="Unknown"
    )
    counterparty: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()
    )

    __table_args__ = (
        CheckConstraint("direction in ('credit','debit')", name="ck_transactions_direction"),
        CheckConstraint("amount >= 0", name="ck_transactions_amount_unsigned"),
        # Identity key used for duplicate detection. Concurrent imports that
        # both pass the read-side check collide here instead of creating two rows.
        UniqueConstraint(
            "txn_date",
            "description",
            "amount",
            "direction",
            name="uq_transactions_identity",
        ),
        Index("ix_transactions_txn_date", "txn_date"),
        Index("ix_transactions_category", "main_category", "sub_category"),
    )


# ---------------------------
# Learned: category_patterns
# ---------------------------


class CategoryPattern(Base):
    __tablename__ = "category_patterns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Lowercase substring matched against descriptions.
    pattern: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    main_category: Mapped[str] = mapped_column(String, nullable=False)
    sub_category: Mapped[str] = mapped_column(String, nullable=False)
    confidence: Mapped[float] = mapped_column(
        Float, nullable=False, server_default=text("1.0"), default=1.0
    )
    usage_count: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0"), default=0
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()
    )

    __table_args__ = (
        CheckConstraint(
            "confidence >= 0.1 AND confidence <= 1.0",
            name="ck_category_patterns_confidence",
        ),
        CheckConstraint("usage_count >= 0", name="ck_category_patterns_usage"),
        Index("ix_category_patterns_usage", "usage_count"),
    )


__all__ = [
    "Base",
    "CategoryPattern",
    "Transaction",
]
