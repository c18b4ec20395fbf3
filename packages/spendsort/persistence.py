"""Transaction and pattern store backed by ``libs/db``.

``TransactionStore`` is the interface the pipeline depends on;
``SqlTransactionStore`` implements it on a SQLAlchemy ``Session`` supplied by
the caller (see ``db.client.session_scope``). Commits are the caller's job;
every write here is flushed inside a SAVEPOINT so a failed write leaves the
surrounding transaction usable.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from contextlib import AbstractContextManager
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Protocol

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db.models.finance import CategoryPattern, Transaction

from .logging_setup import get_logger
from .models import ClassifiedRecord, Direction
from .taxonomy import CategoryPair, coerce_pair

_logger = get_logger("spendsort.persistence")

CONFIDENCE_MIN = 0.1
CONFIDENCE_MAX = 1.0
CONFIDENCE_STEP = 0.1


def quantize_amount(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def normalize_pattern(text: str) -> str:
    return " ".join(text.split()).lower()


def clamp_confidence(value: float) -> float:
    return round(min(CONFIDENCE_MAX, max(CONFIDENCE_MIN, value)), 2)


class TransactionStore(Protocol):
    def atomic(self) -> AbstractContextManager[Any]: ...

    def create(self, record: ClassifiedRecord) -> Transaction | None: ...

    def find_by_identity(
        self, day: date, description: str, amount: Decimal, direction: Direction
    ) -> Transaction | None: ...

    def get(self, txn_id: str) -> Transaction | None: ...

    def update_category(self, txn_id: str, main: str, sub: str) -> Transaction | None: ...

    def upsert_pattern(
        self,
        pattern: str,
        main: str,
        sub: str,
        *,
        confidence: float = CONFIDENCE_MAX,
        increment_usage: bool = True,
        update_existing: bool = True,
    ) -> CategoryPattern: ...

    def list_patterns(self, *, order_by_usage_desc: bool = True) -> list[CategoryPattern]: ...

    def list_transactions(
        self,
        *,
        pair: CategoryPair | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[Transaction]: ...

    def patterns_for_pair(self, main: str, sub: str) -> Sequence[CategoryPattern]: ...

    def adjust_pattern_confidence(
        self, description: str, main: str, sub: str, *, increase: bool
    ) -> int: ...


class SqlTransactionStore:
    """SQLAlchemy implementation of :class:`TransactionStore`."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def atomic(self) -> AbstractContextManager[Any]:
        """Return a SAVEPOINT scope; everything inside commits or rolls back together."""

        return self.session.begin_nested()

    # -- transactions -----------------------------------------------------------

    def create(self, record: ClassifiedRecord) -> Transaction | None:
        """Insert a classified row.

        Returns ``None`` when a transaction with the same identity key already
        exists (the unique constraint turns a racing insert into a no-op).
        Other integrity failures propagate.
        """

        row = record.row
        pair = coerce_pair(record.pair.main, record.pair.sub)
        txn = Transaction(
            id=uuid.uuid4().hex,
            txn_date=row.txn_date,
            description=row.description,
            amount=quantize_amount(row.amount),
            direction=row.direction.value,
            main_category=pair.main.value,
            sub_category=pair.sub.value,
            original_main_category=pair.main.value,
            original_sub_category=pair.sub.value,
            account=row.account or "Unknown",
            counterparty=row.counterparty,
            notes=row.notes,
        )
        try:
            with self.session.begin_nested():
                self.session.add(txn)
                self.session.flush()
        except IntegrityError:
            existing = self.find_by_identity(
                row.txn_date, row.description, row.amount, row.direction
            )
            if existing is None:
                raise
            _logger.debug("persistence:insert_conflict id=%s", existing.id)
            return None
        return txn

    def find_by_identity(
        self, day: date, description: str, amount: Decimal, direction: Direction
    ) -> Transaction | None:
        stmt = (
            select(Transaction)
            .where(
                Transaction.txn_date == day,
                Transaction.description == description,
                Transaction.amount == quantize_amount(amount),
                Transaction.direction == Direction(direction).value,
            )
            .limit(1)
        )
        return self.session.execute(stmt).scalars().first()

    def get(self, txn_id: str) -> Transaction | None:
        return self.session.get(Transaction, txn_id)

    def update_category(self, txn_id: str, main: str, sub: str) -> Transaction | None:
        """Set a transaction's category; invalid pairs store the fallback pair."""

        txn = self.get(txn_id)
        if txn is None:
            return None
        pair = coerce_pair(main, sub)
        with self.session.begin_nested():
            txn.main_category = pair.main.value
            txn.sub_category = pair.sub.value
            txn.updated_at = func.current_timestamp()
            self.session.flush()
        self.session.refresh(txn)
        return txn

    def list_transactions(
        self,
        *,
        pair: CategoryPair | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[Transaction]:
        stmt = select(Transaction)
        if pair is not None:
            stmt = stmt.where(
                Transaction.main_category == pair.main.value,
                Transaction.sub_category == pair.sub.value,
            )
        if start is not None:
            stmt = stmt.where(Transaction.txn_date >= start)
        if end is not None:
            stmt = stmt.where(Transaction.txn_date <= end)
        stmt = stmt.order_by(Transaction.txn_date.asc(), Transaction.created_at.asc())
        return list(self.session.execute(stmt).scalars())

    # -- patterns -----------------------------------------------------------------

    def _find_pattern(self, pattern: str) -> CategoryPattern | None:
        stmt = select(CategoryPattern).where(CategoryPattern.pattern == pattern)
        return self.session.execute(stmt).scalars().first()

    def upsert_pattern(
        self,
        pattern: str,
        main: str,
        sub: str,
        *,
        confidence: float = CONFIDENCE_MAX,
        increment_usage: bool = True,
        update_existing: bool = True,
    ) -> CategoryPattern:
        """Create or update the pattern keyed by its lowercase text.

        On create, ``confidence`` is stored and usage starts at 1 (or 0 when
        ``increment_usage`` is false). On update, the pair is replaced when
        ``update_existing`` is set and usage is incremented when requested;
        confidence is left to :meth:`adjust_pattern_confidence`.
        """

        key = normalize_pattern(pattern)
        if not key:
            raise ValueError("pattern must be non-empty")
        pair = coerce_pair(main, sub)

        existing = self._find_pattern(key)
        if existing is None:
            created = CategoryPattern(
                pattern=key,
                main_category=pair.main.value,
                sub_category=pair.sub.value,
                confidence=clamp_confidence(confidence),
                usage_count=1 if increment_usage else 0,
            )
            try:
                with self.session.begin_nested():
                    self.session.add(created)
                    self.session.flush()
                return created
            except IntegrityError:
                existing = self._find_pattern(key)
                if existing is None:
                    raise

        if update_existing or increment_usage:
            with self.session.begin_nested():
                if update_existing:
                    existing.main_category = pair.main.value
                    existing.sub_category = pair.sub.value
                if increment_usage:
                    existing.usage_count = (existing.usage_count or 0) + 1
                existing.updated_at = func.current_timestamp()
                self.session.flush()
            self.session.refresh(existing)
        return existing

    def list_patterns(self, *, order_by_usage_desc: bool = True) -> list[CategoryPattern]:
        stmt = select(CategoryPattern)
        if order_by_usage_desc:
            stmt = stmt.order_by(CategoryPattern.usage_count.desc(), CategoryPattern.id.asc())
        else:
            stmt = stmt.order_by(CategoryPattern.id.asc())
        return list(self.session.execute(stmt).scalars())

    def patterns_for_pair(self, main: str, sub: str) -> Sequence[CategoryPattern]:
        stmt = select(CategoryPattern).where(
            CategoryPattern.main_category == str(main),
            CategoryPattern.sub_category == str(sub),
        )
        return list(self.session.execute(stmt).scalars())

    def adjust_pattern_confidence(
        self, description: str, main: str, sub: str, *, increase: bool
    ) -> int:
        """Nudge confidence of ``(main, sub)`` patterns found in ``description``.

        Each matching pattern moves by one step (clamped to ``[0.1, 1.0]``) and
        its usage count is incremented. Returns the number of patterns touched.
        """

        lowered = normalize_pattern(description)
        delta = CONFIDENCE_STEP if increase else -CONFIDENCE_STEP
        touched = 0
        with self.session.begin_nested():
            for p in self.patterns_for_pair(main, sub):
                if p.pattern and p.pattern in lowered:
                    p.confidence = clamp_confidence((p.confidence or CONFIDENCE_MAX) + delta)
                    p.usage_count = (p.usage_count or 0) + 1
                    p.updated_at = func.current_timestamp()
                    touched += 1
            self.session.flush()
        return touched


__all__ = [
    "CONFIDENCE_MAX",
    "CONFIDENCE_MIN",
    "CONFIDENCE_STEP",
    "SqlTransactionStore",
    "TransactionStore",
    "clamp_confidence",
    "normalize_pattern",
    "quantize_amount",
]
