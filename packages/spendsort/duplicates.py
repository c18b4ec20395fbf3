"""Duplicate detection on the transaction identity key.

The identity key is ``(calendar day, description, amount, direction)``. Dates
are stored as calendar days, so "same day" is plain equality on
``txn_date``; description, amount (to the cent) and direction must match
exactly.

The check is a read; the store's unique constraint is what makes a racing
insert from a concurrent batch collapse into a duplicate.
"""

from __future__ import annotations

from db.models.finance import Transaction

from .logging_setup import get_logger
from .models import NormalizedRow
from .persistence import TransactionStore

_logger = get_logger("spendsort.duplicates")


class DeduplicationGuard:
    def __init__(self, store: TransactionStore) -> None:
        self._store = store

    def find_existing(self, candidate: NormalizedRow) -> Transaction | None:
        """Return the stored transaction sharing ``candidate``'s identity key."""

        return self._store.find_by_identity(
            candidate.txn_date,
            candidate.description,
            candidate.amount,
            candidate.direction,
        )

    def is_duplicate(self, candidate: NormalizedRow) -> bool:
        existing = self.find_existing(candidate)
        if existing is not None:
            _logger.debug(
                "duplicates:match row=%d existing_id=%s", candidate.row_number, existing.id
            )
            return True
        return False


__all__ = ["DeduplicationGuard"]
