"""Exception types raised across ``spendsort``.

Row-level problems are not exceptions; see :class:`spendsort.models.RowError`.
Everything here either aborts an operation (batch-fatal) or is caught at a
well-defined boundary (classification failures never reach callers of
``CategoryClassifier.classify``).
"""

from __future__ import annotations

from collections.abc import Sequence


class SpendsortError(Exception):
    """Base class for errors raised by this package."""


class TaxonomyError(SpendsortError, ValueError):
    """A category spelling is not part of the taxonomy vocabulary."""


class MissingColumnsError(SpendsortError):
    """Required CSV columns could not be resolved from the header row."""

    def __init__(self, missing: Sequence[str], headers: Sequence[str]) -> None:
        self.missing: tuple[str, ...] = tuple(missing)
        self.headers: tuple[str, ...] = tuple(headers)
        super().__init__(
            "Required columns not found in CSV file: "
            + ", ".join(self.missing)
            + ". Please ensure your file has Date, Description, and Amount columns."
        )


class TransactionNotFoundError(SpendsortError, LookupError):
    """No stored transaction has the requested identifier."""

    def __init__(self, txn_id: str) -> None:
        self.txn_id = txn_id
        super().__init__(f"Transaction not found: {txn_id}")


class BatchImportError(SpendsortError):
    """Every row of a non-empty batch failed.

    The message is the first underlying error; ``errors`` holds all of them.
    """

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors: list[str] = list(errors)
        first = self.errors[0] if self.errors else "no rows could be imported"
        super().__init__(first)


class ClassificationError(SpendsortError):
    """The remote classifier produced an unusable verdict.

    Internal to the LLM tier; always resolved by the fallback default.
    """


__all__ = [
    "BatchImportError",
    "ClassificationError",
    "MissingColumnsError",
    "SpendsortError",
    "TaxonomyError",
    "TransactionNotFoundError",
]
