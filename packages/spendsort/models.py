"""Data models shared across the ingestion pipeline.

- ``NormalizedRow``: one CSV row after column resolution and parsing.
- ``RowError``: a row-level failure (a value, not an exception).
- ``Classification``: a category pair plus the tier that produced it.
- ``ClassifiedRecord``: a normalized row with its category pair.
- ``ImportResult`` / ``RecategorizeSummary``: operation summaries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, field_validator

from .taxonomy import CategoryPair, MainCategory, SubCategory

if TYPE_CHECKING:
    from db.models.finance import Transaction


class Direction(StrEnum):
    CREDIT = "credit"
    DEBIT = "debit"


class ClassificationSource(StrEnum):
    CACHE = "cache"
    RULE = "rule"
    LLM = "llm"
    FALLBACK = "fallback"


# ---------------------------------------------------------------------------
# Normalized rows
# ---------------------------------------------------------------------------


class NormalizedRow(BaseModel):
    """A typed row ready for classification.

    ``amount`` is the unsigned magnitude; the sign is carried by ``direction``.
    ``row_number`` is the 1-based data row index in the source file.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    row_number: int
    txn_date: date
    description: str
    amount: Decimal
    direction: Direction
    account: str = "Unknown"
    counterparty: str | None = None
    notes: str | None = None

    @field_validator("amount")
    @classmethod
    def _amount_unsigned(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("amount must be unsigned")
        return v

    @field_validator("account")
    @classmethod
    def _account_default(cls, v: str) -> str:
        return v or "Unknown"

    @property
    def identity(self) -> tuple[date, str, Decimal, Direction]:
        return (self.txn_date, self.description, self.amount, self.direction)


@dataclass(frozen=True, slots=True)
class RowError:
    row: int | None
    message: str

    def __str__(self) -> str:
        if self.row is None:
            return self.message
        return f"Row {self.row}: {self.message}"


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Classification:
    pair: CategoryPair
    source: ClassificationSource

    @property
    def main(self) -> MainCategory:
        return self.pair.main

    @property
    def sub(self) -> SubCategory:
        return self.pair.sub


@dataclass(frozen=True, slots=True)
class ClassifiedRecord:
    row: NormalizedRow
    classification: Classification

    @property
    def pair(self) -> CategoryPair:
        return self.classification.pair


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class ImportResult:
    """Outcome of one import batch.

    ``transactions`` is the full set of stored transactions after the batch,
    filled in by file-level entry points; ``import_batch`` leaves it empty.
    """

    total: int = 0
    accepted: list[Transaction] = field(default_factory=list)
    duplicates: int = 0
    errors: list[str] = field(default_factory=list)
    stopped_early: bool = False
    transactions: list[Transaction] = field(default_factory=list)

    @property
    def accepted_count(self) -> int:
        return len(self.accepted)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def summary_line(self) -> str:
        return (
            f"total={self.total} accepted={self.accepted_count} "
            f"duplicates={self.duplicates} errors={self.error_count}"
        )


@dataclass(slots=True)
class RecategorizeSummary:
    total: int = 0
    updated: int = 0
    unchanged: int = 0
    errors: dict[str, str] = field(default_factory=dict)

    def summary_line(self) -> str:
        return (
            f"total={self.total} updated={self.updated} "
            f"unchanged={self.unchanged} errors={len(self.errors)}"
        )


__all__ = [
    "Classification",
    "ClassificationSource",
    "ClassifiedRecord",
    "Direction",
    "ImportResult",
    "NormalizedRow",
    "RecategorizeSummary",
    "RowError",
]
