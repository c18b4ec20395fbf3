"""Batch import: normalize, classify, deduplicate and persist CSV rows.

Rows are processed strictly in order so a row can be recognized as a
duplicate of one accepted earlier in the same batch. Per row:

normalize -> classify -> duplicate check -> persist (inside a SAVEPOINT)

Row and persistence failures are collected as human-readable strings; the
batch continues until ``Settings.max_import_errors`` is reached. A batch in
which every row failed raises :class:`~spendsort.errors.BatchImportError`.
"""

from __future__ import annotations

import csv
from collections.abc import Mapping, Sequence
from io import StringIO
from os import PathLike
from pathlib import Path
from typing import TypeAlias

from sqlalchemy.exc import SQLAlchemyError

from .classify import CategoryClassifier
from .config import Settings
from .duplicates import DeduplicationGuard
from .errors import BatchImportError, MissingColumnsError
from .logging_setup import get_logger
from .models import ClassificationSource, ClassifiedRecord, ImportResult, RowError
from .normalizers import HEADER_SYNONYMS, REQUIRED_FIELDS, normalize_row, resolve_columns
from .persistence import SqlTransactionStore, TransactionStore

_logger = get_logger("spendsort.importer")

# Confidence given to a pattern learned from a remote verdict.
LEARNED_PATTERN_CONFIDENCE = 0.9

_SNIFF_SAMPLE_CHARS = 4096

RawRow: TypeAlias = Mapping[str, str | None]


def build_classifier(store: SqlTransactionStore, settings: Settings) -> CategoryClassifier:
    """Return a classifier whose prompt examples come from ``store``."""

    return CategoryClassifier(settings=settings, pattern_source=store.list_patterns)


def import_batch(
    raw_rows: Sequence[RawRow],
    *,
    store: TransactionStore,
    classifier: CategoryClassifier,
    settings: Settings | None = None,
    headers: Sequence[str] | None = None,
    header_synonyms: Mapping[str, Sequence[str]] = HEADER_SYNONYMS,
    learn_patterns: bool = True,
) -> ImportResult:
    """Import ``raw_rows`` (``csv.DictReader``-style dicts).

    ``headers`` defaults to the keys of the first row. Raises
    ``MissingColumnsError`` before touching the store when a required column is
    absent, and ``BatchImportError`` when every row was processed and none was
    accepted or recognized as a duplicate. A batch stopped by the error cap
    returns its result with ``stopped_early`` set.
    """

    cfg = settings or Settings()
    result = ImportResult(total=len(raw_rows))
    if not raw_rows:
        _logger.info("import:batch_done %s", result.summary_line())
        return result

    columns = resolve_columns(
        headers if headers is not None else raw_rows[0].keys(), header_synonyms
    )
    guard = DeduplicationGuard(store)

    for idx, raw in enumerate(raw_rows, start=1):
        if len(result.errors) >= cfg.max_import_errors:
            result.stopped_early = True
            _logger.warning(
                "import:error_cap_reached errors=%d processed=%d total=%d",
                len(result.errors),
                idx - 1,
                result.total,
            )
            break

        normalized = normalize_row(raw, columns, row_number=idx)
        if isinstance(normalized, RowError):
            result.errors.append(str(normalized))
            _logger.warning("import:row_error row=%d error=%s", idx, normalized.message)
            continue

        classification = classifier.classify_detailed(normalized.description, normalized.direction)

        try:
            if guard.is_duplicate(normalized):
                result.duplicates += 1
                _logger.debug("import:duplicate_skip row=%d", idx)
                continue
            with store.atomic():
                txn = store.create(ClassifiedRecord(normalized, classification))
                if txn is not None and learn_patterns and (
                    classification.source is ClassificationSource.LLM
                ):
                    store.upsert_pattern(
                        normalized.description,
                        classification.main.value,
                        classification.sub.value,
                        confidence=LEARNED_PATTERN_CONFIDENCE,
                    )
        except (SQLAlchemyError, ArithmeticError, ValueError) as e:
            err = RowError(idx, f"Failed to save transaction: {e.__class__.__name__}: {e}")
            result.errors.append(str(err))
            _logger.warning("import:persist_error row=%d error=%s", idx, e.__class__.__name__)
            continue

        if txn is None:
            result.duplicates += 1
            _logger.debug("import:duplicate_skip row=%d reason=conflict", idx)
            continue
        result.accepted.append(txn)

    failed = not result.accepted and result.duplicates == 0 and result.errors
    if failed and not result.stopped_early:
        _logger.warning("import:batch_failed %s", result.summary_line())
        raise BatchImportError(result.errors)

    _logger.info("import:batch_done %s", result.summary_line())
    return result


# ---------------------------------------------------------------------------
# CSV files
# ---------------------------------------------------------------------------


def _sniff_delimiter(text: str) -> str:
    try:
        return csv.Sniffer().sniff(text[:_SNIFF_SAMPLE_CHARS], delimiters=",;").delimiter
    except csv.Error:
        return ","


def read_csv_rows(csv_text: str) -> tuple[list[str], list[dict[str, str | None]]]:
    """Parse CSV text into ``(headers, rows)``.

    A leading BOM is dropped, the delimiter (``,`` or ``;``) is sniffed from
    the first lines, and rows whose cells are all blank are skipped.
    """

    text = csv_text.removeprefix("\ufeff")
    delimiter = _sniff_delimiter(text)
    with StringIO(text, newline="") as f:
        reader = csv.DictReader(f, delimiter=delimiter)
        headers = [h for h in (reader.fieldnames or [])]
        rows: list[dict[str, str | None]] = []
        for row in reader:
            if not any((v or "").strip() for k, v in row.items() if k is not None):
                continue
            rows.append(row)
    if not headers:
        raise MissingColumnsError(REQUIRED_FIELDS, [])
    return headers, rows


def import_csv_file(
    csv_path: str | PathLike[str],
    *,
    store: SqlTransactionStore,
    classifier: CategoryClassifier | None = None,
    settings: Settings | None = None,
) -> ImportResult:
    """Import a CSV file and attach the store's full transaction list."""

    cfg = settings or Settings()
    p = Path(csv_path)
    text = p.read_bytes().decode("utf-8-sig")
    headers, rows = read_csv_rows(text)
    _logger.info("import:file path=%s rows=%d", p.name, len(rows))
    result = import_batch(
        rows,
        store=store,
        classifier=classifier or build_classifier(store, cfg),
        settings=cfg,
        headers=headers,
    )
    result.transactions = store.list_transactions()
    return result


__all__ = [
    "LEARNED_PATTERN_CONFIDENCE",
    "build_classifier",
    "import_batch",
    "import_csv_file",
    "read_csv_rows",
]
