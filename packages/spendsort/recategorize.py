"""Re-classify stored transactions in rate-limited chunks.

Transactions are processed in chunks (default 5) in input order with a fixed
delay between chunks. Inside a chunk the classifications run concurrently on a
thread pool; results are applied by the calling thread in input order, so the
store session is never shared across threads.
"""

from __future__ import annotations

import calendar
import time
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date
from typing import TypeVar

from sqlalchemy.exc import SQLAlchemyError

from .classify import CategoryClassifier
from .config import Settings
from .importer import LEARNED_PATTERN_CONFIDENCE
from .logging_setup import get_logger
from .models import Classification, ClassificationSource, Direction, RecategorizeSummary
from .persistence import TransactionStore
from .taxonomy import FALLBACK_PAIR

_logger = get_logger("spendsort.recategorize")


@dataclass(frozen=True, slots=True)
class _Target:
    txn_id: str
    description: str
    direction: Direction
    current: tuple[str, str]


def month_bounds(month: str) -> tuple[date, date]:
    """Return the first and last day of a ``YYYY-MM`` month."""

    try:
        year_s, month_s = month.strip().split("-", 1)
        year, mon = int(year_s), int(month_s)
        first = date(year, mon, 1)
    except ValueError as exc:
        raise ValueError(f"month must be YYYY-MM, got {month!r}") from exc
    return first, date(year, mon, calendar.monthrange(year, mon)[1])


T = TypeVar("T")


def _chunks(items: Sequence[T], size: int) -> list[Sequence[T]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


def _load_targets(
    store: TransactionStore,
    ids: Sequence[str] | None,
    month: str | None,
    summary: RecategorizeSummary,
) -> list[_Target]:
    if ids:
        txns = []
        for txn_id in ids:
            txn = store.get(txn_id)
            if txn is None:
                summary.errors[txn_id] = "Transaction not found"
                continue
            txns.append(txn)
    else:
        start, end = month_bounds(month) if month else (None, None)
        txns = store.list_transactions(pair=FALLBACK_PAIR, start=start, end=end)

    return [
        _Target(
            txn_id=t.id,
            description=t.description,
            direction=Direction(t.direction),
            current=(t.main_category, t.sub_category),
        )
        for t in txns
    ]


def recategorize(
    store: TransactionStore,
    classifier: CategoryClassifier,
    *,
    ids: Sequence[str] | None = None,
    month: str | None = None,
    settings: Settings | None = None,
    sleep: Callable[[float], None] = time.sleep,
    learn_patterns: bool = True,
) -> RecategorizeSummary:
    """Re-classify ``ids`` (or every Miscellaneous/Other transaction).

    ``month`` (``YYYY-MM``) narrows the default selection. Cached verdicts are
    bypassed so each transaction gets a fresh classification. Returns counts
    of updated and unchanged transactions plus per-id errors.
    """

    cfg = settings or Settings()
    summary = RecategorizeSummary()
    targets = _load_targets(store, ids, month, summary)
    summary.total = len(targets) + len(summary.errors)
    if not targets:
        _logger.info("recategorize:done %s", summary.summary_line())
        return summary

    chunk_size = max(1, cfg.recategorize_chunk_size)
    chunks = _chunks(targets, chunk_size)
    with ThreadPoolExecutor(max_workers=chunk_size) as pool:
        for chunk_no, chunk in enumerate(chunks):
            if chunk_no > 0:
                sleep(cfg.recategorize_delay_sec)
            examples = classifier.load_examples() if classifier.llm_enabled else {}
            futures: list[Future[Classification]] = [
                pool.submit(
                    classifier.classify_detailed,
                    t.description,
                    t.direction,
                    use_cache=False,
                    examples=examples,
                )
                for t in chunk
            ]
            for target, fut in zip(chunk, futures, strict=True):
                _apply(store, target, fut, summary, learn_patterns=learn_patterns)
            _logger.debug(
                "recategorize:chunk_done chunk=%d size=%d of=%d",
                chunk_no + 1,
                len(chunk),
                len(chunks),
            )

    _logger.info("recategorize:done %s", summary.summary_line())
    return summary


def _apply(
    store: TransactionStore,
    target: _Target,
    fut: Future[Classification],
    summary: RecategorizeSummary,
    *,
    learn_patterns: bool,
) -> None:
    try:
        result = fut.result()
    except Exception as e:  # noqa: BLE001
        summary.errors[target.txn_id] = f"{e.__class__.__name__}: {e}"
        _logger.warning(
            "recategorize:classify_failed id=%s error=%s", target.txn_id, e.__class__.__name__
        )
        return

    if (result.main.value, result.sub.value) == target.current:
        summary.unchanged += 1
        return

    try:
        with store.atomic():
            store.update_category(target.txn_id, result.main.value, result.sub.value)
            if learn_patterns and result.source is ClassificationSource.LLM:
                store.upsert_pattern(
                    target.description,
                    result.main.value,
                    result.sub.value,
                    confidence=LEARNED_PATTERN_CONFIDENCE,
                )
    except SQLAlchemyError as e:
        summary.errors[target.txn_id] = f"Failed to update: {e.__class__.__name__}"
        _logger.warning(
            "recategorize:update_failed id=%s error=%s", target.txn_id, e.__class__.__name__
        )
        return
    summary.updated += 1


__all__ = ["month_bounds", "recategorize"]
