"""User category corrections and the pattern bookkeeping they drive."""

from __future__ import annotations

from db.models.finance import Transaction

from .cache import ClassificationCache
from .errors import TransactionNotFoundError
from .logging_setup import get_logger
from .models import Direction
from .persistence import CONFIDENCE_MAX, TransactionStore, normalize_pattern
from .taxonomy import CategoryPair, coerce_pair, to_storage

_logger = get_logger("spendsort.corrections")


def correct_category(
    store: TransactionStore,
    txn_id: str,
    main: str,
    sub: str,
    *,
    cache: ClassificationCache | None = None,
) -> Transaction:
    """Set a transaction's category from user-supplied display spellings.

    Unknown spellings raise ``TaxonomyError``; a known but mismatched pair is
    stored as Miscellaneous/Other. When the new pair differs from the
    transaction's first classification, patterns of the old pair found in the
    description lose confidence, those of the new pair gain it, and the
    description itself is recorded as a pattern for the new pair. A cached
    verdict for the description is dropped so the next classification does
    not reuse it.
    """

    pair = to_storage(main, sub)
    txn = store.get(txn_id)
    if txn is None:
        raise TransactionNotFoundError(txn_id)

    original = coerce_pair(
        txn.original_main_category or txn.main_category,
        txn.original_sub_category or txn.sub_category,
    )

    with store.atomic():
        updated = store.update_category(txn_id, pair.main.value, pair.sub.value)
        if updated is None:  # pragma: no cover - deleted between get and update
            raise TransactionNotFoundError(txn_id)
        if pair != original:
            _apply_feedback(store, updated.description, original, pair)

    if cache is not None:
        cache.discard(updated.description, Direction(updated.direction))

    _logger.info(
        "corrections:updated id=%s main=%s sub=%s original=%s/%s",
        txn_id,
        pair.main.value,
        pair.sub.value,
        original.main.value,
        original.sub.value,
    )
    return updated


def _apply_feedback(
    store: TransactionStore, description: str, old: CategoryPair, new: CategoryPair
) -> None:
    key = normalize_pattern(description)
    # The raise step below already counts a use of an exact-match pattern.
    counted = any(
        p.pattern == key for p in store.patterns_for_pair(new.main.value, new.sub.value)
    )
    lowered = store.adjust_pattern_confidence(
        description, old.main.value, old.sub.value, increase=False
    )
    raised = store.adjust_pattern_confidence(
        description, new.main.value, new.sub.value, increase=True
    )
    store.upsert_pattern(
        description,
        new.main.value,
        new.sub.value,
        confidence=CONFIDENCE_MAX,
        increment_usage=not counted,
    )
    _logger.debug("corrections:patterns_adjusted lowered=%d raised=%d", lowered, raised)


__all__ = ["correct_category"]
