from __future__ import annotations

# Seeder for the default keyword patterns used as classifier prompt examples.
#
# Usage (example):
#   python -m spendsort.ingest.seed_patterns \
#     --database-url sqlite:///spendsort.db \
#     --file packages/spendsort/ingest/seeds/patterns.v1.json
#
# This script:
#   1) Inserts each listed pattern with confidence 1.0 and usage 0.
#   2) Leaves patterns that already exist untouched, so learned pairs and
#      usage counts survive a re-run.
import argparse
import json
from pathlib import Path
from typing import Any

from db.client import create_schema, session_scope

from ..logging_setup import configure_logging, get_logger
from ..persistence import CONFIDENCE_MAX, SqlTransactionStore, TransactionStore
from ..taxonomy import CategoryPair, coerce_pair, is_valid_pair

_logger = get_logger("spendsort.ingest.seed_patterns")

DEFAULT_SEED_FILE = Path(__file__).parent / "seeds" / "patterns.v1.json"


def load_seed_file(path: Path = DEFAULT_SEED_FILE) -> list[tuple[CategoryPair, list[str]]]:
    """Read a seed file into ``(pair, patterns)`` entries, validating pairs."""

    with path.open("r", encoding="utf-8") as f:
        data: Any = json.load(f)
    if not isinstance(data, list):
        raise ValueError("Seed JSON must be a list of {main, sub, patterns} objects")

    entries: list[tuple[CategoryPair, list[str]]] = []
    for i, item in enumerate(data):
        main = str(item.get("main") or "")
        sub = str(item.get("sub") or "")
        if not is_valid_pair(main, sub):
            raise ValueError(f"seed entry {i}: {main!r}/{sub!r} is not a taxonomy pair")
        pats = [str(p) for p in (item.get("patterns") or []) if str(p).strip()]
        entries.append((coerce_pair(main, sub), pats))
    return entries


def seed_patterns(
    store: TransactionStore,
    entries: list[tuple[CategoryPair, list[str]]] | None = None,
) -> int:
    """Insert missing seed patterns; return how many were created."""

    before = len(store.list_patterns(order_by_usage_desc=False))
    for pair, pats in entries if entries is not None else load_seed_file():
        for pattern in pats:
            store.upsert_pattern(
                pattern,
                pair.main.value,
                pair.sub.value,
                confidence=CONFIDENCE_MAX,
                increment_usage=False,
                update_existing=False,
            )
    created = len(store.list_patterns(order_by_usage_desc=False)) - before
    _logger.info("seed:patterns created=%d", created)
    return created


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(
        description="Seed default category keyword patterns",
    )
    ap.add_argument(
        "--database-url",
        required=False,
        default=None,
        help=("SQLAlchemy database URL; falls back to $DATABASE_URL when not set"),
    )
    ap.add_argument(
        "--file",
        type=Path,
        required=False,
        default=DEFAULT_SEED_FILE,
    )
    args = ap.parse_args(argv)

    configure_logging()
    db_url: str | None = args.database_url or None
    create_schema(database_url=db_url)
    with session_scope(database_url=db_url) as session:
        created = seed_patterns(SqlTransactionStore(session), load_seed_file(args.file))
    print(f"seeded={created}")
    return 0


if __name__ == "__main__":  # pragma: no cover - manual utility
    raise SystemExit(main())
