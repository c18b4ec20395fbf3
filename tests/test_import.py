from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path

import pytest
from db.models.finance import CategoryPattern
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from spendsort.classify import CategoryClassifier
from spendsort.config import Settings
from spendsort.errors import BatchImportError, MissingColumnsError
from spendsort.importer import import_batch, import_csv_file, read_csv_rows
from spendsort.persistence import SqlTransactionStore

from tests.helpers.openai_stub import OpenAIStub, timeout_error

_HEADERS = ["Date", "Description", "Amount", "Type"]


def _rows(*lines: str) -> list[dict[str, str]]:
    return [dict(zip(_HEADERS, line.split(","), strict=True)) for line in lines]


def _rules_only() -> CategoryClassifier:
    return CategoryClassifier(settings=Settings(), sleep=lambda _s: None)


def _with_stub(stub: OpenAIStub, settings: Settings | None = None) -> CategoryClassifier:
    return CategoryClassifier(
        settings=settings or Settings(openai_api_key="sk-test"),
        client_factory=lambda: stub,
        sleep=lambda _s: None,
    )


def test_grocery_row_is_accepted(store: SqlTransactionStore) -> None:
    result = import_batch(
        _rows("2023-01-15,Albert Heijn boodschappen,45.30,debit"),
        store=store,
        classifier=_rules_only(),
    )
    (txn,) = result.accepted
    assert (txn.main_category, txn.sub_category) == ("FoodAndGroceries", "Groceries")
    assert (txn.original_main_category, txn.original_sub_category) == (
        "FoodAndGroceries",
        "Groceries",
    )
    assert txn.amount == Decimal("45.30")
    assert txn.direction == "debit"
    assert txn.account == "Unknown"
    assert result.summary_line() == "total=1 accepted=1 duplicates=0 errors=0"


def test_marketplace_credit_is_salary(store: SqlTransactionStore) -> None:
    result = import_batch(
        _rows("20230121,EBAY MARKETPLACES GMBH,2500,credit"),
        store=store,
        classifier=_rules_only(),
    )
    (txn,) = result.accepted
    assert (txn.main_category, txn.sub_category) == ("Income", "Salary")


def test_duplicate_within_batch(store: SqlTransactionStore) -> None:
    result = import_batch(
        _rows(
            "2023-01-15,Jumbo Utrecht,12.00,debit",
            "2023-01-15,Jumbo Utrecht,12.00,debit",
            "2023-01-15,Jumbo Utrecht,12.00,credit",
        ),
        store=store,
        classifier=_rules_only(),
    )
    assert result.accepted_count == 2
    assert result.duplicates == 1
    assert result.errors == []


def test_bad_date_is_row_error_and_batch_continues(store: SqlTransactionStore) -> None:
    result = import_batch(
        _rows(
            "2023-02-30,Jumbo,1.00,debit",
            "2023-03-01,Lidl,2.00,debit",
        ),
        store=store,
        classifier=_rules_only(),
    )
    assert [t.description for t in result.accepted] == ["Lidl"]
    assert result.errors == ["Row 1: Invalid date format: 2023-02-30"]


def test_remote_timeouts_fall_back_without_error(store: SqlTransactionStore) -> None:
    stub = OpenAIStub([timeout_error()] * 3)
    result = import_batch(
        _rows("2023-01-15,MYSTERY VENDOR 42,9.99,debit"),
        store=store,
        classifier=_with_stub(stub),
    )
    (txn,) = result.accepted
    assert (txn.main_category, txn.sub_category) == ("Miscellaneous", "Other")
    assert result.errors == []
    assert len(stub.calls) == 3


def test_remote_verdict_is_learned_as_pattern(
    store: SqlTransactionStore, session: Session
) -> None:
    stub = OpenAIStub(["Shopping -> Clothing"])
    import_batch(
        _rows("2023-01-15,  Zalando   SE ,59.95,debit"),
        store=store,
        classifier=_with_stub(stub),
    )
    (pattern,) = session.execute(select(CategoryPattern)).scalars()
    assert pattern.pattern == "zalando se"
    assert (pattern.main_category, pattern.sub_category) == ("Shopping", "Clothing")
    assert pattern.confidence == pytest.approx(0.9)
    assert pattern.usage_count == 1


def test_rule_verdicts_are_not_learned(store: SqlTransactionStore, session: Session) -> None:
    import_batch(_rows("2023-01-15,Jumbo,1.00,debit"), store=store, classifier=_rules_only())
    assert session.execute(select(CategoryPattern)).first() is None


def test_all_rows_failing_raises(store: SqlTransactionStore) -> None:
    with pytest.raises(BatchImportError) as ei:
        import_batch(
            _rows("nope,Jumbo,1.00,debit", "2023-01-01,Lidl,abc,debit"),
            store=store,
            classifier=_rules_only(),
        )
    assert str(ei.value) == "Row 1: Invalid date format: nope"
    assert len(ei.value.errors) == 2


def test_missing_columns_raise_before_any_row(store: SqlTransactionStore) -> None:
    with pytest.raises(MissingColumnsError):
        import_batch(
            [{"When": "2023-01-01", "What": "x", "Amount": "1"}],
            store=store,
            classifier=_rules_only(),
        )
    assert store.list_transactions() == []


def test_error_cap_stops_batch(store: SqlTransactionStore) -> None:
    result = import_batch(
        _rows(
            "2023-01-01,Jumbo,1.00,debit",
            "bad,Lidl,1.00,debit",
            "bad,Aldi,1.00,debit",
            "2023-01-02,Dirk,1.00,debit",
        ),
        store=store,
        classifier=_rules_only(),
        settings=Settings(max_import_errors=2),
    )
    assert result.stopped_early
    assert result.error_count == 2
    assert [t.description for t in result.accepted] == ["Jumbo"]


def test_capped_batch_without_accepts_returns_summary(store: SqlTransactionStore) -> None:
    result = import_batch(
        _rows(
            "bad,Lidl,1.00,debit",
            "bad,Aldi,1.00,debit",
            "bad,Dirk,1.00,debit",
            "2023-01-02,Jumbo,1.00,debit",
        ),
        store=store,
        classifier=_rules_only(),
        settings=Settings(max_import_errors=3),
    )
    assert result.stopped_early
    assert result.error_count == 3
    assert result.accepted == []
    assert store.list_transactions() == []


def test_oversized_amount_is_row_error(store: SqlTransactionStore) -> None:
    result = import_batch(
        _rows(
            "2023-01-15,Jumbo,123456789012345678901234567,debit",
            "2023-01-16,Lidl,2.00,debit",
        ),
        store=store,
        classifier=_rules_only(),
    )
    assert result.errors == ["Row 1: Invalid amount: '123456789012345678901234567'"]
    assert [t.description for t in result.accepted] == ["Lidl"]


def test_dedup_arithmetic_failure_is_row_error(
    store: SqlTransactionStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    real_find = store.find_by_identity

    def _find(day, description, amount, direction):
        if description == "Jumbo":
            raise InvalidOperation("quantize")
        return real_find(day, description, amount, direction)

    monkeypatch.setattr(store, "find_by_identity", _find)
    result = import_batch(
        _rows("2023-01-15,Jumbo,1.00,debit", "2023-01-16,Lidl,2.00,debit"),
        store=store,
        classifier=_rules_only(),
    )
    assert result.error_count == 1
    assert result.errors[0].startswith("Row 1: Failed to save transaction: InvalidOperation")
    assert [t.description for t in result.accepted] == ["Lidl"]


def test_persistence_failure_is_collected(
    store: SqlTransactionStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    real_create = store.create

    def _create(record):
        if record.row.description == "Lidl":
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))
        return real_create(record)

    monkeypatch.setattr(store, "create", _create)
    result = import_batch(
        _rows("2023-01-01,Jumbo,1.00,debit", "2023-01-02,Lidl,1.00,debit"),
        store=store,
        classifier=_rules_only(),
    )
    assert [t.description for t in result.accepted] == ["Jumbo"]
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Row 2: Failed to save transaction: OperationalError")


def test_read_csv_rows_semicolon_and_bom() -> None:
    text = "\ufeffDate;Description;Amount\n2023-01-01;Jumbo;1,50\n;;\n"
    headers, rows = read_csv_rows(text)
    assert headers == ["Date", "Description", "Amount"]
    assert rows == [{"Date": "2023-01-01", "Description": "Jumbo", "Amount": "1,50"}]


def test_reimport_is_idempotent(tmp_path: Path, store: SqlTransactionStore) -> None:
    csv_file = tmp_path / "export.csv"
    csv_file.write_text(
        "Date,Name / Description,Debit/credit,Amount (EUR)\n"
        "20230115,Albert Heijn 1403,Debit,\"45,30\"\n"
        "20230121,EBAY MARKETPLACES GMBH,Credit,2500\n"
        "20230122,NS.NL Reizen,Debit,\"12,40\"\n",
        encoding="utf-8",
    )

    first = import_csv_file(csv_file, store=store, classifier=_rules_only())
    assert first.accepted_count == 3
    assert first.duplicates == 0
    assert len(first.transactions) == 3

    second = import_csv_file(csv_file, store=store, classifier=_rules_only())
    assert second.accepted_count == 0
    assert second.duplicates == 3
    assert second.errors == []
    assert {t.id for t in second.transactions} == {t.id for t in first.accepted}
