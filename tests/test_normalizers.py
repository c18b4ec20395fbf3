from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from spendsort.errors import BatchImportError, MissingColumnsError
from spendsort.models import Direction, NormalizedRow, RowError
from spendsort.normalizers import (
    normalize,
    normalize_rows,
    parse_amount,
    parse_date,
    parse_direction,
    resolve_columns,
)


@pytest.mark.parametrize(
    "raw",
    ["20230115", "2023-01-15", "15/01/2023", "15-01-2023", "15 Jan 2023", "Jan 15, 2023"],
)
def test_supported_date_formats_agree(raw: str) -> None:
    assert parse_date(raw) == date(2023, 1, 15)


def test_slash_date_falls_back_to_month_first() -> None:
    assert parse_date("03/04/2023") == date(2023, 4, 3)
    assert parse_date("12/31/2023") == date(2023, 12, 31)


@pytest.mark.parametrize("raw", ["2023-02-30", "20230230", "31/31/2023", "yesterday", ""])
def test_invalid_dates_raise(raw: str) -> None:
    with pytest.raises(ValueError):
        parse_date(raw)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("45.30", Decimal("45.30")),
        ("-45,30", Decimal("-45.30")),
        ("€ 1.234,56", Decimal("1234.56")),
        ("1,234.56", Decimal("1234.56")),
        ("1,234,567", Decimal("1234567")),
        ("2500", Decimal("2500")),
        ("12.50-", Decimal("-12.50")),
    ],
)
def test_parse_amount(raw: str, expected: Decimal) -> None:
    assert parse_amount(raw) == expected


def test_parse_amount_rejects_garbage() -> None:
    with pytest.raises(ValueError, match="Invalid amount"):
        parse_amount("n/a")


@pytest.mark.parametrize("raw", ["123456789012345678901234567", "-10000000000000000"])
def test_parse_amount_rejects_oversized(raw: str) -> None:
    with pytest.raises(ValueError, match="Invalid amount"):
        parse_amount(raw)


def test_parse_direction() -> None:
    assert parse_direction("Credit", Decimal("-1")) is Direction.CREDIT
    assert parse_direction("Debit", Decimal("1")) is Direction.DEBIT
    assert parse_direction("Af", Decimal("1")) is Direction.DEBIT
    assert parse_direction(None, Decimal("0")) is Direction.CREDIT
    assert parse_direction("  ", Decimal("-3")) is Direction.DEBIT


def test_resolve_columns_prefers_first_synonym_and_strips_bom() -> None:
    cols = resolve_columns(["\ufeffDate", "Name / Description", "Description", "Amount (EUR)"])
    assert cols.date == "\ufeffDate"
    assert cols.description == "Name / Description"
    assert cols.amount == "Amount (EUR)"
    assert cols.direction is None


def test_resolve_columns_missing_required() -> None:
    with pytest.raises(MissingColumnsError) as ei:
        resolve_columns(["Date", "Memo"])
    assert ei.value.missing == ("description", "amount")
    assert "Please ensure your file has Date, Description, and Amount columns" in str(ei.value)


def test_normalize_bank_row() -> None:
    row = normalize(
        {
            "Date": "20230121",
            "Name / Description": "  EBAY MARKETPLACES GMBH ",
            "Account": "NL01BANK0123456789",
            "Counterparty": "",
            "Debit/credit": "Credit",
            "Amount (EUR)": "2500",
            "Notifications": "Payout",
        }
    )
    assert isinstance(row, NormalizedRow)
    assert row.txn_date == date(2023, 1, 21)
    assert row.description == "EBAY MARKETPLACES GMBH"
    assert row.amount == Decimal("2500")
    assert row.direction is Direction.CREDIT
    assert row.account == "NL01BANK0123456789"
    assert row.counterparty is None
    assert row.notes == "Payout"


def test_normalize_signed_amount_without_direction() -> None:
    row = normalize({"Date": "2023-01-15", "Description": "Shop", "Amount": "-12,50"})
    assert isinstance(row, NormalizedRow)
    assert row.amount == Decimal("12.50")
    assert row.direction is Direction.DEBIT
    assert row.account == "Unknown"


def test_normalize_row_errors_are_values() -> None:
    bad_date = normalize({"Date": "2023-02-30", "Description": "x", "Amount": "1"}, row_number=4)
    assert isinstance(bad_date, RowError)
    assert str(bad_date) == "Row 4: Invalid date format: 2023-02-30"

    no_desc = normalize({"Date": "2023-01-01", "Description": " ", "Amount": "1"})
    assert isinstance(no_desc, RowError)
    assert no_desc.message == "Missing description"


def test_normalize_rows_batch() -> None:
    rows = [
        {"Date": "2023-01-15", "Description": "a", "Amount": "1"},
        {"Date": "bogus", "Description": "b", "Amount": "1"},
    ]
    ok, errors = normalize_rows(rows)
    assert [r.description for r in ok] == ["a"]
    assert [e.row for e in errors] == [2]

    with pytest.raises(BatchImportError) as ei:
        normalize_rows([rows[1]])
    assert str(ei.value) == "Row 1: Invalid date format: bogus"
    assert normalize_rows([]) == ([], [])
