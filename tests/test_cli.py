from __future__ import annotations

from pathlib import Path

import pytest
from db.client import get_session
from db.models.finance import Transaction
from sqlalchemy import select
from spendsort.cli import app
from typer.testing import CliRunner

runner = CliRunner()

_CSV = (
    "Date,Name / Description,Debit/credit,Amount (EUR)\n"
    "20230115,Albert Heijn 1403,Debit,\"45,30\"\n"
    "20230121,EBAY MARKETPLACES GMBH,Credit,2500\n"
    "20230230,Broken date,Debit,1\n"
)


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _url(workdir: Path) -> str:
    return f"sqlite+pysqlite:///{workdir / 'cli.db'}"


def _correct_args(url: str, txn_id: str) -> list[str]:
    return [
        "correct",
        "--id",
        txn_id,
        "--main",
        "Shopping",
        "--sub",
        "Clothing",
        "--database-url",
        url,
    ]


def test_taxonomy_lists_display_names(workdir: Path) -> None:
    result = runner.invoke(app, ["taxonomy"])
    assert result.exit_code == 0
    assert "Food & Groceries" in result.output
    assert "    Takeaway/Delivery" in result.output


def test_import_csv_prints_summary(workdir: Path) -> None:
    csv_file = workdir / "export.csv"
    csv_file.write_text(_CSV, encoding="utf-8")
    args = ["import-csv", "--csv-path", str(csv_file), "--database-url", _url(workdir), "--no-llm"]

    result = runner.invoke(app, args)
    assert result.exit_code == 0, result.output
    assert "total=3 accepted=2 duplicates=0 errors=1" in result.output
    assert "Row 3: Invalid date format: 20230230" in result.output

    again = runner.invoke(app, args)
    assert again.exit_code == 0, again.output
    assert "total=3 accepted=0 duplicates=2 errors=1" in again.output


def test_import_csv_missing_columns_exits_nonzero(workdir: Path) -> None:
    csv_file = workdir / "bad.csv"
    csv_file.write_text("Date,What\n2023-01-01,x\n", encoding="utf-8")
    result = runner.invoke(
        app, ["import-csv", "--csv-path", str(csv_file), "--database-url", _url(workdir)]
    )
    assert result.exit_code == 1
    assert "Error: Required columns not found in CSV file: description, amount" in result.output


def test_import_csv_missing_file(workdir: Path) -> None:
    missing = str(workdir / "nope.csv")
    result = runner.invoke(
        app, ["import-csv", "--csv-path", missing, "--database-url", _url(workdir)]
    )
    assert result.exit_code == 1
    assert "Error: File not found" in result.output


def test_correct_and_recategorize(workdir: Path) -> None:
    url = _url(workdir)
    csv_file = workdir / "export.csv"
    csv_file.write_text(_CSV, encoding="utf-8")
    assert runner.invoke(app, ["seed-patterns", "--database-url", url]).exit_code == 0
    assert runner.invoke(
        app, ["import-csv", "--csv-path", str(csv_file), "--database-url", url]
    ).exit_code == 0

    with get_session(database_url=url) as s:
        txn_id = s.execute(
            select(Transaction.id).where(Transaction.description == "Albert Heijn 1403")
        ).scalar_one()

    result = runner.invoke(app, _correct_args(url, txn_id))
    assert result.exit_code == 0, result.output
    assert f"{txn_id}\tShopping\tClothing" in result.output

    missing = runner.invoke(app, _correct_args(url, "nope"))
    assert missing.exit_code == 1
    assert "Error: Transaction not found: nope" in missing.output

    recat = runner.invoke(app, ["recategorize", "--id", txn_id, "--database-url", url])
    assert recat.exit_code == 0, recat.output
    assert "total=1 updated=1 unchanged=0 errors=0" in recat.output


def test_init_db(workdir: Path) -> None:
    result = runner.invoke(app, ["init-db", "--database-url", _url(workdir)])
    assert result.exit_code == 0
    assert (workdir / "cli.db").exists()
