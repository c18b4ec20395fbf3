"""CLI for the ``spendsort`` package.

This module exposes callable command handlers (``cmd_import_csv``,
``cmd_recategorize``, ...) and a Typer-based console interface. Environment
variables (notably ``OPENAI_API_KEY`` and ``DATABASE_URL``) are loaded from a
local ``.env`` using ``python-dotenv`` before delegating to command logic.
Handlers return a process exit code and report expected failures on stderr as
``Error: ...``.
"""

from __future__ import annotations

import sys
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from sqlalchemy.exc import SQLAlchemyError
from typer.models import OptionInfo

from .config import Settings
from .errors import BatchImportError, MissingColumnsError, SpendsortError
from .logging_setup import configure_logging, get_logger
from .taxonomy import MainCategory, display_main, display_sub, subcategories_of

_logger = get_logger("spendsort.cli")


def _settings(database_url: str | None) -> Settings:
    cfg = Settings.from_env()
    if database_url:
        cfg = replace(cfg, database_url=database_url)
    return cfg


def _err(msg: str) -> None:
    print(f"Error: {msg}", file=sys.stderr)


def cmd_init_db(*, database_url: str | None = None) -> int:
    from db.client import create_schema

    cfg = _settings(database_url)
    try:
        create_schema(database_url=cfg.database_url)
    except (RuntimeError, SQLAlchemyError) as e:
        _err(f"failed to create schema: {e}")
        return 1
    print("schema ready")
    return 0


def cmd_seed_patterns(*, database_url: str | None = None) -> int:
    from db.client import create_schema, session_scope

    from .ingest.seed_patterns import seed_patterns
    from .persistence import SqlTransactionStore

    cfg = _settings(database_url)
    try:
        create_schema(database_url=cfg.database_url)
        with session_scope(database_url=cfg.database_url) as session:
            created = seed_patterns(SqlTransactionStore(session))
    except (RuntimeError, SQLAlchemyError, ValueError) as e:
        _err(f"seeding failed: {e}")
        return 1
    print(f"seeded={created}")
    return 0


def cmd_import_csv(
    csv_path: str,
    *,
    database_url: str | None = None,
    use_llm: bool = True,
) -> int:
    """Import one CSV file and print the batch summary.

    Row errors are listed on stderr after the summary. Missing columns and a
    batch in which every row failed exit with status 1.
    """

    from db.client import create_schema, session_scope

    from .classify import CategoryClassifier
    from .importer import import_csv_file
    from .persistence import SqlTransactionStore

    cfg = _settings(database_url)
    p = Path(csv_path)
    if not p.is_file():
        _err(f"File not found: {csv_path}")
        return 1

    try:
        create_schema(database_url=cfg.database_url)
        with session_scope(database_url=cfg.database_url) as session:
            store = SqlTransactionStore(session)
            classifier = CategoryClassifier(
                settings=cfg,
                pattern_source=store.list_patterns,
                llm_enabled=cfg.llm_enabled and use_llm,
            )
            result = import_csv_file(p, store=store, classifier=classifier, settings=cfg)
    except MissingColumnsError as e:
        _err(str(e))
        return 1
    except BatchImportError as e:
        _err(f"no transactions imported: {e}")
        for line in e.errors[1:]:
            print(f"  {line}", file=sys.stderr)
        return 1
    except UnicodeDecodeError as e:
        _err(f"could not decode {csv_path} as UTF-8: {e}")
        return 1
    except (RuntimeError, SQLAlchemyError) as e:
        _err(f"import failed: {e}")
        return 1

    print(result.summary_line())
    if result.stopped_early:
        print("stopped early: too many errors", file=sys.stderr)
    for line in result.errors:
        print(f"  {line}", file=sys.stderr)
    return 0


def cmd_recategorize(
    *,
    ids: Sequence[str] | None = None,
    month: str | None = None,
    database_url: str | None = None,
) -> int:
    from db.client import session_scope

    from .classify import CategoryClassifier
    from .persistence import SqlTransactionStore
    from .recategorize import recategorize

    cfg = _settings(database_url)
    try:
        with session_scope(database_url=cfg.database_url) as session:
            store = SqlTransactionStore(session)
            classifier = CategoryClassifier(settings=cfg, pattern_source=store.list_patterns)
            summary = recategorize(store, classifier, ids=ids or None, month=month, settings=cfg)
    except ValueError as e:
        _err(str(e))
        return 1
    except (RuntimeError, SQLAlchemyError) as e:
        _err(f"recategorize failed: {e}")
        return 1

    print(summary.summary_line())
    for txn_id, msg in summary.errors.items():
        print(f"  {txn_id}: {msg}", file=sys.stderr)
    return 0


def cmd_correct(
    txn_id: str,
    main: str,
    sub: str,
    *,
    database_url: str | None = None,
) -> int:
    from db.client import session_scope

    from .corrections import correct_category
    from .persistence import SqlTransactionStore

    cfg = _settings(database_url)
    try:
        with session_scope(database_url=cfg.database_url) as session:
            txn = correct_category(SqlTransactionStore(session), txn_id, main, sub)
            line = f"{txn.id}\t{txn.main_category}\t{txn.sub_category}"
    except SpendsortError as e:
        _err(str(e))
        return 1
    except (RuntimeError, SQLAlchemyError) as e:
        _err(f"correction failed: {e}")
        return 1
    print(line)
    return 0


def cmd_taxonomy() -> int:
    for main in MainCategory:
        print(display_main(main))
        for sub in subcategories_of(main):
            print(f"    {display_sub(sub)}")
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank CSV exports, classify transactions into a two-level "
        "category taxonomy and maintain the learned keyword patterns. "
        "Loads OPENAI_API_KEY and DATABASE_URL from a local .env before running."
    ),
)

# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults).
CSV_PATH_OPTION: OptionInfo = typer.Option(
    ...,  # required
    "--csv-path",
    help="Path to a bank CSV export (Date, Description, Amount columns)",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports a friendly error
)
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    ..., "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
ID_OPTION: OptionInfo = typer.Option(
    ..., "--id", help="Transaction id; repeat to select several."
)


@app.command("init-db")
def init_db_cmd(
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Create the database tables when missing."""

    raise typer.Exit(cmd_init_db(database_url=database_url))


@app.command("seed-patterns")
def seed_patterns_cmd(
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Insert the default keyword patterns (existing ones are kept)."""

    raise typer.Exit(cmd_seed_patterns(database_url=database_url))


@app.command("import-csv")
def import_csv_cmd(
    csv_path: Annotated[Path, CSV_PATH_OPTION],
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    no_llm: bool = typer.Option(False, "--no-llm", help="Classify with rules only."),
) -> None:
    """Import a CSV file and print ``total/accepted/duplicates/errors``."""

    raise typer.Exit(
        cmd_import_csv(str(csv_path), database_url=database_url, use_llm=not no_llm)
    )


@app.command("recategorize")
def recategorize_cmd(
    ids: Annotated[list[str] | None, ID_OPTION] = None,
    month: str | None = typer.Option(
        None, help="Limit the default Miscellaneous/Other selection to YYYY-MM."
    ),
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Re-classify the given transactions, or every Miscellaneous/Other one."""

    raise typer.Exit(cmd_recategorize(ids=ids, month=month, database_url=database_url))


@app.command("correct")
def correct_cmd(
    txn_id: str = typer.Option(..., "--id", help="Transaction id."),
    main: str = typer.Option(..., "--main", help='Main category, e.g. "Food & Groceries".'),
    sub: str = typer.Option(..., "--sub", help='Subcategory, e.g. "Groceries".'),
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Set a transaction's category and update the learned patterns."""

    raise typer.Exit(cmd_correct(txn_id, main, sub, database_url=database_url))


@app.command("taxonomy")
def taxonomy_cmd() -> None:
    """Print the category tree in display spelling."""

    raise typer.Exit(cmd_taxonomy())


@app.callback()
def _root() -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()
    _logger.debug("cli:start")


if __name__ == "__main__":  # pragma: no cover - exercised via console script
    app()
