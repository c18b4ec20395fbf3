"""Pytest configuration for test isolation.

Each test gets its own SQLite file, a clean process environment (no
``DATABASE_URL``/``OPENAI_API_KEY`` leaking in from a developer ``.env``) and
an unconfigured ``spendsort`` logger so ``caplog`` sees records.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
for _p in (_ROOT / "packages", _ROOT / "libs" / "db" / "src", _ROOT):
    if str(_p) not in sys.path:
        sys.path.insert(0, str(_p))

from db.client import get_session, reset_engine  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from spendsort import logging_setup  # noqa: E402
from spendsort.persistence import SqlTransactionStore  # noqa: E402

from tests.helpers.db import bootstrap_sqlite_db  # noqa: E402

_ENV_VARS = (
    "DATABASE_URL",
    "OPENAI_API_KEY",
    "SPENDSORT_MODEL",
    "SPENDSORT_LOG_LEVEL",
    "SPENDSORT_LLM_TIMEOUT",
    "SPENDSORT_LLM_MAX_RETRIES",
    "SPENDSORT_LLM_BACKOFF",
    "SPENDSORT_MAX_IMPORT_ERRORS",
    "SPENDSORT_RECATEGORIZE_CHUNK",
    "SPENDSORT_RECATEGORIZE_DELAY",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    reset_engine()
    pkg_logger = logging.getLogger("spendsort")
    for h in list(pkg_logger.handlers):
        pkg_logger.removeHandler(h)
    pkg_logger.propagate = True
    pkg_logger.setLevel(logging.NOTSET)
    logging_setup._CONFIGURED = False


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    return bootstrap_sqlite_db(tmp_path / "spendsort.db")


@pytest.fixture
def session(db_url: str) -> Iterator[Session]:
    s = get_session(database_url=db_url)
    try:
        yield s
    finally:
        s.rollback()
        s.close()


@pytest.fixture
def store(session: Session) -> SqlTransactionStore:
    return SqlTransactionStore(session)
