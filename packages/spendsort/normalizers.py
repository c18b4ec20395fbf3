"""Row normalization for bank CSV exports.

Turns one raw CSV row (``dict`` of header -> cell text) into a
:class:`~spendsort.models.NormalizedRow`. Columns are located through an
ordered synonym table so exports from different banks share one code path.

Failures on a single row are returned as :class:`~spendsort.models.RowError`
values; only a missing required column (``MissingColumnsError``) or a batch in
which no row survives (``BatchImportError``) is raised.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from dateutil import parser as date_parser
from pydantic import ValidationError

from .errors import BatchImportError, MissingColumnsError
from .models import Direction, NormalizedRow, RowError

# Logical field -> header spellings, in lookup order.
HEADER_SYNONYMS: dict[str, tuple[str, ...]] = {
    "date": ("Date", "date", "DATE", "Transaction Date", "transaction_date"),
    "description": (
        "Name / Description",
        "Description",
        "description",
        "DESCRIPTION",
        "Transaction Description",
    ),
    "amount": ("Amount (EUR)", "Amount", "amount", "AMOUNT", "Transaction Amount"),
    "direction": ("Debit/credit", "Type", "type", "TYPE", "Transaction Type"),
    "account": ("Account", "account", "ACCOUNT", "Account Number"),
    "counterparty": ("Counterparty", "counterparty", "COUNTERPARTY", "Payee"),
    "notes": ("Notifications", "notes", "NOTES", "Memo"),
}

REQUIRED_FIELDS: tuple[str, ...] = ("date", "description", "amount")


@dataclass(frozen=True, slots=True)
class ColumnMap:
    """Resolved header names for each logical field (``None`` when absent)."""

    date: str
    description: str
    amount: str
    direction: str | None = None
    account: str | None = None
    counterparty: str | None = None
    notes: str | None = None


def _clean_header(h: str) -> str:
    return h.replace("\ufeff", "").strip()


def resolve_columns(
    headers: Iterable[str | None],
    synonyms: Mapping[str, Sequence[str]] = HEADER_SYNONYMS,
) -> ColumnMap:
    """Resolve logical fields to actual header names.

    The first synonym present in ``headers`` wins. Headers are compared after
    stripping whitespace and a UTF-8 BOM; the returned names are the original
    header keys so they can index ``csv.DictReader`` rows directly.
    """

    actual = [h for h in headers if h is not None]
    by_clean: dict[str, str] = {}
    for h in actual:
        by_clean.setdefault(_clean_header(h), h)

    found: dict[str, str | None] = {}
    for field_name in HEADER_SYNONYMS:
        found[field_name] = None
        for name in synonyms.get(field_name, ()):
            if name in by_clean:
                found[field_name] = by_clean[name]
                break

    missing = [f for f in REQUIRED_FIELDS if found[f] is None]
    if missing:
        raise MissingColumnsError(missing, actual)

    return ColumnMap(
        date=found["date"] or "",
        description=found["description"] or "",
        amount=found["amount"] or "",
        direction=found["direction"],
        account=found["account"],
        counterparty=found["counterparty"],
        notes=found["notes"],
    )


# ---------------------------------------------------------------------------
# Amounts and direction
# ---------------------------------------------------------------------------

_AMOUNT_STRIP_RE = re.compile(r"[^0-9.,\-]")
_MAX_AMOUNT = Decimal("1e16")


def parse_amount(raw: str | None) -> Decimal:
    """Parse a bank amount string into a signed ``Decimal``.

    Everything except digits, ``,``, ``.`` and ``-`` is discarded. With both
    separators present the right-most one is the decimal separator. A single
    ``,`` is a decimal comma; repeated identical separators are thousands
    separators. Raises ``ValueError`` when no number remains.
    """

    if raw is None:
        raise ValueError("Missing amount")
    s = _AMOUNT_STRIP_RE.sub("", str(raw))
    negative = s.startswith("-") or s.endswith("-")
    s = s.replace("-", "")
    if not any(ch.isdigit() for ch in s):
        raise ValueError(f"Invalid amount: {raw!r}")

    if "," in s and "." in s:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif "," in s:
        s = s.replace(",", ".") if s.count(",") == 1 else s.replace(",", "")
    elif s.count(".") > 1:
        s = s.replace(".", "")

    try:
        d = Decimal(s)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {raw!r}") from exc
    # Amounts are stored as Numeric(18, 2).
    if not d.is_finite() or d.copy_abs() >= _MAX_AMOUNT:
        raise ValueError(f"Invalid amount: {raw!r}")
    return -d if negative else d


def parse_direction(raw: str | None, signed_amount: Decimal) -> Direction:
    """Return the direction from an explicit cell or from the amount sign.

    A non-empty cell containing ``credit`` (any case) is a credit; any other
    non-empty cell is a debit. Without a cell, ``amount >= 0`` is a credit.
    """

    if raw is not None and raw.strip():
        return Direction.CREDIT if "credit" in raw.lower() else Direction.DEBIT
    return Direction.CREDIT if signed_amount >= 0 else Direction.DEBIT


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

_YYYYMMDD_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})$")
_ISO_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_SLASH_RE = re.compile(r"^(\d{2})/(\d{2})/(\d{4})$")
_DASH_DMY_RE = re.compile(r"^(\d{2})-(\d{2})-(\d{4})$")
_TEXTUAL_FORMATS: tuple[str, ...] = ("%d %b %Y", "%d %B %Y", "%b %d, %Y", "%B %d, %Y")


def _ymd(year: str, month: str, day: str) -> date | None:
    # ``date()`` rejects out-of-range components (e.g. 30 February).
    try:
        return date(int(year), int(month), int(day))
    except ValueError:
        return None


def _numeric_candidates(s: str) -> Iterable[date | None]:
    if m := _YYYYMMDD_RE.match(s):
        yield _ymd(m.group(1), m.group(2), m.group(3))
    if m := _ISO_RE.match(s):
        yield _ymd(m.group(1), m.group(2), m.group(3))
    if m := _SLASH_RE.match(s):
        # DD/MM/YYYY first, then MM/DD/YYYY
        yield _ymd(m.group(3), m.group(2), m.group(1))
        yield _ymd(m.group(3), m.group(1), m.group(2))
    if m := _DASH_DMY_RE.match(s):
        yield _ymd(m.group(3), m.group(2), m.group(1))


def parse_date(raw: str | None) -> date:
    """Parse a transaction date from the supported bank formats.

    Tried in order: ``YYYYMMDD``, ``YYYY-MM-DD``, ``DD/MM/YYYY``,
    ``MM/DD/YYYY``, ``DD-MM-YYYY``, ``15 Jan 2023`` and ``Jan 15, 2023``;
    then a generic day-first parse via ``dateutil``. Raises ``ValueError``
    when nothing yields a real calendar date.
    """

    if raw is None or not str(raw).strip():
        raise ValueError("Missing date")
    s = str(raw).strip()

    matched_numeric = False
    for candidate in _numeric_candidates(s):
        matched_numeric = True
        if candidate is not None:
            return candidate
    if matched_numeric:
        # Recognized shape with impossible components (e.g. 2023-02-30).
        raise ValueError(f"Invalid date format: {s}")

    for fmt in _TEXTUAL_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue

    if any(ch.isdigit() for ch in s):
        try:
            return date_parser.parse(s, dayfirst=True).date()
        except (ValueError, OverflowError):
            pass
    raise ValueError(f"Invalid date format: {s}")


# ---------------------------------------------------------------------------
# Rows
# ---------------------------------------------------------------------------


def _cell(raw_row: Mapping[str, str | None], header: str | None) -> str | None:
    if header is None:
        return None
    v = raw_row.get(header)
    if v is None:
        return None
    t = str(v).strip()
    return t or None


def normalize_row(
    raw_row: Mapping[str, str | None],
    columns: ColumnMap,
    *,
    row_number: int,
) -> NormalizedRow | RowError:
    """Normalize one row against resolved ``columns``.

    Returns a ``RowError`` (never raises) for unparseable dates or amounts,
    an empty description, or a row too short to hold its required cells.
    """

    description = _cell(raw_row, columns.description)
    if description is None:
        return RowError(row_number, "Missing description")
    try:
        txn_date = parse_date(_cell(raw_row, columns.date))
        signed = parse_amount(_cell(raw_row, columns.amount))
    except ValueError as exc:
        return RowError(row_number, str(exc))

    direction = parse_direction(_cell(raw_row, columns.direction), signed)
    try:
        return NormalizedRow(
            row_number=row_number,
            txn_date=txn_date,
            description=description,
            amount=abs(signed),
            direction=direction,
            account=_cell(raw_row, columns.account) or "Unknown",
            counterparty=_cell(raw_row, columns.counterparty),
            notes=_cell(raw_row, columns.notes),
        )
    except ValidationError as exc:
        return RowError(row_number, f"Invalid row: {exc.errors()[0].get('msg', exc)}")


def normalize(
    raw_row: Mapping[str, str | None],
    header_synonyms: Mapping[str, Sequence[str]] = HEADER_SYNONYMS,
    *,
    row_number: int = 1,
) -> NormalizedRow | RowError:
    """Normalize a single row, resolving columns from its own keys.

    Raises ``MissingColumnsError`` when required headers are absent.
    """

    columns = resolve_columns(raw_row.keys(), header_synonyms)
    return normalize_row(raw_row, columns, row_number=row_number)


def normalize_rows(
    raw_rows: Sequence[Mapping[str, str | None]],
    header_synonyms: Mapping[str, Sequence[str]] = HEADER_SYNONYMS,
    *,
    headers: Sequence[str] | None = None,
) -> tuple[list[NormalizedRow], list[RowError]]:
    """Normalize a whole batch.

    Returns the rows that parsed plus the row errors. Raises
    ``MissingColumnsError`` for absent required columns and
    ``BatchImportError`` when input is non-empty but no row survives.
    """

    if not raw_rows:
        return [], []
    columns = resolve_columns(
        headers if headers is not None else raw_rows[0].keys(), header_synonyms
    )
    ok: list[NormalizedRow] = []
    errors: list[RowError] = []
    for idx, raw in enumerate(raw_rows, start=1):
        result = normalize_row(raw, columns, row_number=idx)
        if isinstance(result, RowError):
            errors.append(result)
        else:
            ok.append(result)
    if not ok:
        raise BatchImportError([str(e) for e in errors])
    return ok, errors


__all__ = [
    "ColumnMap",
    "HEADER_SYNONYMS",
    "REQUIRED_FIELDS",
    "normalize",
    "normalize_row",
    "normalize_rows",
    "parse_amount",
    "parse_date",
    "parse_direction",
    "resolve_columns",
]
