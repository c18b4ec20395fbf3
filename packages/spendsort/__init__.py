"""Public interface for the ``spendsort`` package.

Symbol re-exports only; the CLI lives in ``spendsort.cli``.
"""

from .classify import CategoryClassifier
from .config import Settings
from .corrections import correct_category
from .errors import (
    BatchImportError,
    MissingColumnsError,
    SpendsortError,
    TaxonomyError,
    TransactionNotFoundError,
)
from .importer import import_batch, import_csv_file
from .models import Direction, ImportResult, NormalizedRow, RecategorizeSummary
from .normalizers import normalize
from .persistence import SqlTransactionStore
from .recategorize import recategorize
from .taxonomy import CategoryPair, MainCategory, SubCategory, to_display, to_storage

__all__ = [
    "BatchImportError",
    "CategoryClassifier",
    "CategoryPair",
    "Direction",
    "ImportResult",
    "MainCategory",
    "MissingColumnsError",
    "NormalizedRow",
    "RecategorizeSummary",
    "Settings",
    "SpendsortError",
    "SqlTransactionStore",
    "SubCategory",
    "TaxonomyError",
    "TransactionNotFoundError",
    "correct_category",
    "import_batch",
    "import_csv_file",
    "normalize",
    "recategorize",
    "to_display",
    "to_storage",
]
