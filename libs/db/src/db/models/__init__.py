"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the transaction and learned-pattern models used by
``spendsort``.
"""

from .finance import Base, CategoryPattern, Transaction

__all__ = [
    "Base",
    "CategoryPattern",
    "Transaction",
]
