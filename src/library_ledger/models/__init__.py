"""
Lending ledger models.

Pydantic v2 snapshots of the stored entities, returned by every ledger
operation:
- Book: catalog entry with copy counters
- Patron: borrower
- Loan: one lent copy and its lifecycle status
"""

from .book import Book, BookCreateSchema, InventoryStatus
from .loan import LendingStats, Loan, LoanStatus
from .patron import Patron, PatronCreateSchema

__all__ = [
    "Book",
    "BookCreateSchema",
    "InventoryStatus",
    "LendingStats",
    "Loan",
    "LoanStatus",
    "Patron",
    "PatronCreateSchema",
]
