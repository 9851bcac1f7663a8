"""
Database package for the lending ledger.

This package provides:
- SQLAlchemy schema definitions (schema.py)
- Session, transaction and retry handling (session.py)
- Repositories for books, patrons and loans

Repositories never commit; every ledger operation runs them inside one
``DatabaseManager.run_transaction`` call so the whole operation commits or
rolls back together.
"""

from .book_repository import BookRepository
from .loan_repository import LoanRepository, overdue_condition
from .patron_repository import PatronRepository
from .repository import BaseRepository, PaginatedResponse, PaginationParams
from .schema import ACTIVE_LOAN_STATUSES, Base, Book, Loan, Patron
from .session import DatabaseManager, safe_query

__all__ = [
    "ACTIVE_LOAN_STATUSES",
    "Base",
    "BaseRepository",
    "Book",
    "BookRepository",
    "DatabaseManager",
    "Loan",
    "LoanRepository",
    "PaginatedResponse",
    "PaginationParams",
    "Patron",
    "PatronRepository",
    "overdue_condition",
    "safe_query",
]
