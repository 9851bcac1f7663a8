"""
Library lending ledger.

Tracks which patron holds which copy of which book, keeps each book's
available-copy counter consistent with its active loans, and moves loans
through BORROWED -> OVERDUE -> RETURNED.

```python
db = DatabaseManager()
db.init_database()
ledger = LoanLifecycleManager(db)
loan = ledger.borrow(patron_id, book_id)
ledger.return_loan(loan.id)
```
"""

from .config import LedgerConfig, get_config, reset_config
from .database import DatabaseManager
from .errors import (
    AlreadyReturnedError,
    DuplicateError,
    InvalidArgumentError,
    LedgerException,
    NotFoundError,
    StorageError,
    UnavailableError,
)
from .lending import LoanLifecycleManager, OverdueScanner, OverdueSweeper
from .models import Book, InventoryStatus, LendingStats, Loan, LoanStatus, Patron

__version__ = "0.1.0"

__all__ = [
    "AlreadyReturnedError",
    "Book",
    "DatabaseManager",
    "DuplicateError",
    "InvalidArgumentError",
    "InventoryStatus",
    "LedgerConfig",
    "LedgerException",
    "LendingStats",
    "Loan",
    "LoanLifecycleManager",
    "LoanStatus",
    "NotFoundError",
    "OverdueScanner",
    "OverdueSweeper",
    "Patron",
    "StorageError",
    "UnavailableError",
    "__version__",
    "get_config",
    "reset_config",
]
