"""
Error taxonomy for the lending ledger.

Every operation either returns its result or raises one of these. The API
layer sitting in front of the ledger maps them to whatever its transport
needs; ``code`` gives it a stable key to switch on.
"""


class LedgerException(Exception):
    """Base exception for ledger operations."""

    code = "LEDGER_ERROR"


class NotFoundError(LedgerException):
    """Raised when a referenced book, patron or loan does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class UnavailableError(LedgerException):
    """Raised when a book has no copies left to lend."""

    code = "UNAVAILABLE"

    def __init__(self, book_id: str):
        super().__init__(f"Book {book_id} has no available copies")
        self.book_id = book_id


class InvalidArgumentError(LedgerException):
    """Raised for bad input such as a due date that is not after the borrow time."""

    code = "INVALID_ARGUMENT"


class AlreadyReturnedError(LedgerException):
    """Raised when returning a loan that is already RETURNED."""

    code = "ALREADY_RETURNED"

    def __init__(self, loan_id: str):
        super().__init__(f"Loan {loan_id} is already returned")
        self.loan_id = loan_id


class DuplicateError(LedgerException):
    """Raised when attempting to create a duplicate catalog entry."""

    code = "DUPLICATE"


class StorageError(LedgerException):
    """
    Raised when the backing store fails.

    ``retryable`` marks transient conflicts (lock contention, deadlock,
    timeout) that a fresh transaction may get past.
    """

    code = "STORAGE_ERROR"

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable
