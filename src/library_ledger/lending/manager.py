"""
Loan lifecycle management for the lending ledger.

``LoanLifecycleManager`` is the only component that creates or closes
loans and the only one that moves a book's ``available_copies``. Each
operation is one ``DatabaseManager.run_transaction`` call, so the counter
change and the loan change commit together or not at all:

- borrow: guarded decrement of ``available_copies`` + insert BORROWED loan
- return: guarded BORROWED/OVERDUE -> RETURNED + guarded increment

Read accessors apply the overdue rule to the loans they are about to
return before reading them, so callers never see a stale BORROWED.

The manager does not log or format messages; outcomes are return values
or the typed errors in ``library_ledger.errors``.
"""

from collections.abc import Callable
from datetime import date, datetime, timedelta

from sqlalchemy.orm import Session

from ..config import LedgerConfig
from ..database.book_repository import BookRepository
from ..database.loan_repository import LoanRepository
from ..database.patron_repository import PatronRepository
from ..database.repository import PaginatedResponse, PaginationParams
from ..database.session import DatabaseManager
from ..errors import (
    AlreadyReturnedError,
    InvalidArgumentError,
    NotFoundError,
    StorageError,
    UnavailableError,
)
from ..models.loan import LendingStats, Loan, LoanStatus
from ..observability import traced
from .overdue import OverdueScanner
from .timeutil import as_due_datetime

MAX_NOTE_LENGTH = 1000


class LoanLifecycleManager:
    """
    Orchestrates borrow and return as atomic units of work.

    Args:
        db: Storage handle, opened at process start and closed at shutdown
        config: Ledger configuration; defaults to ``db.config``
        scanner: Overdue scanner used by the read accessors; one sharing
            this manager's clock is created if omitted
        clock: Source of "now"; defaults to ``datetime.now``
    """

    def __init__(
        self,
        db: DatabaseManager,
        config: LedgerConfig | None = None,
        scanner: OverdueScanner | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db = db
        self.config = config or db.config
        self.clock = clock
        self.scanner = scanner or OverdueScanner(db, self.config, clock)

    # === Mutations ===

    @traced("borrow")
    def borrow(
        self,
        patron_id: str,
        book_id: str,
        due_date: date | datetime | str | None = None,
        note: str | None = None,
    ) -> Loan:
        """
        Lend one copy of a book to a patron.

        Args:
            patron_id: Borrowing patron
            book_id: Book to lend
            due_date: When the copy is due; defaults to now plus
                ``default_loan_period_days``. A bare date or ISO date string
                means end of day.
            note: Optional free-text note

        Returns:
            The new BORROWED loan

        Raises:
            NotFoundError: If the patron or book does not exist
            InvalidArgumentError: If the due date is unparseable or not after the
                borrow time
            UnavailableError: If no copy is available at the moment of the check
            StorageError: If the store keeps failing
        """
        _check_note(note)
        requested_due = as_due_datetime(due_date) if due_date is not None else None
        loan_period = timedelta(days=self.config.default_loan_period_days)

        def work(session: Session) -> Loan:
            borrowed_at = self.clock()
            due = requested_due or borrowed_at + loan_period

            if not PatronRepository(session).exists(patron_id):
                raise NotFoundError("Patron", patron_id)

            books = BookRepository(session, clock=self.clock)
            if not books.exists(book_id):
                raise NotFoundError("Book", book_id)

            if due <= borrowed_at:
                raise InvalidArgumentError(
                    f"Due date {due.isoformat()} must be after borrow time {borrowed_at.isoformat()}"
                )

            if not books.take_copy(book_id):
                raise UnavailableError(book_id)

            return LoanRepository(session, clock=self.clock).insert(
                patron_id=patron_id,
                book_id=book_id,
                borrowed_at=borrowed_at,
                due_date=due,
                note=note,
            )

        return self.db.run_transaction(work, operation="borrow")

    @traced("return_loan")
    def return_loan(self, loan_id: str) -> Loan:
        """
        Close a loan and put its copy back on the shelf.

        Not idempotent: a second return of the same loan fails with
        ``AlreadyReturnedError`` and leaves the counters alone.

        Returns:
            The loan, now RETURNED with ``returned_at`` set

        Raises:
            NotFoundError: If the loan does not exist
            AlreadyReturnedError: If the loan is already RETURNED
            StorageError: If the store keeps failing, or the book's counter is
                already at its total (the ledger is inconsistent)
        """

        def work(session: Session) -> Loan:
            loans = LoanRepository(session, clock=self.clock)
            loan = loans.get_by_id(loan_id)
            if loan is None:
                raise NotFoundError("Loan", loan_id)
            if loan.status is LoanStatus.RETURNED:
                raise AlreadyReturnedError(loan_id)

            returned_at = max(self.clock(), loan.borrowed_at)
            if not loans.close(loan_id, returned_at):
                # returned concurrently between the read and the update
                raise AlreadyReturnedError(loan_id)

            if not BookRepository(session, clock=self.clock).release_copy(loan.book_id):
                raise StorageError(
                    f"Book {loan.book_id} already has every copy available; "
                    f"refusing to return loan {loan_id}"
                )

            return loans.get_by_id(loan_id)

        return self.db.run_transaction(work, operation="return loan")

    @traced("update_loan_note")
    def update_loan_note(self, loan_id: str, note: str | None) -> Loan:
        """
        Replace the free-text note on a loan.

        Status and dates are not editable here.

        Raises:
            NotFoundError: If the loan does not exist
            InvalidArgumentError: If the note is too long
        """
        _check_note(note)

        def work(session: Session) -> Loan:
            loans = LoanRepository(session, clock=self.clock)
            if not loans.set_note(loan_id, note):
                raise NotFoundError("Loan", loan_id)
            self.scanner.refresh(session, loan_id=loan_id)
            return loans.get_by_id(loan_id)

        return self.db.run_transaction(work, operation="update loan note")

    # === Reads (lazy overdue check first) ===

    @traced("get_loan")
    def get_loan(self, loan_id: str) -> Loan:
        """
        Fetch one loan.

        Raises:
            NotFoundError: If the loan does not exist
        """

        def work(session: Session) -> Loan:
            self.scanner.refresh(session, loan_id=loan_id)
            loan = LoanRepository(session, clock=self.clock).get_by_id(loan_id)
            if loan is None:
                raise NotFoundError("Loan", loan_id)
            return loan

        return self.db.run_transaction(work, operation="get loan")

    @traced("list_loans_for_patron")
    def list_loans_for_patron(
        self, patron_id: str, status: LoanStatus | str | None = None
    ) -> list[Loan]:
        """
        A patron's loans, most recently borrowed first.

        Args:
            patron_id: Patron whose loans to list
            status: Optional status filter, applied after the overdue check

        Raises:
            NotFoundError: If the patron does not exist
            InvalidArgumentError: If ``status`` is not a loan status
        """
        status_filter = _parse_status(status)

        def work(session: Session) -> list[Loan]:
            if not PatronRepository(session).exists(patron_id):
                raise NotFoundError("Patron", patron_id)
            self.scanner.refresh(session, patron_id=patron_id)
            return LoanRepository(session, clock=self.clock).list_for_patron(
                patron_id, status_filter
            )

        return self.db.run_transaction(work, operation="list patron loans")

    @traced("list_overdue_loans")
    def list_overdue_loans(self) -> list[Loan]:
        """Every OVERDUE loan as of now, earliest due date first."""

        def work(session: Session) -> list[Loan]:
            self.scanner.refresh(session)
            return LoanRepository(session, clock=self.clock).list_overdue()

        return self.db.run_transaction(work, operation="list overdue loans")

    @traced("list_loans")
    def list_loans(
        self,
        status: LoanStatus | str | None = None,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResponse[Loan]:
        """All loans, most recently borrowed first, one page at a time."""
        status_filter = _parse_status(status)

        def work(session: Session) -> PaginatedResponse[Loan]:
            self.scanner.refresh(session)
            return LoanRepository(session, clock=self.clock).list_loans(status_filter, pagination)

        return self.db.run_transaction(work, operation="list loans")

    @traced("get_lending_stats")
    def get_lending_stats(self, patron_id: str | None = None) -> LendingStats:
        """
        Loan counts per status, library-wide or for one patron.

        Raises:
            NotFoundError: If ``patron_id`` is given and the patron does not exist
        """

        def work(session: Session) -> LendingStats:
            if patron_id is not None and not PatronRepository(session).exists(patron_id):
                raise NotFoundError("Patron", patron_id)
            self.scanner.refresh(session, patron_id=patron_id)
            return LoanRepository(session, clock=self.clock).get_stats(patron_id)

        return self.db.run_transaction(work, operation="lending stats")


def _parse_status(status: LoanStatus | str | None) -> LoanStatus | None:
    if status is None or isinstance(status, LoanStatus):
        return status
    try:
        return LoanStatus(status.upper())
    except (AttributeError, ValueError) as e:
        raise InvalidArgumentError(f"Unknown loan status: {status!r}") from e


def _check_note(note: str | None) -> None:
    if note is not None and len(note) > MAX_NOTE_LENGTH:
        raise InvalidArgumentError(f"Note must be at most {MAX_NOTE_LENGTH} characters")
