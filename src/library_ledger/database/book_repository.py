"""
Book repository: the inventory counter side of the ledger.

Copy counters are only ever changed by single guarded UPDATE statements.
The guard sits in the WHERE clause, so the database does the
compare-and-set and the affected-row count says whether it happened:

- ``take_copy``: ``available_copies - 1`` only while ``available_copies > 0``
- ``release_copy``: ``available_copies + 1`` only while below ``total_copies``
- ``set_total_copies``: shifts both counters only if the copies on loan
  still fit under the new total

Two concurrent borrowers of the last copy therefore cannot both succeed:
one UPDATE matches, the other matches zero rows.
"""

from collections.abc import Callable
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import DuplicateError, InvalidArgumentError, NotFoundError
from ..models.book import Book as BookModel
from ..models.book import BookCreateSchema, InventoryStatus
from .repository import BaseRepository, PaginatedResponse, PaginationParams, new_id
from .schema import ACTIVE_LOAN_STATUSES
from .schema import Book as BookDB
from .schema import Loan as LoanDB
from .session import safe_query


class BookRepository(BaseRepository[BookDB, BookModel]):
    """Repository for books and their copy counters."""

    def __init__(self, session: Session, clock: Callable[[], datetime] = datetime.now):
        super().__init__(session)
        self.clock = clock

    @property
    def model_class(self):
        return BookDB

    @property
    def response_schema(self):
        return BookModel

    def create(self, data: BookCreateSchema) -> BookModel:
        """
        Add a book to the catalog with every copy available.

        Raises:
            DuplicateError: If a book with the same ISBN exists
        """
        existing = safe_query(
            self.session,
            lambda s: s.execute(select(BookDB.id).where(BookDB.isbn == data.isbn)).first(),
            "Failed to check for duplicate ISBN",
        )
        if existing:
            raise DuplicateError(f"Book with ISBN {data.isbn} already exists")

        now = self.clock()
        db_book = BookDB(
            id=new_id("book"),
            isbn=data.isbn,
            title=data.title,
            total_copies=data.total_copies,
            available_copies=data.total_copies,
            created_at=now,
            updated_at=now,
        )
        self.session.add(db_book)
        try:
            self.session.flush()
        except IntegrityError as e:
            raise DuplicateError(f"Book with ISBN {data.isbn} already exists") from e

        return self._to_response_model(db_book)

    def get_by_isbn(self, isbn: str) -> BookModel | None:
        """Get book by ISBN (with or without hyphens)."""
        normalized_isbn = isbn.replace("-", "")
        result = safe_query(
            self.session,
            lambda s: s.execute(
                select(BookDB).where(BookDB.isbn == normalized_isbn)
            ).scalar_one_or_none(),
            "Failed to get book by ISBN",
        )
        if result is None:
            return None
        return self._to_response_model(result)

    def list_books(self, pagination: PaginationParams | None = None) -> PaginatedResponse[BookModel]:
        return self._paginate_query(select(BookDB).order_by(BookDB.title), pagination)

    # === Counter updates ===

    def take_copy(self, book_id: str) -> bool:
        """
        Decrement availability by one if a copy is free.

        Returns:
            True if a copy was taken, False if none was available
        """
        stmt = (
            update(BookDB)
            .where(BookDB.id == book_id, BookDB.available_copies > 0)
            .values(available_copies=BookDB.available_copies - 1, updated_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        result = safe_query(
            self.session, lambda s: s.execute(stmt), "Failed to decrement availability"
        )
        return result.rowcount == 1

    def release_copy(self, book_id: str) -> bool:
        """
        Increment availability by one, never beyond the total.

        Returns:
            True if the counter moved, False if it was already at the total
        """
        stmt = (
            update(BookDB)
            .where(BookDB.id == book_id, BookDB.available_copies < BookDB.total_copies)
            .values(available_copies=BookDB.available_copies + 1, updated_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        result = safe_query(
            self.session, lambda s: s.execute(stmt), "Failed to increment availability"
        )
        return result.rowcount == 1

    def set_total_copies(self, book_id: str, total_copies: int) -> BookModel:
        """
        Change how many copies the library owns.

        Availability moves by the same delta, so copies on loan stay on loan.

        Raises:
            InvalidArgumentError: If the new total is negative or smaller than
                the number of copies currently on loan
            NotFoundError: If the book does not exist
        """
        if total_copies < 0:
            raise InvalidArgumentError("Total copies cannot be negative")

        on_loan = BookDB.total_copies - BookDB.available_copies
        stmt = (
            update(BookDB)
            .where(BookDB.id == book_id, on_loan <= total_copies)
            .values(
                available_copies=BookDB.available_copies + (total_copies - BookDB.total_copies),
                total_copies=total_copies,
                updated_at=self.clock(),
            )
            .execution_options(synchronize_session=False)
        )
        result = safe_query(self.session, lambda s: s.execute(stmt), "Failed to update copies")

        if result.rowcount == 0:
            if not self.exists(book_id):
                raise NotFoundError("Book", book_id)
            raise InvalidArgumentError(
                f"Cannot set total copies of book {book_id} to {total_copies}: "
                "more copies than that are on loan"
            )

        return self._refreshed(book_id)

    # === Inventory reporting ===

    def get_inventory(self, book_id: str) -> InventoryStatus:
        """
        Report a book's counters next to its active-loan count.

        Raises:
            NotFoundError: If the book does not exist
        """
        book = self._get_row(book_id)
        if book is None:
            raise NotFoundError("Book", book_id)

        active = safe_query(
            self.session,
            lambda s: s.execute(
                select(func.count())
                .select_from(LoanDB)
                .where(LoanDB.book_id == book_id, LoanDB.status.in_(ACTIVE_LOAN_STATUSES))
            ).scalar(),
            "Failed to count active loans",
        )
        return InventoryStatus(
            book_id=book.id,
            total_copies=book.total_copies,
            available_copies=book.available_copies,
            active_loans=active or 0,
        )

    def list_inventory(self) -> list[InventoryStatus]:
        """Inventory status of every book, in one grouped query."""
        active_counts = (
            select(LoanDB.book_id, func.count().label("active"))
            .where(LoanDB.status.in_(ACTIVE_LOAN_STATUSES))
            .group_by(LoanDB.book_id)
            .subquery()
        )
        query = (
            select(
                BookDB.id,
                BookDB.total_copies,
                BookDB.available_copies,
                func.coalesce(active_counts.c.active, 0),
            )
            .outerjoin(active_counts, active_counts.c.book_id == BookDB.id)
            .order_by(BookDB.id)
        )
        rows = safe_query(
            self.session, lambda s: s.execute(query).all(), "Failed to list inventory"
        )
        return [
            InventoryStatus(
                book_id=book_id,
                total_copies=total,
                available_copies=available,
                active_loans=active,
            )
            for book_id, total, available, active in rows
        ]

    def _refreshed(self, book_id: str) -> BookModel:
        """Re-read a book after a bulk UPDATE."""
        book = self._get_row(book_id)
        if book is None:
            raise NotFoundError("Book", book_id)
        return self._to_response_model(book)
