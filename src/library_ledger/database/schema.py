"""
SQLAlchemy database schema for the lending ledger.

Three tables back the ledger:
1. ``books`` - catalog entries carrying the inventory counters
2. ``patrons`` - borrowers; only their existence matters here
3. ``loans`` - one row per copy lent out, with its lifecycle status

The counter invariant ``0 <= available_copies <= total_copies`` is also
enforced by check constraints, so a buggy write fails loudly instead of
corrupting inventory.
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

from ..models.loan import LoanStatus

Base = declarative_base()

ACTIVE_LOAN_STATUSES = (LoanStatus.BORROWED, LoanStatus.OVERDUE)


class Book(Base):
    """
    Books table - catalog entries and their copy counters.

    ``available_copies`` is only changed through guarded UPDATE statements
    (borrow, return, total-copies adjustment), never by read-modify-write
    in Python.
    """

    __tablename__ = "books"

    id = Column(String(50), primary_key=True)
    isbn = Column(String(13), nullable=False, unique=True)
    title = Column(String(500), nullable=False, index=True)
    total_copies = Column(Integer, nullable=False, default=1)
    available_copies = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=True, default=func.now(), onupdate=func.now())

    loans = relationship("Loan", back_populates="book")

    __table_args__ = (
        Index("idx_book_availability", "available_copies"),
        CheckConstraint("available_copies >= 0", name="check_available_copies_non_negative"),
        CheckConstraint(
            "available_copies <= total_copies", name="check_available_not_exceed_total"
        ),
        CheckConstraint("total_copies >= 0", name="check_total_copies_non_negative"),
        CheckConstraint("id LIKE 'book_%'", name="check_book_id_format"),
    )


class Patron(Base):
    """Patrons table - library members who borrow books."""

    __tablename__ = "patrons"

    id = Column(String(50), primary_key=True)
    name = Column(String(200), nullable=False, index=True)
    email = Column(String(255), nullable=False, unique=True)

    created_at = Column(DateTime, nullable=False, default=func.now())

    loans = relationship("Loan", back_populates="patron")

    __table_args__ = (CheckConstraint("id LIKE 'patron_%'", name="check_patron_id_format"),)


class Loan(Base):
    """
    Loans table - one copy of a book held by a patron.

    Rows are never deleted; RETURNED is terminal.
    """

    __tablename__ = "loans"

    id = Column(String(50), primary_key=True)
    patron_id = Column(String(50), ForeignKey("patrons.id"), nullable=False)
    book_id = Column(String(50), ForeignKey("books.id"), nullable=False)
    borrowed_at = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=False)
    returned_at = Column(DateTime, nullable=True)
    status = Column(Enum(LoanStatus), nullable=False, default=LoanStatus.BORROWED)
    note = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    patron = relationship("Patron", back_populates="loans")
    book = relationship("Book", back_populates="loans")

    __table_args__ = (
        Index("idx_loan_patron", "patron_id"),
        Index("idx_loan_book_status", "book_id", "status"),
        Index("idx_loan_status_due", "status", "due_date"),
        CheckConstraint("id LIKE 'loan_%'", name="check_loan_id_format"),
        CheckConstraint("due_date > borrowed_at", name="check_due_after_borrow"),
        CheckConstraint(
            "(status = 'RETURNED') = (returned_at IS NOT NULL)",
            name="check_returned_at_matches_status",
        ),
    )
