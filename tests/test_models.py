"""
Tests for the ledger models.

These tests verify that the models correctly:
1. Encode the loan state machine
2. Enforce loan date and return invariants
3. Validate book counters and ISBNs
4. Report inventory consistency
"""

from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from library_ledger.models import (
    Book,
    BookCreateSchema,
    InventoryStatus,
    LendingStats,
    Loan,
    LoanStatus,
    PatronCreateSchema,
)

BORROWED_AT = datetime(2024, 3, 1, 10, 0)


def make_loan(**overrides) -> Loan:
    data = {
        "id": "loan_3f9c1a7be042",
        "patron_id": "patron_8d21c0ffee11",
        "book_id": "book_5b7e9a01c3d4",
        "borrowed_at": BORROWED_AT,
        "due_date": BORROWED_AT + timedelta(days=14),
    }
    data.update(overrides)
    return Loan(**data)


class TestLoanStatus:
    """Test suite for the loan state machine."""

    @pytest.mark.parametrize(
        ("source", "target"),
        [
            (LoanStatus.BORROWED, LoanStatus.OVERDUE),
            (LoanStatus.BORROWED, LoanStatus.RETURNED),
            (LoanStatus.OVERDUE, LoanStatus.RETURNED),
        ],
    )
    def test_forward_transitions_allowed(self, source, target):
        assert source.can_transition_to(target)

    @pytest.mark.parametrize(
        ("source", "target"),
        [
            (LoanStatus.OVERDUE, LoanStatus.BORROWED),
            (LoanStatus.RETURNED, LoanStatus.BORROWED),
            (LoanStatus.RETURNED, LoanStatus.OVERDUE),
        ],
    )
    def test_backward_transitions_refused(self, source, target):
        assert not source.can_transition_to(target)

    def test_same_state_is_not_a_transition(self):
        for status in LoanStatus:
            assert not status.can_transition_to(status)

    def test_active_and_terminal(self):
        assert LoanStatus.BORROWED.is_active
        assert LoanStatus.OVERDUE.is_active
        assert not LoanStatus.RETURNED.is_active
        assert LoanStatus.RETURNED.is_terminal
        assert not LoanStatus.OVERDUE.is_terminal

    def test_values_match_stored_names(self):
        assert LoanStatus("OVERDUE") is LoanStatus.OVERDUE
        assert LoanStatus.RETURNED.value == "RETURNED"


class TestLoan:
    """Test suite for the Loan model."""

    def test_create_valid_loan(self):
        loan = make_loan()

        assert loan.status == LoanStatus.BORROWED
        assert loan.returned_at is None
        assert loan.is_active
        assert loan.loan_period_days == 14

    def test_loan_id_validation(self):
        with pytest.raises(ValidationError):
            make_loan(id="3f9c1a7be042")
        with pytest.raises(ValidationError):
            make_loan(id="loan_123")
        with pytest.raises(ValidationError):
            make_loan(id="LOAN_3f9c1a7be042")

    def test_due_date_must_follow_borrow(self):
        with pytest.raises(ValidationError, match="Due date must be after borrow date"):
            make_loan(due_date=BORROWED_AT)

    def test_returned_at_tracks_status(self):
        with pytest.raises(ValidationError, match="returned_at"):
            make_loan(status=LoanStatus.RETURNED)

        with pytest.raises(ValidationError, match="returned_at"):
            make_loan(returned_at=BORROWED_AT + timedelta(days=1))

        loan = make_loan(status=LoanStatus.RETURNED, returned_at=BORROWED_AT + timedelta(days=3))
        assert not loan.is_active

    def test_return_cannot_precede_borrow(self):
        with pytest.raises(ValidationError, match="Return date cannot be before borrow date"):
            make_loan(status=LoanStatus.RETURNED, returned_at=BORROWED_AT - timedelta(hours=1))

    def test_note_length_limit(self):
        make_loan(note="x" * 1000)
        with pytest.raises(ValidationError):
            make_loan(note="x" * 1001)

    def test_past_due_calculation(self):
        loan = make_loan()
        due = loan.due_date

        assert not loan.is_past_due(due)
        assert loan.is_past_due(due + timedelta(seconds=1))
        assert loan.days_overdue(due + timedelta(days=3, hours=2)) == 3
        assert loan.days_overdue(due - timedelta(days=1)) == 0

    def test_returned_loan_is_never_past_due(self):
        loan = make_loan(status=LoanStatus.RETURNED, returned_at=BORROWED_AT + timedelta(days=30))

        assert not loan.is_past_due(BORROWED_AT + timedelta(days=60))
        assert loan.days_overdue(BORROWED_AT + timedelta(days=60)) == 0


class TestBook:
    """Test suite for Book and its schemas."""

    def test_available_cannot_exceed_total(self):
        with pytest.raises(ValidationError, match="Available copies cannot exceed total copies"):
            Book(
                id="book_5b7e9a01c3d4",
                isbn="9780134685479",
                title="Effective Java",
                total_copies=1,
                available_copies=2,
            )

    def test_copies_on_loan(self):
        book = Book(
            id="book_5b7e9a01c3d4",
            isbn="9780134685479",
            title="Effective Java",
            total_copies=3,
            available_copies=1,
        )

        assert book.is_available
        assert book.copies_on_loan == 2

    def test_isbn_normalized_on_create(self):
        data = BookCreateSchema(isbn="978-0-134-68547-9", title="Effective Java")

        assert data.isbn == "9780134685479"
        assert data.total_copies == 1

    @pytest.mark.parametrize("isbn", ["12345", "978013468547X", "97801346854791"])
    def test_invalid_isbn_rejected(self, isbn):
        with pytest.raises(ValidationError):
            BookCreateSchema(isbn=isbn, title="Bad ISBN")

    def test_negative_copies_rejected(self):
        with pytest.raises(ValidationError):
            BookCreateSchema(isbn="9780134685479", title="Effective Java", total_copies=-1)


class TestInventoryStatus:
    def test_consistent_counters(self):
        status = InventoryStatus(book_id="book_1", total_copies=3, available_copies=1, active_loans=2)
        assert status.is_consistent

    def test_inconsistent_counters(self):
        assert not InventoryStatus(
            book_id="book_1", total_copies=3, available_copies=2, active_loans=2
        ).is_consistent
        assert not InventoryStatus(
            book_id="book_1", total_copies=1, available_copies=-1, active_loans=2
        ).is_consistent


def test_patron_email_validated():
    with pytest.raises(ValidationError):
        PatronCreateSchema(name="Jane Doe", email="not-an-email")


def test_lending_stats_active():
    stats = LendingStats(total=6, borrowed=2, overdue=1, returned=3)
    assert stats.active == 3
