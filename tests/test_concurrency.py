"""
Concurrency tests for the lending ledger.

Borrowers, returners and the overdue sweep run in real threads against a
file-backed database, so every operation goes through SQLite's locking and
the transaction retry loop.
"""

import threading
from collections import Counter
from datetime import timedelta

import pytest

from library_ledger.errors import AlreadyReturnedError, UnavailableError
from library_ledger.models import LoanStatus


def run_concurrently(*calls):
    """Start every call at the same moment; return each outcome or exception class."""
    barrier = threading.Barrier(len(calls))
    outcomes = [None] * len(calls)

    def runner(index, call):
        barrier.wait()
        try:
            outcomes[index] = call()
        except Exception as e:
            outcomes[index] = type(e)

    threads = [
        threading.Thread(target=runner, args=(i, call)) for i, call in enumerate(calls)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return outcomes


def outcome_kinds(outcomes):
    return Counter(o if isinstance(o, type) else "ok" for o in outcomes)


class TestConcurrentBorrow:
    """Concurrent borrowers never over-lend a book."""

    @pytest.mark.parametrize("attempt", range(3))
    def test_two_borrowers_one_copy(self, ledger, make_book, make_patron, book_inventory, attempt):
        book = make_book(total_copies=1)
        p1, p2 = make_patron(), make_patron()

        outcomes = run_concurrently(
            lambda: ledger.borrow(p1.id, book.id),
            lambda: ledger.borrow(p2.id, book.id),
        )

        assert outcome_kinds(outcomes) == Counter({"ok": 1, UnavailableError: 1})
        status = book_inventory(book.id)
        assert status.available_copies == 0
        assert status.active_loans == 1
        assert status.is_consistent

    def test_many_borrowers_few_copies(self, ledger, make_book, make_patron, book_inventory):
        book = make_book(total_copies=3)
        patrons = [make_patron() for _ in range(8)]

        outcomes = run_concurrently(
            *[lambda p=p: ledger.borrow(p.id, book.id) for p in patrons]
        )

        assert outcome_kinds(outcomes) == Counter({"ok": 3, UnavailableError: 5})
        status = book_inventory(book.id)
        assert status.available_copies == 0
        assert status.is_consistent


class TestConcurrentReturn:
    """Concurrent returns and sweeps never corrupt a loan or a counter."""

    def test_double_return_in_parallel(self, ledger, make_book, make_patron, book_inventory):
        book = make_book(total_copies=2)
        loan = ledger.borrow(make_patron().id, book.id)

        outcomes = run_concurrently(
            lambda: ledger.return_loan(loan.id),
            lambda: ledger.return_loan(loan.id),
        )

        assert outcome_kinds(outcomes) == Counter({"ok": 1, AlreadyReturnedError: 1})
        status = book_inventory(book.id)
        assert status.available_copies == 2
        assert status.is_consistent

    @pytest.mark.parametrize("attempt", range(3))
    def test_return_racing_sweep_ends_returned(
        self, ledger, scanner, clock, make_book, make_patron, book_inventory, attempt
    ):
        book = make_book(total_copies=1)
        loan = ledger.borrow(make_patron().id, book.id, due_date=clock() + timedelta(days=1))
        clock.advance(days=2)

        outcomes = run_concurrently(
            lambda: ledger.return_loan(loan.id),
            scanner.mark_overdue,
        )

        assert not any(isinstance(o, type) for o in outcomes)
        assert ledger.get_loan(loan.id).status == LoanStatus.RETURNED
        assert scanner.mark_overdue() == 0
        status = book_inventory(book.id)
        assert status.available_copies == 1
        assert status.is_consistent

    def test_mixed_traffic_keeps_invariant(
        self, ledger, scanner, clock, make_book, make_patron, book_inventory
    ):
        book = make_book(total_copies=2)
        open_loans = [
            ledger.borrow(make_patron().id, book.id, due_date=clock() + timedelta(days=1))
            for _ in range(2)
        ]
        clock.advance(days=2)
        newcomers = [make_patron() for _ in range(3)]

        run_concurrently(
            lambda: ledger.return_loan(open_loans[0].id),
            lambda: ledger.return_loan(open_loans[1].id),
            scanner.mark_overdue,
            *[lambda p=p: ledger.borrow(p.id, book.id) for p in newcomers],
        )

        status = book_inventory(book.id)
        assert status.is_consistent
        assert status.active_loans <= 2
        for loan in open_loans:
            assert ledger.get_loan(loan.id).status == LoanStatus.RETURNED
