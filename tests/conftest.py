"""Test configuration and fixtures for the lending ledger.

Fixtures provide:
1. Isolated test databases - each test gets its own SQLite file
2. Configuration overrides - fast retries, small batches
3. A frozen clock - so due dates and overdue sweeps are deterministic
4. Catalog factories - books and patrons to lend between
"""

import itertools
import os
import threading
from collections.abc import Callable, Generator
from datetime import datetime, timedelta
from pathlib import Path

import logfire
import pytest

from library_ledger.config import LedgerConfig, reset_config
from library_ledger.database import BookRepository, DatabaseManager, PatronRepository
from library_ledger.lending import LoanLifecycleManager, OverdueScanner
from library_ledger.models import Book, BookCreateSchema, Patron, PatronCreateSchema

START_TIME = datetime(2024, 3, 1, 10, 0, 0)


class FrozenClock:
    """A clock that only moves when told to."""

    def __init__(self, now: datetime):
        self._now = now
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, **kwargs) -> datetime:
        with self._lock:
            self._now += timedelta(**kwargs)
            return self._now

    def set(self, now: datetime) -> None:
        with self._lock:
            self._now = now


# === Session-wide setup ===


@pytest.fixture(scope="session", autouse=True)
def quiet_tracing() -> None:
    """Keep logfire spans local and silent during tests."""
    logfire.configure(send_to_logfire=False, console=False)


# === Test Database Fixtures ===


@pytest.fixture
def test_db_path(tmp_path: Path) -> Generator[Path, None, None]:
    """Provide a temporary database path for each test."""
    db_path = tmp_path / "test_ledger.db"
    yield db_path

    if db_path.exists():
        db_path.unlink()


@pytest.fixture
def test_database_url(test_db_path: Path) -> str:
    return f"sqlite:///{test_db_path}"


# === Configuration Fixtures ===


@pytest.fixture
def test_config(test_db_path: Path) -> Generator[LedgerConfig, None, None]:
    """Ledger configuration tuned for tests: quick, generous retries."""
    reset_config()

    config = LedgerConfig(
        service_name="test-library-ledger",
        database_path=test_db_path,
        default_loan_period_days=14,
        max_transaction_retries=10,
        retry_backoff_seconds=0.01,
        overdue_sweep_batch_size=100,
        overdue_sweep_interval_seconds=0.05,
    )

    yield config

    reset_config()


@pytest.fixture
def db_manager(test_config: LedgerConfig) -> Generator[DatabaseManager, None, None]:
    """A file-backed database with the ledger tables created."""
    manager = DatabaseManager(config=test_config)
    manager.init_database()
    yield manager
    manager.close()


# === Lending Fixtures ===


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(START_TIME)


@pytest.fixture
def scanner(db_manager: DatabaseManager, clock: FrozenClock) -> OverdueScanner:
    return OverdueScanner(db_manager, clock=clock)


@pytest.fixture
def ledger(
    db_manager: DatabaseManager, scanner: OverdueScanner, clock: FrozenClock
) -> LoanLifecycleManager:
    return LoanLifecycleManager(db_manager, scanner=scanner, clock=clock)


# === Catalog Factories ===


@pytest.fixture
def make_book(db_manager: DatabaseManager, clock: FrozenClock) -> Callable[..., Book]:
    """Factory adding a book with ``total_copies`` copies, all available."""
    isbns = itertools.count(1)

    def _make_book(total_copies: int = 1, title: str = "Test Book") -> Book:
        with db_manager.session_scope() as session:
            return BookRepository(session, clock=clock).create(
                BookCreateSchema(
                    isbn=f"978{next(isbns):010d}",
                    title=title,
                    total_copies=total_copies,
                )
            )

    return _make_book


@pytest.fixture
def make_patron(db_manager: DatabaseManager, clock: FrozenClock) -> Callable[..., Patron]:
    """Factory registering a patron with a unique email."""
    numbers = itertools.count(1)

    def _make_patron(name: str | None = None) -> Patron:
        n = next(numbers)
        with db_manager.session_scope() as session:
            return PatronRepository(session, clock=clock).create(
                PatronCreateSchema(name=name or f"Patron {n}", email=f"patron{n}@library.org")
            )

    return _make_patron


@pytest.fixture
def book_inventory(db_manager: DatabaseManager):
    """Read a book's counters and active-loan count in a fresh session."""

    def _inventory(book_id: str):
        with db_manager.session_scope() as session:
            return BookRepository(session).get_inventory(book_id)

    return _inventory


# === Environment Fixtures ===


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Provide a clean environment without LIBRARY_LEDGER_* variables."""
    original_env = os.environ.copy()

    for key in list(os.environ.keys()):
        if key.startswith("LIBRARY_LEDGER_"):
            del os.environ[key]

    reset_config()
    yield

    os.environ.clear()
    os.environ.update(original_env)
    reset_config()
