"""
Overdue detection for the lending ledger.

``OverdueScanner`` owns the one transition rule BORROWED -> OVERDUE and
applies it two ways:

1. ``mark_overdue``: a full sweep, committed in batches so no transaction
   holds locks for long
2. ``refresh``: the same rule scoped to the loans a read is about to
   return, run inside the reader's transaction

Overdue is a status only: a late copy is still out, so inventory counters
are never touched here.

``OverdueSweeper`` runs ``mark_overdue`` on a timer in a background thread.
"""

import logging
import threading
from collections.abc import Callable
from datetime import date, datetime

from sqlalchemy.orm import Session

from ..config import LedgerConfig
from ..database.loan_repository import LoanRepository
from ..database.session import DatabaseManager
from ..observability import traced
from .timeutil import as_due_datetime

logger = logging.getLogger(__name__)


class OverdueScanner:
    """
    Keeps loan status in step with the passage of time.

    Args:
        db: Storage handle
        config: Ledger configuration (batch size); defaults to ``db.config``
        clock: Source of "now"; defaults to ``datetime.now``
    """

    def __init__(
        self,
        db: DatabaseManager,
        config: LedgerConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db = db
        self.config = config or db.config
        self.clock = clock

    @traced("mark_overdue")
    def mark_overdue(self, as_of: date | datetime | str | None = None) -> int:
        """
        Promote every BORROWED loan due before ``as_of`` to OVERDUE.

        Idempotent and monotonic: already OVERDUE or RETURNED loans are
        skipped by the update predicate itself.

        Args:
            as_of: Reference time; defaults to now. A bare date or ISO date
                string means the end of that day.

        Returns:
            Number of loans transitioned by this call
        """
        as_of = as_due_datetime(as_of) if as_of is not None else self.clock()
        batch_size = self.config.overdue_sweep_batch_size
        transitioned = 0

        while True:
            batch_count, candidates = self.db.run_transaction(
                lambda session: self._promote_batch(session, as_of, batch_size),
                operation="mark overdue",
            )
            transitioned += batch_count
            if candidates < batch_size:
                return transitioned

    def refresh(
        self,
        session: Session,
        as_of: datetime | None = None,
        *,
        loan_id: str | None = None,
        patron_id: str | None = None,
    ) -> int:
        """
        Apply the overdue rule inside an existing transaction.

        Used by read paths before they return loans. Without a scope it
        covers every loan.
        """
        as_of = as_of or self.clock()
        loans = LoanRepository(session, clock=self.clock)
        return loans.promote_overdue(
            as_of,
            loan_ids=[loan_id] if loan_id is not None else None,
            patron_id=patron_id,
        )

    def _promote_batch(self, session: Session, as_of: datetime, batch_size: int) -> tuple[int, int]:
        loans = LoanRepository(session, clock=self.clock)
        candidates = loans.overdue_candidates(as_of, batch_size)
        if not candidates:
            return 0, 0
        return loans.promote_overdue(as_of, loan_ids=candidates), len(candidates)


class OverdueSweeper:
    """
    Runs ``OverdueScanner.mark_overdue`` every ``interval_seconds``.

    ```python
    sweeper = OverdueSweeper(scanner, interval_seconds=3600)
    sweeper.start()
    ...
    sweeper.stop()
    ```
    """

    def __init__(self, scanner: OverdueScanner, interval_seconds: float | None = None):
        self.scanner = scanner
        self.interval_seconds = (
            interval_seconds
            if interval_seconds is not None
            else scanner.config.overdue_sweep_interval_seconds
        )
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self.sweeps_completed = 0
        self.last_transitioned = 0
        self.total_transitioned = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> int:
        """Run a single sweep now and log its outcome."""
        count = self.scanner.mark_overdue()
        self.sweeps_completed += 1
        self.last_transitioned = count
        self.total_transitioned += count
        if count:
            logger.info("Overdue sweep marked %d loan(s) overdue", count)
        else:
            logger.debug("Overdue sweep found nothing to mark")
        return count

    def start(self) -> None:
        """Start the background sweep thread. The first sweep runs immediately."""
        if self.is_running:
            raise RuntimeError("Overdue sweeper is already running")

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="overdue-sweeper", daemon=True
        )
        self._thread.start()
        logger.info("Overdue sweeper started (interval %.1fs)", self.interval_seconds)

    def stop(self, timeout: float | None = 10.0) -> None:
        """Signal the thread to stop and wait for it."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Overdue sweeper stopped after %d sweep(s)", self.sweeps_completed)

    def wait(self) -> None:
        """Block until ``stop()`` is called from another thread."""
        self._stop_event.wait()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                # retried on the next tick
                logger.exception("Overdue sweep failed")
            self._stop_event.wait(self.interval_seconds)
