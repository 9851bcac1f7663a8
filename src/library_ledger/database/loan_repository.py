"""
Loan repository: the loan record store.

Status changes are guarded UPDATEs whose WHERE clause carries the allowed
source states, so a transition that lost a race matches zero rows instead
of overwriting a newer state:

- close:   BORROWED | OVERDUE -> RETURNED
- promote: BORROWED -> OVERDUE, only while ``due_date < as_of``

Because promotion requires ``status == BORROWED``, a sweep can never drag
a RETURNED loan back to OVERDUE no matter how it interleaves with a return.
"""

from collections.abc import Callable, Sequence
from datetime import datetime

from sqlalchemy import and_, func, select, update
from sqlalchemy.orm import Session

from ..models.loan import LendingStats, LoanStatus
from ..models.loan import Loan as LoanModel
from .repository import BaseRepository, PaginatedResponse, PaginationParams, new_id
from .schema import ACTIVE_LOAN_STATUSES
from .schema import Loan as LoanDB
from .session import safe_query


def overdue_condition(as_of: datetime):
    """The single overdue rule: still BORROWED and due strictly before ``as_of``."""
    return and_(LoanDB.status == LoanStatus.BORROWED, LoanDB.due_date < as_of)


class LoanRepository(BaseRepository[LoanDB, LoanModel]):
    """Repository for loan records."""

    def __init__(self, session: Session, clock: Callable[[], datetime] = datetime.now):
        super().__init__(session)
        self.clock = clock

    @property
    def model_class(self):
        return LoanDB

    @property
    def response_schema(self):
        return LoanModel

    def insert(
        self,
        patron_id: str,
        book_id: str,
        borrowed_at: datetime,
        due_date: datetime,
        note: str | None = None,
    ) -> LoanModel:
        """Insert a new BORROWED loan and flush it."""
        db_loan = LoanDB(
            id=new_id("loan"),
            patron_id=patron_id,
            book_id=book_id,
            borrowed_at=borrowed_at,
            due_date=due_date,
            status=LoanStatus.BORROWED,
            note=note,
            created_at=borrowed_at,
            updated_at=borrowed_at,
        )
        self.session.add(db_loan)
        safe_query(self.session, lambda s: s.flush(), "Failed to insert loan")
        return self._to_response_model(db_loan)

    def close(self, loan_id: str, returned_at: datetime) -> bool:
        """
        Move an active loan to RETURNED.

        Returns:
            True if the loan was active and is now RETURNED, False otherwise
        """
        stmt = (
            update(LoanDB)
            .where(LoanDB.id == loan_id, LoanDB.status.in_(ACTIVE_LOAN_STATUSES))
            .values(status=LoanStatus.RETURNED, returned_at=returned_at, updated_at=returned_at)
            .execution_options(synchronize_session=False)
        )
        result = safe_query(self.session, lambda s: s.execute(stmt), "Failed to close loan")
        return result.rowcount == 1

    def promote_overdue(
        self,
        as_of: datetime,
        *,
        loan_ids: Sequence[str] | None = None,
        patron_id: str | None = None,
    ) -> int:
        """
        Apply the overdue rule, optionally scoped to some loans or one patron.

        Returns:
            Number of loans moved from BORROWED to OVERDUE
        """
        stmt = update(LoanDB).where(overdue_condition(as_of))
        if loan_ids is not None:
            stmt = stmt.where(LoanDB.id.in_(list(loan_ids)))
        if patron_id is not None:
            stmt = stmt.where(LoanDB.patron_id == patron_id)
        stmt = stmt.values(status=LoanStatus.OVERDUE, updated_at=self.clock()).execution_options(
            synchronize_session=False
        )
        result = safe_query(self.session, lambda s: s.execute(stmt), "Failed to mark overdue")
        return result.rowcount

    def overdue_candidates(self, as_of: datetime, limit: int) -> list[str]:
        """IDs of loans the overdue rule would promote, oldest due date first."""
        query = (
            select(LoanDB.id)
            .where(overdue_condition(as_of))
            .order_by(LoanDB.due_date, LoanDB.id)
            .limit(limit)
        )
        return list(
            safe_query(
                self.session,
                lambda s: s.execute(query).scalars().all(),
                "Failed to find overdue candidates",
            )
        )

    def set_note(self, loan_id: str, note: str | None) -> bool:
        stmt = (
            update(LoanDB)
            .where(LoanDB.id == loan_id)
            .values(note=note, updated_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        result = safe_query(self.session, lambda s: s.execute(stmt), "Failed to update note")
        return result.rowcount == 1

    # === Queries ===

    def list_for_patron(self, patron_id: str, status: LoanStatus | None = None) -> list[LoanModel]:
        """A patron's loans, most recently borrowed first."""
        query = select(LoanDB).where(LoanDB.patron_id == patron_id)
        if status is not None:
            query = query.where(LoanDB.status == status)
        query = query.order_by(LoanDB.borrowed_at.desc(), LoanDB.id).execution_options(
            populate_existing=True
        )
        return self._fetch_all(query, "Failed to list patron loans")

    def list_overdue(self) -> list[LoanModel]:
        """All OVERDUE loans, earliest due date first."""
        query = (
            select(LoanDB)
            .where(LoanDB.status == LoanStatus.OVERDUE)
            .order_by(LoanDB.due_date, LoanDB.id)
            .execution_options(populate_existing=True)
        )
        return self._fetch_all(query, "Failed to list overdue loans")

    def list_loans(
        self, status: LoanStatus | None = None, pagination: PaginationParams | None = None
    ) -> PaginatedResponse[LoanModel]:
        """All loans, most recently borrowed first, optionally filtered by status."""
        query = select(LoanDB)
        if status is not None:
            query = query.where(LoanDB.status == status)
        query = query.order_by(LoanDB.borrowed_at.desc(), LoanDB.id).execution_options(
            populate_existing=True
        )
        return self._paginate_query(query, pagination)

    def get_stats(self, patron_id: str | None = None) -> LendingStats:
        """Count loans per status, for everyone or for one patron."""
        query = select(LoanDB.status, func.count()).group_by(LoanDB.status)
        if patron_id is not None:
            query = query.where(LoanDB.patron_id == patron_id)
        rows = safe_query(self.session, lambda s: s.execute(query).all(), "Failed to count loans")

        counts = {LoanStatus(status): count for status, count in rows}
        return LendingStats(
            total=sum(counts.values()),
            borrowed=counts.get(LoanStatus.BORROWED, 0),
            overdue=counts.get(LoanStatus.OVERDUE, 0),
            returned=counts.get(LoanStatus.RETURNED, 0),
        )

    def _fetch_all(self, query, error_msg: str) -> list[LoanModel]:
        results = safe_query(self.session, lambda s: s.execute(query).scalars().all(), error_msg)
        return [self._to_response_model(loan) for loan in results]
