"""
Loan model and status state machine.

A loan moves forward only:

    BORROWED ──> OVERDUE ──> RETURNED
        └───────────────────────^

RETURNED is terminal. Re-entering the current state is a no-op, which is
what lets the overdue sweep run any number of times.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class LoanStatus(str, Enum):
    """Lifecycle state of a loan."""

    BORROWED = "BORROWED"
    OVERDUE = "OVERDUE"
    RETURNED = "RETURNED"

    @property
    def is_active(self) -> bool:
        """Active loans hold a copy, so they count against availability."""
        return self is not LoanStatus.RETURNED

    @property
    def is_terminal(self) -> bool:
        return self is LoanStatus.RETURNED

    def can_transition_to(self, target: "LoanStatus") -> bool:
        """
        Check whether moving to ``target`` is a forward step.

        Same-state returns False: it is a no-op, not a transition.
        """
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[LoanStatus, frozenset[LoanStatus]] = {
    LoanStatus.BORROWED: frozenset({LoanStatus.OVERDUE, LoanStatus.RETURNED}),
    LoanStatus.OVERDUE: frozenset({LoanStatus.RETURNED}),
    LoanStatus.RETURNED: frozenset(),
}


class Loan(BaseModel):
    """
    One copy of a book held by a patron for a bounded period.

    Instances are snapshots read from the store; state changes go through
    ``LoanLifecycleManager`` and ``OverdueScanner``.
    """

    id: str = Field(
        ...,
        description="Unique identifier for the loan",
        pattern=r"^loan_[a-f0-9]{12,}$",
        examples=["loan_3f9c1a7be042"],
    )

    patron_id: str = Field(..., description="ID of the borrowing patron")

    book_id: str = Field(..., description="ID of the borrowed book")

    borrowed_at: datetime = Field(..., description="When the copy was lent out")

    due_date: datetime = Field(..., description="When the copy is due back")

    returned_at: datetime | None = Field(
        None,
        description="When the copy came back; set exactly once",
    )

    status: LoanStatus = Field(
        default=LoanStatus.BORROWED,
        description="Current lifecycle state",
    )

    note: str | None = Field(
        None,
        description="Free-text note attached at borrow time or later",
        max_length=1000,
    )

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @model_validator(mode="after")
    def validate_dates(self) -> "Loan":
        """Validate date relationships."""
        if self.due_date <= self.borrowed_at:
            raise ValueError("Due date must be after borrow date")

        if (self.status is LoanStatus.RETURNED) != (self.returned_at is not None):
            raise ValueError("returned_at is set exactly when status is RETURNED")

        if self.returned_at and self.returned_at < self.borrowed_at:
            raise ValueError("Return date cannot be before borrow date")

        return self

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    def is_past_due(self, as_of: datetime) -> bool:
        """True if the loan is still out and ``as_of`` is beyond its due date."""
        return self.is_active and self.due_date < as_of

    def days_overdue(self, as_of: datetime) -> int:
        if not self.is_past_due(as_of):
            return 0
        return (as_of - self.due_date).days

    @property
    def loan_period_days(self) -> int:
        return (self.due_date - self.borrowed_at).days

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": "loan_3f9c1a7be042",
                "patron_id": "patron_8d21c0ffee11",
                "book_id": "book_5b7e9a01c3d4",
                "borrowed_at": "2024-03-01T10:30:00",
                "due_date": "2024-03-15T10:30:00",
                "returned_at": None,
                "status": "BORROWED",
            }
        },
    )


class LendingStats(BaseModel):
    """Loan counts by status."""

    total: int = 0
    borrowed: int = 0
    overdue: int = 0
    returned: int = 0

    @property
    def active(self) -> int:
        return self.borrowed + self.overdue
