"""
Book model for the lending ledger.

Only the fields the ledger cares about: identity, ISBN, title and the two
copy counters. ``InventoryStatus`` pairs the counters with the number of
active loans so callers can verify the ledger invariant.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Book(BaseModel):
    """A catalog entry and its copy counters."""

    id: str = Field(
        ...,
        description="Unique identifier for the book",
        pattern=r"^book_[a-f0-9]{12,}$",
        examples=["book_5b7e9a01c3d4"],
    )

    isbn: str = Field(
        ...,
        description="ISBN-13, stored without hyphens",
        pattern=r"^\d{13}$",
        examples=["9780134685479"],
    )

    title: str = Field(..., min_length=1, max_length=500)

    total_copies: int = Field(
        ...,
        description="Copies owned by the library",
        ge=0,
    )

    available_copies: int = Field(
        ...,
        description="Copies not attached to an active loan",
        ge=0,
    )

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @model_validator(mode="after")
    def validate_copies(self) -> "Book":
        """Ensure available copies doesn't exceed total copies."""
        if self.available_copies > self.total_copies:
            raise ValueError("Available copies cannot exceed total copies")
        return self

    @property
    def is_available(self) -> bool:
        return self.available_copies > 0

    @property
    def copies_on_loan(self) -> int:
        return self.total_copies - self.available_copies

    model_config = ConfigDict(from_attributes=True)


class BookCreateSchema(BaseModel):
    """Schema for adding a book to the catalog.

    New books start with every copy available.
    """

    isbn: str = Field(..., examples=["978-0-134-68547-9", "9780134685479"])
    title: str = Field(..., min_length=1, max_length=500)
    total_copies: int = Field(default=1, ge=0)

    @field_validator("isbn")
    @classmethod
    def normalize_isbn(cls, v: str) -> str:
        """Normalize ISBN by removing hyphens for consistent storage."""
        normalized = v.replace("-", "").strip()
        if len(normalized) != 13 or not normalized.isdigit():
            raise ValueError("ISBN must be 13 digits")
        return normalized


class InventoryStatus(BaseModel):
    """A book's counters next to its active-loan count."""

    book_id: str
    total_copies: int
    available_copies: int
    active_loans: int

    @property
    def is_consistent(self) -> bool:
        """The ledger invariant: available + active loans == total, within bounds."""
        return (
            0 <= self.available_copies <= self.total_copies
            and self.available_copies + self.active_loans == self.total_copies
        )
