"""Patron model for the lending ledger."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class Patron(BaseModel):
    """A library member who can borrow books."""

    id: str = Field(
        ...,
        description="Unique identifier for the patron",
        pattern=r"^patron_[a-f0-9]{12,}$",
        examples=["patron_8d21c0ffee11"],
    )

    name: str = Field(..., min_length=1, max_length=200)

    email: EmailStr = Field(..., examples=["jane.doe@library.org"])

    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class PatronCreateSchema(BaseModel):
    """Schema for registering a patron."""

    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
