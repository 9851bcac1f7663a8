"""
Patron repository for the lending ledger.

The ledger only needs to know that a patron exists; registration lives here
so tests and tooling can create borrowers.
"""

from collections.abc import Callable
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import DuplicateError
from ..models.patron import Patron as PatronModel
from ..models.patron import PatronCreateSchema
from .repository import BaseRepository, new_id
from .schema import Patron as PatronDB
from .session import safe_query


class PatronRepository(BaseRepository[PatronDB, PatronModel]):
    """Repository for patron data access."""

    def __init__(self, session: Session, clock: Callable[[], datetime] = datetime.now):
        super().__init__(session)
        self.clock = clock

    @property
    def model_class(self):
        return PatronDB

    @property
    def response_schema(self):
        return PatronModel

    def create(self, data: PatronCreateSchema) -> PatronModel:
        """
        Register a new patron.

        Raises:
            DuplicateError: If email already exists
        """
        existing = safe_query(
            self.session,
            lambda s: s.execute(select(PatronDB.id).where(PatronDB.email == data.email)).first(),
            "Failed to check for duplicate email",
        )
        if existing:
            raise DuplicateError(f"Patron with email {data.email} already exists")

        db_patron = PatronDB(
            id=new_id("patron"),
            name=data.name,
            email=data.email,
            created_at=self.clock(),
        )
        self.session.add(db_patron)
        try:
            self.session.flush()
        except IntegrityError as e:
            raise DuplicateError(f"Patron with email {data.email} already exists") from e

        return self._to_response_model(db_patron)
