"""
Database session management for the lending ledger.

This module owns the storage handle the ledger components are built on:

1. Connection handling: one engine per ``DatabaseManager``, opened lazily
   and disposed by ``close()``
2. Transaction management: ``session_scope`` commits or rolls back as a unit
3. Retries: ``run_transaction`` re-runs a unit of work that hit a transient
   conflict (lock contention, deadlock, timeout) and gives up with
   ``StorageError`` once the retry budget is spent

The manager is created at process start and passed to the components that
need it; there is no module-level connection.
"""

import logging
import time
from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import TypeVar

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import LedgerConfig, get_config
from ..errors import LedgerException, StorageError
from .schema import Base

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DatabaseManager:
    """
    Manages database connections, sessions and transactions.

    Args:
        database_url: SQLAlchemy URL. If None, taken from the configuration.
        config: Ledger configuration (retry budget, debug echo).
    """

    def __init__(self, database_url: str | None = None, config: LedgerConfig | None = None):
        self.config = config or get_config()

        if database_url is None:
            database_url = self.config.get_database_url()
            logger.info("Using database at: %s", database_url)

        self.database_url = database_url
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    @property
    def engine(self) -> Engine:
        """
        Get or create the database engine.

        In-memory SQLite shares one connection (StaticPool) so every session
        sees the same database. File-backed SQLite gets a pool of real
        connections so concurrent writers serialize on SQLite's own lock.
        """
        if self._engine is None:
            if self.database_url.startswith("sqlite"):
                in_memory = self.database_url in ("sqlite://", "sqlite:///:memory:")
                if in_memory:
                    self._engine = create_engine(
                        self.database_url,
                        poolclass=StaticPool,
                        connect_args={"check_same_thread": False},
                        echo=self.config.debug,
                    )
                else:
                    self._engine = create_engine(
                        self.database_url,
                        connect_args={"check_same_thread": False, "timeout": 30},
                        echo=self.config.debug,
                    )

                @event.listens_for(self._engine, "connect")
                def set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
                    cursor = dbapi_connection.cursor()
                    cursor.execute("PRAGMA foreign_keys=ON")
                    cursor.close()
            else:
                self._engine = create_engine(
                    self.database_url,
                    pool_size=10,
                    max_overflow=20,
                    pool_pre_ping=True,
                    echo=self.config.debug,
                )

            logger.info("Database engine created: %s", self._engine.url)

        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autocommit=False,
                autoflush=False,
                # Returned rows stay readable after the transaction ends
                expire_on_commit=False,
            )
        return self._session_factory

    def create_session(self) -> Session:
        """
        Create a new database session.

        Note:
            Prefer ``session_scope()`` or ``run_transaction()``, which close
            the session for you.
        """
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope for database operations.

        ```python
        with db_manager.session_scope() as session:
            BookRepository(session).create(data)
        # committed here, or rolled back if the block raised
        ```
        """
        session = self.create_session()
        try:
            yield session
            session.commit()
            logger.debug("Database transaction committed successfully")
        except (LedgerException, OperationalError):
            session.rollback()
            raise
        except Exception:
            logger.exception("Database error, rolling back")
            session.rollback()
            raise
        finally:
            session.close()

    def run_transaction(
        self,
        work: Callable[[Session], T],
        operation: str = "transaction",
        max_retries: int | None = None,
    ) -> T:
        """
        Run ``work`` as one atomic unit, retrying transient storage conflicts.

        Each attempt gets a fresh session; a failed attempt is rolled back in
        full before the next one starts. Ledger errors (not found, unavailable,
        ...) are raised straight away, never retried.

        Args:
            work: Callable receiving the session; its return value is returned
            operation: Name used in log lines and error messages
            max_retries: Override of ``config.max_transaction_retries``

        Returns:
            Whatever ``work`` returned, after a successful commit

        Raises:
            StorageError: If the store keeps failing or fails non-transiently
        """
        retries = self.config.max_transaction_retries if max_retries is None else max_retries
        backoff = self.config.retry_backoff_seconds
        attempt = 0

        while True:
            try:
                with self.session_scope() as session:
                    return work(session)
            except StorageError as e:
                if not e.retryable or attempt >= retries:
                    raise
                cause = e
            except OperationalError as e:
                if attempt >= retries:
                    raise StorageError(
                        f"Database operation '{operation}' failed after {attempt + 1} attempts: {e!s}",
                        retryable=True,
                    ) from e
                cause = e
            except SQLAlchemyError as e:
                raise StorageError(f"Database operation '{operation}' failed: {e!s}") from e

            attempt += 1
            delay = backoff * (2 ** (attempt - 1))
            logger.warning(
                "Transient failure in %s (attempt %d/%d), retrying in %.3fs: %s",
                operation,
                attempt,
                retries + 1,
                delay,
                cause,
            )
            time.sleep(delay)

    def init_database(self, drop_existing: bool = False) -> None:
        """
        Create the ledger tables.

        Args:
            drop_existing: If True, drop all tables before creating
        """
        engine = self.engine

        if drop_existing:
            logger.warning("Dropping all existing tables...")
            Base.metadata.drop_all(bind=engine)

        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialization complete")

    def verify_connection(self) -> bool:
        """
        Verify the database connection is working.

        Returns:
            True if connection is successful, False otherwise
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database connection verified")
            return True
        except SQLAlchemyError:
            logger.exception("Database connection failed")
            return False

    def close(self) -> None:
        """Dispose of the engine. Call at process shutdown."""
        if self._engine:
            self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._session_factory = None


def safe_query(session: Session, query_func: Callable[[Session], T], error_msg: str) -> T:
    """
    Execute a query, converting driver failures into ``StorageError``.

    Lock and timeout failures (``OperationalError``) are flagged retryable so
    ``run_transaction`` can start the unit of work over.

    Args:
        session: The database session
        query_func: Function that performs the query
        error_msg: Error message prefix

    Raises:
        StorageError: If the query fails
    """
    try:
        return query_func(session)
    except OperationalError as e:
        raise StorageError(f"{error_msg}: {e!s}", retryable=True) from e
    except SQLAlchemyError as e:
        logger.exception("Query failed")
        raise StorageError(f"{error_msg}: database query failed") from e
