"""
Command line for operating the lending ledger.

Usage:
    library-ledger [--database-url URL] init-db [--drop-existing]
    library-ledger [--database-url URL] sweep [--as-of ISO] [--interval SECONDS]
    library-ledger [--database-url URL] check-inventory
"""

import argparse
import logging
import sys
from datetime import datetime

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from .config import get_config
from .database import BookRepository, DatabaseManager
from .errors import LedgerException
from .lending import OverdueScanner, OverdueSweeper
from .observability import configure_observability

logger = logging.getLogger(__name__)

EXPECTED_TABLES = {"books", "patrons", "loans"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="library-ledger",
        description="Operate the library lending ledger",
    )
    parser.add_argument(
        "--database-url",
        help="Override the configured database URL",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override the configured log level",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init-db", help="Create the ledger tables")
    init_parser.add_argument(
        "--drop-existing",
        action="store_true",
        help="Drop existing tables before creating new ones",
    )

    sweep_parser = subparsers.add_parser("sweep", help="Mark past-due loans overdue")
    sweep_parser.add_argument(
        "--as-of",
        type=datetime.fromisoformat,
        help="Reference time in ISO format (default: now)",
    )
    sweep_parser.add_argument(
        "--interval",
        type=float,
        help="Keep sweeping every SECONDS until interrupted",
    )

    subparsers.add_parser(
        "check-inventory",
        help="Verify available copies + active loans == total copies for every book",
    )

    return parser


def init_db(db: DatabaseManager, args: argparse.Namespace) -> int:
    if not db.verify_connection():
        logger.error("Failed to connect to database")
        return 1

    db.init_database(drop_existing=args.drop_existing)

    tables = set(inspect(db.engine).get_table_names())
    logger.info("Tables present: %s", ", ".join(sorted(tables)))
    missing_tables = EXPECTED_TABLES - tables
    if missing_tables:
        logger.error("Missing expected tables: %s", ", ".join(sorted(missing_tables)))
        return 1
    return 0


def sweep(db: DatabaseManager, args: argparse.Namespace) -> int:
    scanner = OverdueScanner(db)

    if args.interval is None:
        count = scanner.mark_overdue(args.as_of)
        logger.info("Marked %d loan(s) overdue", count)
        return 0

    if args.as_of is not None:
        logger.warning("--as-of is ignored when sweeping on an interval")

    sweeper = OverdueSweeper(scanner, interval_seconds=args.interval)
    sweeper.start()
    try:
        sweeper.wait()
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        sweeper.stop()
    return 0


def check_inventory(db: DatabaseManager, args: argparse.Namespace) -> int:  # noqa: ARG001
    with db.session_scope() as session:
        inventory = BookRepository(session).list_inventory()

    broken = [status for status in inventory if not status.is_consistent]
    for status in broken:
        logger.error(
            "Book %s is inconsistent: total=%d available=%d active_loans=%d",
            status.book_id,
            status.total_copies,
            status.available_copies,
            status.active_loans,
        )
    logger.info("Checked %d book(s), %d inconsistent", len(inventory), len(broken))
    return 1 if broken else 0


COMMANDS = {
    "init-db": init_db,
    "sweep": sweep,
    "check-inventory": check_inventory,
}


def main(argv: list[str] | None = None) -> int:
    """Entry point for the ``library-ledger`` command."""
    args = build_parser().parse_args(argv)
    config = get_config()

    logging.basicConfig(
        level=args.log_level or config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    configure_observability(config)

    db = DatabaseManager(args.database_url, config)
    try:
        return COMMANDS[args.command](db, args)
    except (LedgerException, SQLAlchemyError):
        logger.exception("Command %s failed", args.command)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
