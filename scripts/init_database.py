#!/usr/bin/env python3
"""
Initialize the Library Lending database.

This script:
1. Creates all database tables
2. Optionally loads sample users and books
3. Reconciles borrowed counts against loan records

Usage:
    python scripts/init_database.py [--drop-existing] [--sample-data] [--database-url URL]
"""

import argparse
import logging
import sys

from library_lending.database import (
    BookCreateSchema,
    BookRepository,
    DuplicateError,
    UserCreateSchema,
    UserRepository,
    get_db_manager,
)
from library_lending.lending import get_coordinator
from library_lending.models import UserRole

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

SAMPLE_USERS = [
    UserCreateSchema(name="Library Admin", email="admin@library.example.org", role=UserRole.ADMIN),
    UserCreateSchema(name="Ada Reader", email="ada@library.example.org"),
    UserCreateSchema(name="Ben Reader", email="ben@library.example.org"),
]

SAMPLE_BOOKS = [
    BookCreateSchema(
        title="The Great Gatsby", author="F. Scott Fitzgerald", genre="Fiction", total_copies=3
    ),
    BookCreateSchema(title="Dune", author="Frank Herbert", genre="Science Fiction", total_copies=2),
    BookCreateSchema(title="The Hobbit", author="J.R.R. Tolkien", genre="Fantasy", total_copies=1),
    BookCreateSchema(title="Sapiens", author="Yuval Noah Harari", genre="History", total_copies=4),
]


def load_sample_data(db_manager) -> None:
    """Insert the sample users and books, skipping users that already exist."""
    session = db_manager.create_session()
    try:
        users = UserRepository(session)
        for user in SAMPLE_USERS:
            try:
                created = users.create(user)
                logger.info("Created %s %s (%s)", created.role.value, created.name, created.id)
            except DuplicateError:
                logger.info("User %s already exists, skipping", user.email)

        books = BookRepository(session)
        for book in SAMPLE_BOOKS:
            created = books.create(book)
            logger.info("Created book %s (%s)", created.title, created.id)
    finally:
        session.close()


def main():
    """Main entry point for database initialization."""
    parser = argparse.ArgumentParser(description="Initialize the Library Lending database")
    parser.add_argument(
        "--drop-existing",
        action="store_true",
        help="Drop existing tables before creating new ones",
    )
    parser.add_argument(
        "--sample-data",
        action="store_true",
        help="Load sample data after creating tables",
    )
    parser.add_argument(
        "--database-url",
        help="Override default database URL",
    )

    args = parser.parse_args()

    logger.info("Initializing database manager...")
    db_manager = get_db_manager(args.database_url)

    if not db_manager.verify_connection():
        logger.error("Failed to connect to database")
        sys.exit(1)

    try:
        logger.info("Creating database schema...")
        db_manager.init_database(drop_existing=args.drop_existing)

        if args.sample_data:
            logger.info("Loading sample data...")
            load_sample_data(db_manager)

        reports = get_coordinator().reconcile()
        drifted = [report.book_id for report in reports if report.drifted]
        if drifted:
            logger.warning("Corrected borrowed counts for: %s", ", ".join(drifted))

        logger.info("Database ready (%d books)", len(reports))
    except Exception:
        logger.exception("Database initialization failed")
        sys.exit(1)
    finally:
        db_manager.close()


if __name__ == "__main__":
    main()
