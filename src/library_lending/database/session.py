"""
Database session management for the Library Lending server.

This module provides connection management and session handling for SQLAlchemy.
Lending calls arrive from many threads at once, so:

1. Thread Safety: every session gets its own pooled connection; in-memory
   SQLite, which can only offer one shared connection, is refused
2. Transaction Management: each borrow/return is one short transaction
3. Bounded Waits: connections are opened with a busy/pool timeout so a
   locked or unreachable store fails fast instead of hanging
4. Error Classification: storage failures are translated into
   repository exceptions the coordinator understands
"""

import logging
from collections.abc import Callable, Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TypeVar

from sqlalchemy import create_engine, event, make_url, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    IntegrityError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker

from ..config import get_config
from .exceptions import ConflictError, RepositoryException, TransientStoreError
from .schema import Base

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DatabaseManager:
    """
    Manages database connections and sessions for the lending server.

    This class provides:
    - Lazily created engine with bounded connection waits
    - Session factory with explicit transactions
    - Schema initialization and health checks
    """

    def __init__(self, database_url: str | None = None, timeout: float | None = None):
        """
        Initialize the database manager.

        Args:
            database_url: SQLAlchemy database URL. If None, uses configuration.
            timeout: Seconds to wait on a busy store. If None, uses configuration.
        """
        config = get_config() if database_url is None or timeout is None else None

        if database_url is None:
            database_url = config.database_url
        if database_url is None:
            db_path = config.database_path

            if not db_path.is_absolute():
                db_path = Path.cwd() / db_path

            db_path.parent.mkdir(exist_ok=True, parents=True)

            database_url = f"sqlite:///{db_path}"
            logger.info("Using SQLite database at: %s", db_path)

        if is_memory_url(database_url):
            raise ValueError(
                f"In-memory database {database_url!r} is not supported: its sessions would "
                "share one connection across threads. Use a file-backed SQLite path."
            )

        self.database_url = database_url
        self.timeout = timeout if timeout is not None else config.store_timeout_seconds
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    @property
    def engine(self) -> Engine:
        """
        Get or create the database engine.

        SQLite connections get a busy timeout and foreign keys turned on.
        """
        if self._engine is None:
            if self.database_url.startswith("sqlite"):
                engine_kwargs = {
                    "connect_args": {
                        "check_same_thread": False,
                        "timeout": self.timeout,
                    },
                    "echo": False,
                }
                self._engine = create_engine(self.database_url, **engine_kwargs)

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
                    pool_timeout=self.timeout,
                    pool_pre_ping=True,
                    echo=False,
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
                expire_on_commit=False,  # Keep objects usable after commit
            )
        return self._session_factory

    def create_session(self) -> Session:
        """Create a new database session."""
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope for database operations.

        ```python
        with db_manager.session_scope() as session:
            session.add(book)
        # Session is automatically committed or rolled back
        ```
        """
        session = self.create_session()
        try:
            yield session
            session.commit()
            logger.debug("Database transaction committed successfully")
        except Exception:
            logger.exception("Database error, rolling back")
            session.rollback()
            raise
        finally:
            session.close()

    def init_database(self, drop_existing: bool = False) -> None:
        """
        Initialize the database schema.

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
        """Verify the database connection is working."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database connection verified")
            return True
        except SQLAlchemyError:
            logger.exception("Database connection failed")
            return False

    def close(self) -> None:
        """Close the database connection and cleanup resources."""
        if self._engine:
            self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._session_factory = None


def is_memory_url(database_url: str) -> bool:
    """True for SQLite URLs whose database lives only in memory."""
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return False
    return url.database in (None, "", ":memory:") or url.query.get("mode") == "memory"


_db_manager: DatabaseManager | None = None


def get_db_manager(database_url: str | None = None) -> DatabaseManager:
    """
    Get the global database manager instance.

    Args:
        database_url: Database URL (only used on first call)
    """
    global _db_manager  # noqa: PLW0603 - Singleton pattern for database manager

    if _db_manager is None:
        _db_manager = DatabaseManager(database_url)

    return _db_manager


def reset_db_manager() -> None:
    """Dispose of the global database manager (useful for testing)."""
    global _db_manager  # noqa: PLW0603

    if _db_manager is not None:
        _db_manager.close()
    _db_manager = None


def get_session() -> Session:
    """
    Get a new database session.

    Prefer using session_scope() for proper transaction management.
    """
    return get_db_manager().create_session()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Convenience context manager for database sessions."""
    with get_db_manager().session_scope() as session:
        yield session


# Error classification


def classify_store_error(error: SQLAlchemyError, operation: str) -> RepositoryException:
    """
    Translate a SQLAlchemy error into a repository exception.

    Constraint violations become conflicts. Locked, unreachable or
    timed-out stores become transient errors. Anything else is a plain
    repository failure.
    """
    if isinstance(error, IntegrityError):
        return ConflictError(f"{operation} violates a storage constraint")
    if isinstance(error, OperationalError | PoolTimeoutError | DisconnectionError):
        cause = getattr(error, "orig", None) or error
        return TransientStoreError(f"{operation} failed: store unavailable ({cause})")
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return TransientStoreError(f"{operation} failed: connection lost")
    return RepositoryException(f"{operation} failed: {error!s}")


def safe_commit(session: Session, operation: str) -> None:
    """
    Commit a session, rolling back and classifying the error on failure.

    Raises:
        ConflictError: If a constraint rejected the write
        TransientStoreError: If the store was unavailable
        RepositoryException: On any other database error
    """
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise classify_store_error(e, operation) from e


def safe_query(session: Session, query_func: Callable[[Session], T], error_msg: str) -> T:
    """
    Execute a query, classifying database errors.

    Args:
        session: The database session
        query_func: Function that performs the query
        error_msg: Description used in the raised exception

    Raises:
        TransientStoreError: If the store was unavailable
        RepositoryException: On any other database error
    """
    try:
        return query_func(session)
    except SQLAlchemyError as e:
        logger.warning("Query failed: %s", error_msg)
        raise classify_store_error(e, error_msg) from e
