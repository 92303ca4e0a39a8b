"""Test configuration and fixtures for the Library Lending server.

1. Isolated test databases - each test gets its own SQLite file, so threads
   use real separate connections just like the server does
2. Configuration isolation - the global config, database manager and
   coordinator singletons are reset around every test
3. Seed data - a regular user, a second borrower, an admin and a few books
"""

import os
from collections.abc import Callable, Generator
from pathlib import Path

import logfire
import pytest
from sqlalchemy.orm import Session

from library_lending.config import LendingConfig, reset_config
from library_lending.database import (
    BookCreateSchema,
    BookRepository,
    DatabaseManager,
    UserCreateSchema,
    UserRepository,
    reset_db_manager,
)
from library_lending.lending import BookLockRegistry, LendingCoordinator, reset_coordinator
from library_lending.models import Book, User, UserRole

# === Pytest Configuration ===


def pytest_configure(config):
    """Keep logfire local and register custom markers."""
    logfire.configure(send_to_logfire=False, console=False)
    config.addinivalue_line("markers", "concurrency: test drives the coordinator from many threads")


# === Test Database Fixtures ===


@pytest.fixture
def test_db_path(tmp_path: Path) -> Generator[Path, None, None]:
    """Provide a temporary database path for each test."""
    db_path = tmp_path / "test_library.db"
    yield db_path

    if db_path.exists():
        db_path.unlink()


@pytest.fixture
def test_database_url(test_db_path: Path) -> str:
    """Provide a SQLAlchemy database URL for testing."""
    return f"sqlite:///{test_db_path}"


@pytest.fixture
def db_manager(test_database_url: str) -> Generator[DatabaseManager, None, None]:
    """A database manager with the schema created."""
    manager = DatabaseManager(test_database_url, timeout=5.0)
    manager.init_database()
    yield manager
    manager.close()


@pytest.fixture
def test_db_session(db_manager: DatabaseManager) -> Generator[Session, None, None]:
    """Provide a SQLAlchemy session for database tests."""
    session = db_manager.create_session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def coordinator(db_manager: DatabaseManager) -> LendingCoordinator:
    """A coordinator over the test database with its own lock registry."""
    return LendingCoordinator(db_manager.session_factory, BookLockRegistry(timeout=5.0))


# === Configuration Fixtures ===


@pytest.fixture
def test_config(test_db_path: Path) -> Generator[LendingConfig, None, None]:
    """Provide a test-specific configuration."""
    reset_config()

    config = LendingConfig(
        server_name="test-library-lending",
        server_version="0.0.1-test",
        database_path=test_db_path,
        debug=True,
        log_level="DEBUG",
        store_timeout_seconds=2.0,
        lock_timeout_seconds=2.0,
    )

    yield config

    reset_config()


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Provide an environment without LIBRARY_LENDING_* variables."""
    original_env = os.environ.copy()

    for key in list(os.environ.keys()):
        if key.startswith("LIBRARY_LENDING_"):
            del os.environ[key]

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def lending_server(
    clean_env, test_db_path: Path, test_database_url: str
) -> Generator[DatabaseManager, None, None]:
    """Point the process-wide singletons at the test database.

    Tool handlers look up the global coordinator, so tool tests run against
    whatever database the environment configures.
    """
    os.environ["LIBRARY_LENDING_DATABASE_PATH"] = str(test_db_path)
    os.environ["LIBRARY_LENDING_DATABASE_URL"] = test_database_url
    reset_config()
    reset_db_manager()
    reset_coordinator()

    from library_lending.database import get_db_manager  # noqa: PLC0415

    manager = get_db_manager()
    manager.init_database()

    yield manager

    reset_coordinator()
    reset_db_manager()
    reset_config()


# === Test Data Fixtures ===


@pytest.fixture
def make_user(test_db_session: Session) -> Callable[..., User]:
    """Factory that registers users in the test database."""
    counter = iter(range(1, 1000))

    def _make_user(name: str = "Test Reader", role: UserRole = UserRole.USER) -> User:
        email = f"reader{next(counter)}@example.com"
        return UserRepository(test_db_session).create(
            UserCreateSchema(name=name, email=email, role=role)
        )

    return _make_user


@pytest.fixture
def make_book(test_db_session: Session) -> Callable[..., Book]:
    """Factory that adds books to the test database."""

    def _make_book(
        title: str = "Test Book",
        total_copies: int = 1,
        author: str = "Test Author",
        genre: str = "Fiction",
    ) -> Book:
        return BookRepository(test_db_session).create(
            BookCreateSchema(title=title, author=author, genre=genre, total_copies=total_copies)
        )

    return _make_book


@pytest.fixture
def alice(make_user) -> User:
    return make_user("Alice")


@pytest.fixture
def bob(make_user) -> User:
    return make_user("Bob")


@pytest.fixture
def admin(make_user) -> User:
    return make_user("Library Admin", role=UserRole.ADMIN)


@pytest.fixture
def single_copy_book(make_book) -> Book:
    return make_book("The Hobbit", total_copies=1, author="J.R.R. Tolkien", genre="Fantasy")


@pytest.fixture
def sample_books(make_book) -> list[Book]:
    """A small catalog with different genres and copy counts."""
    return [
        make_book("The Great Gatsby", 3, "F. Scott Fitzgerald", "Fiction"),
        make_book("Dune", 2, "Frank Herbert", "Science Fiction"),
        make_book("Sapiens", 4, "Yuval Noah Harari", "History"),
        make_book("Out of Print", 0, "Nobody", "History"),
    ]


@pytest.fixture
def read_book(db_manager: DatabaseManager) -> Callable[[str], Book | None]:
    """Read a book's committed state through a fresh session."""

    def _read_book(book_id: str) -> Book | None:
        with db_manager.session_factory() as session:
            return BookRepository(session).get_by_id(book_id)

    return _read_book
