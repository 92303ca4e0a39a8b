"""
Database package for the Library Lending server.

This package provides:
- SQLAlchemy schema definitions (schema.py)
- Session management and error classification (session.py)
- The inventory ledger (book_repository.py)
- The loan registry (loan_repository.py)
- User accounts (user_repository.py)
"""

from .book_repository import BookCreateSchema, BookRepository, BookSearchParams
from .exceptions import (
    ConflictError,
    DuplicateError,
    InvalidArgumentError,
    InvariantViolationError,
    NotFoundError,
    RepositoryException,
    TransientStoreError,
)
from .loan_repository import LoanRepository
from .repository import BaseRepository, PaginatedResponse, PaginationParams
from .schema import Base, Book, Loan, User, UserRoleEnum
from .session import (
    DatabaseManager,
    classify_store_error,
    get_db_manager,
    get_session,
    reset_db_manager,
    safe_commit,
    safe_query,
    session_scope,
)
from .user_repository import UserCreateSchema, UserRepository

__all__ = [
    "Base",
    "BaseRepository",
    "Book",
    "BookCreateSchema",
    "BookRepository",
    "BookSearchParams",
    "ConflictError",
    "DatabaseManager",
    "DuplicateError",
    "InvalidArgumentError",
    "InvariantViolationError",
    "Loan",
    "LoanRepository",
    "NotFoundError",
    "PaginatedResponse",
    "PaginationParams",
    "RepositoryException",
    "TransientStoreError",
    "User",
    "UserCreateSchema",
    "UserRepository",
    "UserRoleEnum",
    "classify_store_error",
    "get_db_manager",
    "get_session",
    "reset_db_manager",
    "safe_commit",
    "safe_query",
    "session_scope",
]
