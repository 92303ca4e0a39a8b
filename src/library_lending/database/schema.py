"""
SQLAlchemy database schema for the Library Lending server.

Three tables back the lending core:

1. ``books`` - the inventory ledger (total and borrowed copy counts)
2. ``loans`` - the loan registry, an append-only audit history
3. ``users`` - accounts that borrow books, with a role

The store itself guards both lending invariants: CHECK constraints keep
``borrowed_count`` within ``[0, total_copies]`` and a partial unique index
allows at most one open loan per (user, book) pair.
"""

import enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

# Base class for all SQLAlchemy models
Base = declarative_base()


class UserRoleEnum(str, enum.Enum):
    """Database enum for user roles."""

    USER = "USER"
    ADMIN = "ADMIN"


class User(Base):
    """
    Users table - library accounts.

    Credentials live outside the lending core; only identity and role
    are stored here.
    """

    __tablename__ = "users"

    id = Column(String(50), primary_key=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    role = Column(Enum(UserRoleEnum), nullable=False, default=UserRoleEnum.USER)

    created_at = Column(DateTime, nullable=False, default=func.now())

    loans = relationship("Loan", back_populates="user")

    __table_args__ = (
        Index("idx_user_email", "email"),
        CheckConstraint("id LIKE 'user_%'", name="check_user_id_format"),
    )


class Book(Base):
    """
    Books table - the inventory ledger.

    ``borrowed_count`` is a cached projection of the number of open loans
    for the book. Only the lending coordinator writes it.
    """

    __tablename__ = "books"

    id = Column(String(50), primary_key=True)
    title = Column(String(500), nullable=False)
    author = Column(String(200), nullable=False)
    genre = Column(String(100), nullable=False)
    cover_image_url = Column(String(500), nullable=False, default="")
    total_copies = Column(Integer, nullable=False)
    borrowed_count = Column(Integer, nullable=False, default=0)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=True, default=func.now(), onupdate=func.now())

    # Loans go with the book; deletion is only allowed once none are open
    loans = relationship("Loan", back_populates="book", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_book_title", "title"),
        Index("idx_book_genre", "genre"),
        CheckConstraint("id LIKE 'book_%'", name="check_book_id_format"),
        CheckConstraint("total_copies >= 0", name="check_total_copies_non_negative"),
        CheckConstraint("borrowed_count >= 0", name="check_borrowed_count_non_negative"),
        CheckConstraint(
            "borrowed_count <= total_copies", name="check_borrowed_not_exceed_total"
        ),
    )

    @property
    def available_copies(self) -> int:
        return max(0, self.total_copies - self.borrowed_count)


class Loan(Base):
    """
    Loans table - the loan registry.

    A row with ``return_date IS NULL`` is an active loan. Rows are closed,
    never deleted, except when their book is deleted.
    """

    __tablename__ = "loans"

    id = Column(String(50), primary_key=True)
    user_id = Column(String(50), ForeignKey("users.id"), nullable=False)
    book_id = Column(String(50), ForeignKey("books.id", ondelete="CASCADE"), nullable=False)
    borrow_date = Column(DateTime, nullable=False, default=func.now())
    return_date = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="loans")
    book = relationship("Book", back_populates="loans")

    __table_args__ = (
        Index("idx_loan_user", "user_id"),
        Index("idx_loan_book", "book_id"),
        # One open loan per (user, book); closed loans are unconstrained
        Index(
            "uq_loan_active_user_book",
            "user_id",
            "book_id",
            unique=True,
            sqlite_where=text("return_date IS NULL"),
            postgresql_where=text("return_date IS NULL"),
        ),
        CheckConstraint("id LIKE 'loan_%'", name="check_loan_id_format"),
        CheckConstraint(
            "return_date IS NULL OR return_date >= borrow_date",
            name="check_return_after_borrow",
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.return_date is None
