"""
Book repository: the inventory ledger of the Library Lending server.

The ledger owns each title's ``total_copies`` and ``borrowed_count``:

1. **Conditional updates**: borrowing and returning a copy are single
   ``UPDATE ... WHERE`` statements, so the capacity check and the write can
   never be split by a concurrent request
2. **Administrative edits**: copy-count changes are refused when they would
   drop below the number of copies on loan
3. **Deletion guard**: a title is only removed while nothing is borrowed,
   taking its closed loan history with it

Ledger mutations flush but never commit. The lending coordinator decides
when a transaction ends.
"""

import logging
from datetime import datetime

from pydantic import BaseModel, Field
from sqlalchemy import and_, delete, exists, func, or_, select, update

from ..database.schema import Book as BookDB
from ..database.schema import Loan as LoanDB
from ..database.session import safe_commit, safe_query
from ..models.book import Book as BookModel
from .repository import (
    BaseRepository,
    ConflictError,
    InvalidArgumentError,
    InvariantViolationError,
    NotFoundError,
    PaginatedResponse,
    PaginationParams,
)

logger = logging.getLogger(__name__)


class BookCreateSchema(BaseModel):
    """Schema for adding a title to the catalog."""

    title: str = Field(..., min_length=1, max_length=500)
    author: str = Field(..., min_length=1, max_length=200)
    genre: str = Field(..., min_length=1, max_length=100)
    total_copies: int = Field(..., ge=0)
    cover_image_url: str = ""


class BookSearchParams(BaseModel):
    """Catalog filters: free text over title/author and an exact genre."""

    query: str | None = None
    genre: str | None = None
    available_only: bool = False


class BookRepository(BaseRepository[BookDB, BookCreateSchema, BookModel]):
    """
    Repository for the inventory ledger.

    Only the lending coordinator calls the mutating methods, so that
    ``borrowed_count`` keeps matching the number of open loans.
    """

    id_prefix = "book"

    @property
    def model_class(self):
        return BookDB

    @property
    def response_schema(self):
        return BookModel

    def create(self, data: BookCreateSchema) -> BookModel:
        """Add a title with nothing borrowed and commit it."""
        db_book = BookDB(id=self._generate_id(), borrowed_count=0, **data.model_dump())
        self.session.add(db_book)
        safe_commit(self.session, "create book")
        self.session.refresh(db_book)
        logger.info("Added book %s (%d copies)", db_book.id, db_book.total_copies)
        return self._to_response_model(db_book)

    def search(
        self,
        search_params: BookSearchParams,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResponse[BookModel]:
        """
        Search the catalog.

        ``query`` matches title or author case-insensitively, ``genre`` must
        match exactly.
        """
        pagination = pagination or PaginationParams()
        pagination.validate_params()

        filters = []
        if search_params.query:
            term = f"%{search_params.query.lower()}%"
            filters.append(
                or_(func.lower(BookDB.title).like(term), func.lower(BookDB.author).like(term))
            )
        if search_params.genre:
            filters.append(BookDB.genre == search_params.genre)
        if search_params.available_only:
            filters.append(BookDB.borrowed_count < BookDB.total_copies)

        query = select(BookDB)
        if filters:
            query = query.where(and_(*filters))

        total = (
            safe_query(
                self.session,
                lambda s: s.execute(select(func.count()).select_from(query.subquery())).scalar(),
                "Failed to count books",
            )
            or 0
        )
        results = safe_query(
            self.session,
            lambda s: s.execute(
                query.order_by(BookDB.title).offset(pagination.offset).limit(pagination.page_size)
            )
            .scalars()
            .all(),
            "Failed to search books",
        )
        items = [self._to_response_model(book) for book in results]
        return PaginatedResponse.build(items, total, pagination)

    # Ledger operations

    def available_copies(self, book_id: str) -> int:
        """Copies that can be lent out right now."""
        return self.require(book_id).available_copies

    def can_delete(self, book_id: str) -> bool:
        return self.require(book_id).can_delete

    def adjust_total_copies(self, book_id: str, new_total: int) -> BookModel:
        """
        Set a title's total copies.

        Raises:
            InvalidArgumentError: If new_total is negative
            NotFoundError: If the book does not exist
            ConflictError: If new_total is below the borrowed count
        """
        if new_total < 0:
            raise InvalidArgumentError("Total copies cannot be negative")

        result = self._execute_update(
            update(BookDB)
            .where(and_(BookDB.id == book_id, BookDB.borrowed_count <= new_total))
            .values(total_copies=new_total, updated_at=datetime.now()),
            "Failed to adjust total copies",
        )
        if result.rowcount == 0:
            book = self.require(book_id)
            raise ConflictError(
                f"Cannot set total copies ({new_total}) less than currently "
                f"borrowed copies ({book.borrowed_count})."
            )
        return self.require(book_id)

    def increment_borrowed(self, book_id: str) -> BookModel:
        """
        Lend out one copy.

        The availability check and the increment are one statement.

        Raises:
            NotFoundError: If the book does not exist
            ConflictError: If no copy is available
        """
        result = self._execute_update(
            update(BookDB)
            .where(and_(BookDB.id == book_id, BookDB.borrowed_count < BookDB.total_copies))
            .values(borrowed_count=BookDB.borrowed_count + 1, updated_at=datetime.now()),
            "Failed to increment borrowed count",
        )
        if result.rowcount == 0:
            self.require(book_id)
            raise ConflictError("No copies of this book are available.")
        return self.require(book_id)

    def decrement_borrowed(self, book_id: str) -> BookModel:
        """
        Take back one copy.

        Raises:
            NotFoundError: If the book does not exist
            InvariantViolationError: If nothing was recorded as borrowed
        """
        result = self._execute_update(
            update(BookDB)
            .where(and_(BookDB.id == book_id, BookDB.borrowed_count > 0))
            .values(borrowed_count=BookDB.borrowed_count - 1, updated_at=datetime.now()),
            "Failed to decrement borrowed count",
        )
        if result.rowcount == 0:
            self.require(book_id)
            raise InvariantViolationError(
                f"Borrowed count of book {book_id} is already zero; refusing to go negative"
            )
        return self.require(book_id)

    def set_borrowed_count(self, book_id: str, value: int) -> BookModel:
        """Overwrite the cached borrowed count. Reconciliation only."""
        if value < 0:
            raise InvalidArgumentError("Borrowed count cannot be negative")

        result = self._execute_update(
            update(BookDB)
            .where(and_(BookDB.id == book_id, BookDB.total_copies >= value))
            .values(borrowed_count=value, updated_at=datetime.now()),
            "Failed to set borrowed count",
        )
        if result.rowcount == 0:
            book = self.require(book_id)
            raise InvariantViolationError(
                f"{value} active loans exceed the {book.total_copies} copies of book {book_id}"
            )
        return self.require(book_id)

    def delete_book(self, book_id: str) -> int:
        """
        Remove a title together with its closed loan history.

        Returns:
            Number of loan records removed

        Raises:
            NotFoundError: If the book does not exist
            ConflictError: If any copy is on loan
        """
        book = self.require(book_id)
        if not book.can_delete:
            raise ConflictError("Cannot delete book. It is currently borrowed by users.")

        active_loan = exists().where(and_(LoanDB.book_id == book_id, LoanDB.return_date.is_(None)))
        history = self._execute_update(
            delete(LoanDB).where(and_(LoanDB.book_id == book_id, LoanDB.return_date.is_not(None))),
            "Failed to delete loan history",
        )
        result = self._execute_update(
            delete(BookDB).where(
                and_(BookDB.id == book_id, BookDB.borrowed_count == 0, ~active_loan)
            ),
            "Failed to delete book",
        )
        if result.rowcount == 0:
            raise ConflictError("Cannot delete book. It is currently borrowed by users.")

        logger.info("Deleted book %s and %d loan records", book_id, history.rowcount)
        return history.rowcount

    def _execute_update(self, statement, error_msg: str):
        return safe_query(
            self.session,
            lambda s: s.execute(statement.execution_options(synchronize_session=False)),
            error_msg,
        )
