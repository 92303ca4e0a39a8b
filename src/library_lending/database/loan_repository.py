"""
Loan repository: the loan registry of the Library Lending server.

The registry owns the set of active loans, at most one per (user, book):

1. **Opening**: a loan is inserted only if the pair has no open loan. The
   partial unique index on ``loans`` backs the pre-check, and a duplicate
   key at flush time is reported exactly like the pre-check
2. **Closing**: the return timestamp is set by a conditional update on the
   still-open row, so a loan cannot be closed twice
3. **History**: closed loans are kept as an append-only audit trail

Registry mutations flush but never commit.
"""

import logging
from datetime import datetime

from sqlalchemy import and_, desc, func, select, update
from sqlalchemy.exc import IntegrityError

from ..database.schema import Book as BookDB
from ..database.schema import Loan as LoanDB
from ..database.session import safe_query
from ..models.loan import BorrowedBook
from ..models.loan import Loan as LoanModel
from .repository import (
    BaseRepository,
    DuplicateError,
    NotFoundError,
    PaginatedResponse,
    PaginationParams,
)

logger = logging.getLogger(__name__)

ALREADY_BORROWED = "You have already borrowed this book."
NOT_BORROWED = "You haven't borrowed this book or it was already returned."


class LoanRepository(BaseRepository[LoanDB, LoanModel, LoanModel]):
    """
    Repository for the loan registry.

    Loans are created and closed only through the lending coordinator.
    """

    id_prefix = "loan"

    @property
    def model_class(self):
        return LoanDB

    @property
    def response_schema(self):
        return LoanModel

    def _active_loan_query(self, user_id: str, book_id: str):
        return select(LoanDB).where(
            and_(
                LoanDB.user_id == user_id,
                LoanDB.book_id == book_id,
                LoanDB.return_date.is_(None),
            )
        )

    def has_active_loan(self, user_id: str, book_id: str) -> bool:
        query = self._active_loan_query(user_id, book_id)
        loan = safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            "Failed to check for an active loan",
        )
        return loan is not None

    def open_loan(self, user_id: str, book_id: str) -> LoanModel:
        """
        Open a loan for the pair.

        Raises:
            DuplicateError: If the pair already has an active loan, whether
                seen by the pre-check or by the unique index at flush time
        """
        if self.has_active_loan(user_id, book_id):
            raise DuplicateError(ALREADY_BORROWED)

        loan = LoanDB(
            id=self._generate_id(),
            user_id=user_id,
            book_id=book_id,
            borrow_date=datetime.now(),
            return_date=None,
        )
        self.session.add(loan)
        try:
            self.session.flush()
        except IntegrityError as e:
            # Lost the race to a concurrent borrow of the same pair
            logger.info("Duplicate active loan rejected by store: %s/%s", user_id, book_id)
            raise DuplicateError(ALREADY_BORROWED) from e

        return self._to_response_model(loan)

    def close_loan(self, user_id: str, book_id: str) -> LoanModel:
        """
        Close the pair's active loan.

        Raises:
            NotFoundError: If the pair has no active loan
        """
        query = self._active_loan_query(user_id, book_id)
        loan = safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            "Failed to get active loan",
        )
        if loan is None:
            raise NotFoundError(NOT_BORROWED)

        returned_at = datetime.now()
        statement = (
            update(LoanDB)
            .where(and_(LoanDB.id == loan.id, LoanDB.return_date.is_(None)))
            .values(return_date=returned_at)
            .execution_options(synchronize_session=False)
        )
        result = safe_query(
            self.session, lambda s: s.execute(statement), "Failed to close loan"
        )
        if result.rowcount == 0:
            raise NotFoundError(NOT_BORROWED)

        loan.return_date = returned_at
        return self._to_response_model(loan)

    def active_loans_for_user(self, user_id: str) -> list[LoanModel]:
        """Snapshot of the user's outstanding loans."""
        query = select(LoanDB).where(
            and_(LoanDB.user_id == user_id, LoanDB.return_date.is_(None))
        )
        results = safe_query(
            self.session,
            lambda s: s.execute(query).scalars().all(),
            "Failed to get active loans for user",
        )
        return [self._to_response_model(loan) for loan in results]

    def active_loan_count_for_book(self, book_id: str) -> int:
        query = (
            select(func.count())
            .select_from(LoanDB)
            .where(and_(LoanDB.book_id == book_id, LoanDB.return_date.is_(None)))
        )
        return (
            safe_query(
                self.session,
                lambda s: s.execute(query).scalar(),
                "Failed to count active loans for book",
            )
            or 0
        )

    def active_loan_counts(self) -> dict[str, int]:
        """Active loan count per book, omitting books with none."""
        query = (
            select(LoanDB.book_id, func.count())
            .where(LoanDB.return_date.is_(None))
            .group_by(LoanDB.book_id)
        )
        rows = safe_query(
            self.session,
            lambda s: s.execute(query).all(),
            "Failed to count active loans",
        )
        return {book_id: count for book_id, count in rows}

    def borrowed_books(self, user_id: str) -> list[BorrowedBook]:
        """The user's active loans joined with their books, newest first."""
        query = (
            select(LoanDB, BookDB)
            .join(BookDB, LoanDB.book_id == BookDB.id)
            .where(and_(LoanDB.user_id == user_id, LoanDB.return_date.is_(None)))
            .order_by(desc(LoanDB.borrow_date))
        )
        rows = safe_query(
            self.session,
            lambda s: s.execute(query).all(),
            "Failed to get borrowed books",
        )
        return [
            BorrowedBook(
                loan_id=loan.id,
                book_id=book.id,
                title=book.title,
                author=book.author,
                genre=book.genre,
                cover_image_url=book.cover_image_url or "",
                borrow_date=loan.borrow_date,
            )
            for loan, book in rows
        ]

    def loan_history(
        self,
        user_id: str | None = None,
        book_id: str | None = None,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResponse[LoanModel]:
        """Open and closed loans, newest first, optionally filtered."""
        pagination = pagination or PaginationParams()
        pagination.validate_params()

        query = select(LoanDB)
        if user_id:
            query = query.where(LoanDB.user_id == user_id)
        if book_id:
            query = query.where(LoanDB.book_id == book_id)

        total = (
            safe_query(
                self.session,
                lambda s: s.execute(select(func.count()).select_from(query.subquery())).scalar(),
                "Failed to count loan history",
            )
            or 0
        )
        results = safe_query(
            self.session,
            lambda s: s.execute(
                query.order_by(desc(LoanDB.borrow_date))
                .offset(pagination.offset)
                .limit(pagination.page_size)
            )
            .scalars()
            .all(),
            "Failed to get loan history",
        )
        items = [self._to_response_model(loan) for loan in results]
        return PaginatedResponse.build(items, total, pagination)
