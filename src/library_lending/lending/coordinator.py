"""
Lending coordinator for the Library Lending server.

Borrowing and returning touch two pieces of shared state: the book's
``borrowed_count`` in the inventory ledger and the active loans in the loan
registry. The coordinator changes both together:

1. Resolve the book (and, for borrows, the user)
2. Take the book's lock so requests for one title run one at a time
3. Open a transaction, check and mutate registry and ledger
4. Commit once, or roll everything back

Storage-level guards back up the lock: the ledger increments with a single
conditional UPDATE and the registry relies on a partial unique index, so
the invariants hold even across processes that do not share the lock.

Every public operation returns a ``LendingOutcome``; repository and database
errors are converted, never propagated.
"""

import logging
from collections.abc import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_config
from ..database.book_repository import BookRepository
from ..database.exceptions import (
    ConflictError,
    InvalidArgumentError,
    InvariantViolationError,
    NotFoundError,
    RepositoryException,
    TransientStoreError,
)
from ..database.loan_repository import ALREADY_BORROWED, LoanRepository
from ..database.session import classify_store_error, get_db_manager, safe_commit
from ..database.user_repository import UserRepository
from ..models.loan import BorrowedBook
from ..observability import record_lending_event, trace_lending
from .locks import BookLockRegistry
from .outcomes import LendingErrorKind, LendingOutcome, ReconciliationReport

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]

NO_COPIES_AVAILABLE = "No copies of this book are available."


class LendingCoordinator:
    """
    Runs borrow/return as single transactions across ledger and registry.

    Args:
        session_factory: Callable returning a new ``Session`` (a sessionmaker)
        locks: Per-book lock registry; share one instance across every
            coordinator that serves the same database
    """

    def __init__(self, session_factory: SessionFactory, locks: BookLockRegistry | None = None):
        self._session_factory = session_factory
        self.locks = locks or BookLockRegistry()

    # Borrow / return

    def borrow(self, user_id: str, book_id: str) -> LendingOutcome:
        """
        Lend one copy of ``book_id`` to ``user_id``.

        Fails with NOT_FOUND for an unknown book or user, CONFLICT when the
        user already holds the book or no copy is left.
        """

        def resolve(session: Session) -> None:
            BookRepository(session).require(book_id)
            UserRepository(session).require(user_id)

        def work(session: Session) -> LendingOutcome:
            books = BookRepository(session)
            loans = LoanRepository(session)

            if loans.has_active_loan(user_id, book_id):
                raise ConflictError(ALREADY_BORROWED)
            if books.available_copies(book_id) <= 0:
                raise ConflictError(NO_COPIES_AVAILABLE)

            loan = loans.open_loan(user_id, book_id)
            book = books.increment_borrowed(book_id)
            return LendingOutcome.success(
                "borrow", "Book borrowed successfully", loan=loan, book=book
            )

        return self._run("borrow", book_id, work, resolve=resolve, user_id=user_id)

    def return_book(self, user_id: str, book_id: str) -> LendingOutcome:
        """
        Take back ``user_id``'s copy of ``book_id``.

        Fails with NOT_FOUND for an unknown book or when the user holds no
        active loan for it. If the ledger already shows zero borrowed
        copies the loan is still closed, the count stays at zero and the
        outcome carries an INVARIANT_VIOLATION warning.
        """

        def resolve(session: Session) -> None:
            BookRepository(session).require(book_id)

        def work(session: Session) -> LendingOutcome:
            books = BookRepository(session)
            loans = LoanRepository(session)

            loan = loans.close_loan(user_id, book_id)
            try:
                book = books.decrement_borrowed(book_id)
            except InvariantViolationError as e:
                logger.error("Data integrity warning on return of %s by %s: %s", book_id, user_id, e)
                outcome = LendingOutcome.success(
                    "return", "Book returned successfully", loan=loan, book=books.require(book_id)
                )
                return outcome.flag(LendingErrorKind.INVARIANT_VIOLATION, str(e))

            return LendingOutcome.success(
                "return", "Book returned successfully", loan=loan, book=book
            )

        return self._run("return", book_id, work, resolve=resolve, user_id=user_id)

    # Administrative operations

    def adjust_total_copies(self, book_id: str, new_total: int) -> LendingOutcome:
        """Change a title's copy count; refused below the borrowed count."""

        def work(session: Session) -> LendingOutcome:
            book = BookRepository(session).adjust_total_copies(book_id, new_total)
            return LendingOutcome.success(
                "adjust_total_copies", f"Total copies set to {new_total}", book=book
            )

        return self._run("adjust_total_copies", book_id, work)

    def delete_book(self, book_id: str) -> LendingOutcome:
        """Remove a title and its loan history; refused while any copy is out."""

        def work(session: Session) -> LendingOutcome:
            books = BookRepository(session)
            book = books.require(book_id)
            removed = books.delete_book(book_id)
            return LendingOutcome.success(
                "delete_book", f"Book removed ({removed} loan records deleted)", book=book
            )

        return self._run("delete_book", book_id, work)

    # Read operations

    def borrowed_books(self, user_id: str) -> list[BorrowedBook]:
        """
        The user's active loans with book details.

        Raises:
            NotFoundError: If the user does not exist
            TransientStoreError: If the store is unavailable
        """
        with self._session_factory() as session:
            UserRepository(session).require(user_id)
            return LoanRepository(session).borrowed_books(user_id)

    def reconcile(self, book_id: str | None = None) -> list[ReconciliationReport]:
        """
        Re-derive ``borrowed_count`` from open loans.

        Checks one book, or every book when ``book_id`` is None, rewriting
        drifted counters. Each book is reconciled under its own lock.
        """
        if book_id is not None:
            book_ids = [book_id]
        else:
            try:
                with self._session_factory() as session:
                    book_ids = [book.id for book in BookRepository(session).get_all()]
            except (RepositoryException, SQLAlchemyError) as e:
                logger.warning("Could not list books for reconciliation: %s", e)
                return []

        return [self._reconcile_book(bid) for bid in book_ids]

    def _reconcile_book(self, book_id: str) -> ReconciliationReport:
        report = ReconciliationReport(book_id=book_id, cached_count=0, active_loans=0)

        def work(session: Session) -> LendingOutcome:
            books = BookRepository(session)
            book = books.require(book_id)
            active = LoanRepository(session).active_loan_count_for_book(book_id)
            report.cached_count = book.borrowed_count
            report.active_loans = active

            if not report.drifted:
                return LendingOutcome.success("reconcile", "Borrowed count in sync", book=book)

            logger.warning(
                "Borrowed count drift on book %s: cached %d, active loans %d",
                book_id,
                book.borrowed_count,
                active,
            )
            book = books.set_borrowed_count(book_id, active)
            report.corrected = True
            return LendingOutcome.success(
                "reconcile", f"Borrowed count corrected to {active}", book=book
            )

        outcome = self._run("reconcile", book_id, work)
        if not outcome.ok:
            report.corrected = False
            report.error = outcome.error
        report.message = outcome.message
        return report

    # Transaction runner

    def _run(
        self,
        operation: str,
        book_id: str,
        work: Callable[[Session], LendingOutcome],
        resolve: Callable[[Session], None] | None = None,
        user_id: str | None = None,
    ) -> LendingOutcome:
        """
        Resolve, lock, run ``work`` in one transaction and commit.

        Any exception rolls the transaction back (the session is closed
        without committing) and is mapped to a failed outcome.
        """
        with trace_lending(operation, book_id=book_id, user_id=user_id) as span:
            try:
                if resolve is not None:
                    with self._session_factory() as session:
                        resolve(session)

                with self.locks.hold(book_id), self._session_factory() as session:
                    outcome = work(session)
                    safe_commit(session, operation)
            except NotFoundError as e:
                outcome = LendingOutcome.failure(operation, LendingErrorKind.NOT_FOUND, str(e))
            except ConflictError as e:
                outcome = LendingOutcome.failure(operation, LendingErrorKind.CONFLICT, str(e))
            except InvalidArgumentError as e:
                outcome = LendingOutcome.failure(
                    operation, LendingErrorKind.INVALID_ARGUMENT, str(e)
                )
            except InvariantViolationError as e:
                logger.error("Invariant violation during %s on book %s: %s", operation, book_id, e)
                outcome = LendingOutcome.failure(
                    operation, LendingErrorKind.INVARIANT_VIOLATION, str(e)
                )
            except TransientStoreError as e:
                logger.warning("Transient failure during %s on book %s: %s", operation, book_id, e)
                outcome = LendingOutcome.failure(operation, LendingErrorKind.TRANSIENT, str(e))
            except SQLAlchemyError as e:
                outcome = self._store_failure(operation, book_id, classify_store_error(e, operation))
            except RepositoryException as e:
                outcome = self._store_failure(operation, book_id, e)
            except Exception as e:
                logger.exception("Unexpected failure during %s on book %s", operation, book_id)
                outcome = LendingOutcome.failure(
                    operation, LendingErrorKind.INVARIANT_VIOLATION, f"Unexpected error: {e}"
                )

            if outcome.ok:
                logger.info("%s succeeded for book %s (user %s)", operation, book_id, user_id)
            else:
                logger.info(
                    "%s rejected for book %s (user %s): %s", operation, book_id, user_id,
                    outcome.message,
                )

            span.set_attribute("lending.ok", outcome.ok)
            if outcome.error is not None:
                span.set_attribute("lending.error", outcome.error.value)
            if outcome.warning is not None:
                span.set_attribute("lending.warning", outcome.warning.value)
            record_lending_event(
                operation, outcome.ok, outcome.error.value if outcome.error else None
            )
            return outcome

    def _store_failure(
        self, operation: str, book_id: str, error: RepositoryException
    ) -> LendingOutcome:
        if isinstance(error, ConflictError):
            return LendingOutcome.failure(operation, LendingErrorKind.CONFLICT, str(error))

        # Unclassified storage failures are reported as retryable; nothing was committed
        logger.exception("Storage failure during %s on book %s", operation, book_id)
        return LendingOutcome.failure(operation, LendingErrorKind.TRANSIENT, str(error))


_coordinator: LendingCoordinator | None = None


def get_coordinator() -> LendingCoordinator:
    """
    Get the process-wide coordinator.

    One instance means one lock registry, so every request in this process
    serializes on the same per-book locks.
    """
    global _coordinator  # noqa: PLW0603 - Singleton pattern for the coordinator

    if _coordinator is None:
        config = get_config()
        _coordinator = LendingCoordinator(
            get_db_manager().session_factory,
            BookLockRegistry(timeout=config.lock_timeout_seconds),
        )
    return _coordinator


def reset_coordinator() -> None:
    """Drop the process-wide coordinator (useful for testing)."""
    global _coordinator  # noqa: PLW0603
    _coordinator = None
